from __future__ import annotations

import functools
import math
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple


@dataclass(frozen=True)
class Symbol:
    name: str


@dataclass(frozen=True)
class RangeValue:
    start: object
    end: object
    exclusive: bool = False

    def to_list(self) -> List[object]:
        if not isinstance(self.start, int) or not isinstance(self.end, int):
            raise_error("TypeError", f"can't iterate from {class_name(self.start)}")
        stop = self.end if self.exclusive else self.end + 1
        return list(range(self.start, stop))


@dataclass(eq=False)
class Proc:
    """A block or lambda closed over the environment it was written in."""

    params: list
    body: list
    env: object
    is_lambda: bool = False


@dataclass(frozen=True)
class RubyClass:
    name: str
    ancestors: Tuple[str, ...] = ()

    def is_exception(self) -> bool:
        return "Exception" in self.ancestors or self.name == "Exception"


@dataclass
class RubyError:
    """A raised Ruby exception: class name plus message."""

    class_name: str
    message: str

    def __str__(self) -> str:
        return f"{self.message} ({self.class_name})"


class RaiseSignal(Exception):
    def __init__(self, error: RubyError) -> None:
        super().__init__(str(error))
        self.error = error


def raise_error(class_name_: str, message: str):
    raise RaiseSignal(RubyError(class_name=class_name_, message=message))


BlockInvoker = Callable[[Proc, Sequence[object]], object]


class RuntimeContext:
    def __init__(self, stdout, invoke: BlockInvoker) -> None:
        self.stdout = stdout
        self.invoke = invoke

    def write(self, text: str) -> None:
        self.stdout.write(text)

    def yield_to(self, block: Optional[Proc], *args: object) -> object:
        if block is None:
            raise_error("LocalJumpError", "no block given (yield)")
        return self.invoke(block, list(args))


BuiltinImpl = Callable[[RuntimeContext, Sequence[object], Optional[Proc]], object]
MethodImpl = Callable[[RuntimeContext, object, Sequence[object], Optional[Proc]], object]


@dataclass
class BuiltinFunction:
    name: str
    impl: BuiltinImpl


# Values


def truthy(value: object) -> bool:
    return value is not None and value is not False


_EXCEPTION_ANCESTORS = ("StandardError", "Exception", "Object", "BasicObject")

CONSTANTS: Mapping[str, RubyClass] = {
    "Object": RubyClass("Object", ("BasicObject",)),
    "Integer": RubyClass("Integer", ("Numeric", "Comparable", "Object", "Kernel", "BasicObject")),
    "Float": RubyClass("Float", ("Numeric", "Comparable", "Object", "Kernel", "BasicObject")),
    "Numeric": RubyClass("Numeric", ("Comparable", "Object", "Kernel", "BasicObject")),
    "String": RubyClass("String", ("Comparable", "Object", "Kernel", "BasicObject")),
    "Symbol": RubyClass("Symbol", ("Comparable", "Object", "Kernel", "BasicObject")),
    "Array": RubyClass("Array", ("Enumerable", "Object", "Kernel", "BasicObject")),
    "Range": RubyClass("Range", ("Enumerable", "Object", "Kernel", "BasicObject")),
    "Proc": RubyClass("Proc", ("Object", "Kernel", "BasicObject")),
    "NilClass": RubyClass("NilClass", ("Object", "Kernel", "BasicObject")),
    "TrueClass": RubyClass("TrueClass", ("Object", "Kernel", "BasicObject")),
    "FalseClass": RubyClass("FalseClass", ("Object", "Kernel", "BasicObject")),
    "Exception": RubyClass("Exception", ("Object", "Kernel", "BasicObject")),
    "StandardError": RubyClass("StandardError", ("Exception", "Object", "BasicObject")),
    "RuntimeError": RubyClass("RuntimeError", _EXCEPTION_ANCESTORS),
    "ArgumentError": RubyClass("ArgumentError", _EXCEPTION_ANCESTORS),
    "TypeError": RubyClass("TypeError", _EXCEPTION_ANCESTORS),
    "IndexError": RubyClass("IndexError", _EXCEPTION_ANCESTORS),
    "NameError": RubyClass("NameError", _EXCEPTION_ANCESTORS),
    "NoMethodError": RubyClass("NoMethodError", ("NameError",) + _EXCEPTION_ANCESTORS),
    "ZeroDivisionError": RubyClass("ZeroDivisionError", _EXCEPTION_ANCESTORS),
    "StopIteration": RubyClass("StopIteration", ("IndexError",) + _EXCEPTION_ANCESTORS),
}


def class_name(value: object) -> str:
    if value is None:
        return "NilClass"
    if value is True:
        return "TrueClass"
    if value is False:
        return "FalseClass"
    if isinstance(value, int):
        return "Integer"
    if isinstance(value, float):
        return "Float"
    if isinstance(value, str):
        return "String"
    if isinstance(value, Symbol):
        return "Symbol"
    if isinstance(value, list):
        return "Array"
    if isinstance(value, RangeValue):
        return "Range"
    if isinstance(value, Proc):
        return "Proc"
    if isinstance(value, RubyClass):
        return "Class"
    if isinstance(value, RubyError):
        return value.class_name
    return "Object"


def is_a(value: object, klass: RubyClass) -> bool:
    name = class_name(value)
    if name == klass.name:
        return True
    own = CONSTANTS.get(name)
    return own is not None and klass.name in own.ancestors


def describe(value: object) -> str:
    if value is None or isinstance(value, bool):
        return inspect(value)
    return f"an instance of {class_name(value)}"


def ruby_equal(left: object, right: object) -> bool:
    if isinstance(left, bool) or isinstance(right, bool) or left is None or right is None:
        return left is right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(ruby_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, Proc) or isinstance(right, Proc):
        return left is right
    if type(left) is not type(right):
        return False
    return left == right


def ruby_compare(left: object, right: object) -> int:
    """`<=>` for values that can be ordered; raises ArgumentError otherwise."""
    numbers = (int, float)
    if isinstance(left, numbers) and isinstance(right, numbers) and not isinstance(left, bool) and not isinstance(right, bool):
        return (left > right) - (left < right)
    if isinstance(left, str) and isinstance(right, str):
        return (left > right) - (left < right)
    if isinstance(left, list) and isinstance(right, list):
        for a, b in zip(left, right):
            result = ruby_compare(a, b)
            if result:
                return result
        return (len(left) > len(right)) - (len(left) < len(right))
    raise_error("ArgumentError", f"comparison of {class_name(left)} with {inspect(right)} failed")


def format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    text = repr(value)
    if "e" in text:
        mantissa, exponent = text.split("e")
        if "." not in mantissa:
            mantissa += ".0"
        sign = exponent[0] if exponent[0] in "+-" else "+"
        digits = exponent.lstrip("+-").rjust(2, "0")
        return f"{mantissa}e{sign}{digits}"
    return text


_INSPECT_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\t": "\\t",
    "\r": "\\r",
    "\x1b": "\\e",
    "\0": "\\0",
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\v": "\\v",
}


def _inspect_string(value: str) -> str:
    out = ['"']
    for idx, ch in enumerate(value):
        if ch in _INSPECT_ESCAPES:
            out.append(_INSPECT_ESCAPES[ch])
        elif ch == "#" and value[idx + 1 : idx + 2] in ("{", "$", "@"):
            out.append("\\#")
        else:
            out.append(ch)
    out.append('"')
    return "".join(out)


def inspect(value: object) -> str:
    if value is None:
        return "nil"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return format_float(value)
    if isinstance(value, str):
        return _inspect_string(value)
    if isinstance(value, Symbol):
        return f":{value.name}"
    if isinstance(value, list):
        return "[" + ", ".join(inspect(item) for item in value) + "]"
    if isinstance(value, RangeValue):
        op = "..." if value.exclusive else ".."
        return f"{inspect(value.start)}{op}{inspect(value.end)}"
    if isinstance(value, Proc):
        return "#<Proc (lambda)>" if value.is_lambda else "#<Proc>"
    if isinstance(value, RubyClass):
        return value.name
    if isinstance(value, RubyError):
        return f"#<{value.class_name}: {value.message}>"
    return repr(value)


def to_s(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, Symbol):
        return value.name
    if isinstance(value, RubyError):
        return value.message
    return inspect(value)


# Kernel


def _flatten_for_puts(value: object, out: List[str]) -> None:
    if isinstance(value, list):
        for item in value:
            _flatten_for_puts(item, out)
        return
    out.append(to_s(value))


def _kernel_puts(ctx: RuntimeContext, args: Sequence[object], block: Optional[Proc]) -> object:
    if not args:
        ctx.write("\n")
        return None
    for arg in args:
        if isinstance(arg, list) and not arg:
            ctx.write("\n")
            continue
        lines: List[str] = []
        _flatten_for_puts(arg, lines)
        for line in lines:
            ctx.write(line if line.endswith("\n") else line + "\n")
    return None


def _kernel_print(ctx: RuntimeContext, args: Sequence[object], block: Optional[Proc]) -> object:
    for arg in args:
        ctx.write(to_s(arg))
    return None


def _kernel_p(ctx: RuntimeContext, args: Sequence[object], block: Optional[Proc]) -> object:
    for arg in args:
        ctx.write(inspect(arg) + "\n")
    if not args:
        return None
    if len(args) == 1:
        return args[0]
    return list(args)


def _kernel_raise(ctx: RuntimeContext, args: Sequence[object], block: Optional[Proc]) -> object:
    if not args:
        raise_error("RuntimeError", "unhandled exception")
    first = args[0]
    if isinstance(first, str):
        raise_error("RuntimeError", first)
    if isinstance(first, RubyError):
        raise RaiseSignal(first)
    if isinstance(first, RubyClass) and first.is_exception():
        message = to_s(args[1]) if len(args) > 1 else first.name
        raise_error(first.name, message)
    raise_error("TypeError", "exception class/object expected")


def _kernel_loop(ctx: RuntimeContext, args: Sequence[object], block: Optional[Proc]) -> object:
    while True:
        try:
            ctx.yield_to(block)
        except RaiseSignal as signal:
            if signal.error.class_name == "StopIteration":
                return None
            raise


def _kernel_lambda(ctx: RuntimeContext, args: Sequence[object], block: Optional[Proc]) -> object:
    if block is None:
        raise_error("ArgumentError", "tried to create Proc object without a block")
    return Proc(params=block.params, body=block.body, env=block.env, is_lambda=True)


def _kernel_proc(ctx: RuntimeContext, args: Sequence[object], block: Optional[Proc]) -> object:
    if block is None:
        raise_error("ArgumentError", "tried to create Proc object without a block")
    return block


def _kernel_format(ctx: RuntimeContext, args: Sequence[object], block: Optional[Proc]) -> object:
    if not args or not isinstance(args[0], str):
        raise_error("TypeError", "no implicit conversion into String")
    return _format(args[0], list(args[1:]))


def _format(template: str, values: List[object]) -> str:
    converted = tuple(to_s(v) if isinstance(v, Symbol) else v for v in values)
    try:
        return template % converted
    except (TypeError, ValueError) as err:
        raise_error("ArgumentError", str(err))


KERNEL: Mapping[str, BuiltinFunction] = {
    "puts": BuiltinFunction("puts", _kernel_puts),
    "print": BuiltinFunction("print", _kernel_print),
    "p": BuiltinFunction("p", _kernel_p),
    "pp": BuiltinFunction("pp", _kernel_p),
    "raise": BuiltinFunction("raise", _kernel_raise),
    "loop": BuiltinFunction("loop", _kernel_loop),
    "lambda": BuiltinFunction("lambda", _kernel_lambda),
    "proc": BuiltinFunction("proc", _kernel_proc),
    "format": BuiltinFunction("format", _kernel_format),
}


# Operators


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def binary_op(op: str, left: object, right: object) -> object:
    if op == "==":
        return ruby_equal(left, right)
    if op == "!=":
        return not ruby_equal(left, right)
    if _is_number(left):
        if not _is_number(right):
            if op in ("<", ">", "<=", ">="):
                raise_error("ArgumentError", f"comparison of {class_name(left)} with {inspect(right)} failed")
            raise_error("TypeError", f"{class_name(right) if right is not None else 'nil'} can't be coerced into {class_name(left)}")
        return _numeric_op(op, left, right)
    if isinstance(left, str):
        if op == "+":
            if not isinstance(right, str):
                raise_error("TypeError", f"no implicit conversion of {class_name(right)} into String")
            return left + right
        if op == "*":
            if not isinstance(right, int) or isinstance(right, bool):
                raise_error("TypeError", f"no implicit conversion of {class_name(right)} into Integer")
            if right < 0:
                raise_error("ArgumentError", "negative argument")
            return left * right
        if op == "%":
            values = right if isinstance(right, list) else [right]
            return _format(left, values)
        if op in ("<", ">", "<=", ">="):
            if not isinstance(right, str):
                raise_error("ArgumentError", f"comparison of String with {inspect(right)} failed")
            return _compare(op, ruby_compare(left, right))
    if isinstance(left, list):
        if op == "+":
            if not isinstance(right, list):
                raise_error("TypeError", f"no implicit conversion of {class_name(right)} into Array")
            return left + right
        if op == "-":
            if not isinstance(right, list):
                raise_error("TypeError", f"no implicit conversion of {class_name(right)} into Array")
            return [item for item in left if not any(ruby_equal(item, other) for other in right)]
        if op == "*":
            if isinstance(right, str):
                return _join(left, right)
            if isinstance(right, int) and not isinstance(right, bool):
                return left * right
    raise_error("NoMethodError", f"undefined method '{op}' for {describe(left)}")


def _compare(op: str, result: int) -> bool:
    if op == "<":
        return result < 0
    if op == ">":
        return result > 0
    if op == "<=":
        return result <= 0
    return result >= 0


def _numeric_op(op: str, left, right) -> object:
    if op == "+":
        return left + right
    if op == "-":
        return left - right
    if op == "*":
        return left * right
    if op == "/":
        if isinstance(left, int) and isinstance(right, int):
            if right == 0:
                raise_error("ZeroDivisionError", "divided by 0")
            return left // right
        if right == 0:
            if left == 0 or math.isnan(left):
                return math.nan
            return math.copysign(math.inf, left) * math.copysign(1.0, right)
        return left / right
    if op == "%":
        if right == 0:
            if isinstance(left, int) and isinstance(right, int):
                raise_error("ZeroDivisionError", "divided by 0")
            return math.nan
        return left % right
    if op == "**":
        if isinstance(left, int) and isinstance(right, int) and right < 0:
            return float(left) ** right
        return left ** right
    if op in ("<", ">", "<=", ">="):
        return _compare(op, ruby_compare(left, right))
    raise_error("NoMethodError", f"undefined method '{op}' for {describe(left)}")


def unary_op(op: str, operand: object) -> object:
    if op in ("!", "not"):
        return not truthy(operand)
    if op == "-":
        if not _is_number(operand):
            raise_error("NoMethodError", f"undefined method '-@' for {describe(operand)}")
        return -operand
    raise_error("NoMethodError", f"undefined method '{op}' for {describe(operand)}")


# Indexing shared by String and Array


def _slice_bounds(length: int, start: int, count: int) -> Optional[Tuple[int, int]]:
    if start < 0:
        start += length
    if start < 0 or start > length or count < 0:
        return None
    return start, min(length, start + count)


def _range_bounds(length: int, rng: RangeValue) -> Optional[Tuple[int, int]]:
    start = rng.start if rng.start is not None else 0
    end = rng.end if rng.end is not None else -1
    if not isinstance(start, int) or not isinstance(end, int):
        raise_error("TypeError", "no implicit conversion into Integer")
    if start < 0:
        start += length
    if start < 0 or start > length:
        return None
    if end < 0:
        end += length
    if not rng.exclusive or rng.end is None:
        end += 1
    return start, max(start, min(length, end))


def _sequence_index(seq, args: Sequence[object]):
    length = len(seq)
    if len(args) == 2:
        start, count = args
        bounds = _slice_bounds(length, _int_arg(start), _int_arg(count))
        return None if bounds is None else seq[bounds[0] : bounds[1]]
    if len(args) != 1:
        raise_error("ArgumentError", f"wrong number of arguments (given {len(args)}, expected 1..2)")
    index = args[0]
    if isinstance(index, RangeValue):
        bounds = _range_bounds(length, index)
        return None if bounds is None else seq[bounds[0] : bounds[1]]
    index = _int_arg(index)
    if index < -length or index >= length:
        return None
    return seq[index]


def _int_arg(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise_error("TypeError", f"no implicit conversion of {class_name(value)} into Integer")
    return int(value)


def _join(items: Sequence[object], sep: str) -> str:
    parts = []
    for item in items:
        parts.append(_join(item, sep) if isinstance(item, list) else to_s(item))
    return sep.join(parts)


def _flatten(items: Sequence[object]) -> List[object]:
    out: List[object] = []
    for item in items:
        if isinstance(item, list):
            out.extend(_flatten(item))
        else:
            out.append(item)
    return out


def _sort(items: Sequence[object], key=None) -> List[object]:
    if key is None:
        return sorted(items, key=functools.cmp_to_key(ruby_compare))
    keyed = [(key(item), item) for item in items]
    keyed.sort(key=functools.cmp_to_key(lambda a, b: ruby_compare(a[0], b[0])))
    return [item for _, item in keyed]


def _arity(name: str, args: Sequence[object], low: int, high: Optional[int] = None) -> None:
    high = low if high is None else high
    if len(args) < low or len(args) > high:
        expected = str(low) if low == high else f"{low}..{high}"
        raise_error("ArgumentError", f"wrong number of arguments (given {len(args)}, expected {expected})")


# Object


def _obj_is_a(ctx, recv, args, block):
    _arity("is_a?", args, 1)
    klass = args[0]
    if not isinstance(klass, RubyClass):
        raise_error("TypeError", "class or module required")
    return is_a(recv, klass)


OBJECT_METHODS: Dict[str, MethodImpl] = {
    "nil?": lambda ctx, recv, args, block: recv is None,
    "is_a?": _obj_is_a,
    "kind_of?": _obj_is_a,
    "class": lambda ctx, recv, args, block: CONSTANTS.get(class_name(recv), RubyClass(class_name(recv))),
    "inspect": lambda ctx, recv, args, block: inspect(recv),
    "to_s": lambda ctx, recv, args, block: to_s(recv),
    "==": lambda ctx, recv, args, block: ruby_equal(recv, args[0]),
    "!=": lambda ctx, recv, args, block: not ruby_equal(recv, args[0]),
    "!": lambda ctx, recv, args, block: not truthy(recv),
    "equal?": lambda ctx, recv, args, block: recv is args[0],
    "freeze": lambda ctx, recv, args, block: recv,
    "frozen?": lambda ctx, recv, args, block: not isinstance(recv, list),
    "dup": lambda ctx, recv, args, block: list(recv) if isinstance(recv, list) else recv,
    "tap": lambda ctx, recv, args, block: (ctx.yield_to(block, recv), recv)[1],
    "then": lambda ctx, recv, args, block: ctx.yield_to(block, recv),
}


NIL_METHODS: Dict[str, MethodImpl] = {
    "to_a": lambda ctx, recv, args, block: [],
    "to_i": lambda ctx, recv, args, block: 0,
    "to_f": lambda ctx, recv, args, block: 0.0,
}


# Numbers


def _int_times(ctx, recv, args, block):
    for i in range(recv):
        ctx.yield_to(block, i)
    return recv


def _int_upto(ctx, recv, args, block):
    _arity("upto", args, 1)
    for i in range(recv, _int_arg(args[0]) + 1):
        ctx.yield_to(block, i)
    return recv


def _int_downto(ctx, recv, args, block):
    _arity("downto", args, 1)
    for i in range(recv, _int_arg(args[0]) - 1, -1):
        ctx.yield_to(block, i)
    return recv


def _round(ctx, recv, args, block):
    digits = _int_arg(args[0]) if args else 0
    if digits > 0:
        return float(round(recv, digits))
    # Ruby rounds half away from zero.
    scaled = abs(recv) * (10 ** -digits)
    rounded = math.floor(scaled + 0.5) / (10 ** -digits)
    return int(math.copysign(rounded, recv))


NUMERIC_METHODS: Dict[str, MethodImpl] = {
    "abs": lambda ctx, recv, args, block: abs(recv),
    "zero?": lambda ctx, recv, args, block: recv == 0,
    "positive?": lambda ctx, recv, args, block: recv > 0,
    "negative?": lambda ctx, recv, args, block: recv < 0,
    "to_i": lambda ctx, recv, args, block: int(recv),
    "to_f": lambda ctx, recv, args, block: float(recv),
    "floor": lambda ctx, recv, args, block: math.floor(recv),
    "ceil": lambda ctx, recv, args, block: math.ceil(recv),
    "round": _round,
    "between?": lambda ctx, recv, args, block: ruby_compare(recv, args[0]) >= 0 and ruby_compare(recv, args[1]) <= 0,
    "clamp": lambda ctx, recv, args, block: args[0] if ruby_compare(recv, args[0]) < 0 else args[1] if ruby_compare(recv, args[1]) > 0 else recv,
}

INTEGER_METHODS: Dict[str, MethodImpl] = {
    "times": _int_times,
    "upto": _int_upto,
    "downto": _int_downto,
    "even?": lambda ctx, recv, args, block: recv % 2 == 0,
    "odd?": lambda ctx, recv, args, block: recv % 2 == 1,
    "succ": lambda ctx, recv, args, block: recv + 1,
    "pred": lambda ctx, recv, args, block: recv - 1,
    "chr": lambda ctx, recv, args, block: chr(recv),
    "to_s": lambda ctx, recv, args, block: str(recv),
}

FLOAT_METHODS: Dict[str, MethodImpl] = {
    "nan?": lambda ctx, recv, args, block: math.isnan(recv),
    "infinite?": lambda ctx, recv, args, block: (1 if recv > 0 else -1) if math.isinf(recv) else None,
}


# String


_LEADING_INT = re.compile(r"\s*([+-]?\d+(?:_\d+)*)")
_LEADING_FLOAT = re.compile(r"\s*([+-]?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)")


def _str_to_i(ctx, recv, args, block):
    match = _LEADING_INT.match(recv)
    return int(match.group(1).replace("_", "")) if match else 0


def _str_to_f(ctx, recv, args, block):
    match = _LEADING_FLOAT.match(recv)
    return float(match.group(1)) if match else 0.0


def _str_split(ctx, recv, args, block):
    if not args or args[0] == " " or args[0] is None:
        return recv.split()
    sep = args[0]
    if not isinstance(sep, str):
        raise_error("TypeError", f"wrong argument type {class_name(sep)} (expected String)")
    parts = list(recv) if sep == "" else recv.split(sep)
    while parts and parts[-1] == "":
        parts.pop()
    return parts


def _str_lines(ctx, recv, args, block):
    return recv.splitlines(keepends=True)


def _str_each_char(ctx, recv, args, block):
    for ch in recv:
        ctx.yield_to(block, ch)
    return recv


def _str_sub(ctx, recv, args, block, count=1):
    _arity("sub", args, 2)
    pattern, replacement = args
    if not isinstance(pattern, str) or not isinstance(replacement, str):
        raise_error("TypeError", "wrong argument type (expected String)")
    return recv.replace(pattern, replacement, count)


def _str_index(ctx, recv, args, block):
    _arity("index", args, 1)
    found = recv.find(to_s(args[0]))
    return None if found < 0 else found


def _str_capitalize(ctx, recv, args, block):
    return recv[:1].upper() + recv[1:].lower()


def _str_chomp(ctx, recv, args, block):
    if args:
        suffix = to_s(args[0])
        return recv[: -len(suffix)] if suffix and recv.endswith(suffix) else recv
    for ending in ("\r\n", "\n", "\r"):
        if recv.endswith(ending):
            return recv[: -len(ending)]
    return recv


def _justify(kind: str):
    def impl(ctx, recv, args, block):
        _arity(kind, args, 1, 2)
        width = _int_arg(args[0])
        pad = to_s(args[1]) if len(args) > 1 else " "
        if not pad:
            raise_error("ArgumentError", "zero width padding")
        missing = width - len(recv)
        if missing <= 0:
            return recv
        if kind == "ljust":
            return recv + (pad * missing)[:missing]
        if kind == "rjust":
            return (pad * missing)[:missing] + recv
        left = missing // 2
        right = missing - left
        return (pad * left)[:left] + recv + (pad * right)[:right]

    return impl


STRING_METHODS: Dict[str, MethodImpl] = {
    "length": lambda ctx, recv, args, block: len(recv),
    "size": lambda ctx, recv, args, block: len(recv),
    "[]": lambda ctx, recv, args, block: _sequence_index(recv, args),
    "upcase": lambda ctx, recv, args, block: recv.upper(),
    "downcase": lambda ctx, recv, args, block: recv.lower(),
    "capitalize": _str_capitalize,
    "swapcase": lambda ctx, recv, args, block: recv.swapcase(),
    "reverse": lambda ctx, recv, args, block: recv[::-1],
    "strip": lambda ctx, recv, args, block: recv.strip(" \t\n\v\f\r\0"),
    "lstrip": lambda ctx, recv, args, block: recv.lstrip(" \t\n\v\f\r\0"),
    "rstrip": lambda ctx, recv, args, block: recv.rstrip(" \t\n\v\f\r\0"),
    "chomp": _str_chomp,
    "chars": lambda ctx, recv, args, block: list(recv),
    "lines": _str_lines,
    "each_char": _str_each_char,
    "split": _str_split,
    "include?": lambda ctx, recv, args, block: to_s(args[0]) in recv,
    "start_with?": lambda ctx, recv, args, block: any(recv.startswith(to_s(a)) for a in args),
    "end_with?": lambda ctx, recv, args, block: any(recv.endswith(to_s(a)) for a in args),
    "empty?": lambda ctx, recv, args, block: recv == "",
    "index": _str_index,
    "sub": _str_sub,
    "gsub": lambda ctx, recv, args, block: _str_sub(ctx, recv, args, block, count=-1),
    "delete": lambda ctx, recv, args, block: "".join(ch for ch in recv if ch not in to_s(args[0])),
    "to_i": _str_to_i,
    "to_f": _str_to_f,
    "to_s": lambda ctx, recv, args, block: recv,
    "to_sym": lambda ctx, recv, args, block: Symbol(recv),
    "ord": lambda ctx, recv, args, block: ord(recv[0]) if recv else raise_error("ArgumentError", "empty string"),
    "ljust": _justify("ljust"),
    "rjust": _justify("rjust"),
    "center": _justify("center"),
}


# Array


def _ary_push(ctx, recv, args, block):
    recv.extend(args)
    return recv


def _ary_set(ctx, recv, args, block):
    _arity("[]=", args, 2)
    index, value = args
    index = _int_arg(index)
    if index < 0:
        index += len(recv)
        if index < 0:
            raise_error("IndexError", f"index {index - len(recv)} too small for array")
    if index >= len(recv):
        recv.extend([None] * (index - len(recv) + 1))
    recv[index] = value
    return value


def _ary_first(ctx, recv, args, block):
    if args:
        return recv[: _int_arg(args[0])]
    return recv[0] if recv else None


def _ary_last(ctx, recv, args, block):
    if args:
        count = _int_arg(args[0])
        return recv[-count:] if count else []
    return recv[-1] if recv else None


def _ary_pop(ctx, recv, args, block):
    return recv.pop() if recv else None


def _ary_shift(ctx, recv, args, block):
    return recv.pop(0) if recv else None


def _ary_unshift(ctx, recv, args, block):
    recv[0:0] = list(args)
    return recv


def _ary_each(ctx, recv, args, block):
    i = 0
    while i < len(recv):
        ctx.yield_to(block, recv[i])
        i += 1
    return recv


def _ary_each_with_index(ctx, recv, args, block):
    for i, item in enumerate(list(recv)):
        ctx.yield_to(block, item, i)
    return recv


def _ary_map(ctx, recv, args, block):
    return [ctx.yield_to(block, item) for item in list(recv)]


def _ary_flat_map(ctx, recv, args, block):
    out: List[object] = []
    for item in list(recv):
        result = ctx.yield_to(block, item)
        if isinstance(result, list):
            out.extend(result)
        else:
            out.append(result)
    return out


def _ary_select(ctx, recv, args, block):
    return [item for item in list(recv) if truthy(ctx.yield_to(block, item))]


def _ary_reject(ctx, recv, args, block):
    return [item for item in list(recv) if not truthy(ctx.yield_to(block, item))]


def _ary_partition(ctx, recv, args, block):
    selected, rejected = [], []
    for item in list(recv):
        (selected if truthy(ctx.yield_to(block, item)) else rejected).append(item)
    return [selected, rejected]


def _ary_find(ctx, recv, args, block):
    for item in list(recv):
        if truthy(ctx.yield_to(block, item)):
            return item
    return None


def _ary_any(ctx, recv, args, block):
    if block is None:
        return any(truthy(item) for item in recv)
    return any(truthy(ctx.yield_to(block, item)) for item in list(recv))


def _ary_all(ctx, recv, args, block):
    if block is None:
        return all(truthy(item) for item in recv)
    return all(truthy(ctx.yield_to(block, item)) for item in list(recv))


def _ary_none(ctx, recv, args, block):
    return not _ary_any(ctx, recv, args, block)


def _ary_count(ctx, recv, args, block):
    if args:
        return sum(1 for item in recv if ruby_equal(item, args[0]))
    if block is not None:
        return sum(1 for item in list(recv) if truthy(ctx.yield_to(block, item)))
    return len(recv)


def _ary_index(ctx, recv, args, block):
    for i, item in enumerate(recv):
        if args and ruby_equal(item, args[0]):
            return i
        if not args and block is not None and truthy(ctx.yield_to(block, item)):
            return i
    return None


def _ary_inject(ctx, recv, args, block):
    items = list(recv)
    if args:
        acc = args[0]
    elif items:
        acc = items.pop(0)
    else:
        return None
    for item in items:
        acc = ctx.yield_to(block, acc, item)
    return acc


def _ary_sum(ctx, recv, args, block):
    total = args[0] if args else 0
    for item in recv:
        value = ctx.yield_to(block, item) if block is not None else item
        total = binary_op("+", total, value)
    return total


def _ary_min(ctx, recv, args, block):
    return _sort(recv)[0] if recv else None


def _ary_max(ctx, recv, args, block):
    return _sort(recv)[-1] if recv else None


def _ary_min_by(ctx, recv, args, block):
    if not recv:
        return None
    return _sort(recv, key=lambda item: ctx.yield_to(block, item))[0]


def _ary_max_by(ctx, recv, args, block):
    if not recv:
        return None
    return _sort(recv, key=lambda item: ctx.yield_to(block, item))[-1]


def _ary_uniq(ctx, recv, args, block):
    out: List[object] = []
    for item in recv:
        if not any(ruby_equal(item, seen) for seen in out):
            out.append(item)
    return out


def _ary_include(ctx, recv, args, block):
    _arity("include?", args, 1)
    return any(ruby_equal(item, args[0]) for item in recv)


def _ary_zip(ctx, recv, args, block):
    others = [list(other) for other in args]
    return [[item] + [other[i] if i < len(other) else None for other in others] for i, item in enumerate(recv)]


def _ary_each_slice(ctx, recv, args, block):
    size = _int_arg(args[0])
    if size <= 0:
        raise_error("ArgumentError", "invalid slice size")
    for i in range(0, len(recv), size):
        ctx.yield_to(block, recv[i : i + size])
    return recv


def _ary_concat(ctx, recv, args, block):
    for other in args:
        recv.extend(other)
    return recv


ARRAY_METHODS: Dict[str, MethodImpl] = {
    "length": lambda ctx, recv, args, block: len(recv),
    "size": lambda ctx, recv, args, block: len(recv),
    "empty?": lambda ctx, recv, args, block: not recv,
    "[]": lambda ctx, recv, args, block: _sequence_index(recv, args),
    "[]=": _ary_set,
    "first": _ary_first,
    "last": _ary_last,
    "push": _ary_push,
    "append": _ary_push,
    "pop": _ary_pop,
    "shift": _ary_shift,
    "unshift": _ary_unshift,
    "concat": _ary_concat,
    "each": _ary_each,
    "each_with_index": _ary_each_with_index,
    "each_slice": _ary_each_slice,
    "map": _ary_map,
    "collect": _ary_map,
    "flat_map": _ary_flat_map,
    "select": _ary_select,
    "filter": _ary_select,
    "find_all": _ary_select,
    "reject": _ary_reject,
    "partition": _ary_partition,
    "find": _ary_find,
    "detect": _ary_find,
    "any?": _ary_any,
    "all?": _ary_all,
    "none?": _ary_none,
    "count": _ary_count,
    "index": _ary_index,
    "find_index": _ary_index,
    "inject": _ary_inject,
    "reduce": _ary_inject,
    "sum": _ary_sum,
    "min": _ary_min,
    "max": _ary_max,
    "min_by": _ary_min_by,
    "max_by": _ary_max_by,
    "sort": lambda ctx, recv, args, block: _sort(recv),
    "sort_by": lambda ctx, recv, args, block: _sort(recv, key=lambda item: ctx.yield_to(block, item)),
    "reverse": lambda ctx, recv, args, block: recv[::-1],
    "uniq": _ary_uniq,
    "flatten": lambda ctx, recv, args, block: _flatten(recv),
    "compact": lambda ctx, recv, args, block: [item for item in recv if item is not None],
    "include?": _ary_include,
    "join": lambda ctx, recv, args, block: _join(recv, to_s(args[0]) if args else ""),
    "take": lambda ctx, recv, args, block: recv[: _int_arg(args[0])],
    "drop": lambda ctx, recv, args, block: recv[_int_arg(args[0]) :],
    "zip": _ary_zip,
    "to_a": lambda ctx, recv, args, block: recv,
}


# Range


def _range_delegate(name: str) -> MethodImpl:
    def impl(ctx, recv, args, block):
        return ARRAY_METHODS[name](ctx, recv.to_list(), args, block)

    return impl


def _range_each(ctx, recv, args, block):
    for item in recv.to_list():
        ctx.yield_to(block, item)
    return recv


def _range_include(ctx, recv, args, block):
    _arity("include?", args, 1)
    value = args[0]
    if not _is_number(value):
        return False
    if ruby_compare(recv.start, value) > 0:
        return False
    result = ruby_compare(value, recv.end)
    return result < 0 if recv.exclusive else result <= 0


def _range_size(ctx, recv, args, block):
    return len(recv.to_list())


RANGE_METHODS: Dict[str, MethodImpl] = {
    "each": _range_each,
    "to_a": lambda ctx, recv, args, block: recv.to_list(),
    "first": lambda ctx, recv, args, block: _ary_first(ctx, recv.to_list(), args, block) if args else recv.start,
    "last": lambda ctx, recv, args, block: _ary_last(ctx, recv.to_list(), args, block) if args else recv.end,
    "begin": lambda ctx, recv, args, block: recv.start,
    "end": lambda ctx, recv, args, block: recv.end,
    "exclude_end?": lambda ctx, recv, args, block: recv.exclusive,
    "include?": _range_include,
    "member?": _range_include,
    "size": _range_size,
    "count": lambda ctx, recv, args, block: _ary_count(ctx, recv.to_list(), args, block),
}
for _name in (
    "each_with_index",
    "each_slice",
    "map",
    "collect",
    "flat_map",
    "select",
    "filter",
    "find_all",
    "reject",
    "partition",
    "find",
    "detect",
    "any?",
    "all?",
    "none?",
    "inject",
    "reduce",
    "sum",
    "min",
    "max",
    "min_by",
    "max_by",
    "sort_by",
    "index",
):
    RANGE_METHODS.setdefault(_name, _range_delegate(_name))


# Proc, Symbol, classes


def _proc_call(ctx, recv, args, block):
    return ctx.invoke(recv, list(args))


PROC_METHODS: Dict[str, MethodImpl] = {
    "call": _proc_call,
    "[]": _proc_call,
    "yield": _proc_call,
    "lambda?": lambda ctx, recv, args, block: recv.is_lambda,
    "arity": lambda ctx, recv, args, block: len(recv.params),
}

SYMBOL_METHODS: Dict[str, MethodImpl] = {
    "to_sym": lambda ctx, recv, args, block: recv,
    "length": lambda ctx, recv, args, block: len(recv.name),
    "size": lambda ctx, recv, args, block: len(recv.name),
}


def _class_new(ctx, recv, args, block):
    if not recv.is_exception():
        raise_error("NoMethodError", f"undefined method 'new' for class {recv.name}")
    message = to_s(args[0]) if args else recv.name
    return RubyError(class_name=recv.name, message=message)


CLASS_METHODS: Dict[str, MethodImpl] = {
    "new": _class_new,
    "name": lambda ctx, recv, args, block: recv.name,
}

ERROR_METHODS: Dict[str, MethodImpl] = {
    "message": lambda ctx, recv, args, block: recv.message,
}


def _method_tables(value: object) -> Tuple[Dict[str, MethodImpl], ...]:
    if value is None:
        return (NIL_METHODS, OBJECT_METHODS)
    if isinstance(value, bool):
        return (OBJECT_METHODS,)
    if isinstance(value, int):
        return (INTEGER_METHODS, NUMERIC_METHODS, OBJECT_METHODS)
    if isinstance(value, float):
        return (FLOAT_METHODS, NUMERIC_METHODS, OBJECT_METHODS)
    if isinstance(value, str):
        return (STRING_METHODS, OBJECT_METHODS)
    if isinstance(value, list):
        return (ARRAY_METHODS, OBJECT_METHODS)
    if isinstance(value, RangeValue):
        return (RANGE_METHODS, OBJECT_METHODS)
    if isinstance(value, Proc):
        return (PROC_METHODS, OBJECT_METHODS)
    if isinstance(value, Symbol):
        return (SYMBOL_METHODS, OBJECT_METHODS)
    if isinstance(value, RubyClass):
        return (CLASS_METHODS, OBJECT_METHODS)
    if isinstance(value, RubyError):
        return (ERROR_METHODS, OBJECT_METHODS)
    return (OBJECT_METHODS,)


_OPERATOR_METHODS = frozenset({"+", "-", "*", "/", "%", "**", "<", ">", "<=", ">="})


def send(ctx: RuntimeContext, receiver: object, name: str, args: Sequence[object], block: Optional[Proc] = None) -> object:
    """Call method `name` on `receiver`."""
    for table in _method_tables(receiver):
        impl = table.get(name)
        if impl is not None:
            return impl(ctx, receiver, args, block)
    if name in _OPERATOR_METHODS and len(args) == 1:
        return binary_op(name, receiver, args[0])
    raise_error("NoMethodError", f"undefined method '{name}' for {describe(receiver)}")


__all__ = [
    "BuiltinFunction",
    "CONSTANTS",
    "KERNEL",
    "Proc",
    "RaiseSignal",
    "RangeValue",
    "RubyClass",
    "RubyError",
    "RuntimeContext",
    "Symbol",
    "binary_op",
    "class_name",
    "inspect",
    "raise_error",
    "ruby_equal",
    "send",
    "to_s",
    "truthy",
    "unary_op",
]
