"""
Block-free replacements for the built-in enumeration methods.

Each helper takes the receiver (when the method has one) plus the lifted
closure and drives it with a `while` loop in ascending index order. A closure
that wants to stop the iteration early returns `[<stop marker>, value]`; the
helper then returns `value` as the result of the whole call, which is what
`break value` does inside a block.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from . import ast
from .parser import parse_program

# How many arguments a helper passes to the closure on each call.
ELEMENT = 1
NO_ARGUMENT = 0

_STOP_CHECK = "return r[1] if r.is_a?(Array) && r.size == 2 && r[0] == :{stop}"


@dataclass(frozen=True)
class HelperSpec:
    """One entry of the method-to-helper table."""

    base: str
    template: str
    arity: int = ELEMENT
    has_receiver: bool = True

    def instantiate(self, helper_name: str, stop_symbol: str) -> ast.FunctionDef:
        source = self.template.format(helper=helper_name, stop=stop_symbol, stop_check=_STOP_CHECK.format(stop=stop_symbol))
        program = parse_program(source)
        if len(program.statements) != 1 or not isinstance(program.statements[0], ast.FunctionDef):
            found = ", ".join(type(stmt).__name__ for stmt in program.statements) or "nothing"
            raise TypeError(f"Helper template for '{self.base}' must hold one method definition, got {found}")
        return program.statements[0]


FIND_ALL = HelperSpec(
    base="find_all",
    template="""
def {helper}(collection, fun)
  items = collection.to_a
  result = []
  i = 0
  while i < items.size
    item = items[i]
    r = fun.call(item)
    {stop_check}
    result.push(item) if r
    i += 1
  end
  result
end
""",
)

REJECT = HelperSpec(
    base="reject",
    template="""
def {helper}(collection, fun)
  items = collection.to_a
  result = []
  i = 0
  while i < items.size
    item = items[i]
    r = fun.call(item)
    {stop_check}
    result.push(item) unless r
    i += 1
  end
  result
end
""",
)

MAP = HelperSpec(
    base="map",
    template="""
def {helper}(collection, fun)
  items = collection.to_a
  result = []
  i = 0
  while i < items.size
    r = fun.call(items[i])
    {stop_check}
    result.push(r)
    i += 1
  end
  result
end
""",
)

EACH = HelperSpec(
    base="each",
    template="""
def {helper}(collection, fun)
  items = collection.to_a
  i = 0
  while i < items.size
    r = fun.call(items[i])
    {stop_check}
    i += 1
  end
  collection
end
""",
)

ANY = HelperSpec(
    base="any",
    template="""
def {helper}(collection, fun)
  items = collection.to_a
  i = 0
  while i < items.size
    r = fun.call(items[i])
    {stop_check}
    return true if r
    i += 1
  end
  false
end
""",
)

ALL = HelperSpec(
    base="all",
    template="""
def {helper}(collection, fun)
  items = collection.to_a
  i = 0
  while i < items.size
    r = fun.call(items[i])
    {stop_check}
    return false unless r
    i += 1
  end
  true
end
""",
)

TIMES = HelperSpec(
    base="times",
    template="""
def {helper}(count, fun)
  i = 0
  while i < count
    r = fun.call(i)
    {stop_check}
    i += 1
  end
  count
end
""",
)

LOOP = HelperSpec(
    base="loop",
    template="""
def {helper}(fun)
  while true
    r = fun.call
    {stop_check}
  end
end
""",
    arity=NO_ARGUMENT,
    has_receiver=False,
)

GENERIC_HELPERS: Mapping[str, HelperSpec] = {
    "find_all": FIND_ALL,
    "select": FIND_ALL,
    "filter": FIND_ALL,
    "reject": REJECT,
    "map": MAP,
    "collect": MAP,
    "each": EACH,
    "any?": ANY,
    "all?": ALL,
    "times": TIMES,
    "loop": LOOP,
}
