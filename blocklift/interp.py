from __future__ import annotations

import io
import logging
import sys
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from . import ast
from .parser import parse_program
from .runtime import (
    CONSTANTS,
    KERNEL,
    BuiltinFunction,
    Proc,
    RaiseSignal,
    RangeValue,
    RubyError,
    RuntimeContext,
    Symbol,
    binary_op,
    raise_error,
    send,
    truthy,
    unary_op,
)

logger = logging.getLogger(__name__)


class ReturnSignal(Exception):
    def __init__(self, value: object) -> None:
        self.value = value


class BreakSignal(Exception):
    def __init__(self, value: object) -> None:
        self.value = value


class NextSignal(Exception):
    def __init__(self, value: object) -> None:
        self.value = value


class Environment:
    """Local variables of one method body, block or lambda."""

    def __init__(self, parent: Environment | None = None) -> None:
        self.parent = parent
        self.values: Dict[str, object] = {}

    def define(self, name: str, value: object) -> None:
        self.values[name] = value

    def set(self, name: str, value: object) -> None:
        """Assign to the nearest existing binding, or create one here."""
        env = self._owner(name)
        (env or self).values[name] = value

    def get(self, name: str) -> object:
        env = self._owner(name)
        if env is None:
            raise KeyError(name)
        return env.values[name]

    def has(self, name: str) -> bool:
        return self._owner(name) is not None

    def _owner(self, name: str) -> Environment | None:
        env: Environment | None = self
        while env is not None:
            if name in env.values:
                return env
            env = env.parent
        return None


@dataclass
class UserFunction:
    definition: ast.FunctionDef
    interpreter: Interpreter  # type: ignore  # forward reference

    def __call__(self, args: Sequence[object]) -> object:
        params = self.definition.params
        required = sum(1 for param in params if param.default is None)
        if not required <= len(args) <= len(params):
            expected = str(required) if required == len(params) else f"{required}..{len(params)}"
            raise_error(
                "ArgumentError",
                f"wrong number of arguments (given {len(args)}, expected {expected})",
            )
        env = Environment()
        self.interpreter._bind_params(params, list(args), env, fill_missing=False)
        try:
            return self.interpreter._execute_body(self.definition.body, env)
        except ReturnSignal as signal:
            return signal.value


class Interpreter:
    """Tree-walking evaluator for the supported Ruby subset.

    Running a program before and after transformation and comparing what
    it prints is how the rewrite is checked for equivalence.
    """

    def __init__(
        self,
        program: ast.Program,
        builtins: Mapping[str, BuiltinFunction] | None = None,
        stdout=None,
    ) -> None:
        self.program = program
        self.stdout = stdout or sys.stdout
        self.runtime_ctx = RuntimeContext(self.stdout, self.call_proc)
        self.builtins = builtins or KERNEL
        self.methods: Dict[str, UserFunction] = {}
        self.globals: Dict[str, object] = {}
        self.global_env = Environment()
        self.value: object = None
        try:
            self.value = self._execute_body(self.program.statements, self.global_env)
        except ReturnSignal as signal:
            # A top-level `return` ends the program.
            self.value = signal.value

    def call(self, name: str, *args: object) -> object:
        return self._call_function(name, list(args), None)

    def call_proc(self, proc: Proc, args: Sequence[object]) -> object:
        args = list(args)
        env = Environment(parent=proc.env)  # type: ignore[arg-type]
        if proc.is_lambda:
            required = sum(1 for param in proc.params if param.default is None)
            if not required <= len(args) <= len(proc.params):
                raise_error(
                    "ArgumentError",
                    f"wrong number of arguments (given {len(args)}, expected {len(proc.params)})",
                )
            self._bind_params(proc.params, args, env, fill_missing=False)
            try:
                return self._execute_body(proc.body, env)
            except (ReturnSignal, NextSignal, BreakSignal) as signal:
                return signal.value
        if len(proc.params) > 1 and len(args) == 1 and isinstance(args[0], list):
            args = list(args[0])
        self._bind_params(proc.params, args[: len(proc.params)], env, fill_missing=True)
        try:
            return self._execute_body(proc.body, env)
        except NextSignal as signal:
            return signal.value

    def _bind_params(self, params: List[ast.Param], args: List[object], env: Environment, *, fill_missing: bool) -> None:
        for idx, param in enumerate(params):
            if idx < len(args):
                env.define(param.name, args[idx])
            elif param.default is not None:
                env.define(param.name, self._eval_expr(param.default, env))
            elif fill_missing:
                env.define(param.name, None)

    def _execute_body(self, statements: List[ast.Stmt], env: Environment) -> object:
        value: object = None
        for stmt in statements:
            value = self._exec_stmt(stmt, env)
        return value

    def _exec_stmt(self, stmt: ast.Stmt, env: Environment) -> object:
        if isinstance(stmt, ast.ExprStmt):
            return self._eval_expr(stmt.value, env)
        if isinstance(stmt, ast.IfStmt):
            condition = truthy(self._eval_expr(stmt.condition, env))
            if stmt.negated:
                condition = not condition
            branch = stmt.then_body if condition else stmt.else_body
            return self._execute_body(branch, env)
        if isinstance(stmt, ast.WhileStmt):
            while truthy(self._eval_expr(stmt.condition, env)):
                try:
                    self._execute_body(stmt.body, env)
                except NextSignal:
                    continue
                except BreakSignal as signal:
                    return signal.value
            return None
        if isinstance(stmt, ast.FunctionDef):
            self.methods[stmt.name] = UserFunction(stmt, self)
            return Symbol(stmt.name)
        if isinstance(stmt, ast.ReturnStmt):
            raise ReturnSignal(self._optional(stmt.value, env))
        if isinstance(stmt, ast.BreakStmt):
            raise BreakSignal(self._optional(stmt.value, env))
        if isinstance(stmt, ast.NextStmt):
            raise NextSignal(self._optional(stmt.value, env))
        raise RuntimeError(f"Unsupported statement type: {type(stmt).__name__}")

    def _optional(self, expr: Optional[ast.Expr], env: Environment) -> object:
        return self._eval_expr(expr, env) if expr is not None else None

    def _eval_expr(self, expr: ast.Expr, env: Environment) -> object:
        if isinstance(expr, ast.Literal):
            return expr.value
        if isinstance(expr, ast.SymbolLit):
            return Symbol(expr.name)
        if isinstance(expr, ast.Name):
            if env.has(expr.ident):
                return env.get(expr.ident)
            return self._call_function(expr.ident, [], None)
        if isinstance(expr, ast.GlobalRef):
            return self.globals.get(expr.name)
        if isinstance(expr, ast.Const):
            if expr.name not in CONSTANTS:
                raise_error("NameError", f"uninitialized constant {expr.name}")
            return CONSTANTS[expr.name]
        if isinstance(expr, ast.ArrayLiteral):
            return self._eval_args(expr.elements, env)
        if isinstance(expr, ast.RangeLit):
            return RangeValue(
                start=self._eval_expr(expr.start, env),
                end=self._eval_expr(expr.end, env),
                exclusive=expr.exclusive,
            )
        if isinstance(expr, ast.Binary):
            return self._eval_binary(expr, env)
        if isinstance(expr, ast.Unary):
            return unary_op(expr.op, self._eval_expr(expr.operand, env))
        if isinstance(expr, ast.Ternary):
            if truthy(self._eval_expr(expr.condition, env)):
                return self._eval_expr(expr.then_value, env)
            return self._eval_expr(expr.else_value, env)
        if isinstance(expr, ast.Lambda):
            return Proc(params=expr.params, body=expr.body, env=env, is_lambda=True)
        if isinstance(expr, ast.Call):
            return self._eval_call(expr, env)
        if isinstance(expr, ast.Index):
            receiver = self._eval_expr(expr.value, env)
            return send(self.runtime_ctx, receiver, "[]", self._eval_args(expr.args, env))
        if isinstance(expr, ast.Assign):
            value = self._eval_expr(expr.value, env)
            self._assign(expr.target, value, env)
            return value
        if isinstance(expr, ast.OpAssign):
            return self._eval_op_assign(expr, env)
        if isinstance(expr, ast.MultiAssign):
            return self._eval_multi_assign(expr, env)
        if isinstance(expr, ast.Splat):
            raise_error("SyntaxError", "unexpected splat")
        raise RuntimeError(f"Unsupported expression type: {type(expr).__name__}")

    def _eval_binary(self, expr: ast.Binary, env: Environment) -> object:
        op = expr.op
        if op in ("&&", "and"):
            left = self._eval_expr(expr.left, env)
            return self._eval_expr(expr.right, env) if truthy(left) else left
        if op in ("||", "or"):
            left = self._eval_expr(expr.left, env)
            return left if truthy(left) else self._eval_expr(expr.right, env)
        left = self._eval_expr(expr.left, env)
        right = self._eval_expr(expr.right, env)
        return binary_op(op, left, right)

    def _eval_args(self, args: List[ast.Expr], env: Environment) -> List[object]:
        values: List[object] = []
        for arg in args:
            if isinstance(arg, ast.Splat):
                splatted = self._eval_expr(arg.value, env)
                if isinstance(splatted, RangeValue):
                    splatted = splatted.to_list()
                if isinstance(splatted, list):
                    values.extend(splatted)
                elif splatted is not None:
                    values.append(splatted)
                continue
            values.append(self._eval_expr(arg, env))
        return values

    def _eval_call(self, call: ast.Call, env: Environment) -> object:
        block = None
        if call.block is not None:
            block = Proc(params=call.block.params, body=call.block.body, env=env)
        if call.receiver is None:
            args = self._eval_args(call.args, env)
            invoke = lambda: self._call_function(call.method, args, block)  # noqa: E731
        else:
            receiver = self._eval_expr(call.receiver, env)
            args = self._eval_args(call.args, env)
            invoke = lambda: send(self.runtime_ctx, receiver, call.method, args, block)  # noqa: E731
        if block is None:
            return invoke()
        try:
            return invoke()
        except BreakSignal as signal:
            # `break` inside the block ends the call it was passed to.
            return signal.value

    def _call_function(self, name: str, args: List[object], block: Optional[Proc]) -> object:
        func = self.methods.get(name)
        if func is not None:
            return func(args)
        builtin = self.builtins.get(name)
        if builtin is not None:
            return builtin.impl(self.runtime_ctx, args, block)
        if not args:
            raise_error("NameError", f"undefined local variable or method '{name}' for main")
        raise_error("NoMethodError", f"undefined method '{name}' for main")

    def _eval_op_assign(self, expr: ast.OpAssign, env: Environment) -> object:
        target = expr.target
        if isinstance(target, ast.Index):
            receiver = self._eval_expr(target.value, env)
            index = self._eval_args(target.args, env)
            current = send(self.runtime_ctx, receiver, "[]", index)
            value = self._combine(expr, current, env)
            if expr.op not in ("||", "&&") or value is not current:
                send(self.runtime_ctx, receiver, "[]=", index + [value])
            return value
        current = self._read_target(target, env)
        value = self._combine(expr, current, env)
        self._assign(target, value, env)
        return value

    def _combine(self, expr: ast.OpAssign, current: object, env: Environment) -> object:
        if expr.op == "||":
            return current if truthy(current) else self._eval_expr(expr.value, env)
        if expr.op == "&&":
            return self._eval_expr(expr.value, env) if truthy(current) else current
        return binary_op(expr.op, current, self._eval_expr(expr.value, env))

    def _read_target(self, target: ast.Expr, env: Environment) -> object:
        if isinstance(target, ast.Name):
            return env.get(target.ident) if env.has(target.ident) else None
        if isinstance(target, ast.GlobalRef):
            return self.globals.get(target.name)
        return self._eval_expr(target, env)

    def _eval_multi_assign(self, expr: ast.MultiAssign, env: Environment) -> object:
        values = self._eval_args(expr.values, env)
        if len(expr.values) == 1 and not isinstance(expr.values[0], ast.Splat):
            single = values[0]
            values = list(single) if isinstance(single, list) else [single]
        for idx, target in enumerate(expr.targets):
            self._assign(target, values[idx] if idx < len(values) else None, env)
        return values

    def _assign(self, target: ast.Expr, value: object, env: Environment) -> None:
        if isinstance(target, ast.Name):
            env.set(target.ident, value)
            return
        if isinstance(target, ast.GlobalRef):
            self.globals[target.name] = value
            return
        if isinstance(target, ast.Index):
            receiver = self._eval_expr(target.value, env)
            index = self._eval_args(target.args, env)
            send(self.runtime_ctx, receiver, "[]=", index + [value])
            return
        raise RuntimeError(f"Unsupported assignment target: {type(target).__name__}")


def run_program(program: ast.Program, stdout=None) -> Interpreter:
    return Interpreter(program, stdout=stdout)


@dataclass
class RunResult:
    stdout: str
    value: object = None
    error: Optional[RubyError] = None


def run_source(source: str) -> RunResult:
    """Parse and run `source`, capturing what it prints and how it ended."""
    program = parse_program(source)
    out = io.StringIO()
    try:
        interpreter = run_program(program, stdout=out)
    except RaiseSignal as signal:
        logger.debug("interp: program raised %s", signal.error)
        return RunResult(stdout=out.getvalue(), error=signal.error)
    except (BreakSignal, NextSignal):
        return RunResult(
            stdout=out.getvalue(),
            error=RubyError(class_name="LocalJumpError", message="break from proc-closure"),
        )
    except RecursionError:
        return RunResult(
            stdout=out.getvalue(),
            error=RubyError(class_name="SystemStackError", message="stack level too deep"),
        )
    return RunResult(stdout=out.getvalue(), value=interpreter.value)
