from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from . import ast
from .captures import CaptureMode, CaptureSet
from .errors import UnsupportedConstructWarning
from .helpers import HelperSpec
from .lift import ClosureLifter, LiftedClosure
from .names import NameGenerator
from .scope import Binding, BindingKind, Scope, ScopeTree

logger = logging.getLogger(__name__)


@dataclass
class BlockPlan:
    """Which blocks get lifted (keyed by `id(block)`) and which calls stay as they are."""

    lifted: Dict[int, HelperSpec] = field(default_factory=dict)
    warnings: List[UnsupportedConstructWarning] = field(default_factory=list)


def plan_call_sites(tree: ScopeTree, table: Mapping[str, HelperSpec]) -> BlockPlan:
    """Decide, for every call with a block, whether it maps onto a generic helper."""
    plan = BlockPlan()
    for node in ast.walk(tree.program):
        if not isinstance(node, ast.Call) or node.block is None:
            continue
        spec, reason = _classify(node, tree, table)
        if spec is not None:
            plan.lifted[id(node.block)] = spec
            continue
        warning = UnsupportedConstructWarning(reason, method=node.method, loc=node.loc)
        logger.warning("%d:%d: %s", node.loc.line, node.loc.column, reason)
        plan.warnings.append(warning)
    return plan


def _classify(call: ast.Call, tree: ScopeTree, table: Mapping[str, HelperSpec]):
    method = call.method
    if call.receiver is None:
        user_method = tree.methods.get(method)
        if user_method is not None and user_method.loc is not None:
            return None, f"block passed to user-defined method '{method}' left as is"
    spec = table.get(method)
    if spec is None or spec.has_receiver != (call.receiver is not None):
        return None, f"no generic helper for '{method}' with a block; call left as is"
    if call.args:
        return None, f"'{method}' called with arguments and a block; call left as is"
    if _returns_from_enclosing_method(call.block):
        return None, f"block passed to '{method}' contains 'return'; call left as is"
    return spec, None


def _returns_from_enclosing_method(block: ast.BlockLiteral) -> bool:
    stack: List[ast.Node] = list(block.body)
    while stack:
        node = stack.pop()
        if isinstance(node, ast.ReturnStmt):
            return True
        # `return` inside these leaves only the lambda or method itself.
        if isinstance(node, (ast.Lambda, ast.FunctionDef)):
            continue
        stack.extend(ast.iter_child_nodes(node))
    return False


@dataclass
class _Frame:
    block: ast.BlockLiteral
    captures: CaptureSet


# Innermost construct that `break`/`next` belong to.
_LIFTED = "lifted"
_WHILE = "while"
_LAMBDA = "lambda"
_BLOCK = "block"
_DEF = "def"


class CallSiteRewriter:
    """Produce a block-free copy of a program.

    Every planned block is replaced by a call to its lifted closure, wrapped
    in the generic helper for the method it was passed to. Variables shared
    through a cell are read as `x[0]` and written as `x[0] = ...` wherever
    the cell is in scope.
    """

    def __init__(
        self,
        tree: ScopeTree,
        captures: Dict[int, CaptureSet],
        plan: BlockPlan,
        names: NameGenerator,
        *,
        emit_helpers: bool = True,
    ) -> None:
        self.tree = tree
        self.captures = captures
        self.plan = plan
        self.names = names
        self.emit_helpers = emit_helpers
        self.lifter = ClosureLifter(names)
        self.lifted: List[LiftedClosure] = []
        self.helpers: Dict[str, ast.FunctionDef] = {}
        self._helper_names: Dict[str, str] = {}
        self._stop: Optional[str] = None
        self._frames: List[_Frame] = []
        self._control: List[str] = []
        self._defaults_scope: Optional[Scope] = None

    def rewrite(self, program: ast.Program) -> ast.Program:
        body = self._cell_prelude(self.tree.root) + self._rewrite_stmts(program.statements)
        statements: List[ast.Stmt] = []
        if self.emit_helpers:
            statements.extend(self.helpers.values())
        statements.extend(closure.definition for closure in self.lifted)
        statements.extend(body)
        return ast.Program(statements=statements)

    @property
    def stop_symbol(self) -> str:
        if self._stop is None:
            self._stop = self.names.fixed("stop")
        return self._stop

    # Statements

    def _rewrite_stmts(self, stmts: List[ast.Stmt]) -> List[ast.Stmt]:
        return [self._rewrite_stmt(stmt) for stmt in stmts]

    def _rewrite_stmt(self, stmt: ast.Stmt) -> ast.Stmt:
        if isinstance(stmt, ast.FunctionDef):
            scope = self.tree.scope_of(stmt)
            self._control.append(_DEF)
            try:
                params = self._rewrite_params(stmt.params, scope)
                body = self._cell_prelude(scope) + self._rewrite_stmts(stmt.body)
            finally:
                self._control.pop()
            return ast.FunctionDef(loc=stmt.loc, name=stmt.name, params=params, body=body)
        if isinstance(stmt, ast.ExprStmt):
            return ast.ExprStmt(loc=stmt.loc, value=self._rewrite_expr(stmt.value))
        if isinstance(stmt, ast.IfStmt):
            return ast.IfStmt(
                loc=stmt.loc,
                condition=self._rewrite_expr(stmt.condition),
                then_body=self._rewrite_stmts(stmt.then_body),
                else_body=self._rewrite_stmts(stmt.else_body),
                negated=stmt.negated,
                modifier=stmt.modifier,
                elsif=stmt.elsif,
            )
        if isinstance(stmt, ast.WhileStmt):
            condition = self._rewrite_expr(stmt.condition)
            self._control.append(_WHILE)
            try:
                body = self._rewrite_stmts(stmt.body)
            finally:
                self._control.pop()
            return ast.WhileStmt(loc=stmt.loc, condition=condition, body=body)
        if isinstance(stmt, ast.ReturnStmt):
            return ast.ReturnStmt(loc=stmt.loc, value=self._rewrite_optional(stmt.value))
        if isinstance(stmt, ast.BreakStmt):
            value = self._rewrite_optional(stmt.value)
            if not self._in_lifted_block():
                return ast.BreakStmt(loc=stmt.loc, value=value)
            marker = ast.ArrayLiteral(
                loc=stmt.loc,
                elements=[
                    ast.SymbolLit(loc=stmt.loc, name=self.stop_symbol),
                    value if value is not None else ast.Literal(loc=stmt.loc, value=None),
                ],
            )
            return ast.ReturnStmt(loc=stmt.loc, value=marker)
        if isinstance(stmt, ast.NextStmt):
            value = self._rewrite_optional(stmt.value)
            if not self._in_lifted_block():
                return ast.NextStmt(loc=stmt.loc, value=value)
            return ast.ReturnStmt(loc=stmt.loc, value=value)
        raise TypeError(f"Unsupported statement type: {type(stmt).__name__}")

    def _in_lifted_block(self) -> bool:
        return bool(self._control) and self._control[-1] == _LIFTED

    def _rewrite_params(self, params: List[ast.Param], scope: Scope) -> List[ast.Param]:
        # Defaults run before the scope's cells exist.
        saved = self._defaults_scope
        self._defaults_scope = scope
        try:
            return [
                ast.Param(name=param.name, loc=param.loc, default=self._rewrite_optional(param.default))
                for param in params
            ]
        finally:
            self._defaults_scope = saved

    def _cell_prelude(self, scope: Scope) -> List[ast.Stmt]:
        prelude: List[ast.Stmt] = []
        for binding in scope.bindings.values():
            if not binding.is_cell:
                continue
            loc = binding.loc
            if binding.kind is BindingKind.PARAMETER:
                initial: ast.Expr = ast.Name(loc=loc, ident=binding.name)
            else:
                initial = ast.Literal(loc=loc, value=None)
            cell = ast.Assign(
                loc=loc,
                target=ast.Name(loc=loc, ident=binding.name),
                value=ast.ArrayLiteral(loc=loc, elements=[initial]),
            )
            prelude.append(ast.ExprStmt(loc=loc, value=cell))
        return prelude

    # Expressions

    def _rewrite_optional(self, expr: Optional[ast.Expr]) -> Optional[ast.Expr]:
        if expr is None:
            return None
        return self._rewrite_expr(expr)

    def _rewrite_expr(self, expr: ast.Expr) -> ast.Expr:
        if isinstance(expr, ast.Name):
            return self._reference(expr)
        if isinstance(expr, ast.Literal):
            return ast.Literal(loc=expr.loc, value=expr.value)
        if isinstance(expr, ast.SymbolLit):
            return ast.SymbolLit(loc=expr.loc, name=expr.name)
        if isinstance(expr, ast.GlobalRef):
            return ast.GlobalRef(loc=expr.loc, name=expr.name)
        if isinstance(expr, ast.Const):
            return ast.Const(loc=expr.loc, name=expr.name)
        if isinstance(expr, ast.ArrayLiteral):
            return ast.ArrayLiteral(loc=expr.loc, elements=[self._rewrite_expr(e) for e in expr.elements])
        if isinstance(expr, ast.Splat):
            return ast.Splat(loc=expr.loc, value=self._rewrite_expr(expr.value))
        if isinstance(expr, ast.RangeLit):
            return ast.RangeLit(
                loc=expr.loc,
                start=self._rewrite_expr(expr.start),
                end=self._rewrite_expr(expr.end),
                exclusive=expr.exclusive,
            )
        if isinstance(expr, ast.Binary):
            return ast.Binary(
                loc=expr.loc,
                op=expr.op,
                left=self._rewrite_expr(expr.left),
                right=self._rewrite_expr(expr.right),
            )
        if isinstance(expr, ast.Unary):
            return ast.Unary(loc=expr.loc, op=expr.op, operand=self._rewrite_expr(expr.operand))
        if isinstance(expr, ast.Ternary):
            return ast.Ternary(
                loc=expr.loc,
                condition=self._rewrite_expr(expr.condition),
                then_value=self._rewrite_expr(expr.then_value),
                else_value=self._rewrite_expr(expr.else_value),
            )
        if isinstance(expr, ast.Call):
            return self._rewrite_call(expr)
        if isinstance(expr, ast.Index):
            return ast.Index(
                loc=expr.loc,
                value=self._rewrite_expr(expr.value),
                args=[self._rewrite_expr(arg) for arg in expr.args],
            )
        if isinstance(expr, ast.Lambda):
            scope = self.tree.scope_of(expr)
            params, body = self._rewrite_closure_body(expr, scope, _LAMBDA)
            return ast.Lambda(loc=expr.loc, params=params, body=body)
        if isinstance(expr, ast.Assign):
            target = self._rewrite_target(expr.target)
            return ast.Assign(loc=expr.loc, target=target, value=self._rewrite_expr(expr.value))
        if isinstance(expr, ast.OpAssign):
            target = self._rewrite_target(expr.target)
            return ast.OpAssign(loc=expr.loc, target=target, op=expr.op, value=self._rewrite_expr(expr.value))
        if isinstance(expr, ast.MultiAssign):
            targets = [self._rewrite_target(target) for target in expr.targets]
            values = [self._rewrite_expr(value) for value in expr.values]
            return ast.MultiAssign(loc=expr.loc, targets=targets, values=values)
        raise TypeError(f"Unsupported expression type: {type(expr).__name__}")

    def _rewrite_closure_body(self, node, scope: Scope, context: str):
        self._control.append(context)
        try:
            params = self._rewrite_params(node.params, scope)
            body = self._cell_prelude(scope) + self._rewrite_stmts(node.body)
        finally:
            self._control.pop()
        return params, body

    def _reference(self, name: ast.Name) -> ast.Expr:
        binding = self.tree.resolve(name)
        copy = ast.Name(loc=name.loc, ident=name.ident)
        if binding is not None and binding.is_variable and self._is_cell_here(binding):
            return ast.Index(loc=name.loc, value=copy, args=[ast.Literal(loc=name.loc, value=0)])
        return copy

    def _rewrite_target(self, target: ast.Expr) -> ast.Expr:
        if isinstance(target, ast.Name):
            return self._reference(target)
        return self._rewrite_expr(target)

    def _is_cell_here(self, binding: Binding) -> bool:
        """Whether `binding` is held in a cell at the code being rewritten."""
        if self._defaults_scope is not None and binding.scope is self._defaults_scope:
            return False
        if self._frames:
            capture = self._frames[-1].captures.for_binding(binding)
            if capture is not None:
                return capture.mode is CaptureMode.BY_CELL
        return binding.is_cell

    # Calls

    def _rewrite_call(self, call: ast.Call) -> ast.Expr:
        receiver = self._rewrite_optional(call.receiver)
        args = [self._rewrite_expr(arg) for arg in call.args]
        if call.block is None:
            return ast.Call(loc=call.loc, receiver=receiver, method=call.method, args=args, parens=call.parens)
        spec = self.plan.lifted.get(id(call.block))
        if spec is None:
            block = self._rewrite_native_block(call.block)
            return ast.Call(
                loc=call.loc,
                receiver=receiver,
                method=call.method,
                args=args,
                block=block,
                parens=call.parens,
            )
        closure_call = self._lift(call.block, spec)
        helper_args: List[ast.Expr] = []
        if spec.has_receiver and receiver is not None:
            helper_args.append(receiver)
        helper_args.append(closure_call)
        return ast.Call(loc=call.loc, receiver=None, method=self._helper(spec), args=helper_args)

    def _rewrite_native_block(self, block: ast.BlockLiteral) -> ast.BlockLiteral:
        scope = self.tree.scope_of(block)
        params, body = self._rewrite_closure_body(block, scope, _BLOCK)
        return ast.BlockLiteral(loc=block.loc, params=params, body=body)

    def _lift(self, block: ast.BlockLiteral, spec: HelperSpec) -> ast.Call:
        scope = self.tree.scope_of(block)
        captures = self.captures[id(block)]
        self._frames.append(_Frame(block=block, captures=captures))
        try:
            params, body = self._rewrite_closure_body(block, scope, _LIFTED)
        finally:
            self._frames.pop()
        closure, args = self.lifter.lift(
            block,
            captures,
            body,
            params,
            arity=spec.arity,
            outer_is_cell=self._is_cell_here,
        )
        self.lifted.append(closure)
        logger.debug(
            "lift: %s <- block at %d:%d (%s)",
            closure.name,
            block.loc.line,
            block.loc.column,
            ", ".join(
                f"{c.name}:{'cell' if c.mode is CaptureMode.BY_CELL else 'value'}" for c in closure.captures
            )
            or "no captures",
        )
        return ast.Call(loc=block.loc, receiver=None, method=closure.name, args=args)

    def _helper(self, spec: HelperSpec) -> str:
        name = self._helper_names.get(spec.base)
        if name is None:
            name = self.names.fixed(spec.base)
            self._helper_names[spec.base] = name
            self.helpers[spec.base] = spec.instantiate(name, self.stop_symbol)
        return name
