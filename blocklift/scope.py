"""
Lexical scope construction for the Ruby subset.

Ruby locals live in one of four kinds of frame: the top level, a `def` body,
a block or a lambda. A `def` starts a fresh frame that cannot see the
locals around it; blocks and lambdas see everything visible where they are
written. A local exists from the point its first assignment is parsed, so
the builder walks the program in source order and resolves every identifier
the moment it is seen.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, Iterator, List, Optional, Tuple

from . import ast
from .errors import ScopeError

logger = logging.getLogger(__name__)

# Methods every program may call without defining them.
KERNEL_METHODS = frozenset(
    {
        "puts",
        "print",
        "p",
        "pp",
        "raise",
        "loop",
        "lambda",
        "proc",
        "format",
    }
)


class ScopeKind(Enum):
    TOP = auto()
    FUNCTION = auto()
    BLOCK = auto()
    LAMBDA = auto()


class BindingKind(Enum):
    LOCAL = auto()
    PARAMETER = auto()
    GLOBAL = auto()
    FUNCTION = auto()


@dataclass(eq=False)
class Binding:
    """A named storage location (or method) that identifiers resolve to."""

    name: str
    kind: BindingKind
    loc: Optional[ast.Located]
    scope: Optional["Scope"] = field(default=None, repr=False)
    assignments: int = 0
    # Assigned from inside a block or lambda body that sits below the binding's scope.
    written_in_closure: bool = False
    # Set by the capture analysis when some lifted block shares it through a cell.
    is_cell: bool = False

    @property
    def reassigned(self) -> bool:
        if self.kind is BindingKind.PARAMETER:
            return self.assignments > 0
        return self.assignments > 1

    @property
    def is_variable(self) -> bool:
        return self.kind in (BindingKind.LOCAL, BindingKind.PARAMETER)


class Scope:
    def __init__(self, kind: ScopeKind, node: Optional[ast.Node], parent: Optional[Scope] = None) -> None:
        self.kind = kind
        self.node = node
        self.parent = parent
        self.bindings: Dict[str, Binding] = {}
        self.children: List[Scope] = []
        if parent is not None:
            parent.children.append(self)

    def define(self, name: str, kind: BindingKind, loc: ast.Located) -> Binding:
        if name in self.bindings:
            if kind is BindingKind.PARAMETER:
                raise ScopeError(f"duplicated argument name '{name}'", loc=loc)
            return self.bindings[name]
        binding = Binding(name=name, kind=kind, loc=loc, scope=self)
        self.bindings[name] = binding
        return binding

    def lookup(self, name: str) -> Optional[Binding]:
        scope: Optional[Scope] = self
        while scope is not None:
            if name in scope.bindings:
                return scope.bindings[name]
            # Only blocks and lambdas see the locals of the enclosing frame.
            if scope.kind not in (ScopeKind.BLOCK, ScopeKind.LAMBDA):
                return None
            scope = scope.parent
        return None

    def is_within(self, other: Scope) -> bool:
        scope: Optional[Scope] = self
        while scope is not None:
            if scope is other:
                return True
            scope = scope.parent
        return False

    def __repr__(self) -> str:
        return f"Scope({self.kind.name}, {sorted(self.bindings)})"


class ScopeTree:
    """Result of scope construction: the frames plus every identifier resolution."""

    def __init__(self, program: ast.Program) -> None:
        self.program = program
        self.root = Scope(ScopeKind.TOP, program)
        self.methods: Dict[str, Binding] = {}
        self.globals: Dict[str, Binding] = {}
        self.blocks: List[ast.BlockLiteral] = []
        self._resolutions: Dict[int, Tuple[ast.Node, Binding]] = {}
        self._scopes: Dict[int, Tuple[ast.Node, Scope]] = {}

    def resolve(self, node: ast.Node) -> Optional[Binding]:
        entry = self._resolutions.get(id(node))
        if entry is None or entry[0] is not node:
            return None
        return entry[1]

    def scope_of(self, node: ast.Node) -> Scope:
        """Scope opened by a def, block or lambda node (the root for the program)."""
        if node is self.program:
            return self.root
        entry = self._scopes.get(id(node))
        if entry is None or entry[0] is not node:
            raise KeyError(f"no scope recorded for {type(node).__name__}")
        return entry[1]

    def scopes(self) -> Iterator[Scope]:
        stack = [self.root]
        while stack:
            scope = stack.pop()
            yield scope
            stack.extend(reversed(scope.children))

    def _record(self, node: ast.Node, binding: Binding) -> None:
        self._resolutions[id(node)] = (node, binding)

    def _open(self, node: ast.Node, scope: Scope) -> None:
        self._scopes[id(node)] = (node, scope)


def build_scopes(program: ast.Program) -> ScopeTree:
    builder = ScopeBuilder(program)
    return builder.build()


class ScopeBuilder:
    def __init__(self, program: ast.Program) -> None:
        self.tree = ScopeTree(program)
        self.scope = self.tree.root

    def build(self) -> ScopeTree:
        # Methods can be called before (or from inside) their own definition.
        for node in ast.walk(self.tree.program):
            if isinstance(node, ast.FunctionDef) and node.name not in self.tree.methods:
                self.tree.methods[node.name] = Binding(name=node.name, kind=BindingKind.FUNCTION, loc=node.loc)
        self._visit_stmts(self.tree.program.statements)
        logger.debug(
            "scope: %d scopes, %d methods, %d blocks",
            sum(1 for _ in self.tree.scopes()),
            len(self.tree.methods),
            len(self.tree.blocks),
        )
        return self.tree

    def _visit_stmts(self, stmts: List[ast.Stmt]) -> None:
        for stmt in stmts:
            self._visit_stmt(stmt)

    def _visit_stmt(self, stmt: ast.Stmt) -> None:
        if isinstance(stmt, ast.FunctionDef):
            self._visit_function(stmt)
        elif isinstance(stmt, ast.ExprStmt):
            self._visit_expr(stmt.value)
        elif isinstance(stmt, ast.IfStmt):
            if stmt.modifier:
                self._visit_stmts(stmt.then_body)
                self._visit_expr(stmt.condition)
            else:
                self._visit_expr(stmt.condition)
                self._visit_stmts(stmt.then_body)
            self._visit_stmts(stmt.else_body)
        elif isinstance(stmt, ast.WhileStmt):
            self._visit_expr(stmt.condition)
            self._visit_stmts(stmt.body)
        elif isinstance(stmt, (ast.ReturnStmt, ast.BreakStmt, ast.NextStmt)):
            if stmt.value is not None:
                self._visit_expr(stmt.value)
        else:
            raise TypeError(f"Unsupported statement type: {type(stmt).__name__}")

    def _visit_function(self, fn: ast.FunctionDef) -> None:
        outer = self.scope
        self.scope = Scope(ScopeKind.FUNCTION, fn, parent=outer)
        self.tree._open(fn, self.scope)
        try:
            self._visit_params(fn.params)
            self._visit_stmts(fn.body)
        finally:
            self.scope = outer

    def _visit_closure(self, node, kind: ScopeKind) -> None:
        outer = self.scope
        self.scope = Scope(kind, node, parent=outer)
        self.tree._open(node, self.scope)
        if isinstance(node, ast.BlockLiteral):
            self.tree.blocks.append(node)
        try:
            self._visit_params(node.params)
            self._visit_stmts(node.body)
        finally:
            self.scope = outer

    def _visit_params(self, params: List[ast.Param]) -> None:
        for param in params:
            # Defaults may refer to the parameters before them.
            if param.default is not None:
                self._visit_expr(param.default)
            self.scope.define(param.name, BindingKind.PARAMETER, param.loc)

    def _visit_expr(self, expr: ast.Expr) -> None:
        if isinstance(expr, ast.Name):
            self._reference(expr)
        elif isinstance(expr, ast.GlobalRef):
            self.tree._record(expr, self._global(expr.name, expr.loc))
        elif isinstance(expr, (ast.Literal, ast.SymbolLit, ast.Const)):
            return
        elif isinstance(expr, ast.ArrayLiteral):
            for element in expr.elements:
                self._visit_expr(element)
        elif isinstance(expr, ast.Splat):
            self._visit_expr(expr.value)
        elif isinstance(expr, ast.RangeLit):
            self._visit_expr(expr.start)
            self._visit_expr(expr.end)
        elif isinstance(expr, ast.Binary):
            self._visit_expr(expr.left)
            self._visit_expr(expr.right)
        elif isinstance(expr, ast.Unary):
            self._visit_expr(expr.operand)
        elif isinstance(expr, ast.Ternary):
            self._visit_expr(expr.condition)
            self._visit_expr(expr.then_value)
            self._visit_expr(expr.else_value)
        elif isinstance(expr, ast.Call):
            if expr.receiver is not None:
                self._visit_expr(expr.receiver)
            for arg in expr.args:
                self._visit_expr(arg)
            if expr.block is not None:
                self._visit_closure(expr.block, ScopeKind.BLOCK)
        elif isinstance(expr, ast.Lambda):
            self._visit_closure(expr, ScopeKind.LAMBDA)
        elif isinstance(expr, ast.BlockLiteral):
            self._visit_closure(expr, ScopeKind.BLOCK)
        elif isinstance(expr, ast.Index):
            self._visit_expr(expr.value)
            for arg in expr.args:
                self._visit_expr(arg)
        elif isinstance(expr, ast.Assign):
            self._assign_target(expr.target)
            self._visit_expr(expr.value)
        elif isinstance(expr, ast.OpAssign):
            self._assign_target(expr.target)
            self._visit_expr(expr.value)
        elif isinstance(expr, ast.MultiAssign):
            for target in expr.targets:
                self._assign_target(target)
            for value in expr.values:
                self._visit_expr(value)
        else:
            raise TypeError(f"Unsupported expression type: {type(expr).__name__}")

    def _reference(self, name: ast.Name) -> None:
        binding = self.scope.lookup(name.ident)
        if binding is None:
            binding = self.tree.methods.get(name.ident)
        if binding is None and name.ident in KERNEL_METHODS:
            binding = self.tree.methods.setdefault(
                name.ident, Binding(name=name.ident, kind=BindingKind.FUNCTION, loc=None)
            )
        if binding is None:
            raise ScopeError(f"undefined local variable or method '{name.ident}'", loc=name.loc)
        self.tree._record(name, binding)

    def _assign_target(self, target: ast.Expr) -> None:
        if isinstance(target, ast.Name):
            binding = self.scope.lookup(target.ident)
            if binding is None:
                binding = self.scope.define(target.ident, BindingKind.LOCAL, target.loc)
            binding.assignments += 1
            if self._through_closure(binding):
                binding.written_in_closure = True
            self.tree._record(target, binding)
        elif isinstance(target, ast.GlobalRef):
            binding = self._global(target.name, target.loc)
            binding.assignments += 1
            self.tree._record(target, binding)
        elif isinstance(target, ast.Index):
            self._visit_expr(target.value)
            for arg in target.args:
                self._visit_expr(arg)
        else:
            raise ScopeError("unsupported assignment target", loc=target.loc)

    def _global(self, name: str, loc: ast.Located) -> Binding:
        binding = self.tree.globals.get(name)
        if binding is None:
            binding = Binding(name=name, kind=BindingKind.GLOBAL, loc=loc, scope=self.tree.root)
            self.tree.globals[name] = binding
        return binding

    def _through_closure(self, binding: Binding) -> bool:
        scope: Optional[Scope] = self.scope
        while scope is not None and scope is not binding.scope:
            if scope.kind in (ScopeKind.BLOCK, ScopeKind.LAMBDA):
                return True
            scope = scope.parent
        return False
