from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Tuple

from . import ast
from .captures import Capture, CaptureMode, CaptureSet
from .helpers import NO_ARGUMENT
from .names import NameGenerator
from .scope import Binding


@dataclass
class LiftedClosure:
    """A block turned into `def name(captures...) -> (params) { body } end`."""

    name: str
    captures: List[Capture]
    params: List[ast.Param]
    body: List[ast.Stmt]
    definition: ast.FunctionDef
    block: ast.BlockLiteral = field(repr=False)


class ClosureLifter:
    def __init__(self, names: NameGenerator) -> None:
        self.names = names

    def lift(
        self,
        block: ast.BlockLiteral,
        captures: CaptureSet,
        body: List[ast.Stmt],
        params: List[ast.Param],
        *,
        arity: int,
        outer_is_cell: Callable[[Binding], bool],
    ) -> Tuple[LiftedClosure, List[ast.Expr]]:
        """Build the two-level closure for `block` and the arguments its call site passes.

        `body` and `params` are the already rewritten block body and formals.
        The inner lambda takes exactly `arity` arguments; `outer_is_cell`
        tells whether a captured binding is held in a cell where the call
        site is.
        """
        loc = block.loc
        name = self.names.fresh("block")
        inner_params, prelude = self._inner_params(params, arity, loc)
        inner = ast.Lambda(loc=loc, params=inner_params, body=prelude + body)
        ordered = list(captures)
        definition = ast.FunctionDef(
            loc=loc,
            name=name,
            params=[ast.Param(name=capture.name, loc=loc) for capture in ordered],
            body=[ast.ExprStmt(loc=loc, value=inner)],
        )
        args = [self._argument(capture, loc, outer_is_cell) for capture in ordered]
        closure = LiftedClosure(
            name=name,
            captures=ordered,
            params=params,
            body=inner.body,
            definition=definition,
            block=block,
        )
        return closure, args

    def _inner_params(
        self, params: List[ast.Param], arity: int, loc: ast.Located
    ) -> Tuple[List[ast.Param], List[ast.Stmt]]:
        if arity == NO_ARGUMENT:
            # Nothing is passed in; declared parameters are simply nil.
            prelude: List[ast.Stmt] = [
                ast.ExprStmt(
                    loc=loc,
                    value=ast.Assign(loc=loc, target=ast.Name(loc=loc, ident=param.name), value=ast.Literal(loc=loc, value=None)),
                )
                for param in params
            ]
            return [], prelude
        if len(params) == 1:
            return params, []
        arg = self.names.fresh("arg")
        if not params:
            return [ast.Param(name=arg, loc=loc)], []
        # Blocks spread an array argument over several parameters.
        destructure = ast.MultiAssign(
            loc=loc,
            targets=[ast.Name(loc=param.loc, ident=param.name) for param in params],
            values=[ast.Name(loc=loc, ident=arg)],
        )
        return [ast.Param(name=arg, loc=loc)], [ast.ExprStmt(loc=loc, value=destructure)]

    def _argument(self, capture: Capture, loc: ast.Located, outer_is_cell: Callable[[Binding], bool]) -> ast.Expr:
        value: ast.Expr = ast.Name(loc=loc, ident=capture.name)
        if capture.mode is CaptureMode.BY_CELL:
            # The cell itself is shared.
            return value
        if outer_is_cell(capture.binding):
            return ast.Index(loc=loc, value=value, args=[ast.Literal(loc=loc, value=0)])
        return value
