from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Iterator, List, Optional, Union


@dataclass(frozen=True)
class Located:
    line: int
    column: int


class Node:
    loc: Located


class Stmt(Node):
    loc: Located


class Expr(Node):
    loc: Located


@dataclass
class Program(Node):
    statements: List[Stmt]


@dataclass
class Param(Node):
    name: str
    loc: Located
    default: Optional[Expr] = None


# Statements


@dataclass
class FunctionDef(Stmt):
    loc: Located
    name: str
    params: List[Param]
    body: List[Stmt]


@dataclass
class ExprStmt(Stmt):
    loc: Located
    value: Expr


@dataclass
class IfStmt(Stmt):
    """`if`/`unless` statement.

    `elsif` chains are stored as a single nested IfStmt in `else_body` with
    `elsif=True`; `modifier` marks the trailing `stmt if cond` form.
    """

    loc: Located
    condition: Expr
    then_body: List[Stmt]
    else_body: List[Stmt] = field(default_factory=list)
    negated: bool = False
    modifier: bool = False
    elsif: bool = False


@dataclass
class WhileStmt(Stmt):
    loc: Located
    condition: Expr
    body: List[Stmt]


@dataclass
class ReturnStmt(Stmt):
    loc: Located
    value: Optional[Expr] = None


@dataclass
class BreakStmt(Stmt):
    loc: Located
    value: Optional[Expr] = None


@dataclass
class NextStmt(Stmt):
    loc: Located
    value: Optional[Expr] = None


# Expressions


@dataclass
class Literal(Expr):
    loc: Located
    value: Union[int, float, str, bool, None]


@dataclass
class SymbolLit(Expr):
    loc: Located
    name: str


@dataclass
class Name(Expr):
    loc: Located
    ident: str


@dataclass
class GlobalRef(Expr):
    loc: Located
    name: str


@dataclass
class Const(Expr):
    loc: Located
    name: str


@dataclass
class ArrayLiteral(Expr):
    loc: Located
    elements: List[Expr]


@dataclass
class Splat(Expr):
    loc: Located
    value: Expr


@dataclass
class RangeLit(Expr):
    loc: Located
    start: Expr
    end: Expr
    exclusive: bool = False


@dataclass
class Binary(Expr):
    loc: Located
    op: str
    left: Expr
    right: Expr


@dataclass
class Unary(Expr):
    loc: Located
    op: str
    operand: Expr


@dataclass
class Ternary(Expr):
    loc: Located
    condition: Expr
    then_value: Expr
    else_value: Expr


@dataclass
class BlockLiteral(Expr):
    """Implicit-parameter block attached to a call (`{ |x| ... }` or `do |x| ... end`)."""

    loc: Located
    params: List[Param]
    body: List[Stmt]


@dataclass
class Lambda(Expr):
    loc: Located
    params: List[Param]
    body: List[Stmt]


@dataclass
class Call(Expr):
    """Method call. `receiver` is None for self calls such as `puts x` or `loop { }`."""

    loc: Located
    receiver: Optional[Expr]
    method: str
    args: List[Expr] = field(default_factory=list)
    block: Optional[BlockLiteral] = None
    parens: bool = True


@dataclass
class Index(Expr):
    """`value[args]`; also the lambda invocation form `f[a, b]`."""

    loc: Located
    value: Expr
    args: List[Expr]


@dataclass
class Assign(Expr):
    loc: Located
    target: Expr
    value: Expr


@dataclass
class OpAssign(Expr):
    loc: Located
    target: Expr
    op: str
    value: Expr


@dataclass
class MultiAssign(Expr):
    loc: Located
    targets: List[Expr]
    values: List[Expr]


def iter_child_nodes(node: Node) -> Iterator[Node]:
    """Yield the direct children of `node` in source order."""
    if isinstance(node, IfStmt) and node.modifier:
        # `body if cond`: the body is written first.
        yield from node.then_body
        yield node.condition
        yield from node.else_body
        return
    for item in fields(node):
        value = getattr(node, item.name)
        if isinstance(value, Node):
            yield value
        elif isinstance(value, list):
            for child in value:
                if isinstance(child, Node):
                    yield child


def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal of `node` and all of its descendants."""
    yield node
    for child in iter_child_nodes(node):
        yield from walk(child)
