from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from lark import Lark, Token, Tree
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken

from .ast import (
    ArrayLiteral,
    Assign,
    Binary,
    BlockLiteral,
    BreakStmt,
    Call,
    Const,
    Expr,
    ExprStmt,
    FunctionDef,
    GlobalRef,
    IfStmt,
    Index,
    Lambda,
    Literal,
    Located,
    MultiAssign,
    Name,
    NextStmt,
    OpAssign,
    Param,
    Program,
    RangeLit,
    ReturnStmt,
    Splat,
    Stmt,
    SymbolLit,
    Ternary,
    Unary,
    WhileStmt,
)
from .errors import ParseError

_GRAMMAR_PATH = Path(__file__).with_name("grammar.lark")
_GRAMMAR_SRC = _GRAMMAR_PATH.read_text()


class CommandCallMarker:
    """Retype NAME as CMD_NAME where an identifier starts a call without parentheses.

    Ruby reads `print x`, `data.push row[i]` and `unwrap [a, *b]` as calls. The
    grammar cannot see whitespace, so the decision is made here: an identifier
    followed (after a gap, on the same line) by something that can only start
    an argument is the head of a command call.
    """

    ARG_START = {
        "NAME",
        "CONST",
        "GVAR",
        "STRING",
        "INT",
        "FLOAT",
        "SYMBOL",
        "NIL",
        "TRUE",
        "FALSE",
        "BANG",
        "ARROW",
        "LSQB",
    }

    # `puts -x` and `f *args`: only when the operator hugs its operand.
    PREFIX_OPERATORS = {"MINUS", "STAR"}

    # `p (1..3).to_a`: the parenthesis opens the first argument, not the argument list.
    # Left alone after a dot so `list.push (x)` still reads as a plain method call.
    OPEN_PAREN = "LPAR"

    def process(self, stream):
        tokens = list(stream)
        for idx, token in enumerate(tokens):
            if token.type == "NAME" and self._starts_command(tokens, idx):
                token = Token.new_borrow_pos("CMD_NAME", token.value, token)
            yield token

    def _starts_command(self, tokens: List[Token], idx: int) -> bool:
        if idx > 0 and tokens[idx - 1].type == "DEF":
            return False
        if idx + 1 >= len(tokens):
            return False
        token = tokens[idx]
        nxt = tokens[idx + 1]
        if not _gap_between(token, nxt):
            return False
        if nxt.type in self.ARG_START:
            return True
        if nxt.type == self.OPEN_PAREN:
            return idx == 0 or tokens[idx - 1].type != "DOT"
        if nxt.type in self.PREFIX_OPERATORS and idx + 2 < len(tokens):
            after = tokens[idx + 2]
            return after.type not in ("NEWLINE", "SEMI") and not _gap_between(nxt, after)
        return False


def _gap_between(left: Token, right: Token) -> bool:
    return right.start_pos > left.end_pos


class TerminatorInserter:
    always_accept = ("NEWLINE", "SEMI")

    TERMINABLE = {
        "NAME",
        "CONST",
        "GVAR",
        "INT",
        "FLOAT",
        "STRING",
        "SYMBOL",
        "NIL",
        "TRUE",
        "FALSE",
        "RPAR",
        "RSQB",
        "RBRACE",
        "END",
        "RETURN",
        "BREAK",
        "NEXT",
    }

    def __init__(self) -> None:
        self._reset()

    def _reset(self) -> None:
        # Open delimiters; newlines are only significant at the top level or
        # directly inside a brace block.
        self.open_stack: List[str] = []
        self.can_terminate = False

    def process(self, stream):
        self._reset()
        tokens = list(stream)
        for idx, token in enumerate(tokens):
            ttype = token.type
            if ttype == "NEWLINE":
                if self._should_emit_terminator() and not self._continues_chain(tokens, idx):
                    yield Token.new_borrow_pos("TERMINATOR", token.value, token)
                    self.can_terminate = False
                continue
            if ttype == "SEMI":
                yield Token.new_borrow_pos("TERMINATOR", token.value, token)
                self.can_terminate = False
                continue
            yield token
            self._update_depth(ttype)
            self.can_terminate = ttype in self.TERMINABLE

    def _update_depth(self, ttype: str) -> None:
        if ttype in ("LPAR", "LSQB", "LBRACE"):
            self.open_stack.append(ttype)
        elif ttype in ("RPAR", "RSQB", "RBRACE") and self.open_stack:
            self.open_stack.pop()

    def _should_emit_terminator(self) -> bool:
        if self.open_stack and self.open_stack[-1] != "LBRACE":
            return False
        return self.can_terminate

    def _continues_chain(self, tokens: List[Token], idx: int) -> bool:
        # A line starting with `.method` continues the previous expression.
        for token in tokens[idx + 1 :]:
            if token.type == "NEWLINE":
                continue
            return token.type == "DOT"
        return False


class RubyPostLex:
    """Combined post-lexer: command-call detection, then terminator insertion."""

    always_accept = TerminatorInserter.always_accept

    def __init__(self) -> None:
        self._commands = CommandCallMarker()
        self._terminators = TerminatorInserter()

    def process(self, stream):
        return self._terminators.process(self._commands.process(stream))


_PARSER = Lark(
    _GRAMMAR_SRC,
    parser="lalr",
    lexer="basic",
    start="program",
    propagate_positions=True,
    maybe_placeholders=False,
    postlex=RubyPostLex(),
)


def parse_program(source: str) -> Program:
    try:
        tree = _PARSER.parse(source)
    except UnexpectedInput as err:
        raise _parse_error(err, source) from err
    return Program(statements=_build_body(tree))


def _parse_error(err: UnexpectedInput, source: str) -> ParseError:
    line = getattr(err, "line", None)
    column = getattr(err, "column", None)
    if not isinstance(line, int) or line < 1:
        line = source.count("\n") + 1
        column = len(source.rsplit("\n", 1)[-1]) + 1
    if isinstance(err, UnexpectedCharacters):
        char = source[err.pos_in_stream] if err.pos_in_stream < len(source) else ""
        message = f"unexpected character {char!r}"
    elif isinstance(err, UnexpectedEOF):
        message = "unexpected end of input"
    elif isinstance(err, UnexpectedToken):
        token = err.token
        if token.type == "$END":
            message = "unexpected end of input"
        elif token.type == "TERMINATOR":
            message = "unexpected end of line"
        else:
            message = f"unexpected {token.value!r}"
    else:
        message = str(err).splitlines()[0]
    return ParseError(message, loc=Located(line=line, column=column or 1))


def _build_body(tree: Tree) -> List[Stmt]:
    return [_build_stmt(child) for child in _trees(tree)]


def _build_stmt(tree: Tree) -> Stmt:
    kind = _name(tree)
    if kind == "def_stmt":
        return _build_function(tree)
    if kind == "if_stmt":
        return _build_if_stmt(tree)
    if kind == "unless_stmt":
        return _build_unless_stmt(tree)
    if kind == "while_stmt":
        cond, body = _trees(tree)
        return WhileStmt(loc=_loc(tree), condition=_build_expr(cond), body=_build_body(body))
    if kind in ("if_mod", "unless_mod"):
        stmt_node, cond = _trees(tree)
        return IfStmt(
            loc=_loc(tree),
            condition=_build_expr(cond),
            then_body=[_build_stmt(stmt_node)],
            negated=kind == "unless_mod",
            modifier=True,
        )
    if kind in ("return_stmt", "break_stmt", "next_stmt"):
        children = _trees(tree)
        value = _build_expr(children[0]) if children else None
        node_type = {"return_stmt": ReturnStmt, "break_stmt": BreakStmt, "next_stmt": NextStmt}[kind]
        return node_type(loc=_loc(tree), value=value)
    if kind == "expr_stmt":
        value = _build_expr(_trees(tree)[0])
        return ExprStmt(loc=_loc(tree), value=value)
    raise ValueError(f"Unsupported statement node: {kind}")


def _build_function(tree: Tree) -> FunctionDef:
    name_token = next(child for child in tree.children if isinstance(child, Token) and child.type == "NAME")
    params: List[Param] = []
    params_node = _find(tree, "def_params")
    if params_node is not None:
        params = _build_params(params_node)
    body = _find(tree, "body")
    return FunctionDef(loc=_loc(tree), name=name_token.value, params=params, body=_build_body(body))


def _build_params(node: Tree) -> List[Param]:
    param_list = _find(node, "param_list")
    if param_list is None:
        return []
    params: List[Param] = []
    for param in _trees(param_list):
        name_token = param.children[0]
        default_nodes = _trees(param)
        default = _build_expr(default_nodes[0]) if default_nodes else None
        params.append(Param(name=name_token.value, loc=_loc_from_token(name_token), default=default))
    return params


def _build_if_stmt(tree: Tree) -> IfStmt:
    children = _trees(tree)
    cond, body = children[0], children[1]
    else_body: List[Stmt] = []
    clauses = children[2:]
    if clauses and _name(clauses[-1]) == "else_clause":
        else_body = _build_body(_trees(clauses[-1])[0])
        clauses = clauses[:-1]
    for clause in reversed(clauses):
        clause_cond, clause_body = _trees(clause)
        else_body = [
            IfStmt(
                loc=_loc(clause),
                condition=_build_expr(clause_cond),
                then_body=_build_body(clause_body),
                else_body=else_body,
                elsif=True,
            )
        ]
    return IfStmt(
        loc=_loc(tree),
        condition=_build_expr(cond),
        then_body=_build_body(body),
        else_body=else_body,
    )


def _build_unless_stmt(tree: Tree) -> IfStmt:
    children = _trees(tree)
    else_body: List[Stmt] = []
    if len(children) > 2:
        else_body = _build_body(_trees(children[2])[0])
    return IfStmt(
        loc=_loc(tree),
        condition=_build_expr(children[0]),
        then_body=_build_body(children[1]),
        else_body=else_body,
        negated=True,
    )


def _build_expr(node: Tree) -> Expr:
    if not isinstance(node, Tree):
        raise TypeError(f"Unexpected node type: {type(node)}")
    name = _name(node)

    if name == "assign":
        target, value = _trees(node)
        return Assign(loc=_loc(node), target=_build_target(target), value=_build_expr(value))
    if name == "op_assign":
        target, value = _trees(node)
        op_token = next(child for child in node.children if isinstance(child, Token) and child.type == "OP_ASSIGN")
        return OpAssign(
            loc=_loc(node),
            target=_build_target(target),
            op=op_token.value[:-1],
            value=_build_expr(value),
        )
    if name == "multi_assign":
        mlhs, mrhs = _trees(node)
        return MultiAssign(
            loc=_loc(node),
            targets=[_build_target(child) for child in _trees(mlhs)],
            values=[_build_expr(child) for child in _trees(mrhs)],
        )
    if name == "command_call":
        name_token = node.children[0]
        return Call(
            loc=_loc(node),
            receiver=None,
            method=name_token.value,
            args=_build_args(_find(node, "command_args")),
            parens=False,
        )
    if name == "command_method_call":
        receiver = _build_expr(_trees(node)[0])
        name_token = next(child for child in node.children if isinstance(child, Token) and child.type == "CMD_NAME")
        return Call(
            loc=_loc_from_token(name_token),
            receiver=receiver,
            method=name_token.value,
            args=_build_args(_find(node, "command_args")),
            parens=False,
        )
    if name == "kw_or":
        return _fold_chain(node, "kw_or_tail")
    if name == "not_op":
        return Unary(loc=_loc(node), op="not", operand=_build_expr(_trees(node)[0]))
    if name == "ternary_expr":
        cond, then_value, else_value = _trees(node)
        return Ternary(
            loc=_loc(node),
            condition=_build_expr(cond),
            then_value=_build_expr(then_value),
            else_value=_build_expr(else_value),
        )
    if name == "range":
        start, end = _trees(node)
        exclusive = any(isinstance(child, Token) and child.type == "DOT3" for child in node.children)
        return RangeLit(loc=_loc(node), start=_build_expr(start), end=_build_expr(end), exclusive=exclusive)
    if name == "logic_or":
        return _fold_chain(node, "logic_or_tail")
    if name == "logic_and":
        return _fold_chain(node, "logic_and_tail")
    if name == "equality":
        return _fold_chain(node, "equality_tail")
    if name == "comparison":
        return _fold_chain(node, "comparison_tail")
    if name == "sum":
        return _fold_chain(node, "sum_tail")
    if name == "term":
        return _fold_chain(node, "term_tail")
    if name == "neg":
        return Unary(loc=_loc(node), op="-", operand=_build_expr(_trees(node)[0]))
    if name == "bang":
        return Unary(loc=_loc(node), op="!", operand=_build_expr(_trees(node)[0]))
    if name == "pow":
        left, right = _trees(node)
        return Binary(loc=_loc(node), op="**", left=_build_expr(left), right=_build_expr(right))
    if name == "method_call":
        return _build_method_call(node)
    if name == "index":
        value, args = _trees(node)
        return Index(loc=_loc(node), value=_build_expr(value), args=_build_args(args))
    if name == "var":
        return Name(loc=_loc(node), ident=node.children[0].value)
    if name == "fcall":
        name_token = node.children[0]
        args_node = _find(node, "call_args")
        return Call(
            loc=_loc(node),
            receiver=None,
            method=name_token.value,
            args=_build_args(args_node),
            block=_build_block(node),
            parens=args_node is not None,
        )
    if name == "const":
        return Const(loc=_loc(node), name=node.children[0].value)
    if name == "gvar":
        return GlobalRef(loc=_loc(node), name=node.children[0].value[1:])
    if name == "int_lit":
        return Literal(loc=_loc(node), value=int(node.children[0].value.replace("_", "")))
    if name == "float_lit":
        return Literal(loc=_loc(node), value=float(node.children[0].value))
    if name == "str_lit":
        token = node.children[0]
        return Literal(loc=_loc(node), value=_decode_string(token))
    if name == "symbol_lit":
        return SymbolLit(loc=_loc(node), name=node.children[0].value[1:])
    if name == "nil_lit":
        return Literal(loc=_loc(node), value=None)
    if name == "true_lit":
        return Literal(loc=_loc(node), value=True)
    if name == "false_lit":
        return Literal(loc=_loc(node), value=False)
    if name == "array":
        args_node = _find(node, "arg_list")
        return ArrayLiteral(loc=_loc(node), elements=_build_args(args_node))
    if name == "paren":
        return _build_expr(_trees(node)[0])
    if name == "splat":
        return Splat(loc=_loc(node), value=_build_expr(_trees(node)[0]))
    if name == "lambda":
        params_node = _find(node, "lambda_params")
        params = _build_params(params_node) if params_node is not None else []
        return Lambda(loc=_loc(node), params=params, body=_build_body(_find(node, "body")))
    raise ValueError(f"Unsupported expression node: {name}")


def _build_method_call(tree: Tree) -> Call:
    receiver = _build_expr(tree.children[0])
    name_token = next(child for child in tree.children if isinstance(child, Token) and child.type == "NAME")
    args_node = _find(tree, "call_args")
    return Call(
        loc=_loc_from_token(name_token),
        receiver=receiver,
        method=name_token.value,
        args=_build_args(args_node),
        block=_build_block(tree),
        parens=args_node is not None,
    )


def _build_block(tree: Tree) -> Optional[BlockLiteral]:
    block_node = next(
        (child for child in _trees(tree) if _name(child) in ("brace_block", "do_block")),
        None,
    )
    if block_node is None:
        return None
    params_node = _find(block_node, "block_params")
    params = _build_params(params_node) if params_node is not None else []
    return BlockLiteral(
        loc=_loc(block_node),
        params=params,
        body=_build_body(_find(block_node, "body")),
    )


def _build_args(node: Optional[Tree]) -> List[Expr]:
    if node is None:
        return []
    if _name(node) == "call_args":
        node = _find(node, "arg_list")
        if node is None:
            return []
    return [_build_expr(child) for child in _trees(node)]


def _build_target(node: Tree) -> Expr:
    # `lhs` wraps the postfix expression being assigned to.
    inner = _trees(node)[0] if _name(node) == "lhs" else node
    target = _build_expr(inner)
    if isinstance(target, (Name, GlobalRef, Index)):
        return target
    raise ParseError("unsupported assignment target", loc=target.loc)


def _fold_chain(tree: Tree, tail_name: str) -> Expr:
    child_nodes = _trees(tree)
    result = _build_expr(child_nodes[0])
    for child in child_nodes[1:]:
        if _name(child) != tail_name:
            continue
        result = _binary_tail(result, child)
    return result


def _binary_tail(left: Expr, tail: Tree) -> Expr:
    op_token = tail.children[0]
    right = _build_expr(tail.children[1])
    return Binary(loc=_loc_from_token(op_token), op=op_token.value, left=left, right=right)


_DOUBLE_QUOTE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "0": "\0",
    "s": " ",
    "e": "\x1b",
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "v": "\v",
}


def _decode_string(token: Token) -> str:
    raw = token.value
    body = raw[1:-1]
    if raw[0] == "'":
        return _decode_single_quoted(body)
    out: List[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            out.append(_DOUBLE_QUOTE_ESCAPES.get(nxt, nxt))
            i += 2
            continue
        if ch == "#" and i + 1 < len(body) and body[i + 1] in "{$@":
            column = token.column + 1 + i
            raise ParseError("string interpolation is not supported", loc=Located(token.line, column))
        out.append(ch)
        i += 1
    return "".join(out)


def _decode_single_quoted(body: str) -> str:
    out: List[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body) and body[i + 1] in "\\'":
            out.append(body[i + 1])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _trees(node: Tree) -> List[Tree]:
    return [child for child in node.children if isinstance(child, Tree)]


def _find(node: Tree, name: str) -> Optional[Tree]:
    return next((child for child in _trees(node) if _name(child) == name), None)


def _loc(tree: Tree) -> Located:
    meta = tree.meta
    return Located(line=getattr(meta, "line", 0), column=getattr(meta, "column", 0))


def _loc_from_token(token: Token) -> Located:
    return Located(line=token.line, column=token.column)


def _name(node: Tree | Token) -> str:
    if isinstance(node, Tree):
        data = node.data
        if isinstance(data, Token):
            return data.value
        return data
    if isinstance(node, Token):
        return node.type
    return str(node)
