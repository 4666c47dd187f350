"""
Canonical Ruby output for blocklift ASTs.

Output uses two-space indentation, parenthesizes every call that has
arguments and adds parentheses around a sub-expression only where the
operator precedence requires them. Re-parsing the output and printing it
again gives the same text.
"""

from __future__ import annotations

from typing import List, Optional

from . import ast

INDENT = "  "

# Binding strength, loosest first.
PREC_KEYWORD = 1  # and, or
PREC_NOT = 2
PREC_TERNARY = 3
PREC_RANGE = 4
PREC_OROR = 5
PREC_ANDAND = 6
PREC_EQUALITY = 7
PREC_COMPARISON = 8
PREC_SUM = 9
PREC_TERM = 10
PREC_UNARY = 11
PREC_POW = 12
PREC_POSTFIX = 13

_BINARY_PREC = {
    "and": PREC_KEYWORD,
    "or": PREC_KEYWORD,
    "||": PREC_OROR,
    "&&": PREC_ANDAND,
    "==": PREC_EQUALITY,
    "!=": PREC_EQUALITY,
    "<": PREC_COMPARISON,
    ">": PREC_COMPARISON,
    "<=": PREC_COMPARISON,
    ">=": PREC_COMPARISON,
    "+": PREC_SUM,
    "-": PREC_SUM,
    "*": PREC_TERM,
    "/": PREC_TERM,
    "%": PREC_TERM,
    "**": PREC_POW,
}

_STRING_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\t": "\\t",
    "\r": "\\r",
    "\0": "\\0",
    "\x1b": "\\e",
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\v": "\\v",
}


def print_program(program: ast.Program) -> str:
    lines: List[str] = []
    statements = program.statements
    for idx, stmt in enumerate(statements):
        lines.extend(_stmt(stmt, 0))
        if isinstance(stmt, ast.FunctionDef) and idx + 1 < len(statements):
            lines.append("")
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def _indent(depth: int) -> str:
    return INDENT * depth


def _body(stmts: List[ast.Stmt], depth: int) -> List[str]:
    lines: List[str] = []
    for stmt in stmts:
        lines.extend(_stmt(stmt, depth))
    return lines


def _stmt(stmt: ast.Stmt, depth: int) -> List[str]:
    pad = _indent(depth)
    if isinstance(stmt, ast.FunctionDef):
        header = f"def {stmt.name}"
        if stmt.params:
            header += f"({_params(stmt.params, depth)})"
        return [pad + header, *_body(stmt.body, depth + 1), pad + "end"]
    if isinstance(stmt, ast.ExprStmt):
        return [pad + _statement_expr(stmt.value, depth)]
    if isinstance(stmt, ast.IfStmt):
        return _if_stmt(stmt, depth)
    if isinstance(stmt, ast.WhileStmt):
        head = f"while {_expr(stmt.condition, PREC_KEYWORD, depth)}"
        return [pad + head, *_body(stmt.body, depth + 1), pad + "end"]
    if isinstance(stmt, (ast.ReturnStmt, ast.BreakStmt, ast.NextStmt)):
        keyword = {ast.ReturnStmt: "return", ast.BreakStmt: "break", ast.NextStmt: "next"}[type(stmt)]
        if stmt.value is None:
            return [pad + keyword]
        return [pad + f"{keyword} {_expr(stmt.value, PREC_TERNARY, depth)}"]
    raise TypeError(f"Unsupported statement type: {type(stmt).__name__}")


def _if_stmt(stmt: ast.IfStmt, depth: int) -> List[str]:
    pad = _indent(depth)
    keyword = "unless" if stmt.negated else "if"
    condition = _expr(stmt.condition, PREC_KEYWORD, depth)
    if stmt.modifier and not stmt.else_body and len(stmt.then_body) == 1:
        inner = _single_line(stmt.then_body[0], depth)
        if inner is not None:
            return [f"{inner} {keyword} {condition}"]
    lines = [f"{pad}{keyword} {condition}", *_body(stmt.then_body, depth + 1)]
    else_body = stmt.else_body
    while (
        not stmt.negated
        and len(else_body) == 1
        and isinstance(else_body[0], ast.IfStmt)
        and else_body[0].elsif
        and not else_body[0].negated
    ):
        clause = else_body[0]
        lines.append(f"{pad}elsif {_expr(clause.condition, PREC_KEYWORD, depth)}")
        lines.extend(_body(clause.then_body, depth + 1))
        else_body = clause.else_body
    if else_body:
        lines.append(f"{pad}else")
        lines.extend(_body(else_body, depth + 1))
    lines.append(pad + "end")
    return lines


def _single_line(stmt: ast.Stmt, depth: int) -> Optional[str]:
    """The statement as one line, or None when it needs several."""
    if not isinstance(stmt, (ast.ExprStmt, ast.ReturnStmt, ast.BreakStmt, ast.NextStmt, ast.IfStmt)):
        return None
    if isinstance(stmt, ast.IfStmt) and not stmt.modifier:
        return None
    lines = _stmt(stmt, depth)
    if len(lines) != 1 or "\n" in lines[0]:
        return None
    return lines[0]


def _statement_expr(expr: ast.Expr, depth: int) -> str:
    if isinstance(expr, ast.Assign):
        return f"{_target(expr.target, depth)} = {_assign_value(expr.value, depth)}"
    if isinstance(expr, ast.OpAssign):
        return f"{_target(expr.target, depth)} {expr.op}= {_assign_value(expr.value, depth)}"
    if isinstance(expr, ast.MultiAssign):
        targets = ", ".join(_target(target, depth) for target in expr.targets)
        values = ", ".join(_expr(value, PREC_TERNARY, depth) for value in expr.values)
        return f"{targets} = {values}"
    return _expr(expr, PREC_KEYWORD, depth)


def _assign_value(expr: ast.Expr, depth: int) -> str:
    if isinstance(expr, (ast.Assign, ast.OpAssign)):
        return _statement_expr(expr, depth)
    return _expr(expr, PREC_TERNARY, depth)


def _target(expr: ast.Expr, depth: int) -> str:
    return _expr(expr, PREC_POSTFIX, depth)


def _expr(expr: ast.Expr, prec: int, depth: int) -> str:
    text, own = _expr_prec(expr, depth)
    if own < prec:
        return f"({text})"
    return text


def _expr_prec(expr: ast.Expr, depth: int):
    if isinstance(expr, ast.Literal):
        return _literal(expr.value), PREC_POSTFIX
    if isinstance(expr, ast.SymbolLit):
        return f":{expr.name}", PREC_POSTFIX
    if isinstance(expr, ast.Name):
        return expr.ident, PREC_POSTFIX
    if isinstance(expr, ast.GlobalRef):
        return f"${expr.name}", PREC_POSTFIX
    if isinstance(expr, ast.Const):
        return expr.name, PREC_POSTFIX
    if isinstance(expr, ast.ArrayLiteral):
        return f"[{_args(expr.elements, depth)}]", PREC_POSTFIX
    if isinstance(expr, ast.Splat):
        return f"*{_expr(expr.value, PREC_TERNARY, depth)}", PREC_POSTFIX
    if isinstance(expr, ast.RangeLit):
        op = "..." if expr.exclusive else ".."
        start = _expr(expr.start, PREC_OROR, depth)
        end = _expr(expr.end, PREC_OROR, depth)
        return f"{start}{op}{end}", PREC_RANGE
    if isinstance(expr, ast.Binary):
        return _binary(expr, depth)
    if isinstance(expr, ast.Unary):
        if expr.op == "not":
            return f"not {_expr(expr.operand, PREC_NOT, depth)}", PREC_NOT
        return f"{expr.op}{_expr(expr.operand, PREC_UNARY, depth)}", PREC_UNARY
    if isinstance(expr, ast.Ternary):
        condition = _expr(expr.condition, PREC_RANGE, depth)
        then_value = _expr(expr.then_value, PREC_TERNARY, depth)
        else_value = _expr(expr.else_value, PREC_TERNARY, depth)
        return f"{condition} ? {then_value} : {else_value}", PREC_TERNARY
    if isinstance(expr, ast.Call):
        return _call(expr, depth), PREC_POSTFIX
    if isinstance(expr, ast.Index):
        return f"{_expr(expr.value, PREC_POSTFIX, depth)}[{_args(expr.args, depth)}]", PREC_POSTFIX
    if isinstance(expr, ast.Lambda):
        head = "->"
        if expr.params:
            head += f"({_params(expr.params, depth)})"
        return f"{head} {_braces([], expr.body, depth)}", PREC_POSTFIX
    if isinstance(expr, (ast.Assign, ast.OpAssign, ast.MultiAssign)):
        return _statement_expr(expr, depth), 0
    raise TypeError(f"Unsupported expression type: {type(expr).__name__}")


def _binary(expr: ast.Binary, depth: int):
    prec = _BINARY_PREC[expr.op]
    if expr.op == "**":
        left = _expr(expr.left, PREC_POSTFIX, depth)
        right = _expr(expr.right, PREC_UNARY, depth)
    elif prec == PREC_EQUALITY:
        # `a == b == c` does not parse.
        left = _expr(expr.left, prec + 1, depth)
        right = _expr(expr.right, prec + 1, depth)
    else:
        left = _expr(expr.left, prec, depth)
        right = _expr(expr.right, prec + 1, depth)
    return f"{left} {expr.op} {right}", prec


def _call(call: ast.Call, depth: int) -> str:
    if call.receiver is not None:
        text = f"{_expr(call.receiver, PREC_POSTFIX, depth)}.{call.method}"
    else:
        text = call.method
    if call.args:
        text += f"({_args(call.args, depth)})"
    elif call.parens:
        text += "()"
    if call.block is not None:
        text += " " + _braces(call.block.params, call.block.body, depth)
    return text


def _braces(params: List[ast.Param], body: List[ast.Stmt], depth: int) -> str:
    head = "{"
    if params:
        head += f" |{_params(params, depth)}|"
    if not body:
        return head + " }" if params else "{}"
    if len(body) == 1:
        line = _single_line(body[0], 0)
        if line is not None:
            return f"{head} {line} }}"
    lines = [head, *_body(body, depth + 1), _indent(depth) + "}"]
    return "\n".join(lines)


def _params(params: List[ast.Param], depth: int) -> str:
    parts = []
    for param in params:
        if param.default is None:
            parts.append(param.name)
        else:
            parts.append(f"{param.name} = {_expr(param.default, PREC_TERNARY, depth)}")
    return ", ".join(parts)


def _args(args: List[ast.Expr], depth: int) -> str:
    return ", ".join(_expr(arg, PREC_TERNARY, depth) for arg in args)


def _literal(value) -> str:
    if value is None:
        return "nil"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _float(value)
    if isinstance(value, str):
        return _string(value)
    raise TypeError(f"Unsupported literal: {value!r}")


def _float(value: float) -> str:
    text = repr(value)
    if "e" in text:
        mantissa, exponent = text.split("e")
        if "." not in mantissa:
            mantissa += ".0"
        return f"{mantissa}e{exponent}"
    return text


def _string(value: str) -> str:
    out = ['"']
    for idx, ch in enumerate(value):
        if ch in _STRING_ESCAPES:
            out.append(_STRING_ESCAPES[ch])
        elif ch == "#" and value[idx + 1 : idx + 2] in ("{", "$", "@"):
            out.append("\\#")
        else:
            out.append(ch)
    out.append('"')
    return "".join(out)
