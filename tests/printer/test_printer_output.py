from __future__ import annotations

import pytest

from blocklift import ast
from blocklift.parser import parse_program
from blocklift.printer import print_program

L = ast.Located(line=1, column=1)


def _roundtrip(source: str) -> str:
    return print_program(parse_program(source))


def _print_expr(expr: ast.Expr) -> str:
    return print_program(ast.Program(statements=[ast.ExprStmt(loc=L, value=expr)]))


def _n(ident: str) -> ast.Name:
    return ast.Name(loc=L, ident=ident)


def test_canonical_layout() -> None:
    source = """
def unwrap(t)
    t.size == 1 ? t[0] : t
end
print unwrap([1, 2, 3])
"""
    assert _roundtrip(source) == (
        "def unwrap(t)\n"
        "  t.size == 1 ? t[0] : t\n"
        "end\n"
        "\n"
        "print(unwrap([1, 2, 3]))\n"
    )


def test_parentheses_only_where_needed() -> None:
    assert _print_expr(ast.Binary(loc=L, op="*", left=ast.Binary(loc=L, op="+", left=_n("a"), right=_n("b")), right=_n("c"))) == "(a + b) * c\n"
    assert _print_expr(ast.Binary(loc=L, op="-", left=_n("a"), right=ast.Binary(loc=L, op="-", left=_n("b"), right=_n("c")))) == "a - (b - c)\n"
    assert _print_expr(ast.Binary(loc=L, op="-", left=ast.Binary(loc=L, op="-", left=_n("a"), right=_n("b")), right=_n("c"))) == "a - b - c\n"
    range_call = ast.Call(
        loc=L,
        receiver=ast.RangeLit(loc=L, start=ast.Literal(loc=L, value=0), end=_n("n"), exclusive=True),
        method="to_a",
        parens=False,
    )
    assert _print_expr(range_call) == "(0...n).to_a\n"


def test_unary_and_power() -> None:
    assert _roundtrip("p(-x ** 2)\n") == "p(-x ** 2)\n"
    assert _roundtrip("p((-x) ** 2)\n") == "p((-x) ** 2)\n"
    assert _roundtrip("p(!(a && b))\n") == "p(!(a && b))\n"


def test_conditionals_and_loops() -> None:
    source = """
if a
  b
elsif c
  d
else
  e
end
unless f then g end
h if i
while j > 0
  j -= 1
end
"""
    assert _roundtrip(source) == (
        "if a\n"
        "  b\n"
        "elsif c\n"
        "  d\n"
        "else\n"
        "  e\n"
        "end\n"
        "unless f\n"
        "  g\n"
        "end\n"
        "h if i\n"
        "while j > 0\n"
        "  j -= 1\n"
        "end\n"
    )


def test_blocks_and_lambdas_use_braces() -> None:
    source = """
list.each do |x|
  p x
  p x + 1
end
f = ->(a, b = 2) do a + b end
"""
    assert _roundtrip(source) == (
        "list.each { |x|\n"
        "  p(x)\n"
        "  p(x + 1)\n"
        "}\n"
        "f = ->(a, b = 2) { a + b }\n"
    )


@pytest.mark.parametrize(
    "value, text",
    [
        (None, "nil"),
        (True, "true"),
        (3, "3"),
        (2.5, "2.5"),
        (1e20, "1.0e+20"),
        ("a\"b\\c\n", '"a\\"b\\\\c\\n"'),
        ("#{x}", '"\\#{x}"'),
    ],
)
def test_literals(value, text) -> None:
    assert _print_expr(ast.Literal(loc=L, value=value)) == text + "\n"


def test_printing_is_idempotent(fixture_source) -> None:
    for name in ("indices.rb", "enumerables.rb", "nested.rb", "widen.rb", "partial.rb"):
        once = _roundtrip(fixture_source(name))
        assert _roundtrip(once) == once
