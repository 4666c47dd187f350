from __future__ import annotations

import pytest

from blocklift import ast
from blocklift.errors import ParseError
from blocklift.parser import parse_program


def _expr(source: str) -> ast.Expr:
    (stmt,) = parse_program(source).statements
    assert isinstance(stmt, ast.ExprStmt)
    return stmt.value


def test_find_all_block_on_range() -> None:
    call = _expr("(0 ... str.length).find_all { |i| str[i] == chr }\n")
    assert isinstance(call, ast.Call)
    assert call.method == "find_all"
    assert isinstance(call.receiver, ast.RangeLit)
    assert call.receiver.exclusive
    assert isinstance(call.receiver.end, ast.Call)
    assert call.receiver.end.method == "length"
    block = call.block
    assert isinstance(block, ast.BlockLiteral)
    assert [p.name for p in block.params] == ["i"]
    (body,) = block.body
    cmp = body.value
    assert isinstance(cmp, ast.Binary) and cmp.op == "=="
    assert isinstance(cmp.left, ast.Index)


def test_do_block_and_brace_block_are_equivalent() -> None:
    brace = _expr("list.each { |a, b| puts a }\n")
    do = _expr("list.each do |a, b|\n  puts a\nend\n")
    for call in (brace, do):
        assert call.method == "each"
        assert [p.name for p in call.block.params] == ["a", "b"]
        (stmt,) = call.block.body
        assert stmt.value.method == "puts"


def test_kernel_block_call_without_receiver() -> None:
    call = _expr("loop {\n  x -= 1\n  break if x == 0\n}\n")
    assert isinstance(call, ast.Call)
    assert call.receiver is None
    assert call.method == "loop"
    assert len(call.block.body) == 2


def test_lambda_literal_with_and_without_params() -> None:
    with_params = _expr("->(str, chr) { -> (i) { str[i] == chr } }\n")
    assert isinstance(with_params, ast.Lambda)
    assert [p.name for p in with_params.params] == ["str", "chr"]
    inner = with_params.body[0].value
    assert isinstance(inner, ast.Lambda)
    assert [p.name for p in inner.params] == ["i"]

    bare = _expr("-> { hits += 1 }\n")
    assert isinstance(bare, ast.Lambda)
    assert bare.params == []


def test_ternary_and_precedence() -> None:
    expr = _expr("t.size == 1 ? t[0] : t\n")
    assert isinstance(expr, ast.Ternary)
    assert isinstance(expr.condition, ast.Binary) and expr.condition.op == "=="
    assert isinstance(expr.then_value, ast.Index)

    arith = _expr("a + b * c ** 2 - d\n")
    assert arith.op == "-"
    assert arith.left.op == "+"
    assert arith.left.right.op == "*"
    assert arith.left.right.right.op == "**"


def test_keyword_logic_is_looser_than_symbolic() -> None:
    expr = _expr("a || b and not c\n")
    assert isinstance(expr, ast.Binary) and expr.op == "and"
    assert expr.left.op == "||"
    assert isinstance(expr.right, ast.Unary) and expr.right.op == "not"


def test_command_calls_with_and_without_receiver() -> None:
    call = _expr("print indices(\"hello\", \"l\")\n")
    assert call.method == "print"
    assert not call.parens
    (arg,) = call.args
    assert arg.method == "indices" and arg.parens

    push = _expr("data.push row[x1 + 1 .. x2 - 1]\n")
    assert push.method == "push"
    assert isinstance(push.receiver, ast.Name)
    (index,) = push.args
    assert isinstance(index, ast.Index)
    assert isinstance(index.args[0], ast.RangeLit)


def test_splat_in_array_and_command_args() -> None:
    call = _expr("unwrap [op, *args]\n")
    assert call.method == "unwrap"
    (array,) = call.args
    assert isinstance(array, ast.ArrayLiteral)
    assert isinstance(array.elements[1], ast.Splat)

    spread = _expr("f *rest\n")
    assert isinstance(spread.args[0], ast.Splat)


def test_binary_minus_is_not_a_command() -> None:
    expr = _expr("x - 1\n")
    assert isinstance(expr, ast.Binary)
    assert expr.op == "-"


def test_spaced_parenthesis_opens_the_first_argument() -> None:
    call = _expr("p (1..10).select { |i| i % 3 == 0 }\n")
    assert call.method == "p"
    assert not call.parens and call.block is None
    (select,) = call.args
    assert select.method == "select"
    assert isinstance(select.receiver, ast.RangeLit)
    assert isinstance(select.block, ast.BlockLiteral)

    tight = _expr("p(1..10).select { |i| i % 3 == 0 }\n")
    assert tight.method == "select"
    assert tight.receiver.method == "p" and tight.receiver.parens

    push = _expr("list.push (x)\n")
    assert push.method == "push" and push.parens
    assert isinstance(push.args[0], ast.Name)


def test_literals() -> None:
    array = _expr("[1, 2.5, 'it\\'s', \"tab\\t\", :sym, nil, true, false, 1_000]\n")
    values = array.elements
    assert [v.value for v in values[:4]] == [1, 2.5, "it's", "tab\t"]
    assert isinstance(values[4], ast.SymbolLit) and values[4].name == "sym"
    assert [v.value for v in values[5:]] == [None, True, False, 1000]


def test_predicate_method_names() -> None:
    expr = _expr("words.any? { |w| w.empty? }\n")
    assert expr.method == "any?"
    assert expr.block.body[0].value.method == "empty?"

    neq = _expr("a!=b\n")
    assert isinstance(neq, ast.Binary) and neq.op == "!="


def test_unclosed_block_is_a_parse_error() -> None:
    with pytest.raises(ParseError) as excinfo:
        parse_program("list.each { |x|\n  puts x\n")
    assert excinfo.value.message == "unexpected end of input"
