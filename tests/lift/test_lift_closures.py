from __future__ import annotations

from blocklift import ast
from blocklift.captures import analyze_block
from blocklift.helpers import ELEMENT, NO_ARGUMENT
from blocklift.lift import ClosureLifter
from blocklift.names import NameGenerator
from blocklift.parser import parse_program
from blocklift.printer import print_program
from blocklift.scope import build_scopes


def _lift(source: str, *, arity: int = ELEMENT, cells=()):
    prog = parse_program(source)
    tree = build_scopes(prog)
    (block,) = tree.blocks
    captures = analyze_block(block, tree)
    names = NameGenerator()
    names.reset()
    closure, args = ClosureLifter(names).lift(
        block,
        captures,
        block.body,
        block.params,
        arity=arity,
        outer_is_cell=lambda binding: binding.name in cells,
    )
    return closure, args


def _text(closure) -> str:
    return print_program(ast.Program(statements=[closure.definition]))


def test_single_param_block_becomes_two_level_closure() -> None:
    closure, args = _lift("def indices(str, chr)\n  (0 ... str.length).find_all { |i| str[i] == chr }\nend\n")
    assert closure.name == "_lift_block_1"
    assert [capture.name for capture in closure.captures] == ["str", "chr"]
    assert _text(closure) == "def _lift_block_1(str, chr)\n  ->(i) { str[i] == chr }\nend\n"
    assert [arg.ident for arg in args] == ["str", "chr"]


def test_block_without_captures_takes_no_outer_params() -> None:
    closure, args = _lift("[1, 2].map { |x| x * 2 }\n")
    assert args == []
    assert _text(closure) == "def _lift_block_1\n  ->(x) { x * 2 }\nend\n"


def test_several_params_destructure_one_argument() -> None:
    closure, _ = _lift("[[1, 2]].each { |a, b| p a + b }\n")
    assert _text(closure) == (
        "def _lift_block_1\n"
        "  ->(_lift_arg_1) {\n"
        "    a, b = _lift_arg_1\n"
        "    p(a + b)\n"
        "  }\n"
        "end\n"
    )


def test_parameterless_block_still_accepts_the_element() -> None:
    closure, _ = _lift("[1].each { p 1 }\n")
    assert _text(closure) == "def _lift_block_1\n  ->(_lift_arg_1) { p(1) }\nend\n"


def test_no_argument_helper_sets_declared_params_to_nil() -> None:
    closure, _ = _lift("loop { |x| p x }\n", arity=NO_ARGUMENT)
    assert _text(closure) == (
        "def _lift_block_1\n"
        "  -> {\n"
        "    x = nil\n"
        "    p(x)\n"
        "  }\n"
        "end\n"
    )


def test_arguments_follow_capture_mode_and_outer_cells() -> None:
    source = """
def f(limit)
  total = 0
  seen = 0
  [1].each { |v| total += v + limit + seen }
  total
end
"""
    _, args = _lift(source, cells={"total", "seen"})
    total, limit, seen = args
    # By-cell captures hand over the cell itself.
    assert isinstance(total, ast.Name) and total.ident == "total"
    assert isinstance(limit, ast.Name) and limit.ident == "limit"
    # A by-value capture of a variable held in a cell passes its current value.
    assert isinstance(seen, ast.Index)
    assert seen.value.ident == "seen"
    assert seen.args[0].value == 0
