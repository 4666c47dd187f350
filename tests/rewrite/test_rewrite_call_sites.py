from __future__ import annotations

import pytest

from blocklift import ast
from blocklift.captures import analyze_program
from blocklift.errors import UnsupportedConstructWarning
from blocklift.helpers import FIND_ALL, GENERIC_HELPERS, LOOP, HelperSpec
from blocklift.names import NameGenerator, collect_identifiers
from blocklift.parser import parse_program
from blocklift.printer import print_program
from blocklift.rewrite import CallSiteRewriter, plan_call_sites
from blocklift.scope import build_scopes


def _plan(source: str):
    prog = parse_program(source)
    tree = build_scopes(prog)
    return prog, tree, plan_call_sites(tree, GENERIC_HELPERS)


def _rewrite(source: str, *, emit_helpers: bool = False) -> str:
    prog, tree, plan = _plan(source)
    captures = analyze_program(tree, lifted=set(plan.lifted))
    names = NameGenerator()
    names.reset(collect_identifiers(prog))
    rewriter = CallSiteRewriter(tree, captures, plan, names, emit_helpers=emit_helpers)
    return print_program(rewriter.rewrite(prog))


def test_find_all_and_select_share_one_helper() -> None:
    _, tree, plan = _plan("a = [1].find_all { |x| x }\nb = [2].select { |x| x }\n")
    assert [plan.lifted[id(block)] for block in tree.blocks] == [FIND_ALL, FIND_ALL]
    assert plan.warnings == []


def test_receiverless_loop_is_planned() -> None:
    _, tree, plan = _plan("loop {\n  break\n}\n")
    (block,) = tree.blocks
    assert plan.lifted[id(block)] is LOOP


def test_unrecognized_builtin_gets_a_warning() -> None:
    _, tree, plan = _plan("[3, 1].sort_by { |n| -n }\n")
    assert plan.lifted == {}
    (warning,) = plan.warnings
    assert isinstance(warning, UnsupportedConstructWarning)
    assert warning.method == "sort_by"
    assert warning.loc.line == 1
    assert "sort_by" in warning.message


def test_calls_outside_the_table_shape_are_left_alone() -> None:
    source = """
[1].each { |x| p x }
[1].map(2) { |x| x }
x = 0
x.loop { 1 }
each { |y| y }
[1].each { |z| return z }
"""
    _, _, plan = _plan(source)
    reasons = [warning.message for warning in plan.warnings]
    assert len(plan.lifted) == 1
    assert reasons == [
        "'map' called with arguments and a block; call left as is",
        "no generic helper for 'loop' with a block; call left as is",
        "no generic helper for 'each' with a block; call left as is",
        "block passed to 'each' contains 'return'; call left as is",
    ]


def test_block_to_user_method_is_left_alone() -> None:
    _, _, plan = _plan("def loop\n  1\nend\nloop { 2 }\n")
    (warning,) = plan.warnings
    assert warning.message == "block passed to user-defined method 'loop' left as is"


def test_return_inside_nested_lambda_does_not_block_lifting() -> None:
    _, _, plan = _plan("[1].map { |x| f = -> { return x }\n f.call }\n")
    assert len(plan.lifted) == 1


def test_break_becomes_stop_marker() -> None:
    text = _rewrite(
        """
found = nil
[1, 2].each do |x|
  if x > 1
    found = x
    break x
  end
  next if x == 0
end
"""
    )
    assert "return [:_lift_stop, x]" in text
    assert "return nil if x == 0" not in text
    assert "return if x == 0" in text
    assert "break" not in text
    assert "next" not in text


def test_break_inside_while_in_block_stays_a_break() -> None:
    text = _rewrite("[1].each do |x|\n  while true\n    break\n  end\nend\n")
    assert "    break\n" in text
    assert "_lift_stop" not in text


def test_break_in_unlifted_block_is_kept() -> None:
    text = _rewrite("[1].sort_by do |x|\n  break\nend\n")
    assert text == "[1].sort_by { |x| break }\n"


def test_cells_for_written_captures() -> None:
    text = _rewrite(
        """
def accumulate(start, list)
  list.each { |v| start += v }
  start
end
"""
    )
    assert text == (
        "def _lift_block_1(start)\n"
        "  ->(v) { start[0] += v }\n"
        "end\n"
        "\n"
        "def accumulate(start, list)\n"
        "  start = [start]\n"
        "  _lift_each(list, _lift_block_1(start))\n"
        "  start[0]\n"
        "end\n"
    )


def test_helpers_are_emitted_once_and_first() -> None:
    text = _rewrite("[1].map { |x| x }\n[2].map { |y| y }\n", emit_helpers=True)
    assert text.startswith("def _lift_map(collection, fun)\n")
    assert text.count("def _lift_map(") == 1
    assert text.index("def _lift_block_2") < text.index("_lift_map([1], _lift_block_1())")


def test_unlifted_block_inside_lifted_block_sees_cells() -> None:
    text = _rewrite(
        """
n = 0
[1].each do |x|
  n += 1
  [2].sort_by { |y| n + y }
end
"""
    )
    assert "[2].sort_by { |y| n[0] + y }" in text
    assert "n = [nil]" in text
    assert "n[0] = 0" in text


def test_rewritten_program_has_no_block_literals_when_all_lifted() -> None:
    prog, tree, plan = _plan("[1].each { |x| [x].map { |y| y } }\n")
    captures = analyze_program(tree, lifted=set(plan.lifted))
    names = NameGenerator()
    names.reset(collect_identifiers(prog))
    out = CallSiteRewriter(tree, captures, plan, names).rewrite(prog)
    assert not [node for node in ast.walk(out) if isinstance(node, ast.BlockLiteral)]


def test_native_proc_writes_through_the_shared_cell() -> None:
    text = _rewrite("x = 0\nincr = proc { x += 1 }\nr = [1, 2, 3].map { |i| incr.call; x }\np r\n")
    assert "def _lift_block_1(incr, x)\n  ->(i) {\n    incr.call\n    x[0]\n  }\nend\n" in text
    assert "x = [nil]\nx[0] = 0\nincr = proc { x[0] += 1 }\n" in text
    assert "r = _lift_map([1, 2, 3], _lift_block_1(incr, x))" in text


def test_escaping_lambda_reads_the_current_value() -> None:
    text = _rewrite("x = 1\nfs = [1, 2].map { |i| -> { x + i } }\nx = 10\np fs[0].call\n")
    assert "  ->(i) { -> { x[0] + i } }\n" in text
    assert "fs = _lift_map([1, 2], _lift_block_1(x))" in text
    assert "x[0] = 10\n" in text


def test_helper_template_must_define_one_method() -> None:
    with pytest.raises(TypeError) as excinfo:
        HelperSpec(base="broken", template="p 1\n").instantiate("_lift_broken", "_lift_stop")
    assert "'broken'" in str(excinfo.value)
    assert "one method definition" in str(excinfo.value)
