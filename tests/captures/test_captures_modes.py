from __future__ import annotations

import pytest

from blocklift import ast
from blocklift.captures import CaptureMode, analyze_block, analyze_program
from blocklift.errors import UnresolvedVariableError
from blocklift.parser import parse_program
from blocklift.scope import build_scopes


def _analyze(source: str):
    prog = parse_program(source)
    tree = build_scopes(prog)
    return prog, tree


def _modes(captures):
    return [(capture.name, capture.mode) for capture in captures]


def test_read_only_captures_are_by_value_in_first_reference_order() -> None:
    _, tree = _analyze(
        """
def indices(str, chr)
  (0 ... str.length).find_all { |i| str[i] == chr }
end
"""
    )
    (block,) = tree.blocks
    captures = analyze_block(block, tree)
    assert _modes(captures) == [("str", CaptureMode.BY_VALUE), ("chr", CaptureMode.BY_VALUE)]
    assert "i" not in captures


def test_written_captures_are_by_cell() -> None:
    _, tree = _analyze(
        """
def widen(pt)
  x1 = x2 = pt
  steps = 0
  loop {
    x1 -= 1
    x2 += 1
    steps += 1
    break if steps == 3
  }
  [x1, x2]
end
"""
    )
    (block,) = tree.blocks
    captures = analyze_block(block, tree)
    assert _modes(captures) == [
        ("x1", CaptureMode.BY_CELL),
        ("x2", CaptureMode.BY_CELL),
        ("steps", CaptureMode.BY_CELL),
    ]
    assert "pt" not in captures


def test_mode_upgrades_when_a_later_reference_writes() -> None:
    _, tree = _analyze("total = 0\n[1, 2].each { |v| p total\n total = total + v }\n")
    (block,) = tree.blocks
    captures = analyze_block(block, tree)
    assert _modes(captures) == [("total", CaptureMode.BY_CELL)]


def test_globals_and_methods_are_not_captured() -> None:
    _, tree = _analyze(
        """
$TOP = "^"
def helper(x)
  x
end
def f(list)
  list.map { |x| helper(x) + $TOP }
end
"""
    )
    (block,) = tree.blocks
    assert len(analyze_block(block, tree)) == 0


def test_nested_block_references_count_for_the_outer_block() -> None:
    _, tree = _analyze(
        """
def pairs(limit)
  out = []
  (1..limit).each do |a|
    (a..limit).each do |b|
      out.push([a, b])
    end
  end
  out
end
"""
    )
    outer, inner = tree.blocks
    assert _modes(analyze_block(outer, tree)) == [
        ("limit", CaptureMode.BY_VALUE),
        ("out", CaptureMode.BY_VALUE),
    ]
    assert _modes(analyze_block(inner, tree)) == [
        ("out", CaptureMode.BY_VALUE),
        ("a", CaptureMode.BY_VALUE),
    ]


def test_write_in_nested_lambda_makes_capture_by_cell() -> None:
    _, tree = _analyze(
        """
def counter
  hits = 0
  [1, 2].each { |x| bump = -> { hits += x } }
  hits
end
"""
    )
    (block,) = tree.blocks
    captures = analyze_block(block, tree)
    assert _modes(captures) == [("hits", CaptureMode.BY_CELL)]


def test_binding_written_by_outside_lambda_is_by_cell() -> None:
    _, tree = _analyze(
        """
def counter
  hits = 0
  bump = -> { hits += 1 }
  [1].each { |x| p hits }
  hits
end
"""
    )
    (block,) = tree.blocks
    assert _modes(analyze_block(block, tree))[-1] == ("hits", CaptureMode.BY_CELL)


@pytest.mark.parametrize("writer", ["proc { x += 1 }", "lambda { x += 1 }", "-> { x += 1 }"])
def test_variable_written_by_a_stored_closure_is_by_cell(writer) -> None:
    _, tree = _analyze(f"x = 0\nincr = {writer}\nr = [1, 2, 3].map {{ |i| incr.call; x }}\n")
    reader = tree.blocks[-1]
    assert _modes(analyze_block(reader, tree)) == [("incr", CaptureMode.BY_VALUE), ("x", CaptureMode.BY_CELL)]
    analyze_program(tree, lifted={id(reader)})
    assert tree.root.bindings["x"].is_cell
    assert not tree.root.bindings["incr"].is_cell


def test_reassigned_variable_read_by_an_escaping_lambda_is_by_cell() -> None:
    _, tree = _analyze("x = 1\nfs = [1, 2].map { |i| -> { x + i } }\nx = 10\n")
    (block,) = tree.blocks
    assert _modes(analyze_block(block, tree)) == [("x", CaptureMode.BY_CELL)]


def test_escaping_lambda_keeps_a_copy_of_a_variable_assigned_once() -> None:
    _, tree = _analyze("x = 1\nfs = [1, 2].map { |i| -> { x + i } }\n")
    (block,) = tree.blocks
    assert _modes(analyze_block(block, tree)) == [("x", CaptureMode.BY_VALUE)]


def test_reassigned_variable_read_directly_by_the_block_stays_by_value() -> None:
    _, tree = _analyze("x = 1\nys = [1, 2].map { |i| x + i }\nx = 10\n")
    (block,) = tree.blocks
    assert _modes(analyze_block(block, tree)) == [("x", CaptureMode.BY_VALUE)]


def test_analyze_program_marks_cells_only_for_lifted_blocks() -> None:
    _, tree = _analyze("n = 0\n[1].each { |v| n += v }\n[2].sort_by { |v| n += v }\n")
    first, second = tree.blocks
    results = analyze_program(tree, lifted={id(second)})
    assert set(results) == {id(first), id(second)}
    assert tree.root.bindings["n"].is_cell

    _, tree = _analyze("n = 0\n[1].each { |v| n += v }\n")
    analyze_program(tree, lifted=set())
    assert not tree.root.bindings["n"].is_cell


def test_unresolved_reference_is_reported() -> None:
    prog, tree = _analyze("x = 1\n[1].each { |v| p v }\n")
    (block,) = tree.blocks
    # A node the scope pass never saw has no binding to classify.
    stray = ast.Name(loc=ast.Located(line=2, column=20), ident="ghost")
    block.body.append(ast.ExprStmt(loc=stray.loc, value=stray))
    with pytest.raises(UnresolvedVariableError) as excinfo:
        analyze_block(block, tree)
    assert "ghost" in excinfo.value.message
    assert excinfo.value.loc.line == 2
