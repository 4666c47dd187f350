from __future__ import annotations

import pytest

from blocklift import ast
from blocklift.errors import NameCollisionError, ParseError, ScopeError, UnsupportedConstructWarning
from blocklift.names import NameGenerator
from blocklift.parser import parse_program
from blocklift.transformer import TransformConfig, Transformer, transform

INDICES = """
def indices(str, chr)
    (0 ... str.length).find_all { |i| str[i] == chr }
end

print indices("hello", "l") # => [2, 3]
"""

INDICES_LIFTED = """\
def _lift_find_all(collection, fun)
  items = collection.to_a
  result = []
  i = 0
  while i < items.size
    item = items[i]
    r = fun.call(item)
    return r[1] if r.is_a?(Array) && r.size == 2 && r[0] == :_lift_stop
    result.push(item) if r
    i += 1
  end
  result
end

def _lift_block_1(str, chr)
  ->(i) { str[i] == chr }
end

def indices(str, chr)
  _lift_find_all(0...str.length, _lift_block_1(str, chr))
end

print(indices("hello", "l"))
"""

WIDEN_LIFTED = """\
def _lift_loop(fun)
  while true
    r = fun.call
    return r[1] if r.is_a?(Array) && r.size == 2 && r[0] == :_lift_stop
  end
end

def _lift_block_1(x1, x2, steps)
  -> {
    x1[0] -= 1
    x2[0] += 1
    steps[0] += 1
    return [:_lift_stop, nil] if steps[0] == 3
  }
end

def widen(pt)
  x1 = [nil]
  x2 = [nil]
  steps = [nil]
  x1[0] = x2[0] = pt
  steps[0] = 0
  _lift_loop(_lift_block_1(x1, x2, steps))
  [x1[0], x2[0]]
end

p(widen(5))
"""

FIXTURES = ("indices.rb", "widen.rb", "partial.rb", "enumerables.rb", "nested.rb")


def test_indices_golden_output() -> None:
    result = transform(INDICES)
    assert result.source == INDICES_LIFTED
    assert result.warnings == []
    assert result.lifted == ["_lift_block_1"]


def test_widen_golden_output(fixture_source) -> None:
    assert transform(fixture_source("widen.rb")).source == WIDEN_LIFTED


@pytest.mark.parametrize("name", FIXTURES)
def test_output_is_deterministic(name, fixture_source) -> None:
    source = fixture_source(name)
    transformer = Transformer()
    first = transformer.transform(source).source
    # The same instance resets its names between runs.
    assert transformer.transform(source).source == first
    assert Transformer().transform(source).source == first


@pytest.mark.parametrize("name", FIXTURES)
def test_transforming_the_output_changes_nothing(name, fixture_source) -> None:
    once = transform(fixture_source(name))
    twice = transform(once.source)
    assert twice.source == once.source
    assert twice.lifted == []
    assert len(twice.warnings) == len(once.warnings)


@pytest.mark.parametrize("name", FIXTURES)
def test_generated_definitions_are_unique(name, fixture_source) -> None:
    out = parse_program(transform(fixture_source(name)).source)
    defined = [node.name for node in ast.walk(out) if isinstance(node, ast.FunctionDef)]
    assert len(defined) == len(set(defined))


def test_only_partial_fixture_leaves_a_block(fixture_source) -> None:
    for name in FIXTURES:
        out = parse_program(transform(fixture_source(name)).source)
        blocks = [node for node in ast.walk(out) if isinstance(node, ast.BlockLiteral)]
        assert len(blocks) == (1 if name == "partial.rb" else 0), name


def test_generated_names_avoid_source_identifiers() -> None:
    source = "_lift_block_1 = 3\np([1].map { |x| x + _lift_block_1 })\n"
    result = transform(source)
    assert result.lifted == ["_lift_block_2"]
    assert "def _lift_block_2(_lift_block_1)" in result.source
    assert "_lift_map([1], _lift_block_2(_lift_block_1))" in result.source


def test_prefix_is_configurable() -> None:
    result = transform(INDICES, config=TransformConfig(prefix="__bl_"))
    assert "def __bl_block_1(str, chr)" in result.source
    assert ":__bl_stop" in result.source
    assert "_lift_" not in result.source


def test_helpers_can_be_left_out() -> None:
    result = transform(INDICES, config=TransformConfig(emit_helpers=False))
    assert result.source.startswith("def _lift_block_1(str, chr)\n")
    assert "_lift_find_all(0...str.length" in result.source


def test_partial_failure_reports_one_warning(fixture_source) -> None:
    result = transform(fixture_source("partial.rb"))
    (warning,) = result.warnings
    assert isinstance(warning, UnsupportedConstructWarning)
    assert warning.method == "sort_by"
    assert warning.loc.line == 5
    assert "sorted = [3, 1, 2].sort_by { |n| -n }" in result.source
    assert "_lift_find_all(list, _lift_block_1())" in result.source
    (diag,) = result.diagnostics("partial.rb")
    assert diag.severity == "warning"
    assert diag.code == "unsupported-construct"
    assert diag.format().startswith("partial.rb:5:")


def test_fatal_errors_abort_the_run() -> None:
    with pytest.raises(ParseError):
        transform("def broken(\n")
    with pytest.raises(ScopeError):
        transform("[1].each { |x| p y }\n")


def test_name_collision_is_detected(monkeypatch) -> None:
    # A generator that ignores reserved names must be caught before output.
    monkeypatch.setattr(NameGenerator, "fresh", lambda self, hint: self._issue("indices"))
    with pytest.raises(NameCollisionError) as excinfo:
        transform(INDICES)
    assert "'indices'" in excinfo.value.message


def test_spaced_command_argument_is_lifted_whole() -> None:
    result = transform("p (1..10).select { |i| i % 3 == 0 }\n")
    assert result.source.endswith("p(_lift_find_all(1..10, _lift_block_1()))\n")
    assert result.warnings == []
