from __future__ import annotations

import pytest

from blocklift.interp import run_source

EXPECTED_STDOUT = {
    "indices.rb": "[2, 3][1, 2, 3]5\n[1]\n",
    "widen.rb": "[2, 8]\n",
    "partial.rb": "[2, 4]\n[3, 2, 1]\n",
    "enumerables.rb": (
        "0 1 2 \n"
        "18\n"
        "4\n"
        '["apple", "kiwi", "banana"]\n'
        '["fig"]\n'
        "[10, 8, 12, 6]\n"
        "true\n"
        "true\n"
        '"apple"\n'
        "[5, 4, 6, 0]\n"
    ),
    "nested.rb": "[[1, 2], [2, 4], [3, 3]]\n2\n[2, 4, 6]\n[10, 20, 30]\n16\n",
}


@pytest.mark.parametrize("name", sorted(EXPECTED_STDOUT))
def test_fixture_output(name, fixture_source) -> None:
    result = run_source(fixture_source(name))
    assert result.error is None
    assert result.stdout == EXPECTED_STDOUT[name]


def test_last_value_is_reported() -> None:
    assert run_source("x = 2\nx * 21\n").value == 42


def test_blocks_share_enclosing_locals() -> None:
    result = run_source(
        """
total = 0
[1, 2, 3].each { |v| total += v }
p total
"""
    )
    assert result.stdout == "6\n"


def test_break_value_becomes_call_result() -> None:
    result = run_source("p([1, 2, 3].each { |v| break v * 10 if v == 2 })\n")
    assert result.stdout == "20\n"


def test_next_skips_to_following_element() -> None:
    result = run_source("p([1, 2, 3].map { |v| next 0 if v == 2\n v })\n")
    assert result.stdout == "[1, 0, 3]\n"


def test_return_inside_lambda_leaves_only_the_lambda() -> None:
    result = run_source(
        """
def f
  g = ->(x) { return x + 1 }
  g.call(1) + 10
end
p f
"""
    )
    assert result.stdout == "12\n"


def test_block_spreads_array_over_params() -> None:
    result = run_source("[[1, 2], [3, 4]].each { |a, b| print a + b, \" \" }\n")
    assert result.stdout == "3 7 "


def test_lambda_arity_is_strict() -> None:
    result = run_source("f = ->(a, b) { a }\nf.call(1)\n")
    assert result.error.class_name == "ArgumentError"
    assert "given 1, expected 2" in result.error.message


@pytest.mark.parametrize(
    "source, class_name, message",
    [
        ('raise "no triangle found"\n', "RuntimeError", "no triangle found"),
        ("p 1 / 0\n", "ZeroDivisionError", "divided by 0"),
        ("raise ArgumentError, \"bad\"\n", "ArgumentError", "bad"),
        ("nothing_here\n", "NameError", "undefined local variable or method 'nothing_here' for main"),
        ("missing(1)\n", "NoMethodError", "undefined method 'missing' for main"),
    ],
)
def test_errors_end_the_run(source, class_name, message) -> None:
    result = run_source(source)
    assert result.error is not None
    assert result.error.class_name == class_name
    assert result.error.message == message


def test_output_before_an_error_is_kept() -> None:
    result = run_source('puts "before"\nraise "after"\n')
    assert result.stdout == "before\n"
    assert result.error.message == "after"


def test_loop_ends_on_stop_iteration() -> None:
    result = run_source("n = 0\nloop {\n  n += 1\n  raise StopIteration if n == 3\n}\np n\n")
    assert result.error is None
    assert result.stdout == "3\n"
