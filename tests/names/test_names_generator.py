from __future__ import annotations

import pytest

from blocklift.errors import NameCollisionError
from blocklift.names import NameGenerator, collect_identifiers, verify_names
from blocklift.parser import parse_program


def test_fresh_names_count_per_hint() -> None:
    names = NameGenerator()
    names.reset()
    assert names.fresh("block") == "_lift_block_1"
    assert names.fresh("block") == "_lift_block_2"
    assert names.fresh("arg") == "_lift_arg_1"
    assert names.issued == ["_lift_block_1", "_lift_block_2", "_lift_arg_1"]


def test_reset_restarts_numbering() -> None:
    names = NameGenerator()
    names.reset()
    names.fresh("block")
    names.fixed("stop")
    names.reset()
    assert names.issued == []
    assert names.fresh("block") == "_lift_block_1"
    assert names.fixed("stop") == "_lift_stop"


def test_reserved_names_are_skipped() -> None:
    names = NameGenerator()
    names.reset({"_lift_block_1", "_lift_block_3", "_lift_stop"})
    assert names.fresh("block") == "_lift_block_2"
    assert names.fresh("block") == "_lift_block_4"
    assert names.fixed("stop") == "_lift_stop_1"


def test_fixed_name_is_issued_once() -> None:
    names = NameGenerator()
    names.reset()
    assert names.fixed("map") == "_lift_map"
    assert names.fixed("map") == "_lift_map_1"


def test_custom_prefix() -> None:
    names = NameGenerator("__bl_")
    names.reset()
    assert names.fresh("block") == "__bl_block_1"
    assert names.fixed("loop") == "__bl_loop"


def test_collect_identifiers_covers_every_kind_of_name() -> None:
    prog = parse_program(
        """
$TOP = :apex
def f(a, b = Integer)
  a.length + b
end
f(1) { |blk| blk }
"""
    )
    found = collect_identifiers(prog)
    assert {"TOP", "apex", "f", "a", "b", "Integer", "length", "blk"} <= found


def test_verify_names_rejects_source_collisions_and_duplicates() -> None:
    verify_names(["_lift_block_1", "_lift_map"], {"indices", "str"})
    with pytest.raises(NameCollisionError) as excinfo:
        verify_names(["_lift_block_1", "indices"], {"indices"})
    assert "'indices'" in excinfo.value.message
    assert excinfo.value.kind == "name-collision"
    with pytest.raises(NameCollisionError):
        verify_names(["_lift_block_1", "_lift_block_1"], set())
