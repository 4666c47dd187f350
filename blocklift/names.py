from __future__ import annotations

from typing import Dict, Iterable, List, Set

from . import ast
from .errors import NameCollisionError


class NameGenerator:
    """Deterministic source of identifiers for lifted code.

    Names are `<prefix><hint>_<n>` with a counter per hint, skipping anything
    the source already uses. `reset()` must be called at the start of each run
    so that identical input always produces identical names.
    """

    def __init__(self, prefix: str = "_lift_") -> None:
        self.prefix = prefix
        self.reserved: Set[str] = set()
        self.issued: List[str] = []
        self._counters: Dict[str, int] = {}

    def reset(self, reserved: Iterable[str] = ()) -> None:
        self.reserved = set(reserved)
        self.issued = []
        self._counters = {}

    def fresh(self, hint: str) -> str:
        while True:
            count = self._counters.get(hint, 0) + 1
            self._counters[hint] = count
            name = f"{self.prefix}{hint}_{count}"
            if not self._taken(name):
                return self._issue(name)

    def fixed(self, base: str) -> str:
        """`<prefix><base>` when free, otherwise a fresh numbered variant."""
        name = f"{self.prefix}{base}"
        if self._taken(name):
            return self.fresh(base)
        return self._issue(name)

    def _taken(self, name: str) -> bool:
        return name in self.reserved or name in self.issued

    def _issue(self, name: str) -> str:
        self.issued.append(name)
        return name


def collect_identifiers(program: ast.Program) -> Set[str]:
    """Every name spelled in the program: variables, methods, symbols, globals."""
    names: Set[str] = set()
    for node in ast.walk(program):
        if isinstance(node, ast.Name):
            names.add(node.ident)
        elif isinstance(node, (ast.Param, ast.FunctionDef, ast.SymbolLit, ast.GlobalRef, ast.Const)):
            names.add(node.name)
        elif isinstance(node, ast.Call):
            names.add(node.method)
    return names


def verify_names(issued: Iterable[str], source_identifiers: Set[str]) -> None:
    seen: Set[str] = set()
    for name in issued:
        if name in source_identifiers:
            raise NameCollisionError(f"generated name '{name}' is already used by the program")
        if name in seen:
            raise NameCollisionError(f"generated name '{name}' was issued twice")
        seen.add(name)
