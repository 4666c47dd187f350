from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, Iterator, List, Optional, Set, Tuple

from . import ast
from .errors import UnresolvedVariableError
from .scope import Binding, BindingKind, ScopeTree

logger = logging.getLogger(__name__)


class CaptureMode(Enum):
    BY_VALUE = auto()
    BY_CELL = auto()


@dataclass
class Capture:
    name: str
    mode: CaptureMode
    binding: Binding


@dataclass
class CaptureSet:
    """Free variables of one block, in order of first reference."""

    captures: Dict[str, Capture] = field(default_factory=dict)

    def __iter__(self) -> Iterator[Capture]:
        return iter(self.captures.values())

    def __len__(self) -> int:
        return len(self.captures)

    def __contains__(self, name: object) -> bool:
        return name in self.captures

    def __getitem__(self, name: str) -> Capture:
        return self.captures[name]

    def names(self) -> List[str]:
        return list(self.captures)

    def for_binding(self, binding: Binding) -> Optional[Capture]:
        capture = self.captures.get(binding.name)
        if capture is not None and capture.binding is binding:
            return capture
        return None


def analyze_block(block: ast.BlockLiteral, tree: ScopeTree) -> CaptureSet:
    """Compute the capture set of `block`.

    A variable is captured when it is referenced somewhere in the block
    (nested blocks and lambdas included) but bound outside it. It is captured
    by cell when any of those places assigns to it, when some other block or
    lambda assigns to it, or when a closure nested in the block reads a
    variable that is reassigned, since that closure can outlive the call.
    Otherwise a copy of its value is enough.
    """
    block_scope = tree.scope_of(block)
    written = _written_targets(block)
    result = CaptureSet()
    for node, nested in _references(block):
        binding = tree.resolve(node)
        if binding is None:
            raise UnresolvedVariableError(f"cannot classify reference to '{node.ident}'", loc=node.loc)
        if binding.kind in (BindingKind.GLOBAL, BindingKind.FUNCTION):
            continue
        if binding.scope is not None and binding.scope.is_within(block_scope):
            continue
        capture = result.captures.get(node.ident)
        if capture is None:
            capture = Capture(name=node.ident, mode=CaptureMode.BY_VALUE, binding=binding)
            result.captures[node.ident] = capture
        if id(node) in written or binding.written_in_closure or (nested and binding.reassigned):
            capture.mode = CaptureMode.BY_CELL
    return result


def analyze_program(tree: ScopeTree, lifted: Optional[Set[int]] = None) -> Dict[int, CaptureSet]:
    """Capture sets for every block in the program, keyed by `id(block)`.

    Also marks every binding captured by cell by a block that is going to be
    lifted (all blocks when `lifted` is None); the scope owning such a
    binding allocates the cell.
    """
    results: Dict[int, CaptureSet] = {}
    for block in tree.blocks:
        captures = analyze_block(block, tree)
        results[id(block)] = captures
        if lifted is not None and id(block) not in lifted:
            continue
        for capture in captures:
            if capture.mode is CaptureMode.BY_CELL:
                capture.binding.is_cell = True
    cells = sorted({capture.name for result in results.values() for capture in result if capture.binding.is_cell})
    logger.debug("captures: %d blocks analyzed, cells: %s", len(results), ", ".join(cells) or "-")
    return results


def _written_targets(root: ast.Node) -> Set[int]:
    written: Set[int] = set()
    for node in ast.walk(root):
        if isinstance(node, (ast.Assign, ast.OpAssign)):
            targets = [node.target]
        elif isinstance(node, ast.MultiAssign):
            targets = node.targets
        else:
            continue
        for target in targets:
            if isinstance(target, ast.Name):
                written.add(id(target))
    return written


def _references(block: ast.BlockLiteral) -> Iterator[Tuple[ast.Name, bool]]:
    """Names under `block` in walk order, flagged when inside a nested closure."""
    stack = [(child, False) for child in reversed(list(ast.iter_child_nodes(block)))]
    while stack:
        node, nested = stack.pop()
        if isinstance(node, ast.Name):
            yield node, nested
        inner = nested or isinstance(node, (ast.BlockLiteral, ast.Lambda))
        stack.extend((child, inner) for child in reversed(list(ast.iter_child_nodes(node))))
