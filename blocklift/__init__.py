"""
blocklift: rewrite Ruby blocks into lifted closures.

Stages:
  parser: source text to AST (lark grammar in grammar.lark)
  scope: lexical scopes and binding resolution
  captures: free variables of each block, by value or by cell
  lift / rewrite: two-level closures and generic helper call sites
  printer: AST back to canonical source text
"""

from .errors import (
    NameCollisionError,
    ParseError,
    ScopeError,
    TransformError,
    UnresolvedVariableError,
    UnsupportedConstructWarning,
)
from .transformer import TransformConfig, TransformResult, Transformer, transform

__all__ = [
    "NameCollisionError",
    "ParseError",
    "ScopeError",
    "TransformConfig",
    "TransformError",
    "TransformResult",
    "Transformer",
    "UnresolvedVariableError",
    "UnsupportedConstructWarning",
    "transform",
]
