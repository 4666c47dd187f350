from __future__ import annotations

from typing import Optional

from .ast import Located
from .diagnostics import Diagnostic, Span


class TransformError(Exception):
    """Base class for errors that abort a transformation run."""

    kind = "transform-error"
    phase: Optional[str] = None

    def __init__(self, message: str, *, loc: Optional[Located] = None) -> None:
        self.message = message
        self.loc = loc
        if loc is not None:
            super().__init__(f"{loc.line}:{loc.column}: {message}")
        else:
            super().__init__(message)

    def to_diagnostic(self, file: Optional[str] = None) -> Diagnostic:
        return Diagnostic(
            message=self.message,
            code=self.kind,
            phase=self.phase,
            severity="error",
            span=Span.from_loc(self.loc, file=file),
        )


class ParseError(TransformError):
    kind = "parse-error"
    phase = "parser"


class ScopeError(TransformError):
    kind = "scope-error"
    phase = "scope"


class UnresolvedVariableError(TransformError):
    kind = "unresolved-variable"
    phase = "captures"


class NameCollisionError(TransformError):
    """A generated identifier clashes with a source or previously generated one.

    The name generator rules this out; seeing it means the generator is broken.
    """

    kind = "name-collision"
    phase = "lift"


class UnsupportedConstructWarning(UserWarning):
    """A call with a block that was left untransformed."""

    kind = "unsupported-construct"
    phase = "rewrite"

    def __init__(self, message: str, *, method: str, loc: Optional[Located] = None) -> None:
        self.message = message
        self.method = method
        self.loc = loc
        if loc is not None:
            super().__init__(f"{loc.line}:{loc.column}: {message}")
        else:
            super().__init__(message)

    def to_diagnostic(self, file: Optional[str] = None) -> Diagnostic:
        return Diagnostic(
            message=self.message,
            code=self.kind,
            phase=self.phase,
            severity="warning",
            span=Span.from_loc(self.loc, file=file),
        )


__all__ = [
    "TransformError",
    "ParseError",
    "ScopeError",
    "UnresolvedVariableError",
    "NameCollisionError",
    "UnsupportedConstructWarning",
]
