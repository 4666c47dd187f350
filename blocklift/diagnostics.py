"""
Diagnostic records shared by the transformer stages and the CLI.

A Span carries a best-effort file/line/column; the raw location object the
stage had at hand is kept in `raw` so richer renderers can still use it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Span:
    """Source span (file/line/column plus the raw parser location)."""

    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    end_line: Optional[int] = None
    end_column: Optional[int] = None
    raw: Any = None

    @classmethod
    def from_loc(cls, loc: Any, file: Optional[str] = None) -> "Span":
        if loc is None:
            return cls(file=file)
        if isinstance(loc, cls):
            return loc
        return cls(
            file=file or getattr(loc, "file", None),
            line=getattr(loc, "line", None),
            column=getattr(loc, "column", None),
            end_line=getattr(loc, "end_line", None),
            end_column=getattr(loc, "end_column", None),
            raw=loc,
        )


@dataclass
class Diagnostic:
    """A fatal error or a warning produced while transforming a program."""

    message: str
    code: Optional[str] = None
    # Stage that produced the diagnostic: parser, scope, captures, lift, rewrite.
    phase: Optional[str] = None
    severity: str = "error"
    span: Span = field(default_factory=Span)
    notes: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.span is None:  # type: ignore[unreachable]
            self.span = Span()

    def with_file(self, file: Optional[str]) -> "Diagnostic":
        if file is None or self.span.file == file:
            return self
        span = Span(
            file=file,
            line=self.span.line,
            column=self.span.column,
            end_line=self.span.end_line,
            end_column=self.span.end_column,
            raw=self.span.raw,
        )
        return Diagnostic(
            message=self.message,
            code=self.code,
            phase=self.phase,
            severity=self.severity,
            span=span,
            notes=list(self.notes),
        )

    def format(self) -> str:
        location = self.span.file or "<source>"
        if self.span.line is not None:
            location = f"{location}:{self.span.line}:{self.span.column or 0}"
        return f"{location}: {self.severity}: {self.message}"

    def to_json(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "file": self.span.file,
            "line": self.span.line,
            "column": self.span.column,
            "notes": list(self.notes),
        }


__all__ = ["Diagnostic", "Span"]
