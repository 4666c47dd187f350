from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from . import ast
from .captures import analyze_program
from .diagnostics import Diagnostic
from .errors import UnsupportedConstructWarning
from .helpers import GENERIC_HELPERS, HelperSpec
from .names import NameGenerator, collect_identifiers, verify_names
from .parser import parse_program
from .printer import print_program
from .rewrite import CallSiteRewriter, plan_call_sites
from .scope import build_scopes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransformConfig:
    """Settings threaded through every stage of a run."""

    prefix: str = "_lift_"
    emit_helpers: bool = True
    helpers: Mapping[str, HelperSpec] = field(default_factory=lambda: GENERIC_HELPERS, hash=False)


@dataclass
class TransformResult:
    source: str
    warnings: List[UnsupportedConstructWarning] = field(default_factory=list)
    lifted: List[str] = field(default_factory=list)

    def diagnostics(self, file: Optional[str] = None) -> List[Diagnostic]:
        return [warning.to_diagnostic(file) for warning in self.warnings]


class Transformer:
    """Runs the block lifting pipeline over one program at a time.

    The transformer owns a single NameGenerator that is reset at the start of
    every run, so transforming the same text twice yields the same output.
    A TransformError from any stage aborts the run; nothing is returned.
    """

    def __init__(self, config: Optional[TransformConfig] = None) -> None:
        self.config = config or TransformConfig()
        self.names = NameGenerator(self.config.prefix)

    def transform(self, source: str) -> TransformResult:
        logger.debug("transformer: parse (%d bytes)", len(source))
        program = parse_program(source)
        return self.transform_program(program)

    def transform_program(self, program: ast.Program) -> TransformResult:
        identifiers = collect_identifiers(program)
        self.names.reset(identifiers)

        logger.debug("transformer: scopes")
        tree = build_scopes(program)

        logger.debug("transformer: plan call sites")
        plan = plan_call_sites(tree, self.config.helpers)

        logger.debug("transformer: captures")
        captures = analyze_program(tree, lifted=set(plan.lifted))

        logger.debug("transformer: lift and rewrite")
        rewriter = CallSiteRewriter(tree, captures, plan, self.names, emit_helpers=self.config.emit_helpers)
        rewritten = rewriter.rewrite(program)

        logger.debug("transformer: verify names (%d issued)", len(self.names.issued))
        verify_names(self.names.issued, identifiers)

        logger.debug("transformer: generate")
        output = print_program(rewritten)
        logger.debug(
            "transformer: done, %d lifted, %d warnings",
            len(rewriter.lifted),
            len(plan.warnings),
        )
        return TransformResult(
            source=output,
            warnings=list(plan.warnings),
            lifted=[closure.name for closure in rewriter.lifted],
        )


def transform(source: str, *, config: Optional[TransformConfig] = None) -> TransformResult:
    return Transformer(config).transform(source)
