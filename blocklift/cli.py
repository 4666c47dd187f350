#!/usr/bin/env python3
"""
blocklift command line: transform one Ruby source file.

Prints the transformed program (or writes it with --output). Warnings go to
stderr as `file:line:col: warning: message`. With --json a single object
`{"exit_code", "output", "diagnostics"}` is printed on stdout instead.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .diagnostics import Diagnostic
from .errors import TransformError
from .transformer import TransformConfig, Transformer

logger = logging.getLogger(__name__)


def _emit_json(exit_code: int, output: Optional[str], diagnostics: List[Diagnostic]) -> None:
    payload = {
        "exit_code": exit_code,
        "output": output,
        "diagnostics": [diag.to_json() for diag in diagnostics],
    }
    print(json.dumps(payload))


def transform_file(
    source_path: Path,
    output_path: Optional[Path],
    *,
    as_json: bool,
    config: TransformConfig,
) -> int:
    file = str(source_path)
    try:
        source = source_path.read_text(encoding="utf-8")
    except OSError as err:
        diag = Diagnostic(message=f"cannot read source: {err.strerror}", code="io-error", phase="driver")
        diag = diag.with_file(file)
        if as_json:
            _emit_json(1, None, [diag])
        else:
            print(diag.format(), file=sys.stderr)
        return 1

    try:
        result = Transformer(config).transform(source)
    except TransformError as err:
        diag = err.to_diagnostic(file)
        if as_json:
            _emit_json(1, None, [diag])
        else:
            print(diag.format(), file=sys.stderr)
        return 1

    diagnostics = result.diagnostics(file)
    if output_path is not None:
        output_path.write_text(result.source, encoding="utf-8")
        logger.debug("cli: wrote %s", output_path)
    if as_json:
        _emit_json(0, result.source, diagnostics)
        return 0
    for diag in diagnostics:
        print(diag.format(), file=sys.stderr)
    if output_path is None:
        sys.stdout.write(result.source)
    return 0


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(
        prog="blocklift",
        description="blocklift: rewrite Ruby blocks into lifted closures and generic helper calls",
    )
    ap.add_argument("source", type=Path, help="Ruby source file")
    ap.add_argument("-o", "--output", type=Path, help="Write the transformed program here instead of stdout")
    ap.add_argument("--json", action="store_true", help="Emit output and diagnostics as JSON")
    ap.add_argument("--prefix", default=TransformConfig.prefix, help="Prefix for generated names (default: %(default)s)")
    ap.add_argument(
        "--no-helpers",
        action="store_true",
        help="Do not emit helper definitions (they must be provided by the caller)",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Log each transformation stage")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    config = TransformConfig(prefix=args.prefix, emit_helpers=not args.no_helpers)
    return transform_file(args.source, args.output, as_json=args.json, config=config)


if __name__ == "__main__":
    raise SystemExit(main())
