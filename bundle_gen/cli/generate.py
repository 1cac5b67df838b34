"""``bundle-gen``: build a bundle archive from a spec file."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from bundle_gen.config import GeneratorConfig
from bundle_gen.errors import BundleGenError, BundleIOError
from bundle_gen.generate import generate

logger = logging.getLogger("bundle_gen")

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"
_handler: Optional[logging.Handler] = None


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    spec_path = Path(args.spec)
    try:
        config = GeneratorConfig.from_env()
        result = generate(spec_path, config)
    except BundleGenError as exc:
        _report(parser.prog, exc)
        return exc.exit_code
    except OSError as exc:
        error = BundleIOError(exc.filename or spec_path, exc)
        _report(parser.prog, error)
        return error.exit_code
    except ValueError as exc:
        print(f"{parser.prog}: {exc}", file=sys.stderr)
        return 1

    print(result.archive_path)
    return 0


def configure_logging(verbosity: int = 0) -> None:
    """Attach a single stderr handler to the package logger."""

    level_name = os.environ.get("BUNDLE_GEN_LOG_LEVEL")
    if level_name:
        level = logging.getLevelName(level_name.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    elif verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    global _handler
    if _handler is not None:
        logger.removeHandler(_handler)
    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(_handler)
    logger.setLevel(level)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bundle-gen", description="Generate a bundle from a spec file.")
    parser.add_argument("spec", metavar="SPEC", help="Path to the bundle spec (YAML).")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity (repeatable).")
    return parser


def _report(prog: str, error: BundleGenError) -> None:
    print(f"{prog}: {error.stage}: {error}", file=sys.stderr)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
