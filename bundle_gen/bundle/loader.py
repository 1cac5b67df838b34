"""Spec document loading."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..errors import BundleIOError, SpecFormatError
from ..schemas.spec import BundleSpec

logger = logging.getLogger(__name__)


def load_spec(path: Path) -> BundleSpec:
    """Parse and check a YAML bundle spec.

    Raises a ``SpecError`` subclass for malformed or contradictory documents.
    """

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise BundleIOError(path, exc) from exc

    spec = parse_spec(text, path)
    spec.check()
    logger.info("Loaded %s bundle %r from %s", spec.bundle_type.value, spec.name, path)
    return spec


def parse_spec(text: str, path: Path) -> BundleSpec:
    try:
        payload = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise SpecFormatError(path, str(exc)) from exc
    if not isinstance(payload, dict):
        raise SpecFormatError(path, "top level must be a mapping")

    try:
        return BundleSpec.model_validate(payload)
    except ValidationError as exc:
        raise SpecFormatError(path, _summarize(exc)) from exc


def _summarize(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
        problems.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(problems)
