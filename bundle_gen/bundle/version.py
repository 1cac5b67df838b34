"""Version string lookup after the build stage."""

from __future__ import annotations

import logging
from pathlib import Path

from ..errors import BundleIOError, VersionFileEmpty, VersionFileInvalid, VersionFileMissing
from .paths import PathContext

logger = logging.getLogger(__name__)


def resolve_version(version_file: str, context: PathContext) -> str:
    """Read the version file and return its trimmed content verbatim.

    The value is opaque: no semantic-version parsing is attempted.
    """

    path = context.find_path(version_file)
    if path is None or not path.is_file():
        raise VersionFileMissing(version_file)
    return read_version_file(path)


def read_version_file(path: Path) -> str:
    try:
        raw = path.read_bytes()
    except FileNotFoundError as exc:
        raise VersionFileMissing(path) from exc
    except OSError as exc:
        raise BundleIOError(path, exc) from exc

    try:
        version = raw.decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        raise VersionFileInvalid(path, exc.reason) from exc
    if not version:
        raise VersionFileEmpty(path)
    logger.info("Resolved version %s from %s", version, path)
    return version
