"""Path lookup and declared-entry expansion."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable, List, Optional, Sequence

from ..errors import BundleGenError, BundleIOError
from ..schemas.spec import PathEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FileEntry:
    """A file waiting to be written to the bundle."""

    location: Path
    name: str


class PathContext:
    """Looks up relative spec paths in a fixed list of roots."""

    def __init__(self, locations: Sequence[Path]) -> None:
        self.locations = [Path(location) for location in locations]

    def find_path(self, target: str | Path) -> Optional[Path]:
        candidate = Path(target)
        if candidate.is_absolute():
            return candidate if candidate.exists() else None
        for location in self.locations:
            path = location / candidate
            if path.exists():
                return path
        return None


def collect_entries(
    entries: Iterable[PathEntry],
    prefix: str,
    context: PathContext,
    not_found: Callable[[str], BundleGenError],
) -> List[FileEntry]:
    """Expand declared entries into files named under ``prefix``.

    A directory declared with a trailing separator contributes its contents
    directly under ``prefix``; otherwise it becomes a named subdirectory.
    """

    files: List[FileEntry] = []
    for entry in entries:
        found = context.find_path(entry.path)
        if found is None:
            raise not_found(entry.path)
        location = found.resolve()
        filename = PurePosixPath(entry.path).name
        if not filename:
            logger.warning("Skipped entry %s: not a valid path", entry)
            continue
        if location.is_file():
            files.append(FileEntry(location=location, name=_join(prefix, filename)))
        elif location.is_dir():
            base = prefix if entry.expand_contents else _join(prefix, filename)
            files.extend(_walk_dir(location, base))
        else:
            logger.warning("Skipped entry %s: only files and directories are supported", entry)
    return files


def _walk_dir(path: Path, name: str) -> List[FileEntry]:
    logger.debug("Processing dir %s under entry %s", path, name)
    files: List[FileEntry] = []
    try:
        children = sorted(path.iterdir(), key=lambda child: child.name)
    except OSError as exc:
        raise BundleIOError(path, exc) from exc
    for child in children:
        child_name = _join(name, child.name)
        if child.is_file():
            files.append(FileEntry(location=child.resolve(), name=child_name))
        elif child.is_dir():
            files.extend(_walk_dir(child, child_name))
        else:
            logger.warning("Skipped entry %s: only files and directories are supported", child)
    return files


def _join(prefix: str, name: str) -> str:
    return str(PurePosixPath(prefix) / name) if prefix else name
