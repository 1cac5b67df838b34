"""In-memory plan of the bundle tree, built before any file is written."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, Iterator, List, Optional

from ..errors import BundleIOError, DestinationCollision, InvalidDestination, LibraryNameCollision
from .dependencies import LIB_PREFIX
from .paths import FileEntry
from .utils import compute_sha256

logger = logging.getLogger(__name__)

BIN_PREFIX = "bin"
RES_PREFIX = "res"


@dataclass(frozen=True, slots=True)
class PlannedFile:
    """One destination in the bundle: either a copied file or generated text."""

    destination: str
    sha256: str
    source: Optional[Path] = None
    content: Optional[bytes] = None
    mode: Optional[int] = None

    def describe(self) -> str:
        return str(self.source) if self.source is not None else "<generated>"


class BundleLayout:
    """Destination path to source mapping with collision detection."""

    def __init__(self) -> None:
        self._files: Dict[str, PlannedFile] = {}

    def __contains__(self, destination: str) -> bool:
        return destination in self._files

    def __len__(self) -> int:
        return len(self._files)

    def __iter__(self) -> Iterator[PlannedFile]:
        for destination in sorted(self._files):
            yield self._files[destination]

    def get(self, destination: str) -> Optional[PlannedFile]:
        return self._files.get(destination)

    def add_entries(self, entries: Iterable[FileEntry]) -> None:
        for entry in entries:
            self.add_file(entry.name, entry.location)

    def add_file(self, destination: str, source: Path) -> PlannedFile:
        try:
            digest = compute_sha256(source)
        except OSError as exc:
            raise BundleIOError(source, exc) from exc
        return self._add(PlannedFile(destination=_normalize(destination), sha256=digest, source=source))

    def add_generated(self, destination: str, content: str | bytes, *, mode: int = 0o644) -> PlannedFile:
        data = content.encode("utf-8") if isinstance(content, str) else content
        digest = hashlib.sha256(data).hexdigest()
        return self._add(PlannedFile(destination=_normalize(destination), sha256=digest, content=data, mode=mode))

    def destinations(self, prefix: Optional[str] = None) -> List[str]:
        names = sorted(self._files)
        if prefix is None:
            return names
        return [name for name in names if name.startswith(f"{prefix}/")]

    def directories(self) -> List[str]:
        """Every parent directory implied by the planned files."""

        found = set()
        for destination in self._files:
            for parent in PurePosixPath(destination).parents:
                if str(parent) != ".":
                    found.add(str(parent))
        return sorted(found)

    def _add(self, planned: PlannedFile) -> PlannedFile:
        existing = self._files.get(planned.destination)
        if existing is None:
            self._files[planned.destination] = planned
            return planned
        if existing.sha256 == planned.sha256:
            logger.debug("%s already planned from %s", planned.destination, existing.describe())
            return existing
        if PurePosixPath(planned.destination).parent == PurePosixPath(LIB_PREFIX):
            paths = [item.source for item in (existing, planned) if item.source is not None]
            raise LibraryNameCollision(PurePosixPath(planned.destination).name, paths)
        raise DestinationCollision(planned.destination, [existing.describe(), planned.describe()])


def _normalize(destination: str) -> str:
    path = PurePosixPath(destination)
    if path.is_absolute() or ".." in path.parts:
        raise InvalidDestination(destination)
    return path.as_posix()
