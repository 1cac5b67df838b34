"""Shared-library closure computation for ELF executables.

The resolver walks ``DT_NEEDED`` edges breadth-first, keyed by dereferenced
real path, so each library is inspected once no matter how many objects need
it. Libraries known to the base-system index are neither traversed nor
bundled.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Deque, Dict, FrozenSet, Iterator, List, Mapping, Optional, Sequence, Set, Tuple

from ..errors import BundleIOError, LibraryNameCollision, UnresolvedLibrary
from .elf import ElfInfo, read_elf
from .ldcache import BaseLibraryIndex, LoaderCache
from .paths import FileEntry
from .utils import compute_sha256

logger = logging.getLogger(__name__)

LIB_PREFIX = "lib"


@dataclass(frozen=True, slots=True)
class LibraryIdentity:
    """Deduplication key for a library: its real path plus a content digest."""

    real_path: Path
    sha256: str


@dataclass(frozen=True, slots=True)
class ResolvedLibrary:
    identity: LibraryIdentity
    name: str
    requested_by: Path

    @property
    def destination(self) -> str:
        return f"{LIB_PREFIX}/{self.name}"

    def to_entry(self) -> FileEntry:
        return FileEntry(location=self.identity.real_path, name=self.destination)


@dataclass(slots=True)
class DependencyClosure:
    """Result of one resolution run.

    ``per_root`` maps every inspected input to the libraries it transitively
    needs; ``libraries`` is the filtered union that gets copied into ``lib/``.
    """

    per_root: Dict[Path, FrozenSet[LibraryIdentity]] = field(default_factory=dict)
    libraries: List[ResolvedLibrary] = field(default_factory=list)
    excluded: FrozenSet[str] = frozenset()

    def entries(self) -> List[FileEntry]:
        return [library.to_entry() for library in self.libraries]

    def names(self) -> List[str]:
        return [library.name for library in self.libraries]


def default_library_dirs(info: ElfInfo) -> Tuple[Path, ...]:
    dirs: List[Path] = []
    if info.multiarch:
        dirs.extend([Path("/lib") / info.multiarch, Path("/usr/lib") / info.multiarch])
    if info.elfclass == 64:
        dirs.extend([Path("/lib64"), Path("/usr/lib64")])
    dirs.extend([Path("/lib"), Path("/usr/lib"), Path("/usr/local/lib")])
    return tuple(dirs)


def provided_names(libraries: Sequence[FileEntry]) -> Dict[str, Path]:
    """Names an explicitly declared library can satisfy.

    Besides its own base name, a library such as ``libfoo.so.1.2.3`` also
    answers for truncated siblings (``libfoo.so.1``, ``libfoo.so``) that sit in
    the same directory and dereference to the same file.
    """

    names: Dict[str, Path] = {}
    for entry in libraries:
        real = entry.location
        names.setdefault(Path(entry.name).name, real)
        chunks = real.name.split(".")
        for count in range(1, len(chunks) + 1):
            alias = ".".join(chunks[:count])
            candidate = real.parent / alias
            try:
                if candidate.exists() and candidate.resolve() == real:
                    names.setdefault(alias, real)
            except OSError:
                logger.debug("Candidate %s cannot be canonicalized", candidate)
    return names


class DependencyResolver:
    """Computes the bundled shared-library closure for a set of ELF roots."""

    def __init__(
        self,
        base_index: BaseLibraryIndex,
        *,
        loader_cache: Optional[LoaderCache] = None,
        library_dirs: Optional[Sequence[Path]] = None,
    ) -> None:
        self.base_index = base_index
        self.loader_cache = loader_cache or LoaderCache()
        self.library_dirs = tuple(Path(path) for path in library_dirs) if library_dirs is not None else None
        self._infos: Dict[Path, Optional[ElfInfo]] = {}
        self._digests: Dict[Path, str] = {}

    def resolve(
        self,
        roots: Sequence[Path],
        provided: Optional[Mapping[str, Path]] = None,
    ) -> DependencyClosure:
        """Resolve the closure of ``roots``.

        ``provided`` maps sonames to files declared explicitly in the spec;
        they are used when a name cannot be found on any search path.
        """

        provided = dict(provided or {})
        queue: Deque[Path] = deque()
        seen: Set[Path] = set()
        edges: Dict[Path, List[Path]] = {}
        names_by_path: Dict[Path, str] = {}
        owners: Dict[str, Path] = {}
        discovered: List[ResolvedLibrary] = []
        excluded: Set[str] = set()

        ordered_roots: List[Path] = []
        for root in roots:
            real = self._real(root)
            if real not in seen:
                seen.add(real)
                queue.append(real)
                ordered_roots.append(real)

        while queue:
            item = queue.popleft()
            info = self._inspect(item)
            if info is None:
                edges[item] = []
                continue
            logger.debug("Processing %s for dependencies", item)
            deps: List[Path] = []
            for name in info.needed:
                logger.debug(" - %s", name)
                if self.base_index.contains_name(name):
                    excluded.add(name)
                    continue
                found = self._locate(name, info) or provided.get(name)
                if found is None:
                    raise UnresolvedLibrary(name, item)
                real = self._real(found)
                if self.base_index.contains_path(found) or self.base_index.contains_path(real):
                    excluded.add(str(real))
                    continue
                deps.append(real)

                if real not in names_by_path:
                    owner = owners.get(name)
                    if owner is not None and owner != real:
                        raise LibraryNameCollision(name, [owner, real])
                    owners[name] = real
                    names_by_path[real] = name
                    discovered.append(
                        ResolvedLibrary(identity=self._identity(real), name=name, requested_by=item)
                    )
                elif names_by_path[real] != name:
                    logger.debug("%s already bundled as %s", name, names_by_path[real])

                if real not in seen:
                    seen.add(real)
                    queue.append(real)
            edges[item] = deps

        per_root = {root: frozenset(self._identity(path) for path in _reachable(root, edges)) for root in ordered_roots}
        logger.info(
            "Resolved %d libraries for %d inputs (%d excluded as base system)",
            len(discovered),
            len(ordered_roots),
            len(excluded),
        )
        return DependencyClosure(per_root=per_root, libraries=discovered, excluded=frozenset(excluded))

    def _inspect(self, path: Path) -> Optional[ElfInfo]:
        if path not in self._infos:
            self._infos[path] = read_elf(path)
        return self._infos[path]

    def _identity(self, real: Path) -> LibraryIdentity:
        digest = self._digests.get(real)
        if digest is None:
            try:
                digest = compute_sha256(real)
            except OSError as exc:
                raise BundleIOError(real, exc) from exc
            self._digests[real] = digest
        return LibraryIdentity(real_path=real, sha256=digest)

    def _locate(self, name: str, requester: ElfInfo) -> Optional[Path]:
        for candidate in self._candidates(name, requester):
            if not candidate.is_file():
                continue
            info = self._inspect(self._real(candidate))
            if info is None:
                logger.debug("Skipping non-ELF candidate %s", candidate)
                continue
            if not requester.is_compatible(info):
                logger.debug("Skipping incompatible candidate %s (%s)", candidate, info.machine)
                continue
            return candidate
        return None

    def _candidates(self, name: str, requester: ElfInfo) -> Iterator[Path]:
        if "/" in name:
            candidate = Path(name)
            yield candidate if candidate.is_absolute() else requester.path.parent / candidate
            return
        for directory in requester.search_hints:
            yield Path(directory) / name
        for path in self.loader_cache.lookup(name):
            yield Path(path)
        library_dirs = self.library_dirs if self.library_dirs is not None else default_library_dirs(requester)
        for directory in library_dirs:
            yield directory / name

    @staticmethod
    def _real(path: Path) -> Path:
        try:
            return Path(path).resolve(strict=True)
        except OSError as exc:
            raise BundleIOError(path, exc) from exc


def _reachable(root: Path, edges: Mapping[Path, List[Path]]) -> Set[Path]:
    found: Set[Path] = set()
    stack = list(edges.get(root, []))
    while stack:
        path = stack.pop()
        if path in found or path == root:
            continue
        found.add(path)
        stack.extend(edges.get(path, []))
    return found
