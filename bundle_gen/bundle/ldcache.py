"""Loader cache parsing and the base-system library index.

Two binary layouts written by ``ldconfig`` are understood: the legacy
``ld.so-1.7.0`` table and the ``glibc-ld.so.cache1.1`` table, including the
combined file where the new table follows the legacy one. Text indexes list
one soname or absolute path per line.
"""

from __future__ import annotations

import logging
import os
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from ..errors import BaseIndexError

logger = logging.getLogger(__name__)

OLD_MAGIC = b"ld.so-1.7.0"
NEW_MAGIC = b"glibc-ld.so.cache"
NEW_VERSION = b"1.1"

_OLD_HEADER = struct.Struct("=11sxI")
_OLD_ENTRY = struct.Struct("=iII")
_NEW_HEADER = struct.Struct("=17s3sIIB3xI12x")
_NEW_ENTRY = struct.Struct("=iIIIQ")
_NEW_ALIGN = 8


@dataclass(frozen=True, slots=True)
class CacheEntry:
    name: str
    path: str
    flags: int = 0


def parse_ld_cache(data: bytes) -> List[CacheEntry]:
    """Decode an ``ld.so.cache`` image into its entries, in cache order."""

    if data.startswith(NEW_MAGIC):
        return _parse_new(data, 0)
    if not data.startswith(OLD_MAGIC):
        raise ValueError("not an ld.so.cache image")

    _, nlibs = _OLD_HEADER.unpack_from(data, 0)
    table_end = _OLD_HEADER.size + nlibs * _OLD_ENTRY.size
    new_offset = (table_end + _NEW_ALIGN - 1) & ~(_NEW_ALIGN - 1)
    if data[new_offset : new_offset + len(NEW_MAGIC)] == NEW_MAGIC:
        return _parse_new(data, new_offset)

    entries: List[CacheEntry] = []
    for index in range(nlibs):
        flags, key, value = _OLD_ENTRY.unpack_from(data, _OLD_HEADER.size + index * _OLD_ENTRY.size)
        entries.append(
            CacheEntry(
                name=_read_string(data, table_end + key),
                path=_read_string(data, table_end + value),
                flags=flags,
            )
        )
    return entries


def _parse_new(data: bytes, base: int) -> List[CacheEntry]:
    magic, version, nlibs, _len_strings, _flags, _extension = _NEW_HEADER.unpack_from(data, base)
    if magic != NEW_MAGIC or version != NEW_VERSION:
        raise ValueError(f"unsupported ld.so.cache version {version!r}")
    entries: List[CacheEntry] = []
    start = base + _NEW_HEADER.size
    for index in range(nlibs):
        flags, key, value, _osversion, _hwcap = _NEW_ENTRY.unpack_from(data, start + index * _NEW_ENTRY.size)
        entries.append(
            CacheEntry(
                name=_read_string(data, base + key),
                path=_read_string(data, base + value),
                flags=flags,
            )
        )
    return entries


def _read_string(data: bytes, offset: int) -> str:
    end = data.find(b"\0", offset)
    if offset >= len(data) or end == -1:
        raise ValueError(f"string offset {offset} out of range")
    return os.fsdecode(data[offset:end])


def load_ld_cache(path: Path) -> List[CacheEntry]:
    return parse_ld_cache(Path(path).read_bytes())


class BaseLibraryIndex:
    """Libraries guaranteed present on every target device.

    Membership is checked by soname and by normalized path; the index is
    read-only once built.
    """

    def __init__(self, names: Iterable[str] = (), paths: Iterable[str | Path] = ()) -> None:
        self._names = frozenset(names)
        self._paths = frozenset(os.path.normpath(str(path)) for path in paths)

    @classmethod
    def empty(cls) -> "BaseLibraryIndex":
        return cls()

    @classmethod
    def from_entries(cls, entries: Iterable[CacheEntry]) -> "BaseLibraryIndex":
        entries = list(entries)
        return cls(names=(entry.name for entry in entries), paths=(entry.path for entry in entries))

    @classmethod
    def from_text(cls, text: str) -> "BaseLibraryIndex":
        names: List[str] = []
        paths: List[str] = []
        for raw_line in text.splitlines():
            line = raw_line.split("#", 1)[0].strip()
            if not line:
                continue
            if "/" in line:
                paths.append(line)
                names.append(os.path.basename(line))
            else:
                names.append(line)
        return cls(names=names, paths=paths)

    @classmethod
    def load(cls, path: Path) -> "BaseLibraryIndex":
        """Load an index from an ``ld.so.cache`` image or a text listing."""

        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise BaseIndexError(path, exc.strerror or str(exc)) from exc

        try:
            if data.startswith((OLD_MAGIC, NEW_MAGIC)):
                index = cls.from_entries(parse_ld_cache(data))
            else:
                index = cls.from_text(data.decode("utf-8"))
        except (ValueError, struct.error) as exc:
            raise BaseIndexError(path, str(exc)) from exc
        logger.debug("Loaded %d base libraries from %s", len(index), path)
        return index

    def contains_name(self, name: str) -> bool:
        return name in self._names

    def contains_path(self, path: str | Path) -> bool:
        return os.path.normpath(str(path)) in self._paths

    def __len__(self) -> int:
        return len(self._names | self._paths)


class LoaderCache:
    """Soname lookups against the build container's loader cache."""

    def __init__(self, entries: Iterable[CacheEntry] = ()) -> None:
        self._entries: Dict[str, List[str]] = {}
        for entry in entries:
            self._entries.setdefault(entry.name, []).append(entry.path)

    @classmethod
    def load(cls, path: Optional[Path]) -> "LoaderCache":
        """Load the cache at ``path``; a missing file yields an empty cache."""

        if path is None or not Path(path).is_file():
            return cls()
        try:
            entries = load_ld_cache(Path(path))
        except (OSError, ValueError, struct.error) as exc:
            logger.warning("Ignoring unreadable loader cache %s: %s", path, exc)
            return cls()
        return cls(entries)

    def lookup(self, name: str) -> Tuple[str, ...]:
        return tuple(self._entries.get(name, ()))

    def __len__(self) -> int:
        return len(self._entries)
