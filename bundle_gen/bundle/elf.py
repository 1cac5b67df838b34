"""Dynamic-section inspection for ELF objects."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from elftools.common.exceptions import ELFError
from elftools.elf.dynamic import DynamicSection, DynamicSegment
from elftools.elf.elffile import ELFFile

from ..errors import BundleIOError, ElfParseError

logger = logging.getLogger(__name__)

ELF_MAGIC = b"\x7fELF"

# Debian-style multiarch directories per ELF machine.
_MULTIARCH = {
    "EM_X86_64": "x86_64-linux-gnu",
    "EM_AARCH64": "aarch64-linux-gnu",
    "EM_386": "i386-linux-gnu",
    "EM_ARM": "arm-linux-gnueabihf",
    "EM_RISCV": "riscv64-linux-gnu",
    "EM_PPC64": "powerpc64le-linux-gnu",
    "EM_S390": "s390x-linux-gnu",
}


@dataclass(frozen=True, slots=True)
class ElfInfo:
    """Loader-relevant facts read from one ELF object."""

    path: Path
    elfclass: int
    machine: str
    soname: Optional[str] = None
    needed: Tuple[str, ...] = ()
    rpath: Tuple[str, ...] = ()
    runpath: Tuple[str, ...] = ()

    @property
    def search_hints(self) -> Tuple[str, ...]:
        """Embedded search directories, with ``$ORIGIN`` and ``$LIB`` expanded.

        ``DT_RUNPATH`` supersedes ``DT_RPATH`` when both are present.
        """

        raw = self.runpath if self.runpath else self.rpath
        origin = str(self.path.parent)
        lib = "lib64" if self.elfclass == 64 else "lib"
        hints: List[str] = []
        for entry in raw:
            expanded = (
                entry.replace("${ORIGIN}", origin)
                .replace("$ORIGIN", origin)
                .replace("${LIB}", lib)
                .replace("$LIB", lib)
            )
            if expanded and expanded not in hints:
                hints.append(expanded)
        return tuple(hints)

    def is_compatible(self, other: "ElfInfo") -> bool:
        return self.elfclass == other.elfclass and self.machine == other.machine

    @property
    def multiarch(self) -> Optional[str]:
        return _MULTIARCH.get(self.machine)


def is_elf(path: Path) -> bool:
    try:
        with path.open("rb") as handle:
            return handle.read(len(ELF_MAGIC)) == ELF_MAGIC
    except OSError as exc:
        raise BundleIOError(path, exc) from exc


def read_elf(path: Path) -> Optional[ElfInfo]:
    """Read an ELF object's dynamic section.

    Returns ``None`` for files that are not ELF at all (scripts, data files).
    """

    if not is_elf(path):
        logger.debug("Non-ELF file %s ignored", path)
        return None

    needed: List[str] = []
    rpath: List[str] = []
    runpath: List[str] = []
    soname: Optional[str] = None
    try:
        with path.open("rb") as handle:
            elf = ELFFile(handle)
            dynamic = _find_dynamic(elf)
            if dynamic is not None:
                for tag in dynamic.iter_tags():
                    kind = tag.entry.d_tag
                    if kind == "DT_NEEDED":
                        needed.append(tag.needed)
                    elif kind == "DT_RPATH":
                        rpath.extend(_split_search_path(tag.rpath))
                    elif kind == "DT_RUNPATH":
                        runpath.extend(_split_search_path(tag.runpath))
                    elif kind == "DT_SONAME":
                        soname = tag.soname
            info = ElfInfo(
                path=path,
                elfclass=elf.elfclass,
                machine=str(elf["e_machine"]),
                soname=soname,
                needed=tuple(needed),
                rpath=tuple(rpath),
                runpath=tuple(runpath),
            )
    except OSError as exc:
        raise BundleIOError(path, exc) from exc
    except ELFError as exc:
        raise ElfParseError(path, str(exc)) from exc
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        # Truncated or inconsistent tables surface as plain decoding errors.
        raise ElfParseError(path, str(exc)) from exc
    return info


def _find_dynamic(elf: ELFFile):
    for section in elf.iter_sections():
        if isinstance(section, DynamicSection):
            return section
    # Section headers may be stripped; fall back to the PT_DYNAMIC segment.
    for segment in elf.iter_segments():
        if isinstance(segment, DynamicSegment):
            return segment
    return None


def _split_search_path(value: str) -> List[str]:
    return [entry for entry in value.split(":") if entry]
