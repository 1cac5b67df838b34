"""Helpers shared by the test modules: synthetic ELF objects and spec files."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import yaml

from bundle_gen.config import GeneratorConfig

EM_X86_64 = 62
EM_AARCH64 = 183

_EHDR = struct.Struct("<4sBBBBB7sHHIQQQIHHHHHH")
_SHDR = struct.Struct("<IIQQQQIIQQ")
_DYN = struct.Struct("<qQ")

DT_NULL = 0
DT_NEEDED = 1
DT_SONAME = 14
DT_RPATH = 15
DT_RUNPATH = 29


def _align(value: int, alignment: int = 8) -> int:
    return (value + alignment - 1) & ~(alignment - 1)


def build_elf(
    needed: Iterable[str] = (),
    *,
    soname: Optional[str] = None,
    rpath: Optional[str] = None,
    runpath: Optional[str] = None,
    machine: int = EM_X86_64,
    payload: bytes = b"",
) -> bytes:
    """Return a minimal little-endian ELF64 shared object with a dynamic section."""

    dynstr = bytearray(b"\0")
    tags = []

    def add_string(value: str) -> int:
        offset = len(dynstr)
        dynstr.extend(value.encode("utf-8") + b"\0")
        return offset

    for name in needed:
        tags.append((DT_NEEDED, add_string(name)))
    if soname is not None:
        tags.append((DT_SONAME, add_string(soname)))
    if rpath is not None:
        tags.append((DT_RPATH, add_string(rpath)))
    if runpath is not None:
        tags.append((DT_RUNPATH, add_string(runpath)))
    tags.append((DT_NULL, 0))
    dynamic = b"".join(_DYN.pack(tag, value) for tag, value in tags)
    shstrtab = b"\0.dynstr\0.dynamic\0.shstrtab\0"

    dynstr_offset = _EHDR.size
    dynamic_offset = _align(dynstr_offset + len(dynstr))
    shstrtab_offset = dynamic_offset + len(dynamic)
    payload_offset = shstrtab_offset + len(shstrtab)
    shoff = _align(payload_offset + len(payload))

    header = _EHDR.pack(
        b"\x7fELF", 2, 1, 1, 0, 0, b"\0" * 7,
        3, machine, 1, 0, 0, shoff, 0, _EHDR.size, 56, 0, _SHDR.size, 4, 3,
    )
    sections = [
        _SHDR.pack(0, 0, 0, 0, 0, 0, 0, 0, 0, 0),
        _SHDR.pack(1, 3, 2, 0, dynstr_offset, len(dynstr), 0, 0, 1, 0),
        _SHDR.pack(9, 6, 3, 0, dynamic_offset, len(dynamic), 1, 0, 8, _DYN.size),
        _SHDR.pack(18, 3, 0, 0, shstrtab_offset, len(shstrtab), 0, 0, 1, 0),
    ]

    image = bytearray(header)
    image.extend(dynstr)
    image.extend(b"\0" * (dynamic_offset - len(image)))
    image.extend(dynamic)
    image.extend(shstrtab)
    image.extend(payload)
    image.extend(b"\0" * (shoff - len(image)))
    for section in sections:
        image.extend(section)
    return bytes(image)


def make_elf(path: Path, needed: Iterable[str] = (), **kwargs) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    # Distinct payloads keep same-named libraries in different dirs distinguishable.
    kwargs.setdefault("payload", path.name.encode("utf-8") + b"@" + str(path.parent).encode("utf-8"))
    path.write_bytes(build_elf(needed, **kwargs))
    path.chmod(0o755)
    return path


def write_spec(path: Path, payload: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
    return path


def write_script(path: Path, body: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
    path.chmod(0o755)
    return path


def store_spec(**build) -> dict:
    build.setdefault("VersionFile", "VERSION")
    return {
        "Name": "Test Game",
        "Type": "Game",
        "StoreID": "1234",
        "Exec": "bin/game --fullscreen",
        "Build": build,
    }


@dataclass
class Project:
    """Source root, build root and a private library tree for one test."""

    root: Path
    source: Path
    build: Path
    libdir: Path
    base_index: Path

    def config(self, **overrides) -> GeneratorConfig:
        options = dict(
            build_root=self.build,
            source_root=self.source,
            base_index_path=self.base_index,
            ld_cache_path=None,
            library_dirs=(self.libdir,),
            ldconfig_command=(),
        )
        options.update(overrides)
        return GeneratorConfig(**options)

    def spec(self, payload: dict, name: str = "game.yaml") -> Path:
        return write_spec(self.source / name, payload)

    def version(self, text: str = "1.0.0\n") -> None:
        (self.build / "VERSION").write_text(text, encoding="utf-8")
