from __future__ import annotations

from pathlib import Path

import pytest

from .support import Project


@pytest.fixture
def project(tmp_path: Path) -> Project:
    source = tmp_path / "src"
    build = tmp_path / "build"
    libdir = tmp_path / "sysroot" / "lib"
    for directory in (source, build, libdir):
        directory.mkdir(parents=True)
    base_index = tmp_path / "base-libs.txt"
    base_index.write_text("# libraries present on the device\nlibc.so.6\nlibm.so.6\n", encoding="utf-8")
    return Project(root=tmp_path, source=source, build=build, libdir=libdir, base_index=base_index)
