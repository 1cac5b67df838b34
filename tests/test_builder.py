from __future__ import annotations

import os
import stat
import zipfile
from pathlib import Path

import pytest

from bundle_gen.bundle.builder import BundleBuilder, BundleConfig, write_archive
from bundle_gen.bundle.layout import BundleLayout
from bundle_gen.errors import BundleIOError, DestinationCollision, InvalidDestination, LibraryNameCollision


def _file(path: Path, content: str, mode: int = 0o644) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    path.chmod(mode)
    return path


def test_layout_dedups_identical_content(tmp_path: Path) -> None:
    layout = BundleLayout()
    layout.add_file("res/a.txt", _file(tmp_path / "one" / "a.txt", "same"))
    layout.add_file("res/a.txt", _file(tmp_path / "two" / "a.txt", "same"))

    assert layout.destinations() == ["res/a.txt"]
    assert layout.get("res/a.txt").source == tmp_path / "one" / "a.txt"


def test_layout_rejects_different_content(tmp_path: Path) -> None:
    layout = BundleLayout()
    layout.add_file("res/a.txt", _file(tmp_path / "one" / "a.txt", "one"))

    with pytest.raises(DestinationCollision) as excinfo:
        layout.add_file("res/a.txt", _file(tmp_path / "two" / "a.txt", "two"))
    assert excinfo.value.path == "res/a.txt"


def test_layout_reports_library_collisions(tmp_path: Path) -> None:
    layout = BundleLayout()
    layout.add_file("lib/libfoo.so", _file(tmp_path / "one" / "libfoo.so", "one"))

    with pytest.raises(LibraryNameCollision) as excinfo:
        layout.add_file("lib/libfoo.so", _file(tmp_path / "two" / "libfoo.so", "two"))
    assert excinfo.value.name == "libfoo.so"


def test_layout_directories(tmp_path: Path) -> None:
    layout = BundleLayout()
    layout.add_file("res/data/levels/one.map", _file(tmp_path / "one.map", "1"))
    layout.add_generated("bundle.ini", "[Bundle]\n")

    assert layout.directories() == ["res", "res/data", "res/data/levels"]
    assert "bundle.ini" in layout


def test_layout_rejects_escaping_destinations() -> None:
    with pytest.raises(InvalidDestination):
        BundleLayout().add_generated("../outside", "x")


def _build(tmp_path: Path, output: Path, epoch: int = 315532800) -> Path:
    layout = BundleLayout()
    layout.add_file("bin/game", _file(tmp_path / "game", "#!/bin/sh\n", 0o700))
    layout.add_file("res/readme.txt", _file(tmp_path / "readme.txt", "hello"))
    layout.add_generated("run.sh", "#!/bin/sh\n", mode=0o755)
    config = BundleConfig(stem="game", version="1.0", output_dir=output, source_date_epoch=epoch)
    return BundleBuilder().build(layout, config)


def test_archive_layout_and_modes(tmp_path: Path) -> None:
    archive_path = _build(tmp_path, tmp_path / "out")

    assert archive_path == tmp_path / "out" / "game_1.0.bundle"
    with zipfile.ZipFile(archive_path) as archive:
        infos = {info.filename: info for info in archive.infolist()}
    assert list(infos) == ["bin/", "bin/game", "res/", "res/readme.txt", "run.sh"]
    assert stat.S_IMODE(infos["bin/game"].external_attr >> 16) == 0o755
    assert stat.S_IMODE(infos["res/readme.txt"].external_attr >> 16) == 0o644
    assert stat.S_IMODE(infos["run.sh"].external_attr >> 16) == 0o755
    assert infos["bin/game"].date_time == (1980, 1, 1, 0, 0, 0)
    assert sorted(path.name for path in (tmp_path / "out").iterdir()) == ["game_1.0.bundle"]


def test_archives_are_reproducible(tmp_path: Path) -> None:
    first = _build(tmp_path, tmp_path / "first").read_bytes()
    second = _build(tmp_path, tmp_path / "second").read_bytes()

    assert first == second


def test_source_date_epoch_sets_timestamps(tmp_path: Path) -> None:
    archive_path = _build(tmp_path, tmp_path / "out", epoch=1700000000)

    with zipfile.ZipFile(archive_path) as archive:
        assert archive.getinfo("run.sh").date_time == (2023, 11, 14, 22, 13, 20)


def test_failed_build_leaves_no_archive(tmp_path: Path) -> None:
    source = _file(tmp_path / "vanishing", "x")
    layout = BundleLayout()
    layout.add_file("res/vanishing", source)
    source.unlink()
    output = tmp_path / "out"

    with pytest.raises(BundleIOError):
        BundleBuilder().build(layout, BundleConfig(stem="game", version="1", output_dir=output))
    assert list(output.iterdir()) == []


def test_archive_mode_follows_umask(tmp_path: Path) -> None:
    previous = os.umask(0o022)
    try:
        archive_path = _build(tmp_path, tmp_path / "out")
    finally:
        os.umask(previous)

    assert stat.S_IMODE(archive_path.stat().st_mode) == 0o644


def test_files_beyond_zip64_limit_are_archived(tmp_path: Path) -> None:
    staging = tmp_path / "staging"
    (staging / "res").mkdir(parents=True)
    size = 2**31 + 16
    with (staging / "res" / "big.bin").open("wb") as handle:
        handle.truncate(size)

    output = tmp_path / "big.bundle"
    with output.open("wb") as handle:
        write_archive(staging, handle, date_time=(1980, 1, 1, 0, 0, 0))

    with zipfile.ZipFile(output) as archive:
        assert archive.getinfo("res/big.bin").file_size == size
