"""Bundle staging and archive creation."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import tempfile
import time
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Tuple

from ..config import DEFAULT_ARCHIVE_EXTENSION, ZIP_EPOCH
from ..errors import BundleIOError
from .layout import BundleLayout

logger = logging.getLogger(__name__)

DIR_MODE = 0o755
FILE_MODE = 0o644
EXEC_MODE = 0o755


@dataclass(slots=True)
class BundleConfig:
    """Naming and placement of one bundle archive."""

    stem: str
    version: str
    output_dir: Path
    extension: str = DEFAULT_ARCHIVE_EXTENSION
    source_date_epoch: int = ZIP_EPOCH

    @property
    def archive_name(self) -> str:
        return f"{self.stem}_{self.version}.{self.extension}"


class BundleBuilder:
    """Coordinates bundle staging and archive creation."""

    def build(self, layout: BundleLayout, config: BundleConfig) -> Path:
        """Stage ``layout`` and package it; return the archive path.

        The archive only appears at its final path once it is complete.
        """

        output_dir = config.output_dir
        archive_path = output_dir / config.archive_name
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BundleIOError(output_dir, exc) from exc

        with tempfile.TemporaryDirectory(prefix="bundle-gen-") as tmp_dir:
            staging_root = Path(tmp_dir)
            self._stage(layout, staging_root)

            fd, tmp_name = tempfile.mkstemp(dir=output_dir, prefix=f".{config.archive_name}.", suffix=".tmp")
            tmp_path = Path(tmp_name)
            try:
                with os.fdopen(fd, "wb") as handle:
                    write_archive(staging_root, handle, date_time=_date_time(config.source_date_epoch))
                # mkstemp creates 0600; match a plainly created file instead.
                tmp_path.chmod(0o666 & ~_current_umask())
                os.replace(tmp_path, archive_path)
            except OSError as exc:
                tmp_path.unlink(missing_ok=True)
                raise BundleIOError(archive_path, exc) from exc
            except BaseException:
                tmp_path.unlink(missing_ok=True)
                raise

        logger.info("Wrote %s (%d files)", archive_path, len(layout))
        return archive_path

    def _stage(self, layout: BundleLayout, staging_root: Path) -> None:
        for directory in layout.directories():
            (staging_root / directory).mkdir(parents=True, exist_ok=True)
        for planned in layout:
            target = staging_root / planned.destination
            logger.debug("Staging %s from %s", planned.destination, planned.describe())
            try:
                if planned.source is not None:
                    shutil.copy2(planned.source, target)
                else:
                    target.write_bytes(planned.content or b"")
                    target.chmod(planned.mode if planned.mode is not None else FILE_MODE)
            except OSError as exc:
                raise BundleIOError(planned.source or target, exc) from exc


def write_archive(staging_root: Path, handle: BinaryIO, *, date_time: Tuple[int, int, int, int, int, int]) -> None:
    """Write a reproducible ZIP of ``staging_root`` to ``handle``.

    Entries are sorted, carry a fixed timestamp and normalized permissions;
    only the executable bit of a file survives.
    """

    with zipfile.ZipFile(handle, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for staging_path in sorted(
            staging_root.rglob("*"),
            key=lambda path: path.relative_to(staging_root).as_posix(),
        ):
            arcname = staging_path.relative_to(staging_root).as_posix()
            if staging_path.is_dir():
                info = zipfile.ZipInfo(f"{arcname}/", date_time=date_time)
                info.create_system = 3
                info.external_attr = ((stat.S_IFDIR | DIR_MODE) << 16) | 0x10
                archive.writestr(info, b"")
                continue

            mode = EXEC_MODE if staging_path.stat().st_mode & 0o111 else FILE_MODE
            info = zipfile.ZipInfo(arcname, date_time=date_time)
            info.create_system = 3
            info.external_attr = (stat.S_IFREG | mode) << 16
            info.compress_type = zipfile.ZIP_DEFLATED
            info.file_size = staging_path.stat().st_size
            large = info.file_size >= zipfile.ZIP64_LIMIT
            with staging_path.open("rb") as source, archive.open(info, "w", force_zip64=large) as target:
                shutil.copyfileobj(source, target, 1024 * 1024)


def _date_time(epoch: int) -> Tuple[int, int, int, int, int, int]:
    stamp = time.gmtime(max(epoch, ZIP_EPOCH))
    return (stamp.tm_year, stamp.tm_mon, stamp.tm_mday, stamp.tm_hour, stamp.tm_min, stamp.tm_sec)


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask
