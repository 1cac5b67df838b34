"""Runtime configuration for a bundle generation run."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

DEFAULT_BASE_INDEX = Path("/usr/local/share/bundle-gen/ld.so.cache.vcs")
DEFAULT_LD_CACHE = Path("/etc/ld.so.cache")
DEFAULT_PACKAGE_COMMAND: Tuple[str, ...] = ("apt-get", "install", "-y")
DEFAULT_LDCONFIG_COMMAND: Tuple[str, ...] = ("ldconfig",)
DEFAULT_ARCHIVE_EXTENSION = "bundle"
# Earliest timestamp a ZIP entry can carry.
ZIP_EPOCH = 315532800


@dataclass(slots=True)
class GeneratorConfig:
    """Configuration describing one generation run.

    ``source_root`` defaults to the directory holding the spec file and
    ``library_dirs`` to the standard directories for the requesting ELF's
    architecture when left unset.
    """

    build_root: Path = field(default_factory=Path.cwd)
    source_root: Optional[Path] = None
    base_index_path: Optional[Path] = DEFAULT_BASE_INDEX
    ld_cache_path: Optional[Path] = DEFAULT_LD_CACHE
    library_dirs: Optional[Tuple[Path, ...]] = None
    package_command: Tuple[str, ...] = DEFAULT_PACKAGE_COMMAND
    package_env: Dict[str, str] = field(default_factory=lambda: {"DEBIAN_FRONTEND": "noninteractive"})
    ldconfig_command: Tuple[str, ...] = DEFAULT_LDCONFIG_COMMAND
    archive_extension: str = DEFAULT_ARCHIVE_EXTENSION
    source_date_epoch: int = ZIP_EPOCH

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: object) -> "GeneratorConfig":
        """Build a config from ``BUNDLE_GEN_*`` environment variables."""

        env = os.environ if environ is None else environ
        config = cls()

        build_root = env.get("BUNDLE_GEN_BUILD_ROOT")
        if build_root:
            config.build_root = Path(build_root)
        source_root = env.get("BUNDLE_GEN_SOURCE_ROOT")
        if source_root:
            config.source_root = Path(source_root)
        if "BUNDLE_GEN_BASE_INDEX" in env:
            config.base_index_path = _optional_path(env["BUNDLE_GEN_BASE_INDEX"])
        if "BUNDLE_GEN_LD_CACHE" in env:
            config.ld_cache_path = _optional_path(env["BUNDLE_GEN_LD_CACHE"])
        library_dirs = env.get("BUNDLE_GEN_LIBRARY_DIRS")
        if library_dirs:
            config.library_dirs = tuple(Path(entry) for entry in library_dirs.split(":") if entry)
        package_command = env.get("BUNDLE_GEN_PACKAGE_COMMAND")
        if package_command:
            config.package_command = tuple(shlex.split(package_command))
        if "BUNDLE_GEN_LDCONFIG" in env:
            config.ldconfig_command = tuple(shlex.split(env["BUNDLE_GEN_LDCONFIG"]))
        extension = env.get("BUNDLE_GEN_ARCHIVE_EXTENSION")
        if extension:
            config.archive_extension = extension.lstrip(".")
        epoch = env.get("SOURCE_DATE_EPOCH")
        if epoch:
            try:
                config.source_date_epoch = max(int(epoch), ZIP_EPOCH)
            except ValueError as exc:
                raise ValueError(f"SOURCE_DATE_EPOCH must be an integer (got '{epoch}')") from exc

        if overrides:
            config = replace(config, **overrides)
        return config

    def with_spec(self, spec_path: Path) -> "GeneratorConfig":
        """Return a copy with roots resolved for the given spec file."""

        source_root = self.source_root or spec_path.resolve().parent
        return replace(
            self,
            build_root=self.build_root.resolve(),
            source_root=source_root.resolve(),
        )


def _optional_path(value: str) -> Optional[Path]:
    value = value.strip()
    return Path(value) if value else None
