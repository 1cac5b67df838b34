"""Pydantic models describing a bundle spec document."""

from __future__ import annotations

import os
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..errors import (
    ConflictingOrigins,
    NoExec,
    NoHomebrewBackgroundBundles,
    NoHomebrewLaunchers,
    NoLauncherExec,
    NoLauncherTags,
    NoOriginId,
    UselessExec,
)

_SEPARATORS = tuple({"/", os.sep})


class BundleType(str, Enum):
    GAME = "Game"
    APPLICATION = "Application"
    LAUNCHER_ONLY = "LauncherOnly"


class PathEntry(BaseModel):
    """A declared path plus whether a directory's contents are copied flat."""

    path: str
    expand_contents: bool = False

    model_config = ConfigDict(frozen=True)

    @classmethod
    def parse(cls, raw: str) -> "PathEntry":
        text = str(raw)
        expand = len(text) > 1 and text.endswith(_SEPARATORS)
        path = text.rstrip("".join(_SEPARATORS)) if expand else text
        return cls(path=path, expand_contents=expand)

    def __str__(self) -> str:
        return f"{self.path}/" if self.expand_contents else self.path


def _coerce_entries(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (str, PathEntry)):
        value = [value]
    entries: List[Any] = []
    for item in value:
        if isinstance(item, str):
            entries.append(PathEntry.parse(item))
        else:
            entries.append(item)
    return entries


def _scalar_to_str(value: Any) -> Any:
    # YAML reads bare numbers such as ``StoreID: 1234`` as ints.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class BuildSpec(BaseModel):
    version_file: str = Field(..., alias="VersionFile")
    required_packages: List[str] = Field(default_factory=list, alias="RequiredPackages")
    required_modules: List[str] = Field(default_factory=list, alias="RequiredModules")
    build_command: Optional[str] = Field(default=None, alias="BuildCommand")
    executables: List[PathEntry] = Field(default_factory=list, alias="Executables")
    libraries: List[PathEntry] = Field(default_factory=list, alias="Libraries")
    extra_elf_files: List[PathEntry] = Field(default_factory=list, alias="ExtraElfFiles")
    resources: List[PathEntry] = Field(default_factory=list, alias="Resources")

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    @field_validator("required_packages", "required_modules", mode="before")
    @classmethod
    def _default_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [_scalar_to_str(item) for item in value] if isinstance(value, list) else value

    @field_validator("version_file", "build_command", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return _scalar_to_str(value)

    @field_validator("executables", "libraries", "extra_elf_files", "resources", mode="before")
    @classmethod
    def _parse_entries(cls, value: Any) -> List[Any]:
        return _coerce_entries(value)


class BundleSpec(BaseModel):
    """Top-level bundle spec; read-only once loaded."""

    name: str = Field(..., alias="Name")
    bundle_type: BundleType = Field(..., alias="Type")
    store_id: Optional[str] = Field(default=None, alias="StoreID")
    homebrew_id: Optional[str] = Field(default=None, alias="HomebrewID")
    exec_: Optional[str] = Field(default=None, alias="Exec")
    background: Optional[bool] = Field(default=None, alias="Background")
    prefer_xbox_mode: Optional[bool] = Field(default=None, alias="PreferXBoxMode")
    launcher: Optional[str] = Field(default=None, alias="Launcher")
    launcher_tags: Optional[List[str]] = Field(default=None, alias="LauncherTags")
    launcher_exec: Optional[str] = Field(default=None, alias="LauncherExec")
    runner_patch: Optional[str] = Field(default=None, alias="RunnerPatch")
    build: BuildSpec = Field(..., alias="Build")

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    @field_validator(
        "name", "store_id", "homebrew_id", "exec_", "launcher", "launcher_exec", "runner_patch", mode="before"
    )
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return _scalar_to_str(value)

    @field_validator("launcher_tags", mode="before")
    @classmethod
    def _tag_list(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    @property
    def is_store_bundle(self) -> bool:
        return self.store_id is not None

    def check(self) -> None:
        """Reject contradictory metadata before anything is executed."""

        if self.store_id is not None and self.homebrew_id is not None:
            raise ConflictingOrigins()
        if self.store_id is not None:
            self._check_store_bundle()
        elif self.homebrew_id is not None:
            self._check_homebrew_bundle()
        else:
            raise NoOriginId()

    def _check_store_bundle(self) -> None:
        tags = self.launcher_tags or []
        if not tags and self.launcher_exec is not None:
            raise NoLauncherTags()
        if tags and self.launcher_exec is None:
            raise NoLauncherExec("launcher tags")

        if self.bundle_type is BundleType.LAUNCHER_ONLY:
            if self.launcher_exec is None:
                raise NoLauncherExec("bundle type")
            if self.exec_ is not None:
                raise UselessExec()
        elif self.exec_ is None:
            raise NoExec("bundle type")

    def _check_homebrew_bundle(self) -> None:
        if self.launcher_tags is not None or self.launcher_exec is not None:
            raise NoHomebrewLaunchers()
        if self.bundle_type is BundleType.LAUNCHER_ONLY:
            raise NoHomebrewLaunchers()
        if self.exec_ is None:
            raise NoExec("bundle type")
        if self.background is not None:
            raise NoHomebrewBackgroundBundles()
