"""Error taxonomy raised across bundle generation.

Every failure is terminal for the run. Each error class carries the pipeline
``stage`` it belongs to and the process ``exit_code`` the CLI reports.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Union

PathLike = Union[str, Path]


class BundleGenError(RuntimeError):
    """Base class for all bundle generation failures."""

    stage = "bundle"
    exit_code = 1


# Spec errors


class SpecError(BundleGenError):
    stage = "spec"
    exit_code = 2


class SpecFormatError(SpecError):
    def __init__(self, path: PathLike, detail: str) -> None:
        self.path = Path(path)
        self.detail = detail
        super().__init__(f"invalid bundle spec {self.path}: {detail}")


class ConflictingOrigins(SpecError):
    def __init__(self) -> None:
        super().__init__("conflicting origins specified; only one of StoreID or HomebrewID is permitted")


class NoOriginId(SpecError):
    def __init__(self) -> None:
        super().__init__("a bundle must have a unique ID (StoreID or HomebrewID)")


class NoLauncherTags(SpecError):
    def __init__(self) -> None:
        super().__init__("LauncherExec is present but no LauncherTags are associated with it")


class NoLauncherExec(SpecError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"no LauncherExec present, but one was expected based on the provided {reason}")


class NoExec(SpecError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"no Exec present, but one was expected based on the provided {reason}")


class UselessExec(SpecError):
    def __init__(self) -> None:
        super().__init__("Exec present, but will never be used based on the bundle type")


class NoHomebrewLaunchers(SpecError):
    def __init__(self) -> None:
        super().__init__("homebrew bundles cannot be launchers")


class NoHomebrewBackgroundBundles(SpecError):
    def __init__(self) -> None:
        super().__init__("homebrew bundles cannot be run in the background")


class BadCommand(SpecError):
    def __init__(self, command: str) -> None:
        self.command = command
        super().__init__(f"command {command!r} does not contain a program")


# Orchestration errors


class OrchestrationError(BundleGenError):
    stage = "build"
    exit_code = 3


class StepNotFound(OrchestrationError):
    def __init__(self, field: str, path: PathLike) -> None:
        self.field = field
        self.path = str(path)
        super().__init__(f"{field} entry not found: {self.path}")


class PackageInstallFailed(OrchestrationError):
    def __init__(self, name: str, exit_code: Optional[int] = None) -> None:
        self.name = name
        self.returncode = exit_code
        suffix = f" (exit {exit_code})" if exit_code is not None else ""
        super().__init__(f"package installation failed for {name}{suffix}")


class ModuleFailed(OrchestrationError):
    def __init__(self, path: PathLike, exit_code: int) -> None:
        self.path = Path(path)
        self.returncode = exit_code
        super().__init__(f"module {self.path} exited with status {exit_code}")


class ModuleNotExecutable(OrchestrationError):
    def __init__(self, path: PathLike) -> None:
        self.path = Path(path)
        super().__init__(f"module {self.path} is not executable")


class BuildCommandFailed(OrchestrationError):
    def __init__(self, path: PathLike, exit_code: int) -> None:
        self.path = Path(path)
        self.returncode = exit_code
        super().__init__(f"build command {self.path} exited with status {exit_code}")


class BuildCommandNotExecutable(OrchestrationError):
    def __init__(self, path: PathLike) -> None:
        self.path = Path(path)
        super().__init__(f"build command {self.path} is not executable")


# Version errors


class VersionError(BundleGenError):
    stage = "version"
    exit_code = 4


class VersionFileMissing(VersionError):
    def __init__(self, path: PathLike) -> None:
        self.path = str(path)
        super().__init__(f"version file not found: {self.path}")


class VersionFileEmpty(VersionError):
    def __init__(self, path: PathLike) -> None:
        self.path = Path(path)
        super().__init__(f"version file is empty: {self.path}")


class VersionFileInvalid(VersionError):
    def __init__(self, path: PathLike, detail: str) -> None:
        self.path = Path(path)
        self.detail = detail
        super().__init__(f"version file is not valid UTF-8: {self.path} ({detail})")


# Resolution errors


class ResolutionError(BundleGenError):
    stage = "resolve"
    exit_code = 5


class UnresolvedLibrary(ResolutionError):
    def __init__(self, name: str, requested_by: PathLike) -> None:
        self.name = name
        self.requested_by = Path(requested_by)
        super().__init__(f"unable to locate {name} (needed by {self.requested_by})")


class LibraryNameCollision(ResolutionError):
    def __init__(self, name: str, paths: Iterable[PathLike] = ()) -> None:
        self.name = name
        self.paths = [Path(path) for path in paths]
        detail = ", ".join(str(path) for path in self.paths)
        suffix = f": {detail}" if detail else ""
        super().__init__(f"distinct libraries collide on lib/{name}{suffix}")


class ElfParseError(ResolutionError):
    def __init__(self, path: PathLike, detail: str) -> None:
        self.path = Path(path)
        self.detail = detail
        super().__init__(f"unable to parse ELF file {self.path}: {detail}")


class BaseIndexError(ResolutionError):
    def __init__(self, path: PathLike, detail: str) -> None:
        self.path = Path(path)
        self.detail = detail
        super().__init__(f"unable to load base library index {self.path}: {detail}")


# Assembly errors


class AssemblyError(BundleGenError):
    stage = "assemble"
    exit_code = 6


class EntryNotFound(AssemblyError):
    def __init__(self, field: str, path: PathLike) -> None:
        self.field = field
        self.path = str(path)
        super().__init__(f"{field} entry not found: {self.path}")


class ExecutableNotFound(EntryNotFound):
    def __init__(self, path: PathLike) -> None:
        super().__init__("Executables", path)


class DestinationCollision(AssemblyError):
    def __init__(self, path: str, sources: Iterable[PathLike] = ()) -> None:
        self.path = path
        self.sources = [str(source) for source in sources]
        detail = " vs ".join(self.sources)
        suffix = f" ({detail})" if detail else ""
        super().__init__(f"different files map to {path}{suffix}")


class InvalidDestination(AssemblyError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"bundle destination must stay inside the bundle: {path}")


# I/O errors


class BundleIOError(BundleGenError):
    stage = "io"
    exit_code = 7

    def __init__(self, path: PathLike, error: OSError) -> None:
        self.path = Path(path)
        self.error = error
        reason = error.strerror or str(error)
        super().__init__(f"I/O error on {self.path}: {reason}")
