"""Build-stage orchestration: packages, then modules, then the build command.

Steps run strictly one after another in the build root. Filesystem state left
by one step is visible to the next; nothing is reset in between. The first
failing step stops the pipeline and no later step runs.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Dict, List, Mapping, Optional, Sequence

from ..errors import (
    BuildCommandFailed,
    BuildCommandNotExecutable,
    BundleIOError,
    ModuleFailed,
    ModuleNotExecutable,
    OrchestrationError,
    PackageInstallFailed,
    StepNotFound,
)
from ..schemas.spec import BuildSpec
from .paths import PathContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildContext:
    """Working directory and environment handed from step to step."""

    build_root: Path
    source_root: Path
    env: Mapping[str, str] = field(default_factory=dict)
    log: Optional[IO[str]] = None

    @property
    def path_context(self) -> PathContext:
        return PathContext([self.build_root, self.source_root])

    def process_env(self, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        env = {**os.environ, **self.env}
        env.update(extra or {})
        return env


@dataclass
class StepRecord:
    step: str
    status: str
    returncode: Optional[int] = None
    error: Optional[OrchestrationError] = None


@dataclass
class OrchestrationResult:
    context: BuildContext
    records: List[StepRecord] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(record.status == "ok" for record in self.records)

    @property
    def error(self) -> Optional[OrchestrationError]:
        for record in self.records:
            if record.error is not None:
                return record.error
        return None

    def raise_for_status(self) -> None:
        error = self.error
        if error is not None:
            raise error


class BuildStep:
    """One blocking subprocess step of the build stage."""

    name = "step"

    def describe(self) -> str:
        return self.name

    def run(self, context: BuildContext) -> BuildContext:  # pragma: no cover - interface
        raise NotImplementedError


@dataclass
class PackageInstallStep(BuildStep):
    package: str
    command: Sequence[str]
    env: Mapping[str, str] = field(default_factory=dict)
    name = "package"

    def describe(self) -> str:
        return f"package {self.package}"

    def run(self, context: BuildContext) -> BuildContext:
        proc = run_command([*self.command, self.package], context, extra_env=self.env)
        if proc.returncode != 0:
            raise PackageInstallFailed(self.package, proc.returncode)
        return context


@dataclass
class ModuleStep(BuildStep):
    path: str
    name = "module"

    def describe(self) -> str:
        return f"module {self.path}"

    def run(self, context: BuildContext) -> BuildContext:
        script = context.path_context.find_path(self.path)
        if script is None:
            raise StepNotFound("RequiredModules", self.path)
        logger.debug("Discovered module file at %s", script)
        if not _is_executable(script):
            raise ModuleNotExecutable(script)
        proc = run_command([str(script)], context)
        if proc.returncode != 0:
            raise ModuleFailed(self.path, proc.returncode)
        return context


@dataclass
class LdconfigStep(BuildStep):
    command: Sequence[str]
    name = "ldconfig"

    def run(self, context: BuildContext) -> BuildContext:
        proc = run_command(list(self.command), context)
        if proc.returncode != 0:
            raise OrchestrationError(f"{' '.join(self.command)} exited with status {proc.returncode}")
        return context


@dataclass
class BuildCommandStep(BuildStep):
    path: str
    name = "build"

    def describe(self) -> str:
        return f"build command {self.path}"

    def run(self, context: BuildContext) -> BuildContext:
        script = context.path_context.find_path(self.path)
        if script is None:
            raise StepNotFound("BuildCommand", self.path)
        if not _is_executable(script):
            raise BuildCommandNotExecutable(script)
        proc = run_command([str(script)], context)
        if proc.returncode != 0:
            raise BuildCommandFailed(self.path, proc.returncode)
        return context


def plan_steps(
    build: BuildSpec,
    *,
    package_command: Sequence[str],
    package_env: Optional[Mapping[str, str]] = None,
    ldconfig_command: Sequence[str] = (),
) -> List[BuildStep]:
    """Translate a build spec into its ordered step list."""

    steps: List[BuildStep] = [
        PackageInstallStep(package=package, command=tuple(package_command), env=dict(package_env or {}))
        for package in build.required_packages
    ]
    steps.extend(ModuleStep(path=module) for module in build.required_modules)
    if build.required_modules and ldconfig_command:
        # Modules may install libraries outside the loader cache.
        steps.append(LdconfigStep(command=tuple(ldconfig_command)))
    if build.build_command:
        steps.append(BuildCommandStep(path=build.build_command))
    return steps


def run_pipeline(steps: Sequence[BuildStep], context: BuildContext) -> OrchestrationResult:
    """Run ``steps`` in order, stopping at the first failure."""

    result = OrchestrationResult(context=context)
    for step in steps:
        logger.info("Running %s", step.describe())
        try:
            context = step.run(context)
        except OrchestrationError as exc:
            logger.debug("%s failed: %s", step.describe(), exc)
            result.records.append(
                StepRecord(step=step.describe(), status="failed", returncode=getattr(exc, "returncode", None), error=exc)
            )
            break
        result.records.append(StepRecord(step=step.describe(), status="ok", returncode=0))
        result.context = context
    return result


def run_command(
    command: Sequence[str],
    context: BuildContext,
    *,
    extra_env: Optional[Mapping[str, str]] = None,
) -> subprocess.CompletedProcess:
    """Run one command in the build root, appending its output to the build log."""

    logger.debug("Executing %s", " ".join(command))
    try:
        proc = subprocess.run(
            list(command),
            cwd=str(context.build_root),
            env=context.process_env(extra_env),
            capture_output=True,
            text=True,
            errors="replace",
            check=False,
        )
    except FileNotFoundError as exc:
        raise StepNotFound("command", command[0]) from exc
    except PermissionError as exc:
        raise BundleIOError(command[0], exc) from exc

    if context.log is not None:
        context.log.write(f"$ {' '.join(command)}\n")
        context.log.write("STDOUT:\n")
        context.log.write(proc.stdout)
        context.log.write("\nSTDERR:\n")
        context.log.write(proc.stderr)
        context.log.write(f"\nexit status: {proc.returncode}\n\n")
        context.log.flush()
    if proc.returncode != 0 and proc.stderr.strip():
        logger.info("%s", proc.stderr.strip())
    return proc


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)
