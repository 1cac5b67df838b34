from __future__ import annotations

import io
from pathlib import Path

import pytest

from bundle_gen.bundle.orchestrator import (
    BuildCommandStep,
    BuildContext,
    LdconfigStep,
    ModuleStep,
    PackageInstallStep,
    plan_steps,
    run_pipeline,
)
from bundle_gen.errors import (
    BuildCommandFailed,
    BuildCommandNotExecutable,
    ModuleFailed,
    ModuleNotExecutable,
    PackageInstallFailed,
    StepNotFound,
)
from bundle_gen.schemas.spec import BuildSpec

from .support import write_script


def _context(tmp_path: Path, log: io.StringIO | None = None) -> BuildContext:
    build = tmp_path / "build"
    source = tmp_path / "src"
    build.mkdir(exist_ok=True)
    source.mkdir(exist_ok=True)
    return BuildContext(build_root=build, source_root=source, env={"BUNDLE_BUILD_ROOT": str(build)}, log=log)


def _build(**fields) -> BuildSpec:
    return BuildSpec.model_validate({"VersionFile": "VERSION", **fields})


def test_plan_keeps_declared_order() -> None:
    build = _build(
        RequiredPackages=["zlib1g-dev", "libsdl2-dev"],
        RequiredModules=["second.sh", "first.sh"],
        BuildCommand="build.sh",
    )

    steps = plan_steps(build, package_command=["apt-get", "install", "-y"], ldconfig_command=["ldconfig"])

    assert [step.describe() for step in steps] == [
        "package zlib1g-dev",
        "package libsdl2-dev",
        "module second.sh",
        "module first.sh",
        "ldconfig",
        "build command build.sh",
    ]
    assert isinstance(steps[0], PackageInstallStep)
    assert isinstance(steps[4], LdconfigStep)
    assert isinstance(steps[5], BuildCommandStep)


def test_plan_skips_ldconfig_without_modules() -> None:
    steps = plan_steps(_build(BuildCommand="build.sh"), package_command=["true"], ldconfig_command=["ldconfig"])

    assert [step.name for step in steps] == ["build"]


def test_modules_share_build_root_state(tmp_path: Path) -> None:
    context = _context(tmp_path)
    write_script(context.source_root / "first.sh", 'echo generated > state.txt')
    write_script(context.source_root / "second.sh", 'grep -q generated state.txt && echo ok >> state.txt')
    write_script(context.source_root / "build.sh", 'test -n "$BUNDLE_BUILD_ROOT" && touch built')
    steps = plan_steps(
        _build(RequiredModules=["first.sh", "second.sh"], BuildCommand="build.sh"),
        package_command=["true"],
    )

    result = run_pipeline(steps, context)

    assert result.ok
    assert [record.status for record in result.records] == ["ok", "ok", "ok"]
    assert (context.build_root / "state.txt").read_text() == "generated\nok\n"
    assert (context.build_root / "built").exists()


def test_failed_module_stops_pipeline(tmp_path: Path) -> None:
    context = _context(tmp_path)
    write_script(context.source_root / "broken.sh", "exit 1")
    write_script(context.source_root / "build.sh", "touch built")
    steps = plan_steps(_build(RequiredModules=["broken.sh"], BuildCommand="build.sh"), package_command=["true"])

    result = run_pipeline(steps, context)

    assert not result.ok
    assert isinstance(result.error, ModuleFailed)
    assert result.error.returncode == 1
    assert len(result.records) == 1
    assert not (context.build_root / "built").exists()
    with pytest.raises(ModuleFailed) as excinfo:
        result.raise_for_status()
    assert "broken.sh" in str(excinfo.value)


def test_package_failure_names_package(tmp_path: Path) -> None:
    log = io.StringIO()
    context = _context(tmp_path, log)
    installer = write_script(tmp_path / "fake-apt", 'echo "installing $1"; [ "$1" != "missing-pkg" ]')
    steps = plan_steps(
        _build(RequiredPackages=["present-pkg", "missing-pkg", "never-pkg"]),
        package_command=[str(installer)],
        package_env={"DEBIAN_FRONTEND": "noninteractive"},
    )

    result = run_pipeline(steps, context)

    assert isinstance(result.error, PackageInstallFailed)
    assert result.error.name == "missing-pkg"
    assert [record.step for record in result.records] == ["package present-pkg", "package missing-pkg"]
    assert "installing present-pkg" in log.getvalue()
    assert "never-pkg" not in log.getvalue()


def test_package_environment_is_passed(tmp_path: Path) -> None:
    context = _context(tmp_path)
    installer = write_script(tmp_path / "fake-apt", 'echo "$DEBIAN_FRONTEND" > frontend.txt')
    step = PackageInstallStep(package="zlib", command=[str(installer)], env={"DEBIAN_FRONTEND": "noninteractive"})

    step.run(context)

    assert (context.build_root / "frontend.txt").read_text().strip() == "noninteractive"


def test_missing_module(tmp_path: Path) -> None:
    with pytest.raises(StepNotFound):
        ModuleStep(path="nope.sh").run(_context(tmp_path))


def test_non_executable_steps(tmp_path: Path) -> None:
    context = _context(tmp_path)
    plain = context.source_root / "plain.sh"
    plain.write_text("#!/bin/sh\n", encoding="utf-8")
    plain.chmod(0o644)

    with pytest.raises(ModuleNotExecutable):
        ModuleStep(path="plain.sh").run(context)
    with pytest.raises(BuildCommandNotExecutable):
        BuildCommandStep(path="plain.sh").run(context)


def test_build_command_failure(tmp_path: Path) -> None:
    context = _context(tmp_path)
    write_script(context.build_root / "build.sh", "exit 3")

    with pytest.raises(BuildCommandFailed) as excinfo:
        BuildCommandStep(path="build.sh").run(context)
    assert excinfo.value.returncode == 3
