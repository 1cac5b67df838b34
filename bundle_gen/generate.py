"""End-to-end bundle generation: build, version, resolve, assemble."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .bundle.builder import BundleBuilder, BundleConfig
from .bundle.dependencies import LIB_PREFIX, DependencyClosure, DependencyResolver, provided_names
from .bundle.launcher import LAUNCH_SCRIPT, RUN_SCRIPT, render_launcher
from .bundle.layout import BIN_PREFIX, RES_PREFIX, BundleLayout
from .bundle.ldcache import BaseLibraryIndex, LoaderCache
from .bundle.loader import load_spec
from .bundle.metadata import METADATA_FILE, build_metadata
from .bundle.orchestrator import BuildContext, plan_steps, run_pipeline
from .bundle.paths import FileEntry, collect_entries
from .bundle.version import resolve_version
from .config import GeneratorConfig
from .errors import BundleIOError, EntryNotFound, ExecutableNotFound
from .schemas.metadata import BundleMetadata
from .schemas.spec import BundleSpec

logger = logging.getLogger(__name__)

RUNNER_PATCH_FILE = "runner-patch"
SCRIPT_MODE = 0o755


@dataclass(slots=True)
class GenerationResult:
    archive_path: Path
    version: str
    metadata: BundleMetadata
    closure: DependencyClosure
    layout: BundleLayout


def generate(spec_path: Path, config: Optional[GeneratorConfig] = None) -> GenerationResult:
    """Run the full pipeline for ``spec_path`` and return the produced archive.

    Any failure raises a ``BundleGenError``; no archive is left behind then.
    """

    spec_path = Path(spec_path)
    config = (config or GeneratorConfig.from_env()).with_spec(spec_path)
    spec = load_spec(spec_path)
    stem = spec_path.stem

    log_path = config.build_root / f"{stem}.log"
    try:
        log = log_path.open("w", encoding="utf-8")
    except OSError as exc:
        raise BundleIOError(log_path, exc) from exc
    with log:
        context = BuildContext(
            build_root=config.build_root,
            source_root=config.source_root,
            env={
                "BUNDLE_BUILD_ROOT": str(config.build_root),
                "BUNDLE_SOURCE_ROOT": str(config.source_root),
            },
            log=log,
        )
        return _generate(spec, stem, config, context)


def _generate(spec: BundleSpec, stem: str, config: GeneratorConfig, context: BuildContext) -> GenerationResult:
    steps = plan_steps(
        spec.build,
        package_command=config.package_command,
        package_env=config.package_env,
        ldconfig_command=config.ldconfig_command,
    )
    run_pipeline(steps, context).raise_for_status()

    paths = context.path_context
    version = resolve_version(spec.build.version_file, paths)

    executables = collect_entries(spec.build.executables, BIN_PREFIX, paths, ExecutableNotFound)
    libraries = collect_entries(spec.build.libraries, LIB_PREFIX, paths, _not_found("Libraries"))
    extra_elf = collect_entries(spec.build.extra_elf_files, "", paths, _not_found("ExtraElfFiles"))
    resources = collect_entries(spec.build.resources, RES_PREFIX, paths, _not_found("Resources"))

    closure = resolve_closure(executables, extra_elf, libraries, config)

    metadata = build_metadata(spec, version)
    layout = BundleLayout()
    layout.add_entries(executables)
    layout.add_entries(libraries)
    layout.add_entries(closure.entries())
    layout.add_entries(resources)
    if spec.exec_ is not None and spec.launcher is None:
        layout.add_generated(RUN_SCRIPT, render_launcher(spec.exec_), mode=SCRIPT_MODE)
    if spec.is_store_bundle and spec.launcher_exec is not None:
        layout.add_generated(LAUNCH_SCRIPT, render_launcher(spec.launcher_exec), mode=SCRIPT_MODE)
    if spec.runner_patch is not None:
        patch = paths.find_path(spec.runner_patch)
        if patch is None or not patch.is_file():
            raise EntryNotFound("RunnerPatch", spec.runner_patch)
        layout.add_file(RUNNER_PATCH_FILE, patch.resolve())
    layout.add_generated(METADATA_FILE, metadata.to_ini())

    archive_path = BundleBuilder().build(
        layout,
        BundleConfig(
            stem=stem,
            version=version,
            output_dir=config.build_root,
            extension=config.archive_extension,
            source_date_epoch=config.source_date_epoch,
        ),
    )
    return GenerationResult(
        archive_path=archive_path,
        version=version,
        metadata=metadata,
        closure=closure,
        layout=layout,
    )


def resolve_closure(
    executables: List[FileEntry],
    extra_elf: List[FileEntry],
    libraries: List[FileEntry],
    config: GeneratorConfig,
) -> DependencyClosure:
    """Compute the libraries to bundle for the declared ELF inputs."""

    roots = [entry.location for entry in (*executables, *extra_elf, *libraries)]
    if not roots:
        return DependencyClosure()
    if config.base_index_path is None:
        base_index = BaseLibraryIndex.empty()
    else:
        base_index = BaseLibraryIndex.load(config.base_index_path)
    resolver = DependencyResolver(
        base_index,
        loader_cache=LoaderCache.load(config.ld_cache_path),
        library_dirs=config.library_dirs,
    )
    return resolver.resolve(roots, provided=provided_names(libraries))


def _not_found(field: str):
    def factory(path: str) -> EntryNotFound:
        return EntryNotFound(field, path)

    return factory
