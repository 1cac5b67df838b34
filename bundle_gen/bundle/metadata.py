"""Bundle metadata helpers."""

from __future__ import annotations

import zipfile
from pathlib import Path
from typing import Optional

from ..schemas.metadata import BundleMetadata
from ..schemas.spec import BundleSpec
from .launcher import LAUNCH_SCRIPT, RUN_SCRIPT

METADATA_FILE = "bundle.ini"


def build_metadata(spec: BundleSpec, version: str) -> BundleMetadata:
    """Synthesize the metadata record from the non-build part of a spec."""

    exec_: Optional[str] = None
    if spec.exec_ is not None:
        # With a launcher the command is handed to it as-is; otherwise the
        # generated wrapper script is what gets started.
        exec_ = spec.exec_ if spec.launcher is not None else RUN_SCRIPT

    payload = {
        "name": spec.name,
        "bundle_type": spec.bundle_type,
        "exec_": exec_,
        "version": version,
        "prefer_xbox_mode": spec.prefer_xbox_mode,
        "launcher": spec.launcher,
    }
    if spec.homebrew_id is not None:
        payload["homebrew_id"] = spec.homebrew_id
    else:
        payload["store_id"] = spec.store_id
        payload["background"] = spec.background
        if spec.launcher_exec is not None:
            payload["launcher_exec"] = LAUNCH_SCRIPT
            payload["launcher_tags"] = list(spec.launcher_tags or [])
    return BundleMetadata.model_validate(payload)


def read_bundle_metadata(archive_path: Path) -> BundleMetadata:
    """Read the metadata record back out of a produced archive."""

    with zipfile.ZipFile(archive_path) as archive:
        with archive.open(METADATA_FILE) as handle:
            text = handle.read().decode("utf-8")
    return BundleMetadata.from_ini(text)
