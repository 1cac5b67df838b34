"""Schema definitions for bundle specs and metadata."""

from .metadata import BundleMetadata
from .spec import BuildSpec, BundleSpec, BundleType, PathEntry

__all__ = [
    "BuildSpec",
    "BundleMetadata",
    "BundleSpec",
    "BundleType",
    "PathEntry",
]
