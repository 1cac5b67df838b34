"""Bundle assembly utilities."""

from .builder import BundleBuilder, BundleConfig
from .dependencies import DependencyClosure, DependencyResolver
from .layout import BundleLayout
from .ldcache import BaseLibraryIndex, LoaderCache
from .metadata import build_metadata, read_bundle_metadata

__all__ = [
    "BundleConfig",
    "BundleBuilder",
    "BundleLayout",
    "DependencyClosure",
    "DependencyResolver",
    "BaseLibraryIndex",
    "LoaderCache",
    "build_metadata",
    "read_bundle_metadata",
]
