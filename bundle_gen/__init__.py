"""Bundle generation tooling: build, resolve shared libraries, and package bundles."""

__version__ = "0.1.0"
from .config import GeneratorConfig
from .errors import BundleGenError
from .generate import GenerationResult, generate
from .schemas.metadata import BundleMetadata
from .schemas.spec import BuildSpec, BundleSpec, BundleType

__all__ = [
    "__version__",
    "GeneratorConfig",
    "BundleGenError",
    "GenerationResult",
    "generate",
    "BundleMetadata",
    "BuildSpec",
    "BundleSpec",
    "BundleType",
]
