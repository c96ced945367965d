"""
Error taxonomy for the story format build.

- BuildError: base class for fatal build failures
- BundleError: esbuild failed or produced no JS output (always fatal)
- AssetResolutionWarning: an HTML asset could not be inlined (recoverable)

File-system failures are not wrapped: OSError and its subclasses propagate
unchanged and abort the build.
"""


class BuildError(Exception):
    """A fatal failure in one of the build stages."""


class BundleError(BuildError):
    """A bundling phase failed or yielded no JS output."""


class AssetResolutionWarning(UserWarning):
    """An asset referenced from an HTML document could not be resolved."""
