"""histdocs - Analyze scanned historical documents and persist their entities."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("histdocs")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = ["__version__"]
