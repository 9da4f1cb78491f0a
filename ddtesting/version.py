"""Keep the version in its own module so it can be read without importing the tracer."""

import importlib.metadata


__all__ = ["__version__"]

__version__: str

try:
    __version__ = importlib.metadata.version("ddtesting")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.0.0"
