"""depbuild - cache-aware orchestration for externally built test dependencies.

This package ensures a binary produced by an external project exists at a
known path, restoring it from a cache when possible and otherwise checking
out, patching, building and installing it.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
