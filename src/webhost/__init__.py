"""webhost package bootstrap.

Exposes the package version used by the CLI ``--version`` flag and the
packaging metadata.
"""
from __future__ import annotations

__all__ = ["__version__", "get_version"]

# NOTE: Hatch reads the distribution version from this assignment.
__version__ = "0.1.0"


def get_version() -> str:
    """Return the current package version."""
    return __version__
