"""
Search API package marker.
Exports __version__ from package metadata when available.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

__all__ = ["__version__"]


def _pkg_version() -> str:
    try:
        return version("search-api")
    except PackageNotFoundError:
        # Editable installs or direct source execution
        return "0.0.0"


__version__ = _pkg_version()
