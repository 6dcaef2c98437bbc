"""Key Manager - API credential lifecycle service."""

from __future__ import annotations

import tomllib
from importlib import metadata
from pathlib import Path


def _get_version() -> str:
    """Resolve the package version.

    Prefers installed distribution metadata, falls back to the pyproject.toml
    next to the source tree when running from a checkout.
    """
    try:
        return metadata.version("key-manager")
    except metadata.PackageNotFoundError:
        pass
    try:
        pyproject_path = Path(__file__).parent.parent / "pyproject.toml"
        with open(pyproject_path, "rb") as f:
            data = tomllib.load(f)
        return data.get("project", {}).get("version", "unknown")
    except (OSError, tomllib.TOMLDecodeError):
        return "unknown"


__version__ = _get_version()
