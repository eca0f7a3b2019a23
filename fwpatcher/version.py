"""Version utilities for fwpatcher."""

from __future__ import annotations

from importlib import metadata

DISTRIBUTION_NAME = "fwpatcher"


def load_version() -> str:
    try:
        version = str(metadata.version(DISTRIBUTION_NAME) or "").strip()
        return version or "unknown"
    except metadata.PackageNotFoundError:
        return "unknown"
