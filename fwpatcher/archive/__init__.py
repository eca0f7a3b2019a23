"""Firmware archive handling.

- entries: tar member snapshots
- pipeline: zip -> gzip tar rewrite of the configured binaries
"""

from .entries import ArchiveEntry, SourceTarInfo
from .pipeline import (
    INNER_PAYLOAD_NAME,
    ArchiveRewriter,
    PatchedEntry,
    RewriteSummary,
    rewrite_archive,
)

__all__ = [
    "ArchiveEntry",
    "SourceTarInfo",
    "INNER_PAYLOAD_NAME",
    "ArchiveRewriter",
    "PatchedEntry",
    "RewriteSummary",
    "rewrite_archive",
]
