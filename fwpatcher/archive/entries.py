"""Tar member snapshots for the rewrite pipeline."""

from __future__ import annotations

import dataclasses
import tarfile
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

# PAX keys that tarfile derives from TarInfo attributes on write; carrying
# the source values over would override the patched size and new mtime.
_TARINFO_PAX_KEYS = frozenset({"path", "linkpath", "size", "mtime", "uid", "gid", "uname", "gname"})

_TYPE_NAMES = {
    tarfile.REGTYPE: "regular file",
    tarfile.AREGTYPE: "regular file",
    tarfile.LNKTYPE: "hard link",
    tarfile.SYMTYPE: "symlink",
    tarfile.CHRTYPE: "character device",
    tarfile.BLKTYPE: "block device",
    tarfile.DIRTYPE: "directory",
    tarfile.FIFOTYPE: "fifo",
    tarfile.CONTTYPE: "contiguous file",
}


class SourceTarInfo(tarfile.TarInfo):
    """TarInfo that remembers the magic field of the header it was read from."""

    header_magic = b""

    @classmethod
    def frombuf(cls, buf, encoding, errors):
        obj = super().frombuf(buf, encoding, errors)
        obj.header_magic = bytes(buf[257:265])
        return obj


def detect_format(info: tarfile.TarInfo) -> int:
    """Header format a member was stored with.

    PAX records win. Otherwise the header magic tells GNU from USTAR when
    the member was read through ``SourceTarInfo``; old v7 headers and
    members without a recorded magic are written as GNU.
    """
    if info.pax_headers:
        return tarfile.PAX_FORMAT
    magic = getattr(info, "header_magic", b"")
    if magic == tarfile.POSIX_MAGIC:
        return tarfile.USTAR_FORMAT
    return tarfile.GNU_FORMAT


@dataclass
class ArchiveEntry:
    """One member of the inner payload, header and contents."""

    name: str
    mode: int
    uid: int
    gid: int
    uname: str
    gname: str
    mtime: float
    type: bytes
    format: int
    pax_headers: Dict[str, str] = field(default_factory=dict)
    payload: bytes = b""

    @classmethod
    def from_tarinfo(cls, info: tarfile.TarInfo, payload: bytes = b"") -> "ArchiveEntry":
        return cls(
            name=info.name,
            mode=info.mode,
            uid=info.uid,
            gid=info.gid,
            uname=info.uname,
            gname=info.gname,
            mtime=info.mtime,
            type=info.type,
            format=detect_format(info),
            pax_headers=dict(info.pax_headers),
            payload=payload,
        )

    @property
    def is_regular(self) -> bool:
        return self.type in tarfile.REGULAR_TYPES

    @property
    def type_name(self) -> str:
        return _TYPE_NAMES.get(self.type, repr(self.type))

    @property
    def size(self) -> int:
        return len(self.payload)

    def with_payload(self, payload: bytes, mtime: Optional[float] = None) -> "ArchiveEntry":
        """Copy of this entry holding ``payload``, stamped with ``mtime`` (default: now)."""
        return dataclasses.replace(
            self,
            payload=bytes(payload),
            mtime=time.time() if mtime is None else mtime,
        )

    def to_tarinfo(self) -> tarfile.TarInfo:
        info = tarfile.TarInfo(self.name)
        info.type = self.type
        info.mode = self.mode
        info.uid = self.uid
        info.gid = self.gid
        info.uname = self.uname
        info.gname = self.gname
        info.mtime = int(self.mtime)
        info.size = len(self.payload)
        info.pax_headers = {
            key: value for key, value in self.pax_headers.items()
            if key not in _TARINFO_PAX_KEYS
        }
        return info
