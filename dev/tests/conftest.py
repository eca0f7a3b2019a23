from __future__ import annotations

import gzip
import io
import sys
import tarfile
import textwrap
import zipfile
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

EXAMPLE_PATCH = textwrap.dedent(
    """\
    Example patch:
      - Enabled: yes
      - Description: Changes the font size.
      - FindBaseAddressHex: AA BB
      - ReplaceInt: {Offset: 2, Find: 0x01, Replace: 0x02}
    """
)

EXAMPLE_BINARY = b"\x00\xAA\xBB\x01\x05"
PATCHED_BINARY = b"\x00\xAA\xBB\x02\x05"

Member = Tuple[tarfile.TarInfo, Optional[bytes]]


def regular(name: str, data: bytes, **attrs) -> Member:
    info = tarfile.TarInfo(name)
    info.size = len(data)
    info.mode = attrs.pop("mode", 0o755)
    info.mtime = attrs.pop("mtime", 1_500_000_000)
    for key, value in attrs.items():
        setattr(info, key, value)
    return info, data


def symlink(name: str, target: str) -> Member:
    info = tarfile.TarInfo(name)
    info.type = tarfile.SYMTYPE
    info.linkname = target
    return info, None


def directory(name: str) -> Member:
    info = tarfile.TarInfo(name)
    info.type = tarfile.DIRTYPE
    info.mode = 0o755
    return info, None


def build_inner_payload(members: Iterable[Member], tar_format: int = tarfile.GNU_FORMAT) -> bytes:
    """Gzip tar bytes holding ``members``."""
    buffer = io.BytesIO()
    with gzip.GzipFile(fileobj=buffer, mode="wb") as gz:
        with tarfile.open(fileobj=gz, mode="w", format=tar_format) as tar:
            for info, data in members:
                tar.addfile(info, io.BytesIO(data) if data is not None else None)
    return buffer.getvalue()


def build_firmware_zip(path: Path, payload: Optional[bytes], extra: Optional[Dict[str, bytes]] = None) -> Path:
    with zipfile.ZipFile(path, "w") as archive:
        if payload is not None:
            archive.writestr("KoboRoot.tgz", payload)
        for name, data in (extra or {}).items():
            archive.writestr(name, data)
    return path


def read_output(path: Path) -> Dict[str, Member]:
    members = {}
    with tarfile.open(path, "r:gz") as tar:
        for info in tar:
            handle = tar.extractfile(info)
            members[info.name] = (info, handle.read() if handle is not None else None)
    return members


def write_config(base: Path, patches: Dict[str, str], **overrides) -> Path:
    lines = [
        f"version: {overrides.get('version', '4.20.14622')}",
        f"in: {overrides.get('in', 'update.zip')}",
        f"out: {overrides.get('out', 'out/KoboRoot.tgz')}",
        f"log: {overrides.get('log', 'log.txt')}",
        f"useNewPatchFormat: {overrides.get('useNewPatchFormat', 'true')}",
    ]
    if patches:
        lines.append("patches:")
        lines.extend(f"  {target}: {patch_file}" for target, patch_file in patches.items())
    else:
        lines.append("patches: {}")
    path = base / "kobopatch.yaml"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def firmware_dir(tmp_path: Path) -> Path:
    """Directory with update.zip, app.yaml and kobopatch.yaml targeting bin/app."""
    payload = build_inner_payload([
        directory("bin"),
        regular("bin/app", EXAMPLE_BINARY),
        regular("etc/other.conf", b"keep=out\n"),
    ])
    build_firmware_zip(tmp_path / "update.zip", payload, {"manifest.md5sum": b"x"})
    (tmp_path / "app.yaml").write_text(EXAMPLE_PATCH, encoding="utf-8")
    write_config(tmp_path, {"bin/app": "app.yaml"})
    return tmp_path
