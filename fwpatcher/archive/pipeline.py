"""Archive Rewrite Pipeline.

Reads the firmware update zip, streams the gzip tar payload inside it,
patches every configured binary and writes a new gzip tar holding only
the patched members.

States: open outer -> locate inner payload -> stream entries -> finalize.
The output file is only touched once the whole new payload has been built
in memory.
"""

from __future__ import annotations

import gzip
import io
import logging
import os
import tarfile
import zipfile
import zlib
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Iterator, List, Optional, Set, Tuple

from ..config import RunConfig, normalize_entry_name
from ..exceptions import BaseError, ContainerError, InnerPayloadMissingError, OutputError, UnsupportedEntryError
from ..patching import BinaryPatcher, PatchEngine, load_patch_file
from ..patching.engine import ProgressCallback
from .entries import ArchiveEntry, SourceTarInfo

logger = logging.getLogger(__name__)

INNER_PAYLOAD_NAME = "KoboRoot.tgz"

# decoding failures of the inner payload, reported as ContainerError
_DECODE_ERRORS = (tarfile.TarError, zlib.error, EOFError, OSError)


@dataclass
class PatchedEntry:
    """One binary written to the new payload."""

    name: str
    patch_file: Path
    original_size: int
    patched_size: int
    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


@dataclass
class RewriteSummary:
    """Outcome of one pipeline run."""

    output_path: Path
    patched: List[PatchedEntry] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)

    @property
    def patched_names(self) -> List[str]:
        return [entry.name for entry in self.patched]


class ArchiveRewriter:
    """Rewrites the inner payload of one update archive."""

    def __init__(
        self,
        config: RunConfig,
        logger: Optional[logging.Logger] = None,
        on_progress: Optional[ProgressCallback] = None,
        inner_payload_name: str = INNER_PAYLOAD_NAME,
    ):
        self.config = config
        self.inner_payload_name = inner_payload_name
        self._log = logger or logging.getLogger(__name__)
        self._engine = PatchEngine(logger=self._log, on_progress=on_progress)

    def run(self) -> RewriteSummary:
        """Build the patched payload and write it to ``config.output_path``.

        Raises:
            ContainerError: the input zip or its inner payload cannot be read
            InnerPayloadMissingError: the zip has no inner payload
            UnsupportedEntryError: a configured target is not a regular file
            SpecificationError: a patch file does not load or validate
            PatchApplicationError: an instruction failed
            OutputError: the new payload cannot be built or written
        """
        summary = RewriteSummary(output_path=self.config.output_path)
        buffer = io.BytesIO()

        gz_out = gzip.GzipFile(fileobj=buffer, mode="wb")
        tar_out = tarfile.open(fileobj=gz_out, mode="w|", format=tarfile.GNU_FORMAT)

        try:
            with self._open_outer() as archive:
                with self._locate_inner_payload(archive) as tar_in:
                    self._stream_entries(tar_in, tar_out, summary)
        except Exception:
            # discard the partial payload; the output file is left as it was
            tar_out.close()
            gz_out.close()
            raise

        self._report_missing_targets(summary)
        self._finalize(tar_out, gz_out, buffer)
        return summary

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    @contextmanager
    def _open_outer(self) -> Iterator[zipfile.ZipFile]:
        path = self.config.input_path
        self._log.info("Reading input file %s", path)
        try:
            archive = zipfile.ZipFile(path, "r")
        except (zipfile.BadZipFile, OSError) as exc:
            raise ContainerError(
                f"could not open input file {path}: {exc}", "INPUT_OPEN_ERROR", str(path)
            ) from exc
        with archive:
            yield archive

    @contextmanager
    def _locate_inner_payload(self, archive: zipfile.ZipFile) -> Iterator[tarfile.TarFile]:
        path = str(self.config.input_path)
        try:
            info = archive.getinfo(self.inner_payload_name)
        except KeyError:
            raise InnerPayloadMissingError(self.inner_payload_name, path) from None

        self._log.debug("Found %s (%d bytes compressed)", info.filename, info.compress_size)
        try:
            raw = archive.open(info, "r")
        except (zipfile.BadZipFile, zlib.error, OSError, RuntimeError) as exc:
            raise ContainerError(
                f"could not open {self.inner_payload_name}: {exc}", "INNER_PAYLOAD_ERROR", path
            ) from exc

        with raw, gzip.GzipFile(fileobj=raw, mode="rb") as gz_in:
            try:
                tar_in = tarfile.open(fileobj=gz_in, mode="r|", tarinfo=SourceTarInfo)
            except _DECODE_ERRORS as exc:
                raise self._decode_error(exc) from exc
            with tar_in:
                yield tar_in

    def _stream_entries(self, tar_in: tarfile.TarFile, tar_out: tarfile.TarFile,
                        summary: RewriteSummary) -> None:
        for member in self._members(tar_in):
            name = normalize_entry_name(member.name)
            patch_file = self.config.target_for(name)
            if patch_file is None:
                self._log.debug("Skipping %s", member.name)
                summary.dropped.append(member.name)
                continue

            try:
                entry, record = self._patch_entry(tar_in, member, name, patch_file)
                self._write_entry(tar_out, entry)
            except BaseError as exc:
                exc.details.setdefault('entry', name)
                raise
            summary.patched.append(record)

    def _finalize(self, tar_out: tarfile.TarFile, gz_out: gzip.GzipFile, buffer: io.BytesIO) -> None:
        output_path = self.config.output_path
        try:
            os.remove(output_path)
            self._log.debug("Removed existing output %s", output_path)
        except OSError:
            pass

        try:
            tar_out.close()
            gz_out.close()
        except (OSError, tarfile.TarError) as exc:
            raise OutputError(f"could not finish output archive: {exc}", str(output_path)) from exc

        self._log.info("Writing patched %s to %s", self.inner_payload_name, output_path)
        write_atomic(output_path, buffer.getvalue())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _members(self, tar_in: tarfile.TarFile) -> Iterator[tarfile.TarInfo]:
        while True:
            try:
                member = tar_in.next()
            except _DECODE_ERRORS as exc:
                raise self._decode_error(exc) from exc
            if member is None:
                return
            yield member

    def _patch_entry(self, tar_in: tarfile.TarFile, member: tarfile.TarInfo, name: str,
                     patch_file: Path) -> Tuple[ArchiveEntry, PatchedEntry]:
        entry = ArchiveEntry.from_tarinfo(member)
        if not entry.is_regular:
            raise UnsupportedEntryError(member.name, entry.type_name)

        self._log.info("Patching %s", member.name)
        entry.payload = self._read_payload(tar_in, member)

        self._log.info("  Loading patch file %s", patch_file)
        spec = load_patch_file(patch_file, self._log)

        surface = BinaryPatcher(entry.payload, self._log)
        report = self._engine.apply(spec, surface)
        data = surface.get_bytes()

        record = PatchedEntry(
            name=name,
            patch_file=patch_file,
            original_size=entry.size,
            patched_size=len(data),
            applied=report.applied,
            skipped=report.skipped,
        )
        return entry.with_payload(data), record

    def _read_payload(self, tar_in: tarfile.TarFile, member: tarfile.TarInfo) -> bytes:
        try:
            stream: Optional[IO[bytes]] = tar_in.extractfile(member)
            data = stream.read() if stream is not None else b""
        except _DECODE_ERRORS as exc:
            raise self._decode_error(exc) from exc
        if len(data) != member.size:
            raise ContainerError(
                f"could not read {member.name}: got {len(data)} of {member.size} bytes",
                "INNER_PAYLOAD_ERROR",
                str(self.config.input_path),
            )
        return data

    def _write_entry(self, tar_out: tarfile.TarFile, entry: ArchiveEntry) -> None:
        info = entry.to_tarinfo()
        tar_out.format = entry.format
        start = tar_out.offset
        try:
            tar_out.addfile(info, io.BytesIO(entry.payload))
        except (OSError, tarfile.TarError, ValueError) as exc:
            raise OutputError(
                f"could not write {entry.name} to output archive: {exc}",
                str(self.config.output_path),
            ) from exc

        written = tar_out.offset - start
        if written < entry.size:
            raise OutputError(
                f"could not write whole file {entry.name} to output archive "
                f"({written} of {entry.size} bytes)",
                str(self.config.output_path),
            )
        self._log.debug("Wrote %s (%d bytes, format %d)", entry.name, entry.size, entry.format)

    def _report_missing_targets(self, summary: RewriteSummary) -> None:
        seen: Set[str] = set(summary.patched_names)
        for target in self.config.patches:
            if target not in seen:
                self._log.warning("Configured target %s not found in %s", target, self.inner_payload_name)
                summary.missing.append(target)

    def _decode_error(self, exc: Exception) -> ContainerError:
        return ContainerError(
            f"could not read {self.inner_payload_name}: {exc}",
            "INNER_PAYLOAD_ERROR",
            str(self.config.input_path),
        )


def write_atomic(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` through a ``.part`` file and a rename."""
    path = Path(path)
    tmp = path.with_name(path.name + ".part")
    try:
        if path.parent and not path.parent.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(str(tmp), str(path))
    except OSError as exc:
        raise OutputError(f"could not write output file {path}: {exc}", str(path)) from exc
    finally:
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError as exc:
                logger.debug("Failed to remove temp file: %s", exc)


def rewrite_archive(
    config: RunConfig,
    logger: Optional[logging.Logger] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> RewriteSummary:
    """Run the pipeline once for ``config``."""
    return ArchiveRewriter(config, logger=logger, on_progress=on_progress).run()
