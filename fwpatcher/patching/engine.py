"""Instruction Execution Engine.

Applies a validated specification to a ``BinaryPatcher``. Patches run in
specification order; within an enabled patch the instructions run in the
order they were written. The first failing instruction aborts the whole
specification. Bytes written before the failure stay written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ..exceptions import ExecutionError, InvalidInstructionError, PatchApplicationError
from .model import Instruction, InstructionKind, PatchSpecification
from .parser import decode_hex_shorthand
from .surface import BinaryPatcher
from .validator import is_enabled, validate_specification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatchProgress:
    """Progress of one patch within a specification."""

    index: int  # 1-based
    total: int
    name: str
    enabled: bool


@dataclass
class ApplyReport:
    """Outcome of applying one specification."""

    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.applied) + len(self.skipped)


ProgressCallback = Callable[[PatchProgress], None]
_Handler = Callable[[BinaryPatcher, Instruction], None]


def _noop(surface: BinaryPatcher, instruction: Instruction) -> None:
    return None


def _base_address(surface: BinaryPatcher, instruction: Instruction) -> None:
    surface.set_base_address(instruction.base_address)


def _find_base_address_hex(surface: BinaryPatcher, instruction: Instruction) -> None:
    surface.find_base_address(decode_hex_shorthand(instruction.find_base_address_hex))


def _find_base_address_string(surface: BinaryPatcher, instruction: Instruction) -> None:
    surface.find_base_address_string(instruction.find_base_address_string)


def _replace_bytes(surface: BinaryPatcher, instruction: Instruction) -> None:
    args = instruction.replace_bytes
    surface.replace_bytes(args.offset, args.find, args.replace)


def _replace_float(surface: BinaryPatcher, instruction: Instruction) -> None:
    args = instruction.replace_float
    surface.replace_float(args.offset, args.find, args.replace)


def _replace_int(surface: BinaryPatcher, instruction: Instruction) -> None:
    args = instruction.replace_int
    surface.replace_int(args.offset, args.find, args.replace)


def _replace_string(surface: BinaryPatcher, instruction: Instruction) -> None:
    args = instruction.replace_string
    surface.replace_string(args.offset, args.find, args.replace)


def _find_replace_string(surface: BinaryPatcher, instruction: Instruction) -> None:
    args = instruction.find_replace_string
    surface.find_base_address_string(args.find)
    surface.replace_string(0, args.find, args.replace)


HANDLERS: Dict[InstructionKind, _Handler] = {
    InstructionKind.ENABLED: _noop,
    InstructionKind.DESCRIPTION: _noop,
    InstructionKind.PATCH_GROUP: _noop,
    InstructionKind.BASE_ADDRESS: _base_address,
    InstructionKind.FIND_BASE_ADDRESS_HEX: _find_base_address_hex,
    InstructionKind.FIND_BASE_ADDRESS_STRING: _find_base_address_string,
    InstructionKind.REPLACE_BYTES: _replace_bytes,
    InstructionKind.REPLACE_FLOAT: _replace_float,
    InstructionKind.REPLACE_INT: _replace_int,
    InstructionKind.REPLACE_STRING: _replace_string,
    InstructionKind.FIND_REPLACE_STRING: _find_replace_string,
}


class PatchEngine:
    """Runs patch specifications against binary patch surfaces."""

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self._log = logger or logging.getLogger(__name__)
        self._on_progress = on_progress

    def apply(self, spec: PatchSpecification, surface: BinaryPatcher) -> ApplyReport:
        """Apply every enabled patch of ``spec`` to ``surface``.

        Raises:
            PatchValidationError: ``spec`` no longer validates; nothing was touched
            PatchApplicationError: an instruction failed; wraps the surface error
            InvalidInstructionError: an instruction has no single kind
        """
        self._log.debug("validating patch file")
        validate_specification(spec, self._log)

        report = ApplyReport()
        total = len(spec)

        for index, (name, patch) in enumerate(spec.items(), start=1):
            enabled = is_enabled(patch)
            progress = PatchProgress(index=index, total=total, name=name, enabled=enabled)
            if self._on_progress is not None:
                self._on_progress(progress)

            if not enabled:
                self._log.info("  [%d/%d] Skipping disabled patch `%s`", index, total, name)
                report.skipped.append(name)
                continue

            self._log.info("  [%d/%d] Applying patch `%s`", index, total, name)
            surface.reset_base_address()

            for instruction in patch:
                self._execute(name, instruction, surface)
            report.applied.append(name)

        return report

    def _execute(self, name: str, instruction: Instruction, surface: BinaryPatcher) -> None:
        kind = instruction.kind
        handler = HANDLERS.get(kind) if kind is not None else None
        if handler is None:
            self._log.debug("invalid instruction in `%s`: %s", name, instruction.describe())
            raise InvalidInstructionError(
                f"invalid instruction in patch `{name}`: {instruction.describe()}", name
            )

        self._log.debug("    %s", instruction.describe())
        try:
            handler(surface, instruction)
        except ExecutionError as exc:
            error = PatchApplicationError(name, kind.value, exc)
            self._log.debug("could not apply patch: %s", error)
            raise error from exc


def apply_specification(
    spec: PatchSpecification,
    surface: BinaryPatcher,
    logger: Optional[logging.Logger] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> ApplyReport:
    """Apply ``spec`` to ``surface`` with a one-off engine."""
    return PatchEngine(logger=logger, on_progress=on_progress).apply(spec, surface)
