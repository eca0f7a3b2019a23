"""Specification Validator.

Rules, checked patch by patch in document order; the first violation wins:
- each instruction sets exactly one kind
- each patch has exactly one ``Enabled``
- at most one ``Description`` and one ``PatchGroup`` per patch
- at most one enabled patch per ``PatchGroup`` name
- a patch may not combine ``ReplaceBytes`` with ``FindBaseAddressString``
  unless it also performs a string, int, float or find-replace write;
  string search loses control characters, so byte patches must locate
  their base address with ``FindBaseAddressHex``
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, Optional

from ..exceptions import (
    AmbiguousInstructionError,
    DuplicateDescriptionError,
    DuplicateEnabledError,
    DuplicatePatchGroupError,
    EmptyInstructionError,
    MissingEnabledError,
    PatchGroupConflictError,
    UnsafeStringBaseAddressError,
)
from .model import NON_BYTE_REPLACE_KINDS, InstructionKind, Patch, PatchSpecification

logger = logging.getLogger(__name__)


def validate_patch(name: str, patch: Patch) -> None:
    """Check the rules that concern a single patch."""
    counts: Counter = Counter()

    for position, instruction in enumerate(patch, start=1):
        kinds = instruction.populated()
        if not kinds:
            raise EmptyInstructionError(
                f"empty instruction {position} in patch `{name}`", name,
                {'instruction': position},
            )
        if len(kinds) > 1:
            raise AmbiguousInstructionError(
                f"more than one instruction per bullet in patch `{name}` "
                f"(instruction {position}: {', '.join(k.value for k in kinds)}; "
                f"you might be missing a -)",
                name,
                {'instruction': position, 'kinds': [k.value for k in kinds]},
            )
        counts[kinds[0]] += 1

    if counts[InstructionKind.ENABLED] < 1:
        raise MissingEnabledError(f"no `Enabled` option in `{name}`", name)
    if counts[InstructionKind.ENABLED] > 1:
        raise DuplicateEnabledError(f"more than one `Enabled` option in `{name}`", name)
    if counts[InstructionKind.DESCRIPTION] > 1:
        raise DuplicateDescriptionError(
            f"more than one `Description` option in `{name}` "
            f"(use comments to describe individual lines)",
            name,
        )
    if counts[InstructionKind.PATCH_GROUP] > 1:
        raise DuplicatePatchGroupError(f"more than one `PatchGroup` option in `{name}`", name)

    other_writes = sum(counts[kind] for kind in NON_BYTE_REPLACE_KINDS)
    if (other_writes == 0
            and counts[InstructionKind.REPLACE_BYTES] > 0
            and counts[InstructionKind.FIND_BASE_ADDRESS_STRING] > 0):
        raise UnsafeStringBaseAddressError(
            f"use FindBaseAddressHex for hex replacements because "
            f"FindBaseAddressString will lose control characters (patch `{name}`)",
            name,
        )


def is_enabled(patch: Patch) -> bool:
    return any(instruction.enabled for instruction in patch if instruction.enabled is not None)


def patch_group(patch: Patch) -> Optional[str]:
    for instruction in patch:
        if instruction.patch_group is not None:
            return instruction.patch_group
    return None


def validate_specification(spec: PatchSpecification, log: Optional[logging.Logger] = None) -> None:
    """Validate a whole specification, raising on the first violation.

    Raises:
        PatchValidationError: one subclass per rule
    """
    log = log or logger
    enabled_groups: Dict[str, str] = {}

    for name, patch in spec.items():
        validate_patch(name, patch)

        group = patch_group(patch)
        if group and is_enabled(patch):
            if group in enabled_groups:
                raise PatchGroupConflictError(
                    f"more than one patch enabled in PatchGroup `{group}` "
                    f"(`{enabled_groups[group]}` and `{name}`)",
                    name,
                    {'patch_group': group, 'other_patch': enabled_groups[group]},
                )
            enabled_groups[group] = name

    log.debug("validated %d patch(es), enabled groups: %s", len(spec), sorted(enabled_groups))
