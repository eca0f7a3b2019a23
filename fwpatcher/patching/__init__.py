"""Patch specification handling.

- model: patch files as typed instructions
- parser: strict YAML loading and hex shorthand expansion
- validator: semantic rules over a whole patch file
- surface: verify-then-write primitives over one binary
- engine: runs a patch file against a surface
"""

from .model import (
    Instruction,
    InstructionKind,
    Patch,
    PatchSpecification,
)
from .parser import (
    decode_hex_shorthand,
    load_patch_file,
    parse_patch_specification,
)
from .validator import validate_specification
from .surface import BinaryPatcher
from .engine import (
    ApplyReport,
    PatchEngine,
    PatchProgress,
    apply_specification,
)

__all__ = [
    # model
    "Instruction",
    "InstructionKind",
    "Patch",
    "PatchSpecification",
    # parser / validator
    "decode_hex_shorthand",
    "load_patch_file",
    "parse_patch_specification",
    "validate_specification",
    # execution
    "BinaryPatcher",
    "ApplyReport",
    "PatchEngine",
    "PatchProgress",
    "apply_specification",
]
