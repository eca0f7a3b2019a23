"""Patch Specification Model.

A patch file maps patch names to ordered lists of instructions. Each
instruction is a single-key record; the key selects the instruction kind::

    My patch:
      - Enabled: yes
      - PatchGroup: Fonts
      - FindBaseAddressHex: AA BB
      - ReplaceInt: {Offset: 2, Find: 0x01, Replace: 0x02}

Patches run in document order.
"""

from __future__ import annotations

import datetime
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, RootModel, Strict, field_validator


def scalar_text(value: Any) -> Any:
    """Read any YAML scalar as text; ``Description: 2019`` is the string ``"2019"``.

    Lists and mappings are returned unchanged and fail string validation.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    return value


Int32 = Annotated[int, Strict(), Field(ge=-(2 ** 31), le=2 ** 31 - 1)]
UInt8 = Annotated[int, Strict(), Field(ge=0, le=255)]
Float64 = Annotated[float, Strict()]
Text = Annotated[str, BeforeValidator(scalar_text)]
Flag = Annotated[bool, Strict()]


class InstructionKind(str, Enum):
    """Instruction kinds, named as they appear in patch files."""

    ENABLED = "Enabled"
    DESCRIPTION = "Description"
    PATCH_GROUP = "PatchGroup"
    BASE_ADDRESS = "BaseAddress"
    FIND_BASE_ADDRESS_HEX = "FindBaseAddressHex"
    FIND_BASE_ADDRESS_STRING = "FindBaseAddressString"
    REPLACE_STRING = "ReplaceString"
    REPLACE_INT = "ReplaceInt"
    REPLACE_FLOAT = "ReplaceFloat"
    REPLACE_BYTES = "ReplaceBytes"
    FIND_REPLACE_STRING = "FindReplaceString"


# Kinds that only configure a patch and do nothing at execution time
META_KINDS = frozenset({
    InstructionKind.ENABLED,
    InstructionKind.DESCRIPTION,
    InstructionKind.PATCH_GROUP,
})

# Kinds that write something other than raw bytes
NON_BYTE_REPLACE_KINDS = frozenset({
    InstructionKind.REPLACE_STRING,
    InstructionKind.REPLACE_INT,
    InstructionKind.REPLACE_FLOAT,
    InstructionKind.FIND_REPLACE_STRING,
})


class _Record(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class ReplaceStringArgs(_Record):
    offset: Int32 = Field(default=0, alias="Offset")
    find: Text = Field(default="", alias="Find")
    replace: Text = Field(default="", alias="Replace")


class ReplaceIntArgs(_Record):
    offset: Int32 = Field(default=0, alias="Offset")
    find: UInt8 = Field(default=0, alias="Find")
    replace: UInt8 = Field(default=0, alias="Replace")


class ReplaceFloatArgs(_Record):
    offset: Int32 = Field(default=0, alias="Offset")
    find: Float64 = Field(default=0.0, alias="Find")
    replace: Float64 = Field(default=0.0, alias="Replace")


class ReplaceBytesArgs(_Record):
    """Raw byte replacement.

    ``FindH``/``ReplaceH`` hold hex shorthand (``"DE AD BE EF"``) and are
    expanded into ``find``/``replace`` by the parser.
    """

    offset: Int32 = Field(default=0, alias="Offset")
    find_h: Optional[Text] = Field(default=None, alias="FindH")
    replace_h: Optional[Text] = Field(default=None, alias="ReplaceH")
    find: bytes = Field(default=b"", alias="Find")
    replace: bytes = Field(default=b"", alias="Replace")

    @field_validator("find", "replace", mode="before")
    @classmethod
    def _byte_list(cls, value):
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if not isinstance(value, list):
            raise ValueError("expected a list of byte values (or use FindH/ReplaceH)")
        for item in value:
            if isinstance(item, bool) or not isinstance(item, int) or not 0 <= item <= 255:
                raise ValueError(f"invalid byte value {item!r}")
        return bytes(value)


class FindReplaceStringArgs(_Record):
    find: Text = Field(default="", alias="Find")
    replace: Text = Field(default="", alias="Replace")


class Instruction(_Record):
    """One bullet of a patch; exactly one slot is expected to be set."""

    enabled: Optional[Flag] = Field(default=None, alias="Enabled")
    description: Optional[Text] = Field(default=None, alias="Description")
    patch_group: Optional[Text] = Field(default=None, alias="PatchGroup")
    base_address: Optional[Int32] = Field(default=None, alias="BaseAddress")
    find_base_address_hex: Optional[Text] = Field(default=None, alias="FindBaseAddressHex")
    find_base_address_string: Optional[Text] = Field(default=None, alias="FindBaseAddressString")
    replace_string: Optional[ReplaceStringArgs] = Field(default=None, alias="ReplaceString")
    replace_int: Optional[ReplaceIntArgs] = Field(default=None, alias="ReplaceInt")
    replace_float: Optional[ReplaceFloatArgs] = Field(default=None, alias="ReplaceFloat")
    replace_bytes: Optional[ReplaceBytesArgs] = Field(default=None, alias="ReplaceBytes")
    find_replace_string: Optional[FindReplaceStringArgs] = Field(default=None, alias="FindReplaceString")

    SLOTS: ClassVar[Dict[InstructionKind, str]] = {
        InstructionKind.ENABLED: "enabled",
        InstructionKind.DESCRIPTION: "description",
        InstructionKind.PATCH_GROUP: "patch_group",
        InstructionKind.BASE_ADDRESS: "base_address",
        InstructionKind.FIND_BASE_ADDRESS_HEX: "find_base_address_hex",
        InstructionKind.FIND_BASE_ADDRESS_STRING: "find_base_address_string",
        InstructionKind.REPLACE_STRING: "replace_string",
        InstructionKind.REPLACE_INT: "replace_int",
        InstructionKind.REPLACE_FLOAT: "replace_float",
        InstructionKind.REPLACE_BYTES: "replace_bytes",
        InstructionKind.FIND_REPLACE_STRING: "find_replace_string",
    }

    def populated(self) -> List[InstructionKind]:
        return [kind for kind, slot in self.SLOTS.items() if getattr(self, slot) is not None]

    @property
    def kind(self) -> Optional[InstructionKind]:
        """The single populated kind, or None when zero or several are set."""
        kinds = self.populated()
        return kinds[0] if len(kinds) == 1 else None

    @property
    def payload(self):
        kind = self.kind
        return getattr(self, self.SLOTS[kind]) if kind is not None else None

    def describe(self) -> str:
        """Short human-readable form for logs and errors."""
        parts = [f"{kind.value}({getattr(self, self.SLOTS[kind])!r})" for kind in self.populated()]
        return ", ".join(parts) or "<empty instruction>"


Patch = List[Instruction]


class PatchSpecification(RootModel[Dict[str, List[Instruction]]]):
    """Patch name -> ordered instructions, in document order."""

    def __iter__(self) -> Iterator[str]:  # type: ignore[override]
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __getitem__(self, name: str) -> Patch:
        return self.root[name]

    def items(self) -> Iterator[Tuple[str, Patch]]:
        return iter(self.root.items())

    @property
    def names(self) -> List[str]:
        return list(self.root)

    @classmethod
    def empty(cls) -> "PatchSpecification":
        return cls({})
