"""Binary Patch Surface.

Owns a mutable copy of one binary and a base-address register. Every
replace operation verifies the bytes currently at ``base + offset`` before
writing, so a patch written for another firmware version fails instead of
corrupting the binary.

Replacements never change the buffer length:
- bytes must be replaced by the same number of bytes
- strings may be replaced by shorter strings, padded with NUL bytes
- floats are 8-byte little-endian IEEE-754 doubles
"""

from __future__ import annotations

import logging
import struct
from typing import Optional

from ..exceptions import (
    AddressNotFoundError,
    FindMismatchError,
    LengthMismatchError,
    OutOfBoundsError,
)

DEFAULT_BASE_ADDRESS = 0
STRING_ENCODING = "utf-8"
FLOAT_FORMAT = "<d"


class BinaryPatcher:
    """Verify-then-write patch primitives over an in-memory binary."""

    def __init__(self, data: bytes, logger: Optional[logging.Logger] = None):
        """Initialize patcher.

        Args:
            data: Original binary contents (copied)
            logger: Logger for tracing, defaults to the module logger
        """
        self._buf = bytearray(data)
        self._base = DEFAULT_BASE_ADDRESS
        self._log = logger or logging.getLogger(__name__)

    def __len__(self) -> int:
        return len(self._buf)

    @property
    def base_address(self) -> int:
        return self._base

    def reset_base_address(self) -> None:
        self._base = DEFAULT_BASE_ADDRESS

    def set_base_address(self, value: int) -> None:
        self._base = int(value)

    def find_base_address(self, pattern: bytes) -> None:
        """Move the base address to the first occurrence of ``pattern``.

        Raises:
            AddressNotFoundError: pattern is empty or does not occur
        """
        pattern = bytes(pattern)
        if not pattern:
            raise AddressNotFoundError("FindBaseAddress: empty search pattern", pattern)

        index = self._buf.find(pattern)
        if index < 0:
            raise AddressNotFoundError(
                f"FindBaseAddress: could not find `{pattern.hex(' ')}`", pattern
            )
        self._log.debug("base address %#x -> %#x", self._base, index)
        self._base = index

    def find_base_address_string(self, text: str) -> None:
        """Move the base address to the first occurrence of ``text``."""
        pattern = text.encode(STRING_ENCODING)
        if not pattern:
            raise AddressNotFoundError("FindBaseAddressString: empty search string", pattern)

        index = self._buf.find(pattern)
        if index < 0:
            raise AddressNotFoundError(
                f"FindBaseAddressString: could not find string {text!r}", pattern
            )
        self._log.debug("base address %#x -> %#x", self._base, index)
        self._base = index

    def replace_bytes(self, offset: int, find: bytes, replace: bytes) -> None:
        """Replace ``find`` with ``replace`` at ``base + offset``.

        Raises:
            LengthMismatchError: find and replace differ in length
            OutOfBoundsError: the range is outside the buffer
            FindMismatchError: the buffer does not hold ``find`` there
        """
        find = bytes(find)
        replace = bytes(replace)
        if len(find) != len(replace):
            raise LengthMismatchError(
                f"ReplaceBytes: find ({len(find)} bytes) and replace "
                f"({len(replace)} bytes) must have the same length",
                len(find), len(replace),
            )
        self._write(offset, find, replace, "ReplaceBytes")

    def replace_string(self, offset: int, find: str, replace: str) -> None:
        """Replace a string, padding a shorter replacement with NUL bytes."""
        find_buf = find.encode(STRING_ENCODING)
        replace_buf = replace.encode(STRING_ENCODING)
        if len(replace_buf) > len(find_buf):
            raise LengthMismatchError(
                f"ReplaceString: replacement {replace!r} is longer than {find!r}",
                len(find_buf), len(replace_buf),
            )
        replace_buf = replace_buf + b"\x00" * (len(find_buf) - len(replace_buf))
        self._write(offset, find_buf, replace_buf, "ReplaceString")

    def replace_int(self, offset: int, find: int, replace: int) -> None:
        """Replace a single unsigned byte."""
        self._write(offset, struct.pack("<B", find), struct.pack("<B", replace), "ReplaceInt")

    def replace_float(self, offset: int, find: float, replace: float) -> None:
        """Replace an 8-byte little-endian double."""
        self._write(
            offset,
            struct.pack(FLOAT_FORMAT, find),
            struct.pack(FLOAT_FORMAT, replace),
            "ReplaceFloat",
        )

    def get_bytes(self) -> bytes:
        return bytes(self._buf)

    def _write(self, offset: int, find: bytes, replace: bytes, operation: str) -> None:
        address = self._base + int(offset)
        length = len(find)
        if address < 0 or address + length > len(self._buf):
            raise OutOfBoundsError(
                f"{operation}: offset {address:#x} (+{length}) is outside the "
                f"binary ({len(self._buf):#x} bytes)",
                address, length, len(self._buf),
            )

        actual = bytes(self._buf[address:address + length])
        if actual != find:
            raise FindMismatchError(
                f"{operation}: could not find specified bytes at {address:#x} "
                f"(expected `{find.hex(' ')}`, found `{actual.hex(' ')}`)",
                address, find, actual,
            )

        self._buf[address:address + length] = replace
        self._log.debug("%s at %#x: %s -> %s", operation, address, find.hex(' '), replace.hex(' '))
