from __future__ import annotations

import logging
import textwrap
from typing import List, Tuple

import pytest

pytest.importorskip("pydantic")

from fwpatcher.exceptions import (
    AddressNotFoundError,
    FindMismatchError,
    MissingEnabledError,
    PatchApplicationError,
)
from fwpatcher.patching import (
    BinaryPatcher,
    InstructionKind,
    PatchEngine,
    PatchSpecification,
    apply_specification,
    parse_patch_specification,
)
from fwpatcher.patching.engine import HANDLERS

from conftest import EXAMPLE_BINARY, EXAMPLE_PATCH, PATCHED_BINARY


class RecordingPatcher(BinaryPatcher):
    """BinaryPatcher that records every surface call."""

    def __init__(self, data: bytes):
        super().__init__(data)
        self.calls: List[Tuple[str, tuple]] = []

    def _record(self, name, *args):
        self.calls.append((name, args))

    def reset_base_address(self):
        self._record("reset_base_address")
        super().reset_base_address()

    def set_base_address(self, value):
        self._record("set_base_address", value)
        super().set_base_address(value)

    def find_base_address(self, pattern):
        self._record("find_base_address", bytes(pattern))
        super().find_base_address(pattern)

    def find_base_address_string(self, text):
        self._record("find_base_address_string", text)
        super().find_base_address_string(text)

    def replace_bytes(self, offset, find, replace):
        self._record("replace_bytes", offset, bytes(find), bytes(replace))
        super().replace_bytes(offset, find, replace)

    def replace_string(self, offset, find, replace):
        self._record("replace_string", offset, find, replace)
        super().replace_string(offset, find, replace)

    def replace_int(self, offset, find, replace):
        self._record("replace_int", offset, find, replace)
        super().replace_int(offset, find, replace)

    def replace_float(self, offset, find, replace):
        self._record("replace_float", offset, find, replace)
        super().replace_float(offset, find, replace)


def _spec(text: str) -> PatchSpecification:
    return parse_patch_specification(textwrap.dedent(text))


def test_handler_table_covers_every_kind() -> None:
    assert set(HANDLERS) == set(InstructionKind)


def test_example_patch_applies() -> None:
    surface = RecordingPatcher(EXAMPLE_BINARY)
    report = apply_specification(_spec(EXAMPLE_PATCH), surface)

    assert surface.get_bytes() == PATCHED_BINARY
    assert report.applied == ["Example patch"]
    assert report.skipped == []
    assert surface.calls == [
        ("reset_base_address", ()),
        ("find_base_address", (b"\xAA\xBB",)),
        ("replace_int", (2, 1, 2)),
    ]


def test_disabled_patch_makes_no_surface_calls() -> None:
    spec = _spec(
        """\
        Off:
          - Enabled: no
          - BaseAddress: 1
          - ReplaceInt: {Offset: 0, Find: 0x99, Replace: 0x00}
        """
    )
    surface = RecordingPatcher(EXAMPLE_BINARY)
    report = PatchEngine().apply(spec, surface)

    assert surface.calls == []
    assert surface.get_bytes() == EXAMPLE_BINARY
    assert report.skipped == ["Off"]
    assert report.total == 1


def test_base_address_is_reset_between_patches() -> None:
    spec = _spec(
        """\
        First:
          - Enabled: yes
          - BaseAddress: 3
          - ReplaceInt: {Offset: 0, Find: 0x01, Replace: 0x02}
        Second:
          - Enabled: yes
          - ReplaceInt: {Offset: 0, Find: 0x00, Replace: 0x07}
        """
    )
    surface = BinaryPatcher(EXAMPLE_BINARY)
    PatchEngine().apply(spec, surface)
    assert surface.get_bytes() == b"\x07\xAA\xBB\x02\x05"


def test_find_miss_aborts_before_any_replace() -> None:
    spec = _spec(
        """\
        Missing:
          - Enabled: yes
          - FindBaseAddressHex: CC DD
          - ReplaceInt: {Offset: 0, Find: 0x00, Replace: 0x01}
        """
    )
    surface = RecordingPatcher(EXAMPLE_BINARY)
    with pytest.raises(PatchApplicationError) as excinfo:
        PatchEngine().apply(spec, surface)

    error = excinfo.value
    assert isinstance(error.cause, AddressNotFoundError)
    assert error.__cause__ is error.cause
    assert error.patch_name == "Missing"
    assert error.operation == "FindBaseAddressHex"
    assert str(error).startswith("could not apply patch `Missing`: FindBaseAddressHex:")
    assert [name for name, _ in surface.calls] == ["reset_base_address", "find_base_address"]
    assert surface.get_bytes() == EXAMPLE_BINARY


def test_failure_keeps_earlier_writes() -> None:
    spec = _spec(
        """\
        Partial:
          - Enabled: yes
          - ReplaceInt: {Offset: 0, Find: 0x00, Replace: 0x11}
          - ReplaceInt: {Offset: 4, Find: 0x99, Replace: 0x00}
        """
    )
    surface = BinaryPatcher(EXAMPLE_BINARY)
    with pytest.raises(PatchApplicationError) as excinfo:
        PatchEngine().apply(spec, surface)
    assert isinstance(excinfo.value.cause, FindMismatchError)
    assert surface.get_bytes()[0] == 0x11


def test_find_replace_string() -> None:
    spec = _spec(
        """\
        Text:
          - Enabled: yes
          - FindReplaceString: {Find: "Hello", Replace: "Hey"}
        """
    )
    surface = RecordingPatcher(b"say Hello!")
    PatchEngine().apply(spec, surface)
    assert surface.get_bytes() == b"say Hey\x00\x00!"
    assert surface.calls[1:] == [
        ("find_base_address_string", ("Hello",)),
        ("replace_string", (0, "Hello", "Hey")),
    ]


def test_applying_twice_fails_verification() -> None:
    spec = _spec(EXAMPLE_PATCH)
    surface = BinaryPatcher(EXAMPLE_BINARY)
    PatchEngine().apply(spec, surface)
    with pytest.raises(PatchApplicationError):
        PatchEngine().apply(spec, surface)
    assert surface.get_bytes() == PATCHED_BINARY


def test_invalid_specification_touches_nothing() -> None:
    spec = PatchSpecification.model_validate({"P": [{"BaseAddress": 1}]})
    surface = RecordingPatcher(EXAMPLE_BINARY)
    with pytest.raises(MissingEnabledError):
        PatchEngine().apply(spec, surface)
    assert surface.calls == []


def test_progress_callback_and_logging(caplog) -> None:
    spec = _spec(
        """\
        One:
          - Enabled: no
        Two:
          - Enabled: yes
        """
    )
    events = []
    log = logging.getLogger("fwpatcher.tests.engine")
    with caplog.at_level(logging.INFO, logger="fwpatcher.tests.engine"):
        PatchEngine(logger=log, on_progress=events.append).apply(spec, BinaryPatcher(b""))

    assert [(e.index, e.total, e.name, e.enabled) for e in events] == [
        (1, 2, "One", False),
        (2, 2, "Two", True),
    ]
    assert "[1/2] Skipping disabled patch `One`" in caplog.text
    assert "[2/2] Applying patch `Two`" in caplog.text
