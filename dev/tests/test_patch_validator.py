from __future__ import annotations

import pytest

pytest.importorskip("pydantic")

from fwpatcher.exceptions import (
    AmbiguousInstructionError,
    DuplicateDescriptionError,
    DuplicateEnabledError,
    DuplicatePatchGroupError,
    EmptyInstructionError,
    MissingEnabledError,
    PatchGroupConflictError,
    PatchValidationError,
    UnsafeStringBaseAddressError,
)
from fwpatcher.patching import PatchSpecification, validate_specification


def _spec(data) -> PatchSpecification:
    return PatchSpecification.model_validate(data)


def test_minimal_patch_is_valid() -> None:
    validate_specification(_spec({"P": [{"Enabled": True}]}))


def test_empty_specification_is_valid() -> None:
    validate_specification(PatchSpecification.empty())


@pytest.mark.parametrize(
    "patches, error, code",
    [
        ({"P": [{"Enabled": True}, {}]}, EmptyInstructionError, "INSTRUCTION_EMPTY"),
        (
            {"P": [{"Enabled": True, "Description": "two keys in one bullet"}]},
            AmbiguousInstructionError,
            "INSTRUCTION_AMBIGUOUS",
        ),
        ({"P": [{"Description": "x"}]}, MissingEnabledError, "ENABLED_MISSING"),
        ({"P": [{"Enabled": True}, {"Enabled": False}]}, DuplicateEnabledError, "ENABLED_DUPLICATE"),
        (
            {"P": [{"Enabled": True}, {"Description": "a"}, {"Description": "b"}]},
            DuplicateDescriptionError,
            "DESCRIPTION_DUPLICATE",
        ),
        (
            {"P": [{"Enabled": True}, {"PatchGroup": "a"}, {"PatchGroup": "b"}]},
            DuplicatePatchGroupError,
            "PATCH_GROUP_DUPLICATE",
        ),
        (
            {"P": [
                {"Enabled": True},
                {"FindBaseAddressString": "abc"},
                {"ReplaceBytes": {"Find": [1], "Replace": [2]}},
            ]},
            UnsafeStringBaseAddressError,
            "UNSAFE_STRING_BASE_ADDRESS",
        ),
    ],
)
def test_each_rule_has_its_own_error(patches, error, code) -> None:
    with pytest.raises(error) as excinfo:
        validate_specification(_spec(patches))
    assert isinstance(excinfo.value, PatchValidationError)
    assert excinfo.value.error_code == code
    assert excinfo.value.patch_name == "P"
    assert excinfo.value.details["patch"] == "P"


def test_empty_instruction_reports_position() -> None:
    with pytest.raises(EmptyInstructionError) as excinfo:
        validate_specification(_spec({"P": [{"Enabled": True}, {"Description": "d"}, {}]}))
    assert excinfo.value.details["instruction"] == 3


@pytest.mark.parametrize(
    "extra",
    [
        [{"BaseAddress": 16}],
        [{"FindBaseAddressHex": "AA BB"}],
        [{"Description": "still bytes only"}],
        [{"PatchGroup": "g"}, {"BaseAddress": 4}, {"FindBaseAddressHex": "01"}, {"Description": "d"}],
    ],
)
def test_string_base_address_with_bytes_rejected_regardless_of_non_writes(extra) -> None:
    patch = [
        {"Enabled": True},
        *extra,
        {"FindBaseAddressString": "abc"},
        {"ReplaceBytes": {"Find": [1], "Replace": [2]}},
    ]
    with pytest.raises(UnsafeStringBaseAddressError):
        validate_specification(_spec({"P": patch}))


def test_string_base_address_with_bytes_rejected_when_disabled() -> None:
    with pytest.raises(UnsafeStringBaseAddressError):
        validate_specification(_spec({"P": [
            {"Enabled": False},
            {"FindBaseAddressString": "abc"},
            {"ReplaceBytes": {"FindH": "01", "ReplaceH": "02"}},
        ]}))


def test_string_base_address_allowed_with_other_writes() -> None:
    validate_specification(_spec({"P": [
        {"Enabled": True},
        {"FindBaseAddressString": "abc"},
        {"ReplaceBytes": {"Find": [1], "Replace": [2]}},
        {"ReplaceString": {"Find": "abc", "Replace": "xyz"}},
    ]}))


def test_hex_base_address_with_bytes_is_valid() -> None:
    validate_specification(_spec({"P": [
        {"Enabled": True},
        {"FindBaseAddressHex": "AA BB"},
        {"ReplaceBytes": {"Find": [1], "Replace": [2]}},
    ]}))


def test_two_enabled_patches_in_group_conflict() -> None:
    spec = _spec({
        "First": [{"Enabled": True}, {"PatchGroup": "Fonts"}],
        "Second": [{"Enabled": False}, {"PatchGroup": "Fonts"}],
        "Third": [{"Enabled": True}, {"PatchGroup": "Fonts"}],
    })
    with pytest.raises(PatchGroupConflictError) as excinfo:
        validate_specification(spec)
    assert excinfo.value.patch_name == "Third"
    assert excinfo.value.details["other_patch"] == "First"
    assert excinfo.value.details["patch_group"] == "Fonts"


def test_disabled_group_members_do_not_conflict() -> None:
    validate_specification(_spec({
        "First": [{"Enabled": False}, {"PatchGroup": "Fonts"}],
        "Second": [{"Enabled": True}, {"PatchGroup": "Fonts"}],
        "Third": [{"Enabled": False}, {"PatchGroup": "Fonts"}],
    }))


def test_first_violation_wins() -> None:
    spec = _spec({
        "Good": [{"Enabled": True}],
        "Bad1": [{"Description": "no gate"}],
        "Bad2": [{"Enabled": True}, {}],
    })
    with pytest.raises(MissingEnabledError) as excinfo:
        validate_specification(spec)
    assert excinfo.value.patch_name == "Bad1"
