"""Specification Parser.

Reads a patch file, expands hex shorthand and validates the result.
Nothing is returned unless the whole file passed every check.
"""

from __future__ import annotations

import binascii
import logging
import re
from pathlib import Path
from typing import Any, Optional, Union

import pydantic
import yaml

from ..exceptions import HexShorthandError, PatchFileError, PatchParseError, SpecificationError
from ..utils import load_yaml
from .model import PatchSpecification
from .validator import validate_specification

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def decode_hex_shorthand(text: str) -> bytes:
    """Decode whitespace-tolerant hex, e.g. ``"DE AD BE EF"``.

    Raises:
        HexShorthandError: empty, odd-length or non-hex input
    """
    compact = _WHITESPACE.sub("", text)
    if not compact:
        raise HexShorthandError(text, "no hex digits")
    try:
        return binascii.unhexlify(compact)
    except (binascii.Error, ValueError) as exc:
        raise HexShorthandError(text, str(exc)) from exc


def expand_hex_shorthand(spec: PatchSpecification, log: Optional[logging.Logger] = None) -> PatchSpecification:
    """Expand ``FindH``/``ReplaceH`` into raw bytes, in place.

    ``FindBaseAddressHex`` strings are decoded too so that a malformed
    pattern fails the load instead of the run.
    """
    log = log or logger
    for name, patch in spec.items():
        for instruction in patch:
            args = instruction.replace_bytes
            if args is not None:
                if args.find_h is not None:
                    args.find = _decode_in_patch(args.find_h, name)
                    log.debug("decoded hex `%s` to %s", args.find_h, list(args.find))
                if args.replace_h is not None:
                    args.replace = _decode_in_patch(args.replace_h, name)
                    log.debug("decoded hex `%s` to %s", args.replace_h, list(args.replace))
            if instruction.find_base_address_hex is not None:
                _decode_in_patch(instruction.find_base_address_hex, name)
    return spec


def _decode_in_patch(text: str, patch_name: str) -> bytes:
    try:
        return decode_hex_shorthand(text)
    except HexShorthandError as exc:
        exc.details['patch'] = patch_name
        raise


def parse_patch_specification(
    raw: str,
    source: Optional[str] = None,
    log: Optional[logging.Logger] = None,
) -> PatchSpecification:
    """Parse patch file text into a validated specification.

    Args:
        raw: YAML text
        source: File name used in error messages
        log: Logger for tracing, defaults to the module logger

    Raises:
        PatchParseError: malformed YAML, unknown keys or wrong value types
        HexShorthandError: a hex shorthand field does not decode
        PatchValidationError: a semantic rule is violated
    """
    log = log or logger

    log.debug("parsing patch file %s", source or "<text>")
    try:
        data: Any = load_yaml(raw)
    except yaml.YAMLError as exc:
        raise PatchParseError(f"error parsing patch file: {exc}", source) from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise PatchParseError(
            f"error parsing patch file: expected a mapping of patch names, got {type(data).__name__}",
            source,
        )

    try:
        spec = PatchSpecification.model_validate(data)
    except pydantic.ValidationError as exc:
        raise PatchParseError(
            f"error parsing patch file: {_describe_validation_error(exc)}",
            source,
            {'errors': exc.errors(include_url=False, include_input=False)},
        ) from exc

    try:
        log.debug("expanding shorthand hex values")
        expand_hex_shorthand(spec, log)

        log.debug("validating patch file")
        validate_specification(spec, log)
    except SpecificationError as exc:
        if source:
            exc.details.setdefault('source', source)
        raise

    log.debug("loaded %d patch(es) from %s", len(spec), source or "<text>")
    return spec


def load_patch_file(path: Union[str, Path], log: Optional[logging.Logger] = None) -> PatchSpecification:
    """Read and parse a patch file from disk (never cached)."""
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise PatchFileError(f"error reading patch file {path}: {exc}", str(path)) from exc
    return parse_patch_specification(raw, str(path), log)


def _describe_validation_error(exc: pydantic.ValidationError) -> str:
    lines = []
    for error in exc.errors():
        location = _format_location(error.get("loc", ()))
        lines.append(f"{location}: {error.get('msg')}")
    return "; ".join(lines)


def _format_location(loc) -> str:
    # loc is (patch name, instruction index, key, ...) below the root model
    parts = list(loc)
    if not parts:
        return "<document>"
    text = f"patch `{parts[0]}`"
    if len(parts) > 1 and isinstance(parts[1], int):
        text += f" instruction {parts[1] + 1}"
    rest = [str(part) for part in parts[2:]]
    if rest:
        text += " " + ".".join(rest)
    return text


__all__ = [
    "decode_hex_shorthand",
    "expand_hex_shorthand",
    "load_patch_file",
    "parse_patch_specification",
]
