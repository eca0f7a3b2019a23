#!/usr/bin/env python3
# -*-coding: utf-8-*-
"""
fwpatcher - Consolidated Exception Classes

This module contains all exception classes used in the project,
centralized in one place to avoid duplication and improve consistency.
Every error is fatal for the run; the details carry enough context
(patch name, instruction values, entry name) to diagnose a failure.
"""

from datetime import datetime
from typing import Dict, Any, Optional


class BaseError(Exception):
    """Base class for all project-specific errors."""

    def __init__(self, message: str, error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.error_code = error_code or "ERROR"
        self.details = details or {}
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """Converts the exception to a dictionary for structured logging."""
        return {
            'error_code': self.error_code,
            'message': str(self),
            'details': self.details,
            'timestamp': self.timestamp.isoformat()
        }


# =====================================================================================================
# Configuration errors
# =====================================================================================================

class ConfigurationError(BaseError):
    """Base class for configuration errors."""

    def __init__(self, message: str, error_code: Optional[str] = None,
                 file_path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        config_details = details or {}
        if file_path:
            config_details['file_path'] = str(file_path)
        super().__init__(message, error_code or "CONFIG_ERROR", config_details)


class ValidationError(ConfigurationError):
    """Raised when configuration validation fails."""

    def __init__(self, message: str, field_name: Optional[str] = None,
                 expected_type: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        validation_details = details or {}
        if field_name:
            validation_details['field_name'] = field_name
        if expected_type:
            validation_details['expected_type'] = expected_type
        super().__init__(message, "VALIDATION_ERROR", None, validation_details)


class UnsupportedFormatError(ConfigurationError):
    """Raised when the configuration asks for the legacy patch format."""

    def __init__(self, message: str = "only the new patch format is supported",
                 file_path: Optional[str] = None):
        super().__init__(message, "UNSUPPORTED_FORMAT", file_path)


# =====================================================================================================
# Container errors
# =====================================================================================================

class ContainerError(BaseError):
    """Raised when the outer zip or the inner tar payload cannot be read."""

    def __init__(self, message: str, error_code: Optional[str] = None,
                 archive_path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        container_details = details or {}
        if archive_path:
            container_details['archive_path'] = str(archive_path)
        super().__init__(message, error_code or "CONTAINER_ERROR", container_details)


class InnerPayloadMissingError(ContainerError):
    """Raised when the outer container has no inner payload entry."""

    def __init__(self, payload_name: str, archive_path: Optional[str] = None):
        super().__init__(
            f"no such file in zip: {payload_name}",
            "INNER_PAYLOAD_MISSING",
            archive_path,
            {'payload_name': payload_name},
        )


# =====================================================================================================
# Specification errors
# =====================================================================================================

class SpecificationError(BaseError):
    """Base class for patch file errors."""

    def __init__(self, message: str, error_code: Optional[str] = None,
                 source: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        spec_details = details or {}
        if source:
            spec_details['source'] = str(source)
        super().__init__(message, error_code or "SPEC_ERROR", spec_details)


class PatchFileError(SpecificationError):
    """Raised when a patch file cannot be read."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message, "PATCH_FILE_ERROR", source)


class PatchParseError(SpecificationError):
    """Raised when a patch file is not well-formed."""

    def __init__(self, message: str, source: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "PATCH_PARSE_ERROR", source, details)


class HexShorthandError(SpecificationError):
    """Raised when a hex shorthand string cannot be decoded."""

    def __init__(self, value: str, reason: Optional[str] = None):
        message = f"error expanding shorthand hex `{value}`"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, "HEX_SHORTHAND_ERROR", None, {'value': value})
        self.value = value


class PatchValidationError(SpecificationError):
    """Base class for semantic violations found in a patch specification."""

    code = "PATCH_VALIDATION_ERROR"

    def __init__(self, message: str, patch_name: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        patch_details = details or {}
        if patch_name is not None:
            patch_details['patch'] = patch_name
        super().__init__(message, self.code, None, patch_details)
        self.patch_name = patch_name


class EmptyInstructionError(PatchValidationError):
    code = "INSTRUCTION_EMPTY"


class AmbiguousInstructionError(PatchValidationError):
    code = "INSTRUCTION_AMBIGUOUS"


class MissingEnabledError(PatchValidationError):
    code = "ENABLED_MISSING"


class DuplicateEnabledError(PatchValidationError):
    code = "ENABLED_DUPLICATE"


class DuplicateDescriptionError(PatchValidationError):
    code = "DESCRIPTION_DUPLICATE"


class DuplicatePatchGroupError(PatchValidationError):
    code = "PATCH_GROUP_DUPLICATE"


class PatchGroupConflictError(PatchValidationError):
    code = "PATCH_GROUP_CONFLICT"


class UnsafeStringBaseAddressError(PatchValidationError):
    code = "UNSAFE_STRING_BASE_ADDRESS"


# =====================================================================================================
# Execution errors
# =====================================================================================================

class ExecutionError(BaseError):
    """Base class for errors raised while mutating a binary."""

    def __init__(self, message: str, error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code or "EXECUTION_ERROR", details)


class AddressNotFoundError(ExecutionError):
    """Raised when a base address pattern does not occur in the buffer."""

    def __init__(self, message: str, pattern: Optional[bytes] = None):
        details = {}
        if pattern is not None:
            details['pattern'] = pattern.hex()
        super().__init__(message, "ADDRESS_NOT_FOUND", details)


class FindMismatchError(ExecutionError):
    """Raised when the bytes at the target address differ from the expected ones."""

    def __init__(self, message: str, address: int, expected: bytes, actual: bytes):
        super().__init__(message, "FIND_MISMATCH", {
            'address': address,
            'expected': expected.hex(),
            'actual': actual.hex(),
        })


class OutOfBoundsError(ExecutionError):
    """Raised when a target range falls outside the buffer."""

    def __init__(self, message: str, address: int, length: int, size: int):
        super().__init__(message, "OUT_OF_BOUNDS", {
            'address': address,
            'length': length,
            'size': size,
        })


class LengthMismatchError(ExecutionError):
    """Raised when a replacement does not fit the data it replaces."""

    def __init__(self, message: str, find_length: int, replace_length: int):
        super().__init__(message, "LENGTH_MISMATCH", {
            'find_length': find_length,
            'replace_length': replace_length,
        })


class InvalidInstructionError(ExecutionError):
    """Raised when an instruction has no recognised variant."""

    def __init__(self, message: str, patch_name: Optional[str] = None):
        details = {}
        if patch_name is not None:
            details['patch'] = patch_name
        super().__init__(message, "INVALID_INSTRUCTION", details)


class UnsupportedEntryError(ExecutionError):
    """Raised when a configured target is not a regular file."""

    def __init__(self, entry_name: str, entry_type: str):
        super().__init__(
            f"not a regular file: {entry_name} (type {entry_type!r})",
            "UNSUPPORTED_ENTRY",
            {'entry': entry_name, 'entry_type': entry_type},
        )


class PatchApplicationError(ExecutionError):
    """Raised when an instruction of an enabled patch fails."""

    def __init__(self, patch_name: str, operation: str, cause: ExecutionError):
        details = dict(cause.details)
        details.update({'patch': patch_name, 'operation': operation,
                        'cause': cause.error_code})
        super().__init__(
            f"could not apply patch `{patch_name}`: {operation}: {cause}",
            "PATCH_APPLICATION_ERROR",
            details,
        )
        self.patch_name = patch_name
        self.operation = operation
        self.cause = cause


# =====================================================================================================
# Output errors
# =====================================================================================================

class OutputError(BaseError):
    """Raised when the patched archive cannot be written."""

    def __init__(self, message: str, file_path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        output_details = details or {}
        if file_path:
            output_details['file_path'] = str(file_path)
        super().__init__(message, "OUTPUT_ERROR", output_details)
