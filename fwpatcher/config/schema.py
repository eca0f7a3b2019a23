"""Config schema validation helpers."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import jsonschema

SCHEMA_PATH = Path(__file__).with_name("run-config.schema.json")


def load_schema(schema_path: Optional[Path] = None) -> Dict[str, Any]:
    path = Path(schema_path) if schema_path is not None else SCHEMA_PATH
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def validate_config_schema(
    config_data: Any, schema_path: Optional[Path] = None
) -> Tuple[bool, Optional[str], Optional[str]]:
    """Check raw config data against the bundled JSON schema.

    Returns:
        (ok, message, field) where field is the dotted path of the
        offending key, or the missing key for ``required`` failures
    """
    schema = load_schema(schema_path)
    validator = jsonschema.Draft7Validator(schema)
    error = jsonschema.exceptions.best_match(validator.iter_errors(config_data))
    if error is None:
        return True, None, None

    field = ".".join(str(part) for part in error.absolute_path) or None
    if error.validator == "required" and field is None:
        missing = [key for key in error.validator_value if key not in (config_data or {})]
        field = missing[0] if missing else None
    return False, error.message, field
