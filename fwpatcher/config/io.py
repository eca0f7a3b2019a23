"""Config I/O utilities."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Union

import pydantic
import yaml

from ..exceptions import ConfigurationError, UnsupportedFormatError, ValidationError
from ..utils import load_yaml
from .models import RunConfig, validate_config
from .schema import validate_config_schema

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "kobopatch.yaml"


def get_config_path(base_dir: Optional[Union[str, Path]] = None) -> Path:
    base = Path(base_dir) if base_dir is not None else Path.cwd()
    return base / DEFAULT_CONFIG_NAME


def parse_config(raw: str, config_path: Optional[Path] = None) -> RunConfig:
    """Parse and validate configuration text.

    Relative paths are resolved against the directory of ``config_path``
    (or the working directory when parsing text without a file).
    """
    source = str(config_path) if config_path is not None else None

    try:
        data: Any = load_yaml(raw)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Could not parse config: {exc}", "CONFIG_PARSE_ERROR", source) from exc

    ok, message, field = validate_config_schema(data)
    if not ok:
        raise ValidationError(f"Invalid config: {message}", field_name=field,
                              details={'file_path': source} if source else None)

    try:
        config = validate_config(data)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        field_name = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(f"Invalid config: {exc}", field_name=field_name) from exc

    if not config.use_new_patch_format:
        raise UnsupportedFormatError(file_path=source)

    base_dir = config_path.parent if config_path is not None else Path.cwd()
    return config.resolve_paths(base_dir.resolve())


def load_config(config_path: Optional[Union[str, Path]] = None) -> RunConfig:
    """Read the run configuration from disk.

    Raises:
        ConfigurationError: file missing or not valid YAML
        ValidationError: required fields missing or of the wrong type
        UnsupportedFormatError: the legacy patch format was requested
    """
    path = Path(config_path) if config_path is not None else get_config_path()
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Could not read {path}: {exc}", "CONFIG_READ_ERROR", str(path)) from exc

    config = parse_config(raw, path)
    logger.debug("Loaded config from %s: %r", path, config)
    return config
