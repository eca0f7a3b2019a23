#!/usr/bin/env python3
# -*-coding: utf-8-*-
"""fwpatcher - Configuration Package.

The run configuration is a small YAML file naming the input firmware zip,
the output archive, the run log and the patch file for every binary that
should be patched.
"""

import logging

logger = logging.getLogger(__name__)

from .models import RunConfig, normalize_entry_name, validate_config  # noqa: E402
from .io import DEFAULT_CONFIG_NAME, get_config_path, load_config, parse_config  # noqa: E402
from .schema import validate_config_schema  # noqa: E402

__all__ = [
    'RunConfig',
    'DEFAULT_CONFIG_NAME',
    'get_config_path',
    'load_config',
    'normalize_entry_name',
    'parse_config',
    'validate_config',
    'validate_config_schema',
]
