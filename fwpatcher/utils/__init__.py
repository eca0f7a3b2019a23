"""fwpatcher utility helpers."""

from .yaml_loader import DuplicateKeyError, StrictSafeLoader, load_yaml

__all__ = [
    "DuplicateKeyError",
    "StrictSafeLoader",
    "load_yaml",
]
