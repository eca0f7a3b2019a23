"""fwpatcher - declarative binary patching of firmware update archives."""

from .version import load_version

__all__ = ["load_version"]
