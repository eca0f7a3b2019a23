"""YAML loading shared by the run configuration and the patch files.

Both documents are read with ``yaml.SafeLoader`` semantics, except that a
mapping may not repeat a key: a repeated patch name or config key would
otherwise silently replace the earlier one.
"""

from __future__ import annotations

from typing import Any

import yaml


class DuplicateKeyError(yaml.constructor.ConstructorError):
    """Raised when a YAML mapping repeats a key."""


class StrictSafeLoader(yaml.SafeLoader):
    """SafeLoader that rejects duplicate mapping keys."""

    def construct_mapping(self, node, deep=False):
        if isinstance(node, yaml.MappingNode):
            seen = set()
            for key_node, _ in node.value:
                if key_node.tag == "tag:yaml.org,2002:merge":
                    continue
                key = self.construct_object(key_node, deep=deep)
                try:
                    duplicate = key in seen
                except TypeError:
                    # unhashable keys are reported by the base constructor
                    continue
                if duplicate:
                    raise DuplicateKeyError(
                        "while constructing a mapping", node.start_mark,
                        f"found duplicate key {key!r}", key_node.start_mark,
                    )
                seen.add(key)
        return super().construct_mapping(node, deep=deep)


def load_yaml(raw: str) -> Any:
    """Parse a YAML document, rejecting duplicate keys."""
    return yaml.load(raw, Loader=StrictSafeLoader)  # nosec B506
