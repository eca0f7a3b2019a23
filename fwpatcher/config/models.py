from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator


def normalize_entry_name(name: str) -> str:
    """Strip one leading ``./`` from a tar member name."""
    if name.startswith("./"):
        return name[2:]
    return name


class RunConfig(BaseModel):
    """Run configuration, read once at startup."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    version: str = Field(min_length=1)
    input_path: Path = Field(alias="in")
    output_path: Path = Field(alias="out")
    log_path: Path = Field(alias="log")
    use_new_patch_format: bool = Field(default=False, alias="useNewPatchFormat")
    # target filename inside the inner payload -> patch file
    patches: Dict[str, Path] = Field(default_factory=dict)

    @field_validator("patches", mode="before")
    @classmethod
    def _normalize_targets(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            targets: Dict[str, Any] = {}
            for key, patch_file in value.items():
                target = normalize_entry_name(str(key))
                if target in targets:
                    raise ValueError(f"duplicate target `{target}` (given as `{key}`)")
                targets[target] = patch_file
            return targets
        return value

    def resolve_paths(self, base_dir: Path) -> "RunConfig":
        """Return a copy with relative paths anchored at ``base_dir``."""

        def _anchor(path: Path) -> Path:
            return path if path.is_absolute() else (base_dir / path)

        return self.model_copy(update={
            "input_path": _anchor(self.input_path),
            "output_path": _anchor(self.output_path),
            "log_path": _anchor(self.log_path),
            "patches": {target: _anchor(path) for target, path in self.patches.items()},
        })

    def target_for(self, entry_name: str) -> Path | None:
        """Patch file configured for a tar member, if any."""
        return self.patches.get(normalize_entry_name(entry_name))


def validate_config(payload: Dict[str, Any]) -> RunConfig:
    return RunConfig.model_validate(payload)
