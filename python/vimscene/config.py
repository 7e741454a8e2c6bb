# python/vimscene/config.py
# Loader configuration parsing
# Exists to keep CLI, JSON files and keyword overrides mapped onto one dataclass
# RELEVANT FILES: python/vimscene/loader.py, python/vimscene/tools/inspect_vim.py, tests/test_config.py
from __future__ import annotations

import copy
import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional, Union

ConfigSource = Union["LoaderConfig", Mapping[str, Any], str, Path, None]


def _to_bool(value: Any, label: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        key = value.strip().lower()
        if key in ("1", "true", "yes", "on"):
            return True
        if key in ("0", "false", "no", "off"):
            return False
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    raise ValueError(f"{label} must be a boolean, got {value!r}")


@dataclass
class LoaderConfig:
    """Switches for the decode pipeline.

    The transparency threshold and default material color are fixed and
    deliberately not exposed here.
    """
    log_timings: bool = True
    parse_assets: bool = True
    build_scene: bool = True
    decompress: bool = True

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def copy(self) -> "LoaderConfig":
        return copy.deepcopy(self)

    def validate(self) -> None:
        for f in fields(self):
            if not isinstance(getattr(self, f.name), bool):
                raise ValueError(f"{f.name} must be a boolean")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], default: Optional["LoaderConfig"] = None) -> "LoaderConfig":
        base = default.copy() if default is not None else cls()
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown loader config keys: {', '.join(unknown)}")
        for key, value in data.items():
            setattr(base, key, _to_bool(value, key))
        base.validate()
        return base


def _load_from_path(path: Path) -> Mapping[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, Mapping):
        raise ValueError(f"Loader config {path} must contain a JSON object")
    return data


def load_loader_config(config: ConfigSource = None, overrides: Optional[Mapping[str, Any]] = None) -> LoaderConfig:
    """Build a :class:`LoaderConfig` from a config, mapping, JSON path, or None."""
    if config is None:
        base = LoaderConfig()
    elif isinstance(config, LoaderConfig):
        base = config.copy()
    elif isinstance(config, (str, Path)):
        base = LoaderConfig.from_mapping(_load_from_path(Path(config)))
    elif isinstance(config, Mapping):
        base = LoaderConfig.from_mapping(config)
    else:
        raise TypeError(f"Unsupported config source: {type(config).__name__}")

    if overrides:
        filtered = {k: v for k, v in overrides.items() if v is not None}
        base = LoaderConfig.from_mapping(filtered, default=base)
    return base
