"""Config file I/O for JSON, YAML and TOML.

The format always follows the file extension:
  .json        → JSON
  .yaml / .yml → YAML  (pyyaml)
  .toml        → TOML  (read: stdlib tomllib; write: tomli-w)
"""
from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any

import tomli_w
import yaml

_YAML_EXTS = {".yaml", ".yml"}
_TOML_EXTS = {".toml"}
_JSON_EXTS = {".json"}

_CONFIG_NAMES = ["config.json", "config.yaml", "config.yml", "config.toml"]


def find_config(directory: Path) -> Path | None:
    """Return the first existing config file found in *directory*."""
    for name in _CONFIG_NAMES:
        p = directory / name
        if p.is_file():
            return p
    return None


def _check_ext(path: Path) -> str:
    ext = path.suffix.lower()
    if ext not in _YAML_EXTS | _TOML_EXTS | _JSON_EXTS:
        raise ValueError(f"Unsupported config format: {path.name} (use .json, .yaml, .yml or .toml)")
    return ext


def load_config(path: Path) -> dict[str, Any]:
    """Load a config file; format is inferred from the file extension."""
    ext = _check_ext(path)
    if ext in _YAML_EXTS:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    elif ext in _TOML_EXTS:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    else:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Top level of {path.name} must be a mapping, got {type(data).__name__}")
    return data


def save_config(data: dict[str, Any], path: Path) -> None:
    """Save *data* to *path*; format is inferred from the file extension."""
    ext = _check_ext(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if ext in _YAML_EXTS:
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, allow_unicode=True, sort_keys=False, default_flow_style=False)
    elif ext in _TOML_EXTS:
        with open(path, "wb") as f:
            tomli_w.dump(data, f)
    else:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
