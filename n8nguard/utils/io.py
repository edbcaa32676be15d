# n8nguard/utils/io.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Union

import yaml

# -------- Path helpers --------
PathLike = Union[str, Path]


def to_path(p: PathLike) -> Path:
    """Convert string-like to pathlib.Path."""
    return p if isinstance(p, Path) else Path(p)


def ensure_dir(p: PathLike) -> Path:
    """Ensure a directory exists and return it."""
    d = to_path(p)
    d.mkdir(parents=True, exist_ok=True)
    return d


def ensure_parent(path: PathLike) -> Path:
    """Ensure parent directory exists for a file path."""
    p = to_path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    return p


# -------- JSON / YAML --------
def read_json(path: PathLike) -> Any:
    """Load JSON file with UTF-8."""
    with to_path(path).open("r", encoding="utf-8") as f:
        return json.load(f)


def write_json(path: PathLike, data: Any, indent: int = 2) -> Path:
    """Write JSON atomically, pretty-formatted."""
    p = ensure_parent(path)
    tmp = p.with_suffix(p.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=indent)
    tmp.replace(p)
    return p


def read_yaml(path: PathLike) -> Any:
    with to_path(path).open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def write_yaml(path: PathLike, data: Any) -> Path:
    """Write YAML atomically."""
    p = ensure_parent(path)
    tmp = p.with_suffix(p.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
    tmp.replace(p)
    return p


# -------- Generic loader --------
def load_any(path: PathLike) -> Any:
    """
    Load data by extension:
      - .json -> JSON
      - .yaml/.yml -> YAML
    """
    p = to_path(path)
    suf = p.suffix.lower()
    if suf == ".json":
        return read_json(p)
    if suf in (".yaml", ".yml"):
        return read_yaml(p)
    raise ValueError(f"Unsupported extension: {suf} for {p}")


def dump_any(path: PathLike, data: Any) -> Path:
    """Write data by extension (.json or .yaml/.yml)."""
    p = to_path(path)
    suf = p.suffix.lower()
    if suf in (".yaml", ".yml"):
        return write_yaml(p, data)
    if suf == ".json":
        return write_json(p, data)
    raise ValueError(f"Unsupported extension: {suf} for {p}")
