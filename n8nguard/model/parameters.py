# n8nguard/model/parameters.py
"""
Helpers over a node's `parameters` map.

Parameters are node-type specific and open-ended, so they stay plain dicts;
the engines only need merging, dotted-path access and a walk over string
leaves.
"""
from __future__ import annotations

import copy
from typing import Any, Dict, Iterator, List, Tuple

_MISSING = object()


def deep_merge(base: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge `changes` into `base` in place and return `base`.
    Nested dicts are merged key by key; any other value (lists included)
    replaces the old one.
    """
    for key, value in changes.items():
        current = base.get(key, _MISSING)
        if isinstance(value, dict) and isinstance(current, dict):
            deep_merge(current, value)
        else:
            base[key] = copy.deepcopy(value)
    return base


def split_path(path: str) -> List[str]:
    return [p for p in path.split(".") if p != ""]


def get_path(obj: Dict[str, Any], path: str, default: Any = None) -> Any:
    """get_path(node, 'parameters.options.timeout')"""
    current: Any = obj
    for key in split_path(path):
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return current


def set_path(obj: Dict[str, Any], path: str, value: Any) -> None:
    """Set a dotted path, creating (or replacing non-dict) intermediates."""
    keys = split_path(path)
    if not keys:
        raise ValueError("empty property path")
    current = obj
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = copy.deepcopy(value)


def has_path(obj: Dict[str, Any], path: str) -> bool:
    return get_path(obj, path, _MISSING) is not _MISSING


def iter_string_leaves(obj: Any, path: str = "") -> Iterator[Tuple[str, str]]:
    """Yield (path, value) for every string leaf, e.g. ('options.headers[0].value', '...')."""
    if isinstance(obj, str):
        yield path, obj
    elif isinstance(obj, list):
        for i, item in enumerate(obj):
            yield from iter_string_leaves(item, f"{path}[{i}]")
    elif isinstance(obj, dict):
        for key, value in obj.items():
            yield from iter_string_leaves(value, f"{path}.{key}" if path else str(key))
