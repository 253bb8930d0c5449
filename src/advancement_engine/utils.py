"""
Helpers for working with nested records addressed by dotted key paths.

Persisted character data is a plain nested dict. Updates arrive as flat
``{"a.b.c": value}`` patches, the same shape advancement changes use.
"""

from __future__ import annotations

import re
from copy import deepcopy
from typing import Any


class _Delete:
    """Sentinel marking a key for removal inside an update patch."""

    _instance: "_Delete | None" = None

    def __new__(cls) -> "_Delete":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DELETE"

    def __deepcopy__(self, memo: dict) -> "_Delete":
        return self


DELETE = _Delete()

_MISSING = object()


def slugify(name: str) -> str:
    """Convert a display name into an identifier (lowercase, hyphenated)."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.strip().lower())
    return slug.strip("-")


def split_path(path: str) -> list[str]:
    return [p for p in path.split(".") if p]


def get_property(data: dict[str, Any], path: str, default: Any = None) -> Any:
    """Read a value from a nested dict using a dotted path.

    Args:
        data: The nested record.
        path: Dotted key path, e.g. ``"system.abilities.strength.value"``.
        default: Returned when any segment is missing.
    """
    current: Any = data
    for part in split_path(path):
        if isinstance(current, dict):
            current = current.get(part, _MISSING)
            if current is _MISSING:
                return default
        else:
            return default
    return current


def has_property(data: dict[str, Any], path: str) -> bool:
    return get_property(data, path, _MISSING) is not _MISSING


def set_property(data: dict[str, Any], path: str, value: Any) -> None:
    """Write a value into a nested dict, creating intermediate dicts."""
    parts = split_path(path)
    current = data
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


def delete_property(data: dict[str, Any], path: str, prune: bool = True) -> bool:
    """Remove a key from a nested dict.

    When ``prune`` is set, parents emptied by the removal are removed too, so
    that deleting the last entry of a subtree leaves no empty shell behind.

    Returns:
        True if the key existed.
    """
    parts = split_path(path)
    trail: list[tuple[dict[str, Any], str]] = []
    current: Any = data
    for part in parts[:-1]:
        if not isinstance(current, dict) or part not in current:
            return False
        trail.append((current, part))
        current = current[part]
    if not isinstance(current, dict) or parts[-1] not in current:
        return False
    del current[parts[-1]]

    if prune:
        for parent, key in reversed(trail):
            child = parent[key]
            if isinstance(child, dict) and not child:
                del parent[key]
            else:
                break
    return True


def apply_patch(data: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Apply a flat dotted-key patch to ``data`` in place.

    Values equal to :data:`DELETE` remove the key. Dict values replace the
    target wholesale, matching how the persistence layer treats records.
    """
    for key in sorted(patch, key=lambda k: k.count(".")):
        value = patch[key]
        if value is DELETE:
            delete_property(data, key)
        else:
            set_property(data, key, deepcopy(value))
    return data


def expand_object(flat: dict[str, Any]) -> dict[str, Any]:
    """Expand ``{"a.b": 1, "a.c": 2}`` into ``{"a": {"b": 1, "c": 2}}``."""
    expanded: dict[str, Any] = {}
    for key, value in flat.items():
        set_property(expanded, key, value)
    return expanded


def flatten_object(data: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Inverse of :func:`expand_object` for dict-only trees."""
    flat: dict[str, Any] = {}
    for key, value in data.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict) and value:
            flat.update(flatten_object(value, path))
        else:
            flat[path] = value
    return flat


def merge_objects(original: dict[str, Any], other: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge ``other`` into a copy of ``original`` and return it."""
    result = deepcopy(original)
    for key, value in other.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge_objects(result[key], value)
        else:
            result[key] = deepcopy(value)
    return result
