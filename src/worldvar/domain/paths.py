"""Dot-delimited path addressing over the variable tree.

Paths are case-sensitive and may contain any Unicode key segments. There is
no escape for a literal dot inside a key: every dot is a separator.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator
from typing import Any

from worldvar.domain.errors import PathError
from worldvar.domain.values import values_equal

SEPARATOR = "."


class _Missing:
    """Marker for an absent node (distinct from a stored ``null``)."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def split_path(path: str) -> tuple[str, ...]:
    """Split *path* into segments, rejecting empty paths and blank segments.

    Segments are kept verbatim: ``"MC. gold"`` names the key ``" gold"``.

    Examples:
        >>> split_path("MC.资源.金币")
        ('MC', '资源', '金币')
    """
    if not path or not path.strip():
        raise PathError("Path must not be empty", path=path)
    segments = tuple(path.split(SEPARATOR))
    if any(not part.strip() for part in segments):
        raise PathError(f"Path {path!r} contains an empty segment", path=path)
    return segments


def join_path(*parts: str) -> str:
    """Join path parts with the separator, skipping empty parts."""
    return SEPARATOR.join(p for p in parts if p)


def is_prefix(prefix: str, path: str) -> bool:
    """True if *prefix* is empty, equals *path*, or is a dot-boundary prefix.

    ``MC.资源`` matches ``MC.资源.金币`` but not ``MC.资源库``.
    """
    if not prefix:
        return True
    return path == prefix or path.startswith(prefix + SEPARATOR)


def get_at(tree: dict[str, Any], segments: tuple[str, ...]) -> Any:
    """Return the node at *segments*, or :data:`MISSING` if absent."""
    current: Any = tree
    for key in segments:
        if not isinstance(current, dict) or key not in current:
            return MISSING
        current = current[key]
    return current


def set_at(tree: dict[str, Any], segments: tuple[str, ...], value: Any) -> None:
    """Write *value* at *segments*, creating missing intermediate objects.

    A ``null`` intermediate counts as missing and is replaced.

    Raises:
        PathError: An intermediate segment holds a non-object value.
    """
    current = tree
    for depth, key in enumerate(segments[:-1]):
        child = current.get(key)
        if child is None:
            child = {}
            current[key] = child
        elif not isinstance(child, dict):
            where = SEPARATOR.join(segments[: depth + 1])
            msg = f"Cannot descend into {where!r}: holds {type(child).__name__}, not an object"
            raise PathError(msg, path=SEPARATOR.join(segments), at=where)
        current = child
    current[segments[-1]] = value


def diff_leaves(old: Any, new: Any, prefix: str = "") -> Iterator[tuple[str, Any, Any]]:
    """Yield ``(path, old, new)`` for every leaf that differs.

    Objects are walked key by key; any other change is reported at the path
    where it happens. Absent nodes are reported as ``None``.

    Examples:
        >>> list(diff_leaves({"a": {"b": 1}}, {"a": {"b": 2, "c": 3}}))
        [('a.b', 1, 2), ('a.c', None, 3)]
    """
    if isinstance(old, dict) and isinstance(new, dict):
        for key in [*old, *(k for k in new if k not in old)]:
            yield from diff_leaves(old.get(key), new.get(key), join_path(prefix, key))
        return
    if prefix and not values_equal(old, new):
        yield prefix, copy.deepcopy(old), copy.deepcopy(new)
