"""Value model for the variable tree.

A tree node is one of six kinds: Null, Bool, Number, Text, Array, Object.
Nodes are held as JSON-native Python values (``None``, ``bool``,
``int``/``float``, ``str``, ``list``, ``dict``) and classified with
:func:`kind_of`. ``bool`` is never a Number even though it subclasses ``int``.

Object keys starting with :data:`METADATA_SIGIL` are metadata nodes: they are
hidden from listings but preserved on write.
"""

from __future__ import annotations

import copy
from enum import StrEnum
from typing import Any, TypeAlias

Value: TypeAlias = None | bool | int | float | str | list[Any] | dict[str, Any]
VariableTree: TypeAlias = dict[str, Any]

METADATA_SIGIL = "$"


class ValueKind(StrEnum):
    """Tag for each variant of the value union."""

    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    TEXT = "text"
    ARRAY = "array"
    OBJECT = "object"


def kind_of(value: Any) -> ValueKind:
    """Classify *value* into its :class:`ValueKind`.

    Raises:
        TypeError: If *value* is not JSON-representable.
    """
    match value:
        case None:
            return ValueKind.NULL
        case bool():
            return ValueKind.BOOL
        case int() | float():
            return ValueKind.NUMBER
        case str():
            return ValueKind.TEXT
        case list() | tuple():
            return ValueKind.ARRAY
        case dict():
            return ValueKind.OBJECT
        case _:
            msg = f"Unsupported value type: {type(value).__name__}"
            raise TypeError(msg)


def is_number(value: Any) -> bool:
    """True for int/float values that are not bools."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def values_equal(left: Any, right: Any) -> bool:
    """Deep, kind-aware equality (``1`` does not equal ``True``)."""
    left_kind = kind_of(left)
    if left_kind is not kind_of(right):
        return False
    match left_kind:
        case ValueKind.ARRAY:
            return len(left) == len(right) and all(
                values_equal(a, b) for a, b in zip(left, right, strict=True)
            )
        case ValueKind.OBJECT:
            return left.keys() == right.keys() and all(
                values_equal(left[k], right[k]) for k in left
            )
        case _:
            return bool(left == right)


def clone_value(value: Any) -> Any:
    """Deep copy a value so callers never share mutable nodes with the cache."""
    return copy.deepcopy(value)


def cleared(value: Any) -> Any:
    """Return the empty value of the same kind as *value*.

    Array -> ``[]``, Object -> ``{}``, Text -> ``""``, Number -> ``0``,
    anything else -> ``None``.
    """
    match kind_of(value):
        case ValueKind.ARRAY:
            return []
        case ValueKind.OBJECT:
            return {}
        case ValueKind.TEXT:
            return ""
        case ValueKind.NUMBER:
            return 0
        case ValueKind.NULL | ValueKind.BOOL:
            return None


def is_metadata_key(key: str) -> bool:
    """Whether *key* names a metadata node."""
    return key.startswith(METADATA_SIGIL)


def visible_keys(obj: dict[str, Any]) -> list[str]:
    """Keys of *obj* in insertion order, excluding metadata keys."""
    return [k for k in obj if not is_metadata_key(k)]


def normalize_number(value: float) -> int | float:
    """Collapse integral floats back to ``int`` so JSON output stays tidy."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value
