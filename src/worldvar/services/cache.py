"""StateCache — the local copy of the authority's variable tree.

Readers get deep copies. Only the reconciliation engine writes, through
:meth:`replace`, :meth:`set_path` and :meth:`reset`.
"""

from __future__ import annotations

from typing import Any

from worldvar.domain.paths import MISSING, get_at, set_at, split_path
from worldvar.domain.state import ReconciliationSnapshot
from worldvar.domain.values import VariableTree, clone_value, visible_keys


class StateCache:
    """In-memory tree plus a loaded flag.

    ``is_loaded`` stays False until the first successful pull, so an empty
    tree and "never fetched" can be told apart.
    """

    def __init__(self) -> None:
        self._tree: VariableTree = {}
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def get(self, path: str, default: Any = None) -> Any:
        """Deep copy of the value at *path*, or *default* when absent."""
        value = get_at(self._tree, split_path(path))
        if value is MISSING:
            return default
        return clone_value(value)

    def contains(self, path: str) -> bool:
        return get_at(self._tree, split_path(path)) is not MISSING

    def keys(self) -> list[str]:
        """Visible top-level keys."""
        return visible_keys(self._tree)

    def tree(self) -> VariableTree:
        """Deep copy of the whole tree."""
        return clone_value(self._tree)

    def snapshot(self) -> ReconciliationSnapshot:
        return ReconciliationSnapshot.of(self._tree)

    # --- writes: reconciliation engine only ---

    def set_path(self, path: str, value: Any) -> None:
        """Write *value* at *path*, creating intermediate objects."""
        set_at(self._tree, split_path(path), clone_value(value))

    def replace(self, tree: VariableTree) -> None:
        """Swap in a new tree wholesale and mark the cache loaded."""
        self._tree = clone_value(tree)
        self._loaded = True

    def reset(self) -> None:
        self._tree = {}
        self._loaded = False
