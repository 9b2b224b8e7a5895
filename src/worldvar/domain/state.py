"""State-level models: authority selectors, snapshots, availability."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from worldvar.domain.types import AvailabilityStatus, Scope
from worldvar.domain.values import clone_value


class Selector(BaseModel):
    """Which authority scope to read from and write to.

    ``message_id`` only applies to the ``message`` scope; ``"latest"``
    addresses the newest message.
    """

    model_config = {"frozen": True}

    scope: Scope = Scope.MESSAGE
    message_id: int | Literal["latest"] = "latest"

    @property
    def key(self) -> str:
        """Stable storage key for this selector."""
        if self.scope == Scope.MESSAGE:
            return f"{self.scope}:{self.message_id}"
        return str(self.scope)


class ReconciliationSnapshot(BaseModel):
    """Deep copy of the tree taken before a commit, used by the integrity guard."""

    model_config = {"frozen": True}

    tree: dict[str, Any] = Field(default_factory=dict)
    top_keys: frozenset[str] = frozenset()

    @classmethod
    def of(cls, tree: dict[str, Any] | None) -> ReconciliationSnapshot:
        copied = clone_value(tree or {})
        return cls(tree=copied, top_keys=frozenset(copied))

    @property
    def is_empty(self) -> bool:
        return not self.top_keys


class AvailabilityState(BaseModel):
    """Authority reachability plus the number of probes spent waiting."""

    model_config = {"frozen": True}

    status: AvailabilityStatus = AvailabilityStatus.UNKNOWN
    retry_count: int = 0

    @property
    def is_ready(self) -> bool:
        return self.status == AvailabilityStatus.READY
