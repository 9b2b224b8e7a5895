"""Event payloads: authority event stream and subscription bus channels."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from worldvar.domain.state import Selector
from worldvar.domain.types import CyclePhase

# --- Authority event stream ---


class UpdateStarted(BaseModel):
    """The authority began rewriting its tree."""

    model_config = {"frozen": True}

    tree: dict[str, Any] = Field(default_factory=dict)


class SingleUpdated(BaseModel):
    """One path changed inside the authority."""

    model_config = {"frozen": True}

    path: str
    old_value: Any = None
    new_value: Any = None


class UpdateEnded(BaseModel):
    """The authority finished rewriting its tree."""

    model_config = {"frozen": True}

    tree: dict[str, Any] = Field(default_factory=dict)


class ContextSwitched(BaseModel):
    """The authority moved to a different context (e.g. a new session)."""

    model_config = {"frozen": True}

    selector: Selector | None = None


AuthorityEvent = UpdateStarted | SingleUpdated | UpdateEnded | ContextSwitched


# --- Subscription bus channels ---


class PathChanged(BaseModel):
    """A committed change at ``path``."""

    model_config = {"frozen": True}

    path: str
    old_value: Any = None
    new_value: Any = None
    cycle_id: str | None = None


class CycleCompleted(BaseModel):
    """A reconciliation cycle (or external refresh) finished."""

    model_config = {"frozen": True}

    cycle_id: str
    phase: CyclePhase
    applied: int = 0
    failed: int = 0
    tree: dict[str, Any] = Field(default_factory=dict)
