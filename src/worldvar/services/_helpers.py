"""Shared service-layer helper functions."""

from __future__ import annotations

import uuid


def new_cycle_id() -> str:
    """Short opaque identifier for one reconciliation cycle.

    Examples:
        >>> len(new_cycle_id())
        12
    """
    return uuid.uuid4().hex[:12]
