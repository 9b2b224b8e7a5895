"""Pluggy hook specifications for reconciliation lifecycle events.

All hooks are notifications: return values are ignored and exceptions are
logged by :class:`~worldvar.plugins.event_bus.EventBus`.
"""

from __future__ import annotations

import pluggy

hookspec = pluggy.HookspecMarker("worldvar")
hookimpl = pluggy.HookimplMarker("worldvar")


class WorldVarHookSpec:
    """Hook specifications for the worldvar plugin system."""

    @hookspec
    def post_cycle(
        self,
        cycle_id: str,
        status: str,
        applied: int,
        failed: int,
    ) -> None:
        """Called after every reconciliation cycle, whatever its outcome."""

    @hookspec
    def post_integrity_violation(
        self,
        cycle_id: str,
        reason: str,
        previous_keys: list[str],
        candidate_keys: list[str],
    ) -> None:
        """Called when a pulled tree is rejected and the cycle rolled back."""

    @hookspec
    def post_context_switch(self, scope: str) -> None:
        """Called after the cache was reset and re-initialised."""
