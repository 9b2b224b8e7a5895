"""BaseService — shared foundation for worldvar services.

Services receive their collaborators at construction time and report
expected failures through :class:`~worldvar.services.result.ServiceResult`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from worldvar.plugins.event_bus import EventBus

logger = logging.getLogger(__name__)


class BaseService:
    """Base for service classes that emit plugin lifecycle events."""

    def __init__(self, *, event_bus: EventBus | None = None) -> None:
        self._event_bus = event_bus

    def _dispatch_event(
        self,
        hook_name: str,
        payload: dict[str, Any],
        warnings: list[str],
    ) -> None:
        """Dispatch a lifecycle event. No-op without an event bus.

        INVARIANT: Plugin failures are warnings, never errors.
        """
        bus = self._event_bus
        if bus is None:
            return
        try:
            bus.dispatch(hook_name, payload)
        except Exception:
            logger.debug("Event dispatch failed for %s", hook_name, exc_info=True)
            warnings.append(f"Event dispatch failed for {hook_name}")
