"""SubscriptionBus — typed path and cycle notifications.

Two channels: :class:`~worldvar.domain.events.PathChanged` goes to
subscribers whose prefix matches the changed path, and
:class:`~worldvar.domain.events.CycleCompleted` goes to every cycle
listener. Callbacks run synchronously in registration order.

INVARIANT: A failing callback is logged and skipped; it never reaches the
publisher or the other callbacks.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass

from worldvar.domain.events import CycleCompleted, PathChanged
from worldvar.domain.paths import is_prefix

logger = logging.getLogger(__name__)

PathCallback = Callable[[PathChanged], None]
CycleCallback = Callable[[CycleCompleted], None]


@dataclass(frozen=True)
class Subscription:
    """A path-prefix registration. An empty prefix matches every path."""

    id: int
    path_prefix: str
    callback: PathCallback

    def matches(self, path: str) -> bool:
        return is_prefix(self.path_prefix, path)


class Unsubscribe:
    """Handle returned by every registration. Calling it twice is harmless."""

    def __init__(self, remove: Callable[[], None]) -> None:
        self._remove: Callable[[], None] | None = remove

    def __call__(self) -> None:
        if self._remove is not None:
            self._remove()
            self._remove = None

    @property
    def active(self) -> bool:
        return self._remove is not None


class SubscriptionBus:
    """Fan-out of committed changes to in-process listeners."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._paths: dict[int, Subscription] = {}
        self._cycles: dict[int, CycleCallback] = {}

    def subscribe(self, path_prefix: str, callback: PathCallback) -> Unsubscribe:
        """Call *callback* for every committed change under *path_prefix*."""
        sub = Subscription(next(self._ids), path_prefix.strip(), callback)
        self._paths[sub.id] = sub
        return Unsubscribe(lambda: self._paths.pop(sub.id, None))

    def on_cycle_complete(self, callback: CycleCallback) -> Unsubscribe:
        """Call *callback* once per finished reconciliation cycle."""
        key = next(self._ids)
        self._cycles[key] = callback
        return Unsubscribe(lambda: self._cycles.pop(key, None))

    def publish_path(self, event: PathChanged) -> int:
        """Deliver *event* to matching subscribers. Returns failure count."""
        failures = 0
        for sub in list(self._paths.values()):
            if not sub.matches(event.path):
                continue
            try:
                sub.callback(event)
            except Exception:
                failures += 1
                logger.warning(
                    "Path subscriber %r failed for %s", sub.path_prefix, event.path, exc_info=True
                )
        return failures

    def publish_cycle(self, event: CycleCompleted) -> int:
        """Deliver *event* to every cycle listener. Returns failure count."""
        failures = 0
        for callback in list(self._cycles.values()):
            try:
                callback(event)
            except Exception:
                failures += 1
                logger.warning("Cycle listener failed for %s", event.cycle_id, exc_info=True)
        return failures

    @property
    def subscriber_count(self) -> int:
        return len(self._paths) + len(self._cycles)
