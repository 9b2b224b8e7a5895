"""Lifecycle event dispatch via pluggy, inline or on a ThreadPoolExecutor.

INVARIANT: Plugin failures are warnings, never errors.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from worldvar.plugins.manager import PluginManager

logger = logging.getLogger(__name__)


class EventBus:
    """Dispatch hook calls to registered plugins.

    Parameters:
        plugin_manager: Loaded PluginManager for hook dispatch.
        sync: Call hooks inline (tests, ``--sync``).
        max_workers: ThreadPoolExecutor worker count.
    """

    def __init__(
        self,
        plugin_manager: PluginManager,
        *,
        sync: bool = False,
        max_workers: int = 2,
    ) -> None:
        self._pm = plugin_manager
        self._sync = sync
        self._executor: ThreadPoolExecutor | None = (
            None if sync else ThreadPoolExecutor(max_workers=max_workers)
        )
        self._futures: list[Future[bool]] = []
        self.failures: list[str] = []

    def dispatch(self, hook_name: str, payload: dict[str, Any]) -> None:
        """Call *hook_name* with *payload*, inline or on the pool."""
        if self._sync:
            self._execute_hook(hook_name, payload)
            return
        assert self._executor is not None
        self._futures.append(self._executor.submit(self._execute_hook, hook_name, payload))

    def drain(self) -> int:
        """Wait for queued hook calls. Returns how many of them failed."""
        failed = 0
        for future in self._futures:
            if not future.result(timeout=30):
                failed += 1
        self._futures.clear()
        return failed

    def shutdown(self) -> None:
        """Drain and stop the worker pool."""
        self.drain()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _execute_hook(self, hook_name: str, payload: dict[str, Any]) -> bool:
        hook_fn = getattr(self._pm.hook, hook_name, None)
        if hook_fn is None:
            return True
        try:
            hook_fn(**payload)
        except Exception as exc:
            logger.warning("Hook %s failed: %s", hook_name, exc)
            self.failures.append(f"{hook_name}: {exc}")
            return False
        return True
