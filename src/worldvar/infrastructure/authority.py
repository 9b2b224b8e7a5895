"""State authority protocol plus the in-process implementation.

An authority owns the canonical tree. It is read with ``pull``, written
with ``push``, and reports its own changes through an event stream:
``UpdateStarted``, one ``SingleUpdated`` per changed leaf, then
``UpdateEnded``. Events are delivered on the running event loop after the
call that caused them has returned, the way a remote authority would.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from worldvar.domain.errors import AuthorityError
from worldvar.domain.events import (
    AuthorityEvent,
    ContextSwitched,
    SingleUpdated,
    UpdateEnded,
    UpdateStarted,
)
from worldvar.domain.paths import diff_leaves
from worldvar.domain.state import Selector
from worldvar.domain.values import VariableTree, clone_value

logger = logging.getLogger(__name__)

EventHandler = Callable[[AuthorityEvent], Any]


@runtime_checkable
class StateAuthority(Protocol):
    """What the reconciliation engine needs from an authority."""

    def is_available(self) -> bool: ...

    async def pull(self, selector: Selector) -> VariableTree | None: ...

    async def push(self, tree: VariableTree, selector: Selector) -> None: ...

    def subscribe(self, handler: EventHandler) -> Callable[[], None]: ...


class BaseAuthority:
    """Listener registry and event scheduling shared by authorities."""

    def __init__(self, *, event_delay: float = 0.0, silent: bool = False) -> None:
        self._handlers: list[EventHandler] = []
        self.event_delay = event_delay
        self.silent = silent

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def emit(self, event: AuthorityEvent) -> None:
        """Deliver *event* to every handler now. Handler errors are logged."""
        for handler in list(self._handlers):
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    asyncio.get_running_loop().create_task(result)
            except Exception:
                logger.warning("Authority event handler failed", exc_info=True)

    def emit_update(self, old: VariableTree, new: VariableTree) -> None:
        """Schedule the event sequence describing ``old -> new``."""
        if self.silent:
            logger.debug("Silent authority: update events suppressed")
            return
        events: list[AuthorityEvent] = [UpdateStarted(tree=clone_value(old))]
        events.extend(
            SingleUpdated(path=path, old_value=before, new_value=after)
            for path, before, after in diff_leaves(old, new)
        )
        events.append(UpdateEnded(tree=clone_value(new)))
        self._schedule(events)

    def emit_context_switch(self, selector: Selector | None) -> None:
        self._schedule([ContextSwitched(selector=selector)])

    def _schedule(self, events: list[AuthorityEvent]) -> None:
        def deliver() -> None:
            for event in events:
                self.emit(event)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            deliver()
            return
        if self.event_delay > 0:
            loop.call_later(self.event_delay, deliver)
        else:
            loop.call_soon(deliver)


class MemoryAuthority(BaseAuthority):
    """In-process authority holding one tree per selector.

    Knobs for exercising the engine:

    - ``available``: what :meth:`is_available` answers.
    - ``latency``: seconds each pull/push waits before running.
    - ``fail_push``: make :meth:`push` raise :class:`AuthorityError`.
    - ``silent``: accept pushes without emitting any events.
    - ``transform``: rewrite each pushed tree before storing it, to
      simulate an authority that mangles data.
    """

    def __init__(
        self,
        tree: VariableTree | None = None,
        *,
        selector: Selector | None = None,
        available: bool = True,
        latency: float = 0.0,
        event_delay: float = 0.0,
        fail_push: bool = False,
        silent: bool = False,
        transform: Callable[[VariableTree], VariableTree] | None = None,
    ) -> None:
        super().__init__(event_delay=event_delay, silent=silent)
        self.selector = selector or Selector()
        self._trees: dict[str, VariableTree] = {}
        if tree is not None:
            self._trees[self.selector.key] = clone_value(tree)
        self.available = available
        self.latency = latency
        self.fail_push = fail_push
        self.transform = transform
        self.push_count = 0
        self.pull_count = 0

    def is_available(self) -> bool:
        return self.available

    async def pull(self, selector: Selector) -> VariableTree | None:
        if self.latency:
            await asyncio.sleep(self.latency)
        self.pull_count += 1
        tree = self._trees.get(selector.key)
        return None if tree is None else clone_value(tree)

    async def push(self, tree: VariableTree, selector: Selector) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.fail_push:
            raise AuthorityError("Push rejected", selector=selector.key)
        self.push_count += 1
        old = self._trees.get(selector.key, {})
        new = clone_value(tree)
        if self.transform is not None:
            new = self.transform(new)
        self._trees[selector.key] = new
        self.emit_update(old, new)

    # --- external-writer simulation ---

    def peek(self, selector: Selector | None = None) -> VariableTree:
        """Stored tree for *selector*, without counting as a pull."""
        return clone_value(self._trees.get((selector or self.selector).key, {}))

    def write_external(self, tree: VariableTree, selector: Selector | None = None) -> None:
        """Replace a tree as if another writer did it, emitting events."""
        key = (selector or self.selector).key
        old = self._trees.get(key, {})
        self._trees[key] = clone_value(tree)
        self.emit_update(old, tree)

    def switch_context(self, selector: Selector, tree: VariableTree | None = None) -> None:
        """Move to *selector* (optionally seeding it) and announce the switch."""
        self.selector = selector
        if tree is not None:
            self._trees[selector.key] = clone_value(tree)
        self.emit_context_switch(selector)
