"""Availability supervision for the state authority.

:class:`BackoffPolicy` is the retry schedule for whole initialisation
attempts; :class:`AvailabilitySupervisor` polls the authority's liveness
probe inside one attempt. Both take an injected ``sleep`` (and the
supervisor a ``clock``) so they can be driven without real timers.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import BaseModel, Field

from worldvar.config.models import AvailabilityConfig
from worldvar.domain.errors import WorldVarError
from worldvar.domain.state import AvailabilityState
from worldvar.domain.types import AvailabilityStatus
from worldvar.domain.values import VariableTree, visible_keys

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]
Probe = Callable[[], bool | Awaitable[bool]]


class BackoffPolicy(BaseModel):
    """Linear backoff: attempt *n* is followed by ``base_delay * n`` seconds.

    Examples:
        >>> [BackoffPolicy().delay_for(n) for n in (1, 2, 3)]
        [0.5, 1.0, 1.5]
    """

    model_config = {"frozen": True}

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=0.5, ge=0.0)

    @classmethod
    def from_config(cls, config: AvailabilityConfig) -> BackoffPolicy:
        return cls(max_attempts=config.max_attempts, base_delay=config.base_delay)

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * attempt

    async def run(
        self,
        operation: Callable[[int], Awaitable[_T]],
        sleep: Sleep = asyncio.sleep,
        *,
        retry_on: tuple[type[BaseException], ...] = (WorldVarError,),
    ) -> _T:
        """Call ``operation(attempt)`` until it returns or attempts run out.

        Only exceptions in *retry_on* are retried; the last one is re-raised.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation(attempt)
            except retry_on as exc:
                if attempt >= self.max_attempts:
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    "Attempt %d/%d failed (%s), retrying in %.2fs",
                    attempt,
                    self.max_attempts,
                    exc,
                    delay,
                )
                await sleep(delay)
        msg = "unreachable"
        raise AssertionError(msg)


class AvailabilitySupervisor:
    """Poll an authority probe until it answers or the wait runs out.

    State moves ``unknown -> waiting(n) -> ready | unavailable``. The
    optional *on_ready* coroutine runs once, on the first transition to
    ready; :meth:`reset` re-arms it.
    """

    def __init__(
        self,
        probe: Probe,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
        on_ready: Callable[[], Awaitable[Any]] | None = None,
    ) -> None:
        self._probe = probe
        self._clock = clock
        self._sleep = sleep
        self._on_ready = on_ready
        self._ready_fired = False
        self._state = AvailabilityState()

    @property
    def state(self) -> AvailabilityState:
        return self._state

    def reset(self) -> None:
        self._state = AvailabilityState()
        self._ready_fired = False

    async def _probe_once(self) -> bool:
        try:
            answer = self._probe()
            if inspect.isawaitable(answer):
                answer = await answer
        except Exception:
            logger.debug("Availability probe raised", exc_info=True)
            return False
        return bool(answer)

    async def wait_ready(self, max_wait: float, poll_interval: float) -> AvailabilityState:
        """Probe every *poll_interval* seconds for at most *max_wait* seconds."""
        start = self._clock()
        polls = 0
        while True:
            if await self._probe_once():
                self._state = AvailabilityState(
                    status=AvailabilityStatus.READY, retry_count=polls
                )
                break
            polls += 1
            if self._clock() - start >= max_wait:
                logger.warning("Authority unavailable after %.2fs (%d polls)", max_wait, polls)
                self._state = AvailabilityState(
                    status=AvailabilityStatus.UNAVAILABLE, retry_count=polls
                )
                return self._state
            self._state = AvailabilityState(status=AvailabilityStatus.WAITING, retry_count=polls)
            await self._sleep(poll_interval)

        logger.debug("Authority ready after %d poll(s)", polls)
        if self._on_ready is not None and not self._ready_fired:
            self._ready_fired = True
            try:
                await self._on_ready()
            except Exception:
                self._ready_fired = False
                raise
        return self._state

    async def wait_stable(
        self,
        fetch: Callable[[], Awaitable[VariableTree | None]],
        max_wait: float,
        poll_interval: float,
    ) -> VariableTree | None:
        """Poll *fetch* until two reads in a row show the same non-empty keys.

        Returns the stable tree, or None when *max_wait* elapses first.
        """
        start = self._clock()
        previous: frozenset[str] | None = None
        while True:
            try:
                tree = await fetch()
            except Exception:
                logger.debug("Stability fetch raised", exc_info=True)
                tree = None
            keys = frozenset(visible_keys(tree)) if tree else frozenset()
            if keys and keys == previous:
                return tree
            previous = keys or None
            if self._clock() - start >= max_wait:
                logger.warning("Authority data did not settle within %.2fs", max_wait)
                return None
            await self._sleep(poll_interval)
