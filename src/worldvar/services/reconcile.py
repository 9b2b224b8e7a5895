"""ReconciliationEngine — the single writer between cache and authority.

A cycle clones the cache into a working tree, runs the executor over the
batch, pushes the result, waits for the authority's ``UpdateEnded``, pulls
the authority's tree back, and commits it only if it passes the integrity
guard. Cycles run one at a time in submission order.

While a cycle holds the in-flight marker, authority events caused by the
push are not treated as external refreshes. An external refresh that
arrives in that window is remembered and replayed once the marker clears.

INVARIANT: The cache is replaced wholesale or not at all; a rolled-back
cycle leaves it exactly as it was.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine, Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from worldvar.config.models import WorldVarConfig
from worldvar.domain.commands import (
    BaseCommand,
    CommandBatch,
    ExecutionResult,
    ParseDiagnostic,
    SetCommand,
)
from worldvar.domain.errors import (
    AvailabilityTimeout,
    IntegrityViolation,
    PathError,
    TypeMismatchError,
    WorldVarError,
)
from worldvar.domain.events import (
    AuthorityEvent,
    ContextSwitched,
    CycleCompleted,
    PathChanged,
    SingleUpdated,
    UpdateEnded,
    UpdateStarted,
)
from worldvar.domain.paths import diff_leaves
from worldvar.domain.state import AvailabilityState, ReconciliationSnapshot, Selector
from worldvar.domain.types import CyclePhase
from worldvar.domain.values import VariableTree, clone_value, values_equal
from worldvar.infrastructure.authority import StateAuthority
from worldvar.plugins.event_bus import EventBus
from worldvar.services._helpers import new_cycle_id
from worldvar.services.availability import AvailabilitySupervisor, BackoffPolicy, Sleep
from worldvar.services.base import BaseService
from worldvar.services.bus import SubscriptionBus
from worldvar.services.cache import StateCache
from worldvar.services.executor import CommandExecutor
from worldvar.services.parser import CommandParser
from worldvar.services.result import ServiceError, ServiceResult
from worldvar.services.telemetry import trace_span, traced

logger = logging.getLogger(__name__)

_NO_SWITCH = object()


def check_integrity(
    previous: ReconciliationSnapshot,
    candidate: Any,
    *,
    required_namespaces: Iterable[str] = ("MC",),
    min_key_retention: float = 0.5,
) -> IntegrityViolation | None:
    """Return a violation if *candidate* looks like a corrupted *previous*.

    An empty previous tree accepts anything. Otherwise the candidate must be
    an object, keep at least ``min_key_retention`` of the previous
    top-level key count, and still hold every required namespace the
    previous tree had.
    """
    if previous.is_empty:
        return None
    if not isinstance(candidate, dict):
        return IntegrityViolation(
            f"Authority returned {type(candidate).__name__}, not an object",
            previous_keys=sorted(previous.top_keys),
            candidate_keys=[],
        )

    before = len(previous.top_keys)
    after = len(candidate)
    detail = {"previous_keys": sorted(previous.top_keys), "candidate_keys": sorted(candidate)}
    if after < before * min_key_retention:
        return IntegrityViolation(
            f"Top-level keys dropped from {before} to {after}",
            **detail,
        )
    lost = [ns for ns in required_namespaces if ns in previous.top_keys and ns not in candidate]
    if lost:
        return IntegrityViolation(f"Required namespace(s) missing: {', '.join(lost)}", **detail)
    return None


def _result_row(result: ExecutionResult) -> dict[str, Any]:
    row: dict[str, Any] = {
        "kind": str(result.command.kind),
        "path": result.command.path,
        "success": result.success,
        "old_value": result.old_value,
        "new_value": result.new_value,
    }
    if result.command.comment:
        row["comment"] = result.command.comment
    if result.error is not None:
        row["error"] = {"code": result.error.code, "message": result.error.message}
    return row


def _diagnostic_row(diagnostic: ParseDiagnostic) -> dict[str, Any]:
    return diagnostic.model_dump()


def _set_commands(values: Mapping[str, Any], reason: str | None) -> list[BaseCommand]:
    """SET commands for direct writes. Raises PathError or TypeMismatchError."""
    commands: list[BaseCommand] = []
    for path, value in values.items():
        try:
            commands.append(SetCommand(path=path, value=value, comment=reason))
        except ValidationError as exc:
            first = exc.errors()[0]
            msg = f"Cannot write {path!r}: {first['msg']}"
            if first["loc"][:1] == ("path",):
                raise PathError(msg, path=str(path)) from exc
            raise TypeMismatchError(msg, path=str(path)) from exc
    return commands


class ReconciliationEngine(BaseService):
    """Owns the cache and every write to it.

    Construct one per session and share it; there is no module-level state.

    Usage::

        engine = ReconciliationEngine(MemoryAuthority({"MC": {}}))
        await engine.initialize()
        result = await engine.apply_text("<UpdateVariable>ADD('MC.gold', 5)</UpdateVariable>")
    """

    def __init__(
        self,
        authority: StateAuthority,
        *,
        config: WorldVarConfig | None = None,
        selector: Selector | None = None,
        cache: StateCache | None = None,
        bus: SubscriptionBus | None = None,
        parser: CommandParser | None = None,
        executor: CommandExecutor | None = None,
        event_bus: EventBus | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        super().__init__(event_bus=event_bus)
        self._config = config or WorldVarConfig()
        self.authority = authority
        self.selector = selector or Selector(scope=self._config.store.scope)
        self.cache = cache or StateCache()
        self.bus = bus or SubscriptionBus()
        self.parser = parser or CommandParser(self._config.parser)
        self.executor = executor or CommandExecutor()
        self._sleep = sleep
        self.backoff = BackoffPolicy.from_config(self._config.availability)
        self.supervisor = AvailabilitySupervisor(
            authority.is_available, clock=clock, sleep=sleep, on_ready=self._load
        )

        self._lock = asyncio.Lock()
        self._in_flight = 0
        self._confirmation: asyncio.Event | None = None
        self._pending_refresh = False
        self._pending_switch: Any = _NO_SWITCH
        self._tasks: set[asyncio.Task[Any]] = set()
        self._phase = CyclePhase.IDLE
        self._unsubscribe = authority.subscribe(self.handle_event)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def phase(self) -> CyclePhase:
        return self._phase

    @property
    def is_internal_update(self) -> bool:
        """True while a cycle holds the in-flight marker."""
        return self._in_flight > 0

    @property
    def availability(self) -> AvailabilityState:
        return self.supervisor.state

    def get(self, path: str, default: Any = None) -> Any:
        """Read from the cache. Call :meth:`refresh` first to force a pull."""
        return self.cache.get(path, default)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @traced
    async def submit(self, batch: CommandBatch | Iterable[BaseCommand]) -> ServiceResult:
        """Run one reconciliation cycle for *batch*. Queues behind any in flight."""
        if isinstance(batch, CommandBatch):
            commands, diagnostics = list(batch.commands), list(batch.diagnostics)
        else:
            commands, diagnostics = list(batch), []
        async with self._lock:
            return await self._run_cycle(commands, diagnostics)

    async def apply_text(self, text: str) -> ServiceResult:
        """Parse *text* and submit whatever commands it holds."""
        with trace_span("parse"):
            batch = self.parser.parse(text)
        logger.debug(
            "Parsed %d/%d statement(s), %d diagnostic(s)",
            batch.parsed_count,
            batch.statement_count,
            len(batch.diagnostics),
        )
        return await self.submit(batch)

    async def set_variable(self, path: str, value: Any, reason: str | None = None) -> ServiceResult:
        return await self.set_variables({path: value}, reason)

    async def set_variables(
        self, values: Mapping[str, Any], reason: str | None = None
    ) -> ServiceResult:
        """Write several paths in one cycle, in mapping order.

        Values must be JSON-native; anything else fails with ``TYPE_MISMATCH``
        before a cycle starts.
        """
        try:
            commands = _set_commands(values, reason)
        except WorldVarError as exc:
            return ServiceResult(ok=False, op="submit", error=ServiceError.from_exception(exc))
        return await self.submit(commands)

    async def update_variable(
        self,
        path: str,
        updater: Callable[[Any], Any],
        reason: str | None = None,
    ) -> ServiceResult:
        """Write ``updater(current)`` at *path*.

        The current value is read inside the cycle lock, so no other cycle
        can change it between the read and the write.
        """
        async with self._lock:
            try:
                await self._ensure_loaded()
                commands = _set_commands({path: updater(self.cache.get(path))}, reason)
            except WorldVarError as exc:
                return ServiceResult(ok=False, op="submit", error=ServiceError.from_exception(exc))
            return await self._run_cycle(commands, [])

    async def ensure_namespaces(self) -> ServiceResult:
        """Create each required namespace that is missing as an empty object."""
        async with self._lock:
            try:
                await self._ensure_loaded()
            except WorldVarError as exc:
                return ServiceResult(ok=False, op="submit", error=ServiceError.from_exception(exc))
            missing = [
                ns for ns in self._config.sync.required_namespaces if not self.cache.contains(ns)
            ]
            return await self._run_cycle([SetCommand(path=ns, value={}) for ns in missing], [])

    # ------------------------------------------------------------------
    # Reads from the authority
    # ------------------------------------------------------------------

    @traced
    async def refresh(self) -> ServiceResult:
        """Pull, guard, and replace the cache (an external refresh)."""
        async with self._lock:
            return await self._refresh_locked()

    @traced
    async def initialize(self) -> ServiceResult:
        """Wait for the authority with backoff, then load the cache."""
        async with self._lock:
            return await self._initialize_locked()

    @traced
    async def context_switch(self, selector: Selector | None = None) -> ServiceResult:
        """Drop the cache, wait for the new context to settle, re-initialise."""
        warnings: list[str] = []
        async with self._lock:
            if selector is not None:
                self.selector = selector
            logger.info("Context switch to %s", self.selector.key)
            self.cache.reset()
            self.supervisor.reset()
            avail = self._config.availability
            stable = await self.supervisor.wait_stable(
                lambda: self.authority.pull(self.selector),
                avail.stable_wait,
                avail.stable_interval,
            )
            if stable is None:
                warnings.append("Authority data did not settle; loading what is there")
            result = await self._initialize_locked()

        self._dispatch_event(
            "post_context_switch", {"scope": str(self.selector.scope)}, warnings
        )
        return result.model_copy(
            update={"op": "context_switch", "warnings": [*warnings, *result.warnings]}
        )

    # ------------------------------------------------------------------
    # Authority events
    # ------------------------------------------------------------------

    def handle_event(self, event: AuthorityEvent) -> None:
        """React to one authority event."""
        match event:
            case UpdateStarted():
                logger.debug("Authority update started")
            case SingleUpdated() if self.is_internal_update:
                logger.debug("Ignoring own change at %s", event.path)
            case SingleUpdated():
                self._apply_single(event)
            case UpdateEnded() if self.is_internal_update:
                if self._confirmation is not None and not self._confirmation.is_set():
                    self._confirmation.set()
                else:
                    logger.debug("External refresh deferred until cycle completes")
                    self._pending_refresh = True
            case UpdateEnded():
                self._spawn(self.refresh())
            case ContextSwitched() if self.is_internal_update:
                self._pending_switch = event.selector
            case ContextSwitched():
                self._spawn(self.context_switch(event.selector))

    async def wait_idle(self) -> None:
        """Wait for background refreshes and context switches to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        self._unsubscribe()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _begin_internal(self) -> None:
        self._in_flight += 1
        if self._confirmation is None:
            self._confirmation = asyncio.Event()

    def _end_internal(self) -> None:
        self._in_flight = max(0, self._in_flight - 1)
        if self._in_flight:
            return
        self._confirmation = None
        if self._pending_switch is not _NO_SWITCH:
            selector, self._pending_switch = self._pending_switch, _NO_SWITCH
            self._pending_refresh = False
            self._spawn(self.context_switch(selector))
        elif self._pending_refresh:
            self._pending_refresh = False
            self._spawn(self.refresh())

    async def _load(self) -> None:
        tree = await self.authority.pull(self.selector)
        self.cache.replace(tree or {})
        logger.debug("Cache loaded with %d top-level key(s)", len(self.cache.keys()))

    async def _ensure_loaded(self) -> None:
        if not self.cache.is_loaded:
            await self._load()

    def _apply_single(self, event: SingleUpdated) -> None:
        if not self.cache.is_loaded:
            return
        try:
            self.cache.set_path(event.path, event.new_value)
        except PathError as exc:
            logger.warning("Cannot apply change at %s (%s); refreshing", event.path, exc.message)
            self._spawn(self.refresh())
            return
        self.bus.publish_path(
            PathChanged(path=event.path, old_value=event.old_value, new_value=event.new_value)
        )

    async def _initialize_locked(self) -> ServiceResult:
        avail = self._config.availability

        async def attempt(number: int) -> AvailabilityState:
            state = await self.supervisor.wait_ready(avail.max_wait, avail.poll_interval)
            if not state.is_ready:
                raise AvailabilityTimeout(
                    f"Authority not ready after {avail.max_wait}s",
                    attempt=number,
                    polls=state.retry_count,
                )
            return state

        try:
            state = await self.backoff.run(attempt, self._sleep)
            if not self.cache.is_loaded:
                await self._load()
        except WorldVarError as exc:
            logger.warning("Initialisation failed: %s", exc.message)
            return ServiceResult(ok=False, op="initialize", error=ServiceError.from_exception(exc))

        return ServiceResult(
            ok=True,
            op="initialize",
            data={
                "status": str(state.status),
                "polls": state.retry_count,
                "selector": self.selector.key,
                "keys": self.cache.keys(),
            },
        )

    async def _refresh_locked(self) -> ServiceResult:
        cycle_id = new_cycle_id()
        try:
            pulled = await self.authority.pull(self.selector)
        except WorldVarError as exc:
            return ServiceResult(ok=False, op="refresh", error=ServiceError.from_exception(exc))

        candidate = pulled if pulled is not None else {}
        snapshot = self.cache.snapshot()
        violation = self._guard(snapshot, candidate)
        if violation is not None:
            logger.warning("Refresh rejected: %s", violation.message)
            self._publish_cycle(cycle_id, CyclePhase.ROLLED_BACK, 0, 0)
            warnings: list[str] = []
            self._dispatch_violation(cycle_id, violation, warnings)
            return ServiceResult(
                ok=False,
                op="refresh",
                warnings=warnings,
                error=ServiceError.from_exception(violation),
                data={"cycle_id": cycle_id},
            )

        changes = list(diff_leaves(snapshot.tree, candidate))
        self.cache.replace(candidate)
        for path, before, after in changes:
            self.bus.publish_path(
                PathChanged(path=path, old_value=before, new_value=after, cycle_id=cycle_id)
            )
        self._publish_cycle(cycle_id, CyclePhase.RECONCILED, len(changes), 0)
        return ServiceResult(
            ok=True,
            op="refresh",
            data={"cycle_id": cycle_id, "changed": [path for path, _, _ in changes]},
        )

    def _guard(self, snapshot: ReconciliationSnapshot, candidate: Any) -> IntegrityViolation | None:
        sync = self._config.sync
        return check_integrity(
            snapshot,
            candidate,
            required_namespaces=sync.required_namespaces,
            min_key_retention=sync.min_key_retention,
        )

    def _ensure_in(self, tree: VariableTree) -> list[str]:
        created = []
        for ns in self._config.sync.required_namespaces:
            if ns not in tree:
                tree[ns] = {}
                created.append(ns)
        return created

    async def _run_cycle(
        self, commands: list[BaseCommand], diagnostics: list[ParseDiagnostic]
    ) -> ServiceResult:
        cycle_id = new_cycle_id()
        warnings: list[str] = [f"Skipped statement: {d.reason}" for d in diagnostics]
        data: dict[str, Any] = {
            "cycle_id": cycle_id,
            "diagnostics": [_diagnostic_row(d) for d in diagnostics],
        }

        try:
            await self._ensure_loaded()
        except WorldVarError as exc:
            return ServiceResult(
                ok=False,
                op="submit",
                data=data,
                warnings=warnings,
                error=ServiceError.from_exception(exc),
            )

        self._phase = CyclePhase.COMMITTING
        snapshot = self.cache.snapshot()
        working = clone_value(snapshot.tree)
        created = self._ensure_in(working) if self._config.sync.ensure_namespaces else []
        with trace_span("execute"):
            results = self.executor.execute_all(working, commands)
        applied = [r for r in results if r.success]
        failed_count = len(results) - len(applied)
        data.update(
            created_namespaces=created,
            results=[_result_row(r) for r in results],
            applied=len(applied),
            failed=failed_count,
        )
        for r in results:
            if not r.success and r.error is not None:
                warnings.append(f"{r.command.kind} {r.command.path}: {r.error.message}")

        if values_equal(working, snapshot.tree):
            return self._finish(
                cycle_id, CyclePhase.RECONCILED, applied, failed_count, data, warnings
            )

        self._begin_internal()
        try:
            phase, error = await self._push_and_confirm(cycle_id, snapshot, working, warnings)
        finally:
            self._end_internal()
        return self._finish(cycle_id, phase, applied, failed_count, data, warnings, error)

    async def _push_and_confirm(
        self,
        cycle_id: str,
        snapshot: ReconciliationSnapshot,
        working: VariableTree,
        warnings: list[str],
    ) -> tuple[CyclePhase, ServiceError | None]:
        confirmation = self._confirmation
        try:
            with trace_span("push"):
                await self.authority.push(working, self.selector)
        except Exception as exc:
            logger.warning("Push failed for cycle %s: %s", cycle_id, exc)
            return CyclePhase.ROLLED_BACK, ServiceError(
                code="PUSH_FAILED",
                message=f"Push failed: {exc}",
                detail={"retryable": True, "cycle_id": cycle_id},
            )

        self._phase = CyclePhase.AWAITING_CONFIRMATION
        timeout = self._config.sync.confirm_timeout
        try:
            assert confirmation is not None
            with trace_span("confirm"):
                await asyncio.wait_for(confirmation.wait(), timeout)
        except TimeoutError:
            logger.warning("No confirmation for cycle %s within %.2fs", cycle_id, timeout)
            warnings.append(f"Authority did not confirm within {timeout}s; applied locally")
            self.cache.replace(working)
            return CyclePhase.UNCONFIRMED, None

        try:
            pulled = await self.authority.pull(self.selector)
        except WorldVarError as exc:
            logger.warning("Pull after push failed for cycle %s: %s", cycle_id, exc.message)
            return CyclePhase.ROLLED_BACK, ServiceError.from_exception(exc)

        candidate = pulled if pulled is not None else {}
        violation = self._guard(snapshot, candidate)
        if violation is not None:
            logger.warning("Cycle %s rolled back: %s", cycle_id, violation.message)
            self._dispatch_violation(cycle_id, violation, warnings)
            error = ServiceError.from_exception(violation)
            return CyclePhase.ROLLED_BACK, error.model_copy(
                update={"detail": {**error.detail, "cycle_id": cycle_id}}
            )

        self.cache.replace(candidate)
        return CyclePhase.RECONCILED, None

    def _finish(
        self,
        cycle_id: str,
        phase: CyclePhase,
        applied: list[ExecutionResult],
        failed: int,
        data: dict[str, Any],
        warnings: list[str],
        error: ServiceError | None = None,
    ) -> ServiceResult:
        self._phase = phase
        committed = phase in (CyclePhase.RECONCILED, CyclePhase.UNCONFIRMED)
        if committed:
            for r in applied:
                self.bus.publish_path(
                    PathChanged(
                        path=r.command.path,
                        old_value=r.old_value,
                        new_value=r.new_value,
                        cycle_id=cycle_id,
                    )
                )
        self._publish_cycle(cycle_id, phase, len(applied) if committed else 0, failed)
        self._dispatch_event(
            "post_cycle",
            {
                "cycle_id": cycle_id,
                "status": str(phase),
                "applied": len(applied) if committed else 0,
                "failed": failed,
            },
            warnings,
        )
        self._phase = CyclePhase.IDLE
        data["status"] = str(phase)
        logger.info(
            "Cycle %s %s: %d applied, %d failed", cycle_id, phase, len(applied), failed
        )
        return ServiceResult(
            ok=error is None,
            op="submit",
            data=data,
            warnings=warnings,
            error=error,
        )

    def _publish_cycle(self, cycle_id: str, phase: CyclePhase, applied: int, failed: int) -> None:
        self.bus.publish_cycle(
            CycleCompleted(
                cycle_id=cycle_id,
                phase=phase,
                applied=applied,
                failed=failed,
                tree=self.cache.tree(),
            )
        )

    def _dispatch_violation(
        self, cycle_id: str, violation: IntegrityViolation, warnings: list[str]
    ) -> None:
        self._dispatch_event(
            "post_integrity_violation",
            {
                "cycle_id": cycle_id,
                "reason": violation.message,
                "previous_keys": violation.detail.get("previous_keys", []),
                "candidate_keys": violation.detail.get("candidate_keys", []),
            },
            warnings,
        )
