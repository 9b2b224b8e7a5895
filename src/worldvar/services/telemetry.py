"""Telemetry primitives — Span, @traced, trace_span.

Disabled by default; a single ContextVar lookup per call. When enabled
(``--verbose``), each traced service call builds a span tree whose timing
is merged into ``ServiceResult.meta["telemetry"]``. Works for both plain
and ``async def`` service methods.
"""

from __future__ import annotations

import functools
import inspect
import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

import structlog

from worldvar.services.result import ServiceResult

_verbose_enabled: ContextVar[bool] = ContextVar("_verbose_enabled", default=False)
_current_span: ContextVar[Span | None] = ContextVar("_current_span", default=None)


@dataclass
class Span:
    """Hierarchical timing span."""

    name: str
    parent: Span | None = None
    children: list[Span] = field(default_factory=list)
    start_time: float = field(default_factory=time.perf_counter)
    end_time: float | None = None
    annotations: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ms(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time) * 1000

    def end(self) -> None:
        self.end_time = time.perf_counter()

    def annotate(self, key: str, value: Any) -> None:
        self.annotations[key] = value

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "duration_ms": round(self.duration_ms, 2),
        }
        if self.annotations:
            result["annotations"] = self.annotations
        if self.children:
            result["children"] = [c.to_dict() for c in self.children]
        return result


@contextmanager
def trace_span(name: str) -> Generator[Span | None]:
    """Open a child span under the current one.

    Yields None when telemetry is off or no parent span is active.
    """
    parent = _current_span.get() if _verbose_enabled.get() else None
    if parent is None:
        yield None
        return

    child = Span(name=name, parent=parent)
    parent.children.append(child)
    token = _current_span.set(child)
    try:
        yield child
    finally:
        child.end()
        _current_span.reset(token)


def _finish(span: Span, result: Any, *, ok: bool) -> Any:
    span.end()
    structlog.get_logger("worldvar.telemetry").debug(
        "span.complete",
        span_name=span.name,
        duration_ms=round(span.duration_ms, 2),
        ok=ok,
        children=len(span.children),
    )
    if ok and isinstance(result, ServiceResult):
        meta = {**(result.meta or {}), "telemetry": span.to_dict()}
        return result.model_copy(update={"meta": meta})
    return result


def traced(func: Callable[..., Any]) -> Callable[..., Any]:
    """Time a service method and merge the span into ``ServiceResult.meta``."""

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            if not _verbose_enabled.get():
                return await func(*args, **kwargs)
            span = Span(name=func.__qualname__)
            token = _current_span.set(span)
            try:
                result = await func(*args, **kwargs)
            except Exception:
                _finish(span, None, ok=False)
                raise
            finally:
                _current_span.reset(token)
            return _finish(span, result, ok=True)

        return async_wrapper

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        if not _verbose_enabled.get():
            return func(*args, **kwargs)
        span = Span(name=func.__qualname__)
        token = _current_span.set(span)
        try:
            result = func(*args, **kwargs)
        except Exception:
            _finish(span, None, ok=False)
            raise
        finally:
            _current_span.reset(token)
        return _finish(span, result, ok=True)

    return wrapper


def enable_telemetry() -> None:
    """Turn span collection on for the current context."""
    _verbose_enabled.set(True)


def disable_telemetry() -> None:
    _verbose_enabled.set(False)


def get_current_span() -> Span | None:
    """The active span, for manual annotation. None when disabled."""
    if not _verbose_enabled.get():
        return None
    return _current_span.get()
