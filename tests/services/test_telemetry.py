"""Tests for telemetry primitives: Span, trace_span, @traced."""

from __future__ import annotations

import time
from collections.abc import Generator

import pytest

from worldvar.infrastructure.authority import MemoryAuthority
from worldvar.services.reconcile import ReconciliationEngine
from worldvar.services.result import ServiceResult
from worldvar.services.telemetry import (
    Span,
    _current_span,
    disable_telemetry,
    enable_telemetry,
    get_current_span,
    trace_span,
    traced,
)


@pytest.fixture(autouse=True)
def _reset_telemetry_state() -> Generator[None]:
    """Ensure clean telemetry state for every test."""
    disable_telemetry()
    yield
    disable_telemetry()
    _current_span.set(None)


# ── Span unit tests ──────────────────────────────────────────────────


class TestSpan:
    def test_duration_before_end_is_zero(self) -> None:
        assert Span(name="test").duration_ms == 0.0

    def test_duration_after_end(self) -> None:
        span = Span(name="test")
        time.sleep(0.005)
        span.end()
        assert span.duration_ms > 0

    def test_to_dict_minimal(self) -> None:
        span = Span(name="root")
        span.end()
        d = span.to_dict()
        assert d["name"] == "root"
        assert "children" not in d
        assert "annotations" not in d

    def test_to_dict_with_children(self) -> None:
        root = Span(name="root")
        child = Span(name="child", parent=root)
        root.children.append(child)
        child.end()
        root.end()
        assert root.to_dict()["children"][0]["name"] == "child"

    def test_annotate(self) -> None:
        span = Span(name="test")
        span.annotate("commands", 3)
        span.end()
        assert span.to_dict()["annotations"] == {"commands": 3}


# ── trace_span tests ─────────────────────────────────────────────────


class TestTraceSpan:
    def test_disabled_yields_none(self) -> None:
        with trace_span("test") as span:
            assert span is None

    def test_no_root_yields_none(self) -> None:
        enable_telemetry()
        with trace_span("test") as span:
            assert span is None

    def test_nested_spans(self) -> None:
        enable_telemetry()
        root = Span(name="root")
        token = _current_span.set(root)
        try:
            with trace_span("a"):
                with trace_span("b") as inner:
                    assert get_current_span() is inner
            assert root.children[0].name == "a"
            assert root.children[0].children[0].name == "b"
            assert root.children[0].end_time is not None
        finally:
            _current_span.reset(token)

    def test_get_current_span_disabled(self) -> None:
        assert get_current_span() is None


# ── @traced decorator tests ──────────────────────────────────────────


class TestTracedDecorator:
    def test_noop_when_disabled(self) -> None:
        @traced
        def my_func() -> ServiceResult:
            return ServiceResult(ok=True, op="test")

        assert my_func().meta is None

    def test_injects_meta_when_enabled(self) -> None:
        @traced
        def my_func() -> ServiceResult:
            return ServiceResult(ok=True, op="test", meta={"existing": "data"})

        enable_telemetry()
        result = my_func()
        assert result.meta is not None
        assert result.meta["existing"] == "data"
        assert result.meta["telemetry"]["name"].endswith("my_func")

    def test_non_service_result_passthrough(self) -> None:
        @traced
        def my_func() -> str:
            return "hello"

        enable_telemetry()
        assert my_func() == "hello"

    def test_exception_propagates_and_resets_span(self) -> None:
        @traced
        def my_func() -> ServiceResult:
            raise RuntimeError("boom")

        enable_telemetry()
        with pytest.raises(RuntimeError):
            my_func()
        assert _current_span.get() is None

    @pytest.mark.asyncio
    async def test_coroutine_function(self) -> None:
        @traced
        async def my_coro() -> ServiceResult:
            with trace_span("inner"):
                pass
            return ServiceResult(ok=True, op="test")

        enable_telemetry()
        result = await my_coro()
        assert result.meta is not None
        assert result.meta["telemetry"]["children"][0]["name"] == "inner"

    @pytest.mark.asyncio
    async def test_engine_cycle_spans(self) -> None:
        enable_telemetry()
        authority = MemoryAuthority({"MC": {"hp": 1}})
        engine = ReconciliationEngine(authority, selector=authority.selector)
        result = await engine.apply_text("SET('MC.hp', 2)")
        assert result.meta is not None
        tree = result.meta["telemetry"]
        assert tree["name"] == "ReconciliationEngine.submit"
        names = [child["name"] for child in tree["children"]]
        assert names[:2] == ["execute", "push"]
        await engine.close()
