"""Tests for MemoryAuthority and the authority event sequence."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from worldvar.domain.errors import AuthorityError
from worldvar.domain.events import (
    AuthorityEvent,
    ContextSwitched,
    SingleUpdated,
    UpdateEnded,
    UpdateStarted,
)
from worldvar.domain.state import Selector
from worldvar.domain.types import Scope
from worldvar.infrastructure.authority import MemoryAuthority, StateAuthority


class TestProtocol:
    def test_memory_authority_satisfies_protocol(self) -> None:
        assert isinstance(MemoryAuthority(), StateAuthority)


class TestEventSequence:
    def test_external_write_outside_loop_delivers_now(self) -> None:
        authority = MemoryAuthority({"MC": {"hp": 1, "mp": 2}})
        events: list[AuthorityEvent] = []
        authority.subscribe(events.append)

        authority.write_external({"MC": {"hp": 5, "mp": 2}, "新": 1})

        assert isinstance(events[0], UpdateStarted)
        assert isinstance(events[-1], UpdateEnded)
        singles = [e for e in events if isinstance(e, SingleUpdated)]
        assert [(e.path, e.old_value, e.new_value) for e in singles] == [
            ("MC.hp", 1, 5),
            ("新", None, 1),
        ]
        assert events[-1].tree["新"] == 1

    def test_unsubscribe(self) -> None:
        authority = MemoryAuthority({})
        events: list[AuthorityEvent] = []
        unsubscribe = authority.subscribe(events.append)
        unsubscribe()
        unsubscribe()
        authority.write_external({"a": 1})
        assert events == []

    def test_handler_error_does_not_stop_others(self) -> None:
        authority = MemoryAuthority({})
        events: list[AuthorityEvent] = []

        def boom(event: AuthorityEvent) -> None:
            raise RuntimeError("handler bug")

        authority.subscribe(boom)
        authority.subscribe(events.append)
        authority.write_external({"a": 1})
        assert len(events) == 3

    def test_silent_suppresses_events(self) -> None:
        authority = MemoryAuthority({}, silent=True)
        events: list[AuthorityEvent] = []
        authority.subscribe(events.append)
        authority.write_external({"a": 1})
        assert events == []
        assert authority.peek() == {"a": 1}

    @pytest.mark.asyncio
    async def test_push_events_arrive_after_push_returns(self) -> None:
        authority = MemoryAuthority({"MC": {}})
        events: list[AuthorityEvent] = []
        authority.subscribe(events.append)

        await authority.push({"MC": {"hp": 1}}, authority.selector)
        assert events == []

        await asyncio.sleep(0)
        assert [type(e).__name__ for e in events] == [
            "UpdateStarted",
            "SingleUpdated",
            "UpdateEnded",
        ]

    @pytest.mark.asyncio
    async def test_context_switch_event(self) -> None:
        authority = MemoryAuthority({"MC": {}})
        events: list[AuthorityEvent] = []
        authority.subscribe(events.append)
        chat = Selector(scope=Scope.CHAT)

        authority.switch_context(chat, {"MC": {"x": 1}})
        await asyncio.sleep(0)

        assert events == [ContextSwitched(selector=chat)]
        assert authority.selector == chat
        assert authority.peek() == {"MC": {"x": 1}}


class TestPullPush:
    @pytest.mark.asyncio
    async def test_pull_returns_copy(self) -> None:
        authority = MemoryAuthority({"MC": {"hp": 1}})
        tree = await authority.pull(authority.selector)
        assert tree is not None
        tree["MC"]["hp"] = 99
        assert authority.peek()["MC"]["hp"] == 1
        assert authority.pull_count == 1

    @pytest.mark.asyncio
    async def test_pull_unknown_selector(self) -> None:
        authority = MemoryAuthority({"MC": {}})
        assert await authority.pull(Selector(scope=Scope.GLOBAL)) is None

    @pytest.mark.asyncio
    async def test_push_is_keyed_by_selector(self) -> None:
        authority = MemoryAuthority({"MC": {}})
        global_scope = Selector(scope=Scope.GLOBAL)
        await authority.push({"G": 1}, global_scope)
        assert authority.peek(global_scope) == {"G": 1}
        assert authority.peek() == {"MC": {}}
        assert authority.push_count == 1

    @pytest.mark.asyncio
    async def test_fail_push(self) -> None:
        authority = MemoryAuthority({"MC": {}}, fail_push=True)
        with pytest.raises(AuthorityError):
            await authority.push({"MC": {"x": 1}}, authority.selector)
        assert authority.peek() == {"MC": {}}
        assert authority.push_count == 0

    @pytest.mark.asyncio
    async def test_transform(self) -> None:
        def keep_mc(tree: dict[str, Any]) -> dict[str, Any]:
            return {"MC": tree.get("MC", {})}

        authority = MemoryAuthority({}, transform=keep_mc)
        await authority.push({"MC": {"a": 1}, "junk": 2}, authority.selector)
        assert authority.peek() == {"MC": {"a": 1}}

    def test_availability_flag(self) -> None:
        authority = MemoryAuthority(available=False)
        assert not authority.is_available()
        authority.available = True
        assert authority.is_available()
