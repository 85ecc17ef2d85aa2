from __future__ import annotations

import asyncio
import logging

import pytest

from sipcall import (
    CallEstablished,
    CallFailed,
    Connected,
    EventEmitter,
)


def test_subscribe_by_class_name_and_wildcard() -> None:
    emitter = EventEmitter()
    seen = []

    @emitter.on(CallEstablished)
    def by_class(event):
        seen.append(("class", event.call_id))

    emitter.on("CallEstablished", lambda event: seen.append(("name", event.call_id)))
    emitter.on("*", lambda event: seen.append(("all", event.name)))

    emitter.emit(CallEstablished(destination="100", call_id="c1"))
    emitter.emit(Connected())

    assert seen == [
        ("class", "c1"),
        ("name", "c1"),
        ("all", "CallEstablished"),
        ("all", "Connected"),
    ]


def test_unknown_event_name_is_rejected() -> None:
    with pytest.raises(ValueError):
        EventEmitter().on("CallExploded", print)


def test_off_removes_handler() -> None:
    emitter = EventEmitter()
    seen = []
    emitter.on(Connected, seen.append)
    emitter.off(Connected, seen.append)

    emitter.emit(Connected())

    assert seen == []


def test_failing_handler_does_not_stop_delivery(caplog: pytest.LogCaptureFixture) -> None:
    emitter = EventEmitter()
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    emitter.on(Connected, broken)
    emitter.on(Connected, seen.append)

    with caplog.at_level(logging.ERROR, logger="sipcall"):
        emitter.emit(Connected())

    assert len(seen) == 1
    assert "Event handler failed for Connected" in caplog.text


def test_coroutine_handlers_are_scheduled() -> None:
    async def scenario() -> list:
        emitter = EventEmitter()
        seen = []

        async def handler(event):
            seen.append(event.reason)

        emitter.on(CallFailed, handler)
        emitter.emit(CallFailed(destination="100", call_id="c1", reason="timeout"))
        await asyncio.sleep(0)
        return seen

    assert asyncio.run(scenario()) == ["timeout"]


def test_emitter_holds_running_handler_tasks() -> None:
    async def scenario() -> None:
        emitter = EventEmitter()
        release = asyncio.Event()

        async def handler(event):
            await release.wait()

        emitter.on("Connected", handler)
        emitter.emit(Connected())
        await asyncio.sleep(0)
        assert emitter.pending == 1

        release.set()
        await asyncio.sleep(0.01)
        assert emitter.pending == 0

    asyncio.run(scenario())


def test_event_payload_as_dict() -> None:
    event = CallFailed(destination="100", call_id="c1", reason="486 Busy Here", status_code=486)

    assert event.to_dict() == {
        "event": "CallFailed",
        "destination": "100",
        "call_id": "c1",
        "reason": "486 Busy Here",
        "status_code": 486,
    }
