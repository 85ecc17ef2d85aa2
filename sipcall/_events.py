"""
Session lifecycle events.

Every state transition of the engine emits exactly one event. Events are
small dataclasses named after what happened; handlers subscribe by event
class, by name, or to everything with ``"*"``:

    >>> emitter = EventEmitter()
    >>> @emitter.on(CallEstablished)
    ... def on_established(event):
    ...     print(f"Call {event.call_id} up")

Handlers may be plain functions or coroutine functions. Handler exceptions
are logged and never reach the engine.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional, Union

from ._utils import logger


# ============================================================================
# Events
# ============================================================================


@dataclass(slots=True)
class SessionEvent:
    """Base class of every lifecycle event."""

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.name, **asdict(self)}


@dataclass(slots=True)
class Registering(SessionEvent):
    """Registration attempt started."""


@dataclass(slots=True)
class Connected(SessionEvent):
    """Registration succeeded."""


@dataclass(slots=True)
class RegistrationFailed(SessionEvent):
    error: str
    status_code: Optional[int] = None


@dataclass(slots=True)
class CallInitiated(SessionEvent):
    destination: str
    call_id: str


@dataclass(slots=True)
class CallRinging(SessionEvent):
    destination: str
    call_id: str


@dataclass(slots=True)
class CallEstablished(SessionEvent):
    destination: str
    call_id: str


@dataclass(slots=True)
class CallFailed(SessionEvent):
    destination: str
    call_id: str
    reason: str
    status_code: Optional[int] = None


@dataclass(slots=True)
class DigitSent(SessionEvent):
    digit: str
    call_id: str


@dataclass(slots=True)
class CallTerminating(SessionEvent):
    destination: str
    call_id: str


@dataclass(slots=True)
class CallEnded(SessionEvent):
    destination: str
    call_id: str
    initiator: str  # "local" or "remote"


@dataclass(slots=True)
class Disconnected(SessionEvent):
    """Engine stopped; transport closed and state reset."""


EVENT_TYPES: dict[str, type[SessionEvent]] = {
    cls.__name__: cls
    for cls in (
        Registering,
        Connected,
        RegistrationFailed,
        CallInitiated,
        CallRinging,
        CallEstablished,
        CallFailed,
        DigitSent,
        CallTerminating,
        CallEnded,
        Disconnected,
    )
}

EventHandler = Callable[[SessionEvent], Any]
EventKey = Union[str, type]


# ============================================================================
# Emitter
# ============================================================================


class EventEmitter:
    """Synchronous event dispatcher owned by the engine."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._tasks: set[asyncio.Future] = set()

    @staticmethod
    def _key(event: EventKey) -> str:
        name = event.__name__ if isinstance(event, type) else str(event)
        if name != "*" and name not in EVENT_TYPES:
            raise ValueError(f"Unknown event: {name!r}")
        return name

    def on(self, event: EventKey, handler: Optional[EventHandler] = None):
        """
        Subscribe ``handler`` to ``event``; usable as a decorator.

        Example:
            >>> emitter.on("CallFailed", lambda e: print(e.reason))
        """
        key = self._key(event)

        if handler is not None:
            self._handlers[key].append(handler)
            return handler

        def decorator(func: EventHandler) -> EventHandler:
            self._handlers[key].append(func)
            return func

        return decorator

    def off(self, event: EventKey, handler: EventHandler) -> None:
        handlers = self._handlers.get(self._key(event), [])
        if handler in handlers:
            handlers.remove(handler)

    @property
    def pending(self) -> int:
        """Number of async handlers still running."""
        return len(self._tasks)

    def emit(self, event: SessionEvent) -> None:
        """Deliver ``event`` to its handlers, then to the catch-all ones."""
        logger.debug("Event %s %s", event.name, event.to_dict())

        for handler in [*self._handlers.get(event.name, []), *self._handlers.get("*", [])]:
            try:
                result = handler(event)
            except Exception:
                logger.exception("Event handler failed for %s", event.name)
                continue

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
                task.add_done_callback(_log_handler_failure)


def _log_handler_failure(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Async event handler failed", exc_info=exc)


__all__ = [
    "SessionEvent",
    "Registering",
    "Connected",
    "RegistrationFailed",
    "CallInitiated",
    "CallRinging",
    "CallEstablished",
    "CallFailed",
    "DigitSent",
    "CallTerminating",
    "CallEnded",
    "Disconnected",
    "EVENT_TYPES",
    "EventEmitter",
]
