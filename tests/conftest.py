from __future__ import annotations

import asyncio
from typing import List, Optional

import pytest

from sipcall import (
    CallHandle,
    CallState,
    EngineConfig,
    MemoryTransport,
    MessageBuilder,
    MessageParser,
    RegistrationState,
    Request,
    Response,
    SessionEngine,
    SessionEvent,
    TransportAddress,
)

TRUNK = TransportAddress("203.0.113.10", 5060)
DESTINATION = "5511999990000"
REMOTE_CONTACT = f"<sip:{DESTINATION}@203.0.113.10:5060>"


class FakeTrunk:
    """Plays the trunk side of the conversation over a MemoryTransport."""

    def __init__(self, transport: MemoryTransport) -> None:
        self.transport = transport

    def last(self, method: str) -> Request:
        requests = self.transport.requests(method)
        assert requests, f"no {method} was sent"
        return requests[-1]

    def reply(
        self,
        request: Request,
        status_code: int,
        *,
        to_tag: Optional[str] = None,
        headers: Optional[dict] = None,
    ) -> Response:
        response = MessageBuilder.response(request, status_code, to_tag=to_tag, headers=headers)
        self.transport.inject(response.to_bytes(), TRUNK)
        return response

    def send(self, request: Request) -> None:
        self.transport.inject(request.to_bytes(), TRUNK)

    def last_response(self) -> Response:
        for data, _ in reversed(self.transport.sent):
            message = MessageParser.parse(data)
            if isinstance(message, Response):
                return message
        raise AssertionError("no response was sent")

    @staticmethod
    async def settle(rounds: int = 10) -> None:
        """Let spawned engine tasks run until they block again."""
        for _ in range(rounds):
            await asyncio.sleep(0)

    async def register(self, engine: SessionEngine) -> None:
        await engine.start()
        future = engine.register()
        self.reply(self.last("REGISTER"), 200)
        assert await future == RegistrationState.REGISTERED

    async def establish(self, engine: SessionEngine, destination: str = DESTINATION) -> CallHandle:
        await self.register(engine)
        handle = engine.place_call(destination)
        invite = self.last("INVITE")
        self.reply(invite, 180, to_tag="srv1")
        self.reply(invite, 200, to_tag="srv1", headers={"Contact": REMOTE_CONTACT})
        assert await handle == CallState.ESTABLISHED
        return handle


@pytest.fixture()
def config() -> EngineConfig:
    return EngineConfig(
        host=TRUNK.host,
        port=TRUNK.port,
        username="1001",
        password="s3cret",
        domain="pbx.example.com",
        caller_id="551140000000",
        t1=0.01,
        max_retries=2,
    )


@pytest.fixture()
def transport() -> MemoryTransport:
    return MemoryTransport()


@pytest.fixture()
def engine(config: EngineConfig, transport: MemoryTransport) -> SessionEngine:
    return SessionEngine(config, transport)


@pytest.fixture()
def trunk(transport: MemoryTransport) -> FakeTrunk:
    return FakeTrunk(transport)


@pytest.fixture()
def events(engine: SessionEngine) -> List[SessionEvent]:
    received: List[SessionEvent] = []
    engine.on("*", received.append)
    return received
