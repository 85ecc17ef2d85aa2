from __future__ import annotations

import asyncio
import socket

import pytest

from sipcall import (
    BindError,
    MemoryTransport,
    TransportAddress,
    TransportError,
    UDPTransport,
    WriteError,
)

TRUNK = TransportAddress("203.0.113.10", 5060)


def test_memory_transport_records_and_delivers() -> None:
    async def scenario() -> None:
        transport = MemoryTransport()
        received = []
        transport.on_receive(lambda data, source: received.append((data, source)))

        port = await transport.open()
        transport.send(b"OPTIONS", TRUNK)
        transport.inject("SIP/2.0 200 OK", TRUNK)

        assert port == 5060
        assert transport.is_open
        assert transport.sent == [(b"OPTIONS", TRUNK)]
        assert received == [(b"SIP/2.0 200 OK", TRUNK)]

    asyncio.run(scenario())


def test_second_handler_replaces_first() -> None:
    transport = MemoryTransport()
    first, second = [], []
    transport.on_receive(lambda data, source: first.append(data))
    transport.on_receive(lambda data, source: second.append(data))

    transport.inject(b"x")

    assert first == []
    assert second == [b"x"]


def test_open_twice_raises() -> None:
    async def scenario() -> None:
        transport = MemoryTransport()
        await transport.open()
        with pytest.raises(TransportError):
            await transport.open()

    asyncio.run(scenario())


def test_close_is_idempotent_and_blocks_sends() -> None:
    async def scenario() -> None:
        transport = MemoryTransport()
        await transport.open()
        transport.close()
        transport.close()

        assert transport.is_closed
        with pytest.raises(TransportError):
            transport.send(b"x", TRUNK)

    asyncio.run(scenario())


def test_simulated_send_failure() -> None:
    async def scenario() -> None:
        transport = MemoryTransport()
        await transport.open()
        transport.fail_sends = True
        with pytest.raises(WriteError):
            transport.send(b"x", TRUNK)

    asyncio.run(scenario())


def test_udp_loopback() -> None:
    async def scenario() -> None:
        server = UDPTransport("127.0.0.1", 0)
        client = UDPTransport("127.0.0.1", 0)
        arrived: asyncio.Future = asyncio.get_running_loop().create_future()
        server.on_receive(lambda data, source: arrived.done() or arrived.set_result((data, source)))

        server_port = await server.open()
        client_port = await client.open()
        try:
            assert server_port != 0
            client.send(b"ping", TransportAddress("127.0.0.1", server_port))
            data, source = await asyncio.wait_for(arrived, 2)
        finally:
            client.close()
            server.close()

        assert data == b"ping"
        assert source == TransportAddress("127.0.0.1", client_port, "UDP")

    asyncio.run(scenario())


def test_udp_rejected_send_raises_write_error() -> None:
    async def scenario() -> None:
        transport = UDPTransport("0.0.0.0", 0)
        await transport.open()
        try:
            # Broadcast without SO_BROADCAST is refused by the kernel
            with pytest.raises(WriteError) as excinfo:
                transport.send(b"OPTIONS", TransportAddress("255.255.255.255", 5060))
            assert isinstance(excinfo.value.__cause__, OSError)
            assert transport.is_open
        finally:
            transport.close()

    asyncio.run(scenario())


def test_late_send_errors_reach_error_handler() -> None:
    async def scenario() -> None:
        transport = MemoryTransport()
        errors = []
        transport.on_error(errors.append)
        await transport.open()

        cause = ConnectionRefusedError(111, "Connection refused")
        transport.inject_error(cause)

        assert errors == [cause]

    asyncio.run(scenario())


def test_udp_bind_conflict_raises_bind_error() -> None:
    async def scenario() -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as taken:
            taken.bind(("127.0.0.1", 0))
            port = taken.getsockname()[1]
            transport = UDPTransport("127.0.0.1", port)
            with pytest.raises(BindError):
                await transport.open()

    asyncio.run(scenario())


def test_udp_send_before_open_raises() -> None:
    with pytest.raises(TransportError):
        UDPTransport().send(b"x", TRUNK)
