"""
UDP transport implementation for SIP.

UDP is the most common transport for SIP trunks, providing connectionless
datagram service. Reliability is the job of the transaction layer above.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Tuple

from .._types import BindError, TransportAddress, TransportError, WriteError
from .._utils import logger
from ._base import BaseTransport


class UDPTransport(BaseTransport):
    """
    Asynchronous UDP transport for SIP using asyncio.

    Uses asyncio's DatagramProtocol; inbound datagrams are delivered to the
    registered handler synchronously from ``datagram_received``.
    """

    def __init__(self, local_host: str = "0.0.0.0", local_port: int = 0) -> None:
        super().__init__(local_host, local_port)
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._protocol: Optional[_UDPProtocol] = None

    async def _bind(self) -> int:
        loop = asyncio.get_running_loop()
        try:
            self._transport, self._protocol = await loop.create_datagram_endpoint(
                lambda: _UDPProtocol(self._deliver, self._report_error),
                local_addr=(self._local_host, self._local_port),
            )
        except OSError as e:
            raise BindError(
                f"Failed to bind UDP {self._local_host}:{self._local_port}: {e}"
            ) from e

        # Actual bound port (in case port was 0)
        sock = self._transport.get_extra_info("socket")
        if sock is not None:
            return sock.getsockname()[1]
        return self._local_port

    def send(self, data: bytes, destination: TransportAddress) -> None:
        """
        Send raw bytes via UDP.

        Raises:
            TransportError: If the transport is not open
            WriteError: If send fails
        """
        if self._transport is None or self._protocol is None or not self.is_open:
            raise TransportError("Transport is closed")

        protocol = self._protocol
        protocol.sending = True
        try:
            self._transport.sendto(data, destination.as_tuple())
        except OSError as e:
            raise WriteError(f"Failed to send UDP datagram to {destination}: {e}") from e
        finally:
            protocol.sending = False

        # asyncio reports a failed sendto through error_received, not by raising
        exc = protocol.take_send_error()
        if exc is not None:
            raise WriteError(f"Failed to send UDP datagram to {destination}: {exc}") from exc

    def _close(self) -> None:
        if self._transport is not None:
            self._transport.close()
        self._transport = None
        self._protocol = None

    def _get_protocol_name(self) -> str:
        return "UDP"


class _UDPProtocol(asyncio.DatagramProtocol):
    """Internal DatagramProtocol forwarding datagrams to the transport."""

    def __init__(self, deliver, report_error) -> None:
        self._deliver = deliver
        self._report_error = report_error
        self._send_error: Optional[Exception] = None
        self.sending = False
        self.transport: Optional[asyncio.DatagramTransport] = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport  # type: ignore

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        self._deliver(data, TransportAddress(host=addr[0], port=addr[1], protocol="UDP"))

    def error_received(self, exc: Exception) -> None:
        if self.sending:
            self._send_error = exc
            return
        # Buffered sends and ICMP errors surface here after send returned
        logger.error("UDP transport error: %s", exc)
        self._report_error(exc)

    def take_send_error(self) -> Optional[Exception]:
        exc, self._send_error = self._send_error, None
        return exc


__all__ = ["UDPTransport"]
