"""
In-memory transport.

Records every outbound datagram and lets callers inject inbound ones. The
engine runs unchanged on top of it, which makes it the simulated path for
tests and dry runs.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from .._models._message import MessageParser, Request
from .._types import TransportAddress, TransportError, WriteError
from ._base import BaseTransport


class MemoryTransport(BaseTransport):
    """
    Loopback-free transport keeping datagrams in memory.

    Attributes:
        sent: ``(data, destination)`` for every datagram sent, in order.
        fail_sends: When True, ``send`` raises ``WriteError``.
    """

    def __init__(self, local_host: str = "127.0.0.1", local_port: int = 0) -> None:
        super().__init__(local_host, local_port)
        self.sent: List[Tuple[bytes, TransportAddress]] = []
        self.fail_sends = False

    async def _bind(self) -> int:
        return self._local_port or 5060

    def send(self, data: bytes, destination: TransportAddress) -> None:
        if not self.is_open:
            raise TransportError("Transport is closed")
        if self.fail_sends:
            raise WriteError(f"Simulated send failure to {destination}")
        self.sent.append((data, destination))

    def inject(self, data: bytes | str, source: Optional[TransportAddress] = None) -> None:
        """Deliver a datagram as if it arrived from ``source``."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._deliver(data, source or TransportAddress("127.0.0.1", 5060))

    def inject_error(self, exc: Exception) -> None:
        """Report a send error as if the network signalled it after ``send``."""
        self._report_error(exc)

    def requests(self, method: str | None = None) -> List[Request]:
        """Parse the sent requests, optionally filtered by method."""
        parsed = []
        for data, _ in self.sent:
            message = MessageParser.parse(data)
            if isinstance(message, Request) and (
                method is None or message.method == method.upper()
            ):
                parsed.append(message)
        return parsed

    def clear(self) -> None:
        self.sent.clear()

    def _get_protocol_name(self) -> str:
        return "UDP"


__all__ = ["MemoryTransport"]
