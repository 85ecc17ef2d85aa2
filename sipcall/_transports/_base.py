"""
Base transport abstraction for the SIP call engine.

A transport owns exactly one local endpoint. It pushes outbound datagrams and
hands inbound ones to a single registered handler; it knows nothing about SIP.
"""

from __future__ import annotations

import abc
from typing import Optional

from .._types import DatagramHandler, ErrorHandler, TransportAddress, TransportError


class BaseTransport(abc.ABC):
    """
    Abstract base class for datagram transports.

    Lifecycle: ``await open()`` once, ``send`` any number of times, ``close()``
    any number of times. Opening twice raises ``TransportError``.
    """

    def __init__(self, local_host: str = "0.0.0.0", local_port: int = 0) -> None:
        self._local_host = local_host
        self._local_port = local_port
        self._handler: Optional[DatagramHandler] = None
        self._error_handler: Optional[ErrorHandler] = None
        self._opened = False
        self._closed = False

    async def open(self) -> int:
        """
        Bind the local endpoint.

        Returns:
            The bound local port (ephemeral when configured with port 0).

        Raises:
            BindError: If the endpoint cannot be bound.
            TransportError: If the transport was already opened.
        """
        if self._opened:
            raise TransportError(f"{type(self).__name__} is already open")
        self._local_port = await self._bind()
        self._opened = True
        self._closed = False
        return self._local_port

    @abc.abstractmethod
    async def _bind(self) -> int:
        """Bind the endpoint and return the local port."""
        ...

    @abc.abstractmethod
    def send(self, data: bytes, destination: TransportAddress) -> None:
        """
        Send raw bytes to destination, fire-and-forget.

        Raises:
            WriteError: On send failure
        """
        ...

    def on_receive(self, handler: DatagramHandler) -> None:
        """Register the inbound handler, replacing any previous one."""
        self._handler = handler

    def _deliver(self, data: bytes, source: TransportAddress) -> None:
        if self._handler is not None:
            self._handler(data, source)

    def on_error(self, handler: ErrorHandler) -> None:
        """
        Register the handler for send errors reported after ``send`` returned.

        Errors detected while ``send`` runs are raised as ``WriteError``
        instead.
        """
        self._error_handler = handler

    def _report_error(self, exc: Exception) -> None:
        if self._error_handler is not None:
            self._error_handler(exc)

    def close(self) -> None:
        """Release the endpoint. Safe to call more than once."""
        if self._closed or not self._opened:
            self._closed = True
            return
        self._close()
        self._closed = True
        self._opened = False

    def _close(self) -> None:
        """Release protocol-specific resources."""

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def local_address(self) -> TransportAddress:
        return TransportAddress(
            host=self._local_host,
            port=self._local_port,
            protocol=self._get_protocol_name(),
        )

    @abc.abstractmethod
    def _get_protocol_name(self) -> str:
        """Return protocol name."""
        ...

    def __repr__(self) -> str:
        status = "open" if self.is_open else "closed"
        return f"<{type(self).__name__}({self.local_address}, {status})>"
