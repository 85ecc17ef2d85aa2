"""
SIP transport layer.

This package provides the datagram transports the engine can run on:
- UDP: Connectionless, unreliable transport to a real trunk
- Memory: In-process transport recording traffic, for tests and dry runs
"""

from .._types import (
    BindError,
    ReadError,
    TransportAddress,
    TransportError,
    WriteError,
)
from ._base import BaseTransport
from ._memory import MemoryTransport
from ._udp import UDPTransport

__all__ = [
    # Base classes
    "BaseTransport",
    "TransportAddress",
    # Implementations
    "UDPTransport",
    "MemoryTransport",
    # Exceptions
    "TransportError",
    "BindError",
    "ReadError",
    "WriteError",
]
