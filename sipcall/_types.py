"""
Type definitions and exceptions for the SIP call engine.

This module centralizes the engine's state enums, the transport address
type and the exception taxonomy shared by every layer.
"""

from __future__ import annotations

import typing
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

if typing.TYPE_CHECKING:
    from ._models._header import Headers


# =============================================================================
# Header Types
# =============================================================================

HeaderTypes = typing.Union[
    "Headers",
    Mapping[str, str],
]


# =============================================================================
# Transport Address
# =============================================================================


@dataclass(frozen=True)
class TransportAddress:
    """Represents a transport address (host, port, protocol)."""

    host: str
    port: int = 5060
    protocol: str = "UDP"

    def __str__(self) -> str:
        return f"{self.protocol.upper()}:{self.host}:{self.port}"

    def as_tuple(self) -> tuple[str, int]:
        return self.host, self.port


# =============================================================================
# Exceptions
# =============================================================================


class SipCallError(Exception):
    """Base exception for every error raised by the engine."""


class ConfigurationError(SipCallError):
    """Raised when required configuration is missing or invalid."""


class TransportError(SipCallError):
    """Base exception for transport errors."""


class BindError(TransportError):
    """Raised when the local endpoint cannot be bound."""


class WriteError(TransportError):
    """Raised when writing to transport fails."""


class ReadError(TransportError):
    """Raised when reading from transport fails."""


class ProtocolError(SipCallError):
    """Base exception for malformed or unusable protocol data."""


class DecodeError(ProtocolError):
    """Raised when an inbound message cannot be decoded."""


class AuthenticationError(ProtocolError):
    """Raised when a digest challenge cannot be answered or is repeated."""


class TransactionTimeout(SipCallError):
    """Raised when a transaction exhausts its retransmission budget."""


class StateError(SipCallError):
    """Raised when an operation is invoked in a state that forbids it."""


class NotRegisteredError(StateError):
    """Raised when placing a call before registration completed."""


class NoActiveCallError(StateError):
    """Raised when an in-call operation is invoked without an established call."""


class BusyError(StateError):
    """Raised when placing a call while another one is active."""


class InvalidDigitError(StateError, ValueError):
    """Raised when a DTMF digit outside 0-9, *, #, A-D is requested."""


# =============================================================================
# Engine States
# =============================================================================


class TransactionState(str, Enum):
    """Client transaction states (RFC 3261 Section 17.1, collapsed)."""

    CALLING = "calling"  # Request sent, retransmitting
    PROCEEDING = "proceeding"  # Provisional received, retransmission stopped
    COMPLETED = "completed"  # Final response received
    TERMINATED = "terminated"  # Timed out, failed to send, or abandoned


class RegistrationState(str, Enum):
    """Registration lifecycle of the engine."""

    UNREGISTERED = "unregistered"
    REGISTERING = "registering"
    REGISTERED = "registered"


class CallState(str, Enum):
    """
    Lifecycle of the single call owned by the engine.

    IDLE → INVITING → RINGING → ESTABLISHED → TERMINATING → TERMINATED
                 ↘        ↘
                  FAILED   FAILED
    """

    IDLE = "idle"
    INVITING = "inviting"
    RINGING = "ringing"
    ESTABLISHED = "established"
    TERMINATING = "terminating"
    TERMINATED = "terminated"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        """True while the call occupies the engine."""
        return self in (
            CallState.INVITING,
            CallState.RINGING,
            CallState.ESTABLISHED,
            CallState.TERMINATING,
        )


# =============================================================================
# Type Aliases
# =============================================================================

DatagramHandler = typing.Callable[[bytes, TransportAddress], None]
ErrorHandler = typing.Callable[[Exception], None]


__all__ = [
    "HeaderTypes",
    "TransportAddress",
    "SipCallError",
    "ConfigurationError",
    "TransportError",
    "BindError",
    "WriteError",
    "ReadError",
    "ProtocolError",
    "DecodeError",
    "AuthenticationError",
    "TransactionTimeout",
    "StateError",
    "NotRegisteredError",
    "NoActiveCallError",
    "BusyError",
    "InvalidDigitError",
    "TransactionState",
    "RegistrationState",
    "CallState",
    "DatagramHandler",
    "ErrorHandler",
]
