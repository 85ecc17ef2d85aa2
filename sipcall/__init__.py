"""sipcall - asyncio SIP call session engine for outbound trunk calls."""

from __future__ import annotations

# Engine
from ._session import CallHandle, SessionEngine

# Configuration
from ._config import Credentials, EngineConfig

# FSM components
from ._fsm import Dialog, Transaction, TransactionTracker

# Lifecycle events
from ._events import (
    EVENT_TYPES,
    CallEnded,
    CallEstablished,
    CallFailed,
    CallInitiated,
    CallRinging,
    CallTerminating,
    Connected,
    DigitSent,
    Disconnected,
    EventEmitter,
    Registering,
    RegistrationFailed,
    SessionEvent,
)

# Models
from ._models import (
    BodyParser,
    DigestAuth,
    DigestChallenge,
    DTMFRelayBody,
    HeaderParser,
    Headers,
    MessageBuilder,
    MessageParser,
    RawBody,
    Request,
    Response,
    SDPBody,
    SIPMessage,
    challenge_response,
)

# Transports
from ._transports import BaseTransport, MemoryTransport, UDPTransport

# Types and exceptions
from ._types import (
    AuthenticationError,
    BindError,
    BusyError,
    CallState,
    ConfigurationError,
    DecodeError,
    InvalidDigitError,
    NoActiveCallError,
    NotRegisteredError,
    ProtocolError,
    ReadError,
    RegistrationState,
    SipCallError,
    StateError,
    TransactionState,
    TransactionTimeout,
    TransportAddress,
    TransportError,
    WriteError,
)

from ._utils import console, logger

__version__ = "0.1.0"

__all__ = [
    # Engine
    "SessionEngine",
    "CallHandle",
    # Configuration
    "EngineConfig",
    "Credentials",
    # FSM
    "Dialog",
    "Transaction",
    "TransactionTracker",
    # Events
    "SessionEvent",
    "EventEmitter",
    "EVENT_TYPES",
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
    # Models
    "Headers",
    "HeaderParser",
    "SIPMessage",
    "Request",
    "Response",
    "MessageBuilder",
    "MessageParser",
    "DigestAuth",
    "DigestChallenge",
    "challenge_response",
    "BodyParser",
    "SDPBody",
    "DTMFRelayBody",
    "RawBody",
    # Transports
    "BaseTransport",
    "UDPTransport",
    "MemoryTransport",
    "TransportAddress",
    # States
    "TransactionState",
    "RegistrationState",
    "CallState",
    # Exceptions
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
    # Utilities
    "console",
    "logger",
    "__version__",
]
