"""
SIP Models Package.

This package contains models for SIP messages, headers, body content and
digest authentication.
"""

from ._auth import DigestAuth, DigestChallenge, challenge_response
from ._body import BodyParser, DTMFRelayBody, MessageBody, RawBody, SDPBody
from ._header import HeaderParser, Headers
from ._message import MessageBuilder, MessageParser, Request, Response, SIPMessage

__all__ = [
    # Headers
    "Headers",
    "HeaderParser",
    # Messages
    "SIPMessage",
    "Request",
    "Response",
    "MessageBuilder",
    "MessageParser",
    # Authentication - Digest
    "DigestAuth",
    "DigestChallenge",
    "challenge_response",
    # Body types
    "MessageBody",
    "BodyParser",
    "SDPBody",
    "DTMFRelayBody",
    "RawBody",
]
