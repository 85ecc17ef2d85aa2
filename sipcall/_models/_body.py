"""
SIP Message Body Models and Parsers.

Only the bodies the call engine exchanges are modelled: the SDP audio offer
carried by INVITE and the DTMF relay payload carried by INFO. Anything else
is kept as a raw body.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# ============================================================================
# Base Classes
# ============================================================================


class MessageBody(ABC):
    """Base class for SIP message bodies."""

    @abstractmethod
    def to_bytes(self) -> bytes:
        """Serialize body to bytes."""
        pass

    @abstractmethod
    def to_string(self) -> str:
        """Serialize body to string."""
        pass

    @property
    @abstractmethod
    def content_type(self) -> str:
        """Return the Content-Type header value for this body."""
        pass


# ============================================================================
# SDP (Session Description Protocol) - RFC 4566
# ============================================================================

# Static payload types offered for telephony audio, plus RFC 4733 events.
AUDIO_CODECS = (
    ("0", "PCMU/8000"),
    ("8", "PCMA/8000"),
    ("101", "telephone-event/8000"),
)


@dataclass
class SDPBody(MessageBody):
    """
    Session Description Protocol (RFC 4566).

    Example:
        >>> sdp = SDPBody.audio_offer("192.168.1.100", 8000, session_id="1")
        >>> sdp.to_lines()[4]
        'm=audio 8000 RTP/AVP 0 8 101'
    """

    origin_session_id: str
    origin_session_version: str
    origin_address: str
    origin_username: str = "-"
    session_name: str = "-"
    connection: Optional[str] = None  # c= line
    timing: List[str] = field(default_factory=lambda: ["0 0"])

    # Media descriptions (list of dicts)
    media_descriptions: List[Dict[str, Any]] = field(default_factory=list)

    def add_media(
        self,
        media: str,
        port: int,
        protocol: str,
        formats: List[str],
        *,
        attributes: Optional[List[str]] = None,
    ) -> None:
        """Add a media description with its a= attribute lines."""
        self.media_descriptions.append(
            {
                "media": media,
                "port": port,
                "protocol": protocol,
                "formats": formats,
                "attributes": attributes or [],
            }
        )

    @classmethod
    def audio_offer(
        cls, address: str, media_port: int, session_id: str | None = None
    ) -> SDPBody:
        """Build the minimal audio offer: PCMU, PCMA and telephone-event."""
        session_id = session_id or str(int(time.time() * 1000))
        sdp = cls(
            origin_session_id=session_id,
            origin_session_version=session_id,
            origin_address=address,
            connection=f"IN IP4 {address}",
        )
        sdp.add_media(
            "audio",
            media_port,
            "RTP/AVP",
            [pt for pt, _ in AUDIO_CODECS],
            attributes=[f"rtpmap:{pt} {codec}" for pt, codec in AUDIO_CODECS]
            + ["fmtp:101 0-15"],
        )
        return sdp

    def to_lines(self) -> List[str]:
        """Convert SDP to list of lines."""
        lines = [
            "v=0",
            f"o={self.origin_username} {self.origin_session_id} "
            f"{self.origin_session_version} IN IP4 {self.origin_address}",
            f"s={self.session_name}",
        ]
        if self.connection:
            lines.append(f"c={self.connection}")
        for timing in self.timing:
            lines.append(f"t={timing}")

        for media in self.media_descriptions:
            formats_str = " ".join(media["formats"])
            lines.append(
                f"m={media['media']} {media['port']} {media['protocol']} {formats_str}"
            )
            for attr in media["attributes"]:
                lines.append(f"a={attr}")

        return lines

    def to_string(self) -> str:
        """Serialize SDP to string with CRLF line endings."""
        return "\r\n".join(self.to_lines()) + "\r\n"

    def to_bytes(self) -> bytes:
        return self.to_string().encode("utf-8")

    def __str__(self) -> str:
        return self.to_string()

    @property
    def content_type(self) -> str:
        return "application/sdp"


# ============================================================================
# DTMF Relay
# ============================================================================


@dataclass
class DTMFRelayBody(MessageBody):
    """DTMF relay message body (application/dtmf-relay)."""

    signal: str  # DTMF digit (0-9, *, #, A-D)
    duration: Optional[int] = None  # Duration in milliseconds

    def to_string(self) -> str:
        if self.duration:
            return f"Signal={self.signal}\r\nDuration={self.duration}\r\n"
        return f"Signal={self.signal}\r\n"

    def to_bytes(self) -> bytes:
        return self.to_string().encode("utf-8")

    def __str__(self) -> str:
        return self.to_string()

    @property
    def content_type(self) -> str:
        return "application/dtmf-relay"


@dataclass
class RawBody(MessageBody):
    """Raw binary or unknown content type body."""

    data: bytes
    mime_type: str

    def to_string(self) -> str:
        try:
            return self.data.decode("utf-8")
        except UnicodeDecodeError:
            return self.data.decode("latin-1")

    def to_bytes(self) -> bytes:
        return self.data

    def __str__(self) -> str:
        return self.to_string()

    @property
    def content_type(self) -> str:
        return self.mime_type


# ============================================================================
# Body Parser
# ============================================================================


class BodyParser:
    """Parser for SIP message bodies based on Content-Type."""

    @staticmethod
    def parse(content: bytes, content_type: str) -> MessageBody:
        """
        Parse message body based on Content-Type.

        Example:
            >>> BodyParser.parse(b"Signal=5\\r\\nDuration=160\\r\\n", "application/dtmf-relay")
            DTMFRelayBody(signal='5', duration=160)
        """
        mime_type = content_type.split(";")[0].strip().lower()

        if mime_type == "application/sdp":
            return BodyParser.parse_sdp(content)
        if mime_type == "application/dtmf-relay":
            return BodyParser.parse_dtmf_relay(content)
        return RawBody(data=content, mime_type=mime_type)

    @staticmethod
    def parse_sdp(content: bytes) -> SDPBody:
        """Parse the subset of SDP the engine reads back (origin, c=, m=, a=)."""
        text = content.decode("utf-8", errors="replace")
        lines = [line.strip() for line in text.split("\n") if line.strip()]

        sdp = SDPBody(
            origin_session_id="0",
            origin_session_version="0",
            origin_address="0.0.0.0",
        )
        sdp.timing = []
        current_media: Dict[str, Any] | None = None

        for line in lines:
            if len(line) < 2 or line[1] != "=":
                continue
            kind, value = line[0], line[2:]

            if kind == "o":
                parts = value.split()
                if len(parts) >= 6:
                    sdp.origin_username = parts[0]
                    sdp.origin_session_id = parts[1]
                    sdp.origin_session_version = parts[2]
                    sdp.origin_address = parts[5]
            elif kind == "s":
                sdp.session_name = value
            elif kind == "c" and current_media is None:
                sdp.connection = value
            elif kind == "t":
                sdp.timing.append(value)
            elif kind == "m":
                parts = value.split()
                if len(parts) >= 3:
                    sdp.add_media(parts[0], int(parts[1]), parts[2], parts[3:])
                    current_media = sdp.media_descriptions[-1]
            elif kind == "a" and current_media is not None:
                current_media["attributes"].append(value)

        return sdp

    @staticmethod
    def parse_dtmf_relay(content: bytes) -> DTMFRelayBody:
        """Parse a ``Signal=...`` / ``Duration=...`` payload."""
        signal = ""
        duration: Optional[int] = None

        for line in content.decode("utf-8", errors="replace").splitlines():
            key, sep, value = line.partition("=")
            if not sep:
                continue
            key = key.strip().lower()
            if key == "signal":
                signal = value.strip()
            elif key == "duration" and value.strip().isdigit():
                duration = int(value.strip())

        return DTMFRelayBody(signal=signal, duration=duration)


__all__ = [
    "MessageBody",
    "SDPBody",
    "DTMFRelayBody",
    "RawBody",
    "BodyParser",
    "AUDIO_CODECS",
]
