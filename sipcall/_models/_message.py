"""
SIP Message models (Request and Response) and Parser.

Provides SIP message creation, serialization and parsing. ``MessageBuilder``
renders requests from a structured description and answers inbound
requests; ``MessageParser`` turns datagrams back into messages and raises
``DecodeError`` for anything it cannot use.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

from .._types import DecodeError, HeaderTypes
from .._utils import BRANCH, EOL, REASON_PHRASES, SCHEME, VERSION, generate_tag
from ._body import BodyParser, MessageBody
from ._header import HeaderParser, Headers


# ============================================================================
# Base Classes
# ============================================================================


class SIPMessage(ABC):
    """
    Abstract base class for SIP messages.

    Holds the headers and the raw content; subclasses render the start line.
    """

    __slots__ = ("version", "_headers", "_content", "_body")

    def __init__(
        self,
        *,
        headers: HeaderTypes | None = None,
        content: str | bytes | MessageBody | None = None,
        version: str | None = None,
    ) -> None:
        self.version = version if version else f"{SCHEME}/{VERSION}"
        self._headers = (
            Headers(headers) if not isinstance(headers, Headers) else headers
        )

        # Content - support str, bytes, or MessageBody
        self._body: MessageBody | None = None
        if isinstance(content, MessageBody):
            self._body = content
            self._content = content.to_bytes()
            if "Content-Type" not in self._headers:
                self._headers["Content-Type"] = content.content_type
        elif isinstance(content, str):
            self._content = content.encode("utf-8")
        elif isinstance(content, bytes):
            self._content = content
        else:
            self._content = b""

        # Content-Length is mandatory (RFC 3261 Section 20.14)
        if "Content-Length" not in self._headers:
            self._headers["Content-Length"] = str(len(self._content))

    @abstractmethod
    def start_line(self) -> str:
        """Return the request line or status line."""
        ...

    @property
    def headers(self) -> Headers:
        return self._headers

    @property
    def content(self) -> bytes:
        return self._content

    @property
    def body(self) -> MessageBody | None:
        """
        Return parsed message body if Content-Type is set, None otherwise.

        Lazily parses the body on first access based on Content-Type header.
        """
        if self._body is None and self._content and "Content-Type" in self._headers:
            self._body = BodyParser.parse(self._content, self._headers["Content-Type"])
        return self._body

    @property
    def content_type(self) -> str | None:
        return self._headers.get("Content-Type")

    # Common SIP headers as properties
    @property
    def via(self) -> str | None:
        """Return the topmost Via header."""
        return self._headers.get("Via")

    @property
    def from_header(self) -> str | None:
        return self._headers.get("From")

    @property
    def to_header(self) -> str | None:
        return self._headers.get("To")

    @property
    def call_id(self) -> str | None:
        return self._headers.get("Call-ID")

    @property
    def cseq(self) -> str | None:
        return self._headers.get("CSeq")

    @property
    def contact(self) -> str | None:
        return self._headers.get("Contact")

    @property
    def cseq_number(self) -> int | None:
        """Return the CSeq sequence number, or None if absent or malformed."""
        parsed = _split_cseq(self.cseq)
        return parsed[0] if parsed else None

    @property
    def cseq_method(self) -> str | None:
        parsed = _split_cseq(self.cseq)
        return parsed[1] if parsed else None

    @property
    def from_tag(self) -> str | None:
        if not self.from_header:
            return None
        return HeaderParser.parse_params(self.from_header).get("tag")

    @property
    def to_tag(self) -> str | None:
        if not self.to_header:
            return None
        return HeaderParser.parse_params(self.to_header).get("tag")

    @property
    def via_params(self) -> dict[str, str]:
        """Return the parameters of the topmost Via (branch, received, rport...)."""
        if not self.via:
            return {}
        return HeaderParser.parse_params(self.via)

    def to_bytes(self) -> bytes:
        """Serialize message to bytes (wire format)."""
        encoding = "utf-8"
        return (
            (self.start_line() + EOL).encode(encoding)
            + self._headers.raw(encoding)
            + EOL.encode(encoding)
            + self._content
        )

    def to_string(self) -> str:
        """Serialize message to string for display."""
        return self.to_bytes().decode("utf-8", errors="replace")

    def __str__(self) -> str:
        return self.to_string()


def _split_cseq(value: str | None) -> tuple[int, str] | None:
    if not value:
        return None
    parts = value.split()
    if len(parts) != 2 or not parts[0].isdigit():
        return None
    return int(parts[0]), parts[1].upper()


# ============================================================================
# Request Implementation
# ============================================================================


class Request(SIPMessage):
    """
    SIP Request message.

    The engine originates REGISTER, INVITE, ACK, INFO, BYE and OPTIONS and
    answers BYE, OPTIONS and INFO.
    """

    __slots__ = ("method", "uri")

    def __init__(
        self,
        method: str,
        uri: str,
        *,
        headers: HeaderTypes | None = None,
        content: str | bytes | MessageBody | None = None,
        version: str | None = None,
    ) -> None:
        self.method = method.upper()
        self.uri = uri
        super().__init__(headers=headers, content=content, version=version)

        # Max-Forwards recommended default (RFC 3261 Section 20.22)
        if "Max-Forwards" not in self._headers:
            self._headers["Max-Forwards"] = "70"

    def start_line(self) -> str:
        return f"{self.method} {self.uri} {self.version}"

    @property
    def branch(self) -> str | None:
        return self.via_params.get("branch")

    def has_valid_via_branch(self) -> bool:
        """
        Check if the topmost Via carries an RFC 3261 compliant branch.

        Example:
            >>> req = Request("INVITE", "sip:bob@biloxi.com",
            ...     headers={"Via": "SIP/2.0/UDP pc33.atlanta.com;branch=z9hG4bK776asdhds"})
            >>> req.has_valid_via_branch()
            True
        """
        if not self.via:
            return False
        match = re.search(r"branch=([^;,\s]+)", self.via, re.IGNORECASE)
        return bool(match) and match.group(1).startswith(BRANCH)

    def __repr__(self) -> str:
        return f"<Request({self.method!r}, {self.uri!r})>"


# ============================================================================
# Response Implementation
# ============================================================================


class Response(SIPMessage):
    """
    SIP Response message.

    Response classes:
    - 1xx: Provisional (100 Trying, 180 Ringing, 183 Session Progress)
    - 2xx: Success (200 OK)
    - 3xx: Redirection
    - 4xx: Client Error (401/407 carry digest challenges)
    - 5xx: Server Error
    - 6xx: Global Failure
    """

    __slots__ = ("status_code", "reason_phrase")

    def __init__(
        self,
        status_code: int,
        *,
        reason_phrase: str | None = None,
        headers: HeaderTypes | None = None,
        content: str | bytes | MessageBody | None = None,
        version: str | None = None,
    ) -> None:
        self.status_code = status_code
        if reason_phrase is None:
            self.reason_phrase = REASON_PHRASES.get(status_code, "Unknown")
        else:
            self.reason_phrase = reason_phrase
        super().__init__(headers=headers, content=content, version=version)

    def start_line(self) -> str:
        return f"{self.version} {self.status_code} {self.reason_phrase}"

    @property
    def requires_auth(self) -> bool:
        """True if response requires authentication (401 or 407)."""
        return self.status_code in (401, 407)

    # Response type checks
    @property
    def is_provisional(self) -> bool:
        return 100 <= self.status_code < 200

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_final(self) -> bool:
        return self.status_code >= 200

    def __repr__(self) -> str:
        return f"<Response [{self.status_code} {self.reason_phrase}]>"


# ============================================================================
# Message Builder
# ============================================================================


class MessageBuilder:
    """
    Renders outbound messages with the mandatory RFC 3261 headers in order.

    Deterministic for identical inputs; callers generate the branch, tags and
    Call-ID themselves.
    """

    @staticmethod
    def request(
        method: str,
        uri: str,
        *,
        via: str,
        from_addr: str,
        to_addr: str,
        call_id: str,
        cseq: int,
        contact: str | None = None,
        headers: HeaderTypes | None = None,
        body: str | bytes | MessageBody | None = None,
        content_type: str | None = None,
    ) -> Request:
        """
        Build a request from a structured description.

        Example:
            >>> req = MessageBuilder.request(
            ...     "OPTIONS", "sip:trunk.example.com",
            ...     via="SIP/2.0/UDP 10.0.0.1:5060;branch=z9hG4bK1",
            ...     from_addr="<sip:alice@example.com>;tag=1",
            ...     to_addr="<sip:trunk.example.com>",
            ...     call_id="abc@10.0.0.1", cseq=1)
            >>> req.headers["CSeq"]
            '1 OPTIONS'
        """
        method = method.upper()
        rendered = Headers()
        rendered["Via"] = via
        rendered["Max-Forwards"] = "70"
        rendered["From"] = from_addr
        rendered["To"] = to_addr
        rendered["Call-ID"] = call_id
        rendered["CSeq"] = f"{cseq} {method}"
        if contact:
            rendered["Contact"] = contact

        if headers:
            extra = headers if isinstance(headers, Headers) else Headers(headers)
            for name, value in extra.multi_items():
                rendered.add(name, value)

        if content_type:
            rendered["Content-Type"] = content_type

        return Request(method, uri, headers=rendered, content=body)

    @staticmethod
    def response(
        request: Request,
        status_code: int,
        *,
        to_tag: str | None = None,
        headers: HeaderTypes | None = None,
        reason_phrase: str | None = None,
    ) -> Response:
        """
        Build a response to an inbound request (RFC 3261 Section 8.2.6).

        Every Via is copied back in order along with From, Call-ID and CSeq.
        The To header gets a tag unless it already has one.
        """
        rendered = Headers()
        for via in request.headers.get_all("Via"):
            rendered.add("Via", via)
        rendered["From"] = request.from_header or ""

        to_value = request.to_header or ""
        if to_value and request.to_tag is None and status_code > 100:
            to_value = f"{to_value};tag={to_tag or generate_tag()}"
        rendered["To"] = to_value
        rendered["Call-ID"] = request.call_id or ""
        rendered["CSeq"] = request.cseq or ""

        if headers:
            extra = headers if isinstance(headers, Headers) else Headers(headers)
            for name, value in extra.multi_items():
                rendered.add(name, value)

        return Response(status_code, reason_phrase=reason_phrase, headers=rendered)


# ============================================================================
# Message Parser
# ============================================================================


_STATUS_LINE = re.compile(r"^SIP/\d+\.\d+ (\d{3})(?: (.*))?$")


class MessageParser:
    """
    Unified SIP message parser.

    Supports parsing both Request and Response messages from bytes or strings.
    """

    @staticmethod
    def parse(data: bytes | str) -> Request | Response:
        """
        Parse SIP message from bytes or string.

        Raises:
            DecodeError: If the start line is malformed, or a response lacks
                Call-ID or a usable CSeq.

        Example:
            >>> data = b"SIP/2.0 180 Ringing\\r\\nCall-ID: a@b\\r\\nCSeq: 1 INVITE\\r\\n\\r\\n"
            >>> MessageParser.parse(data).status_code
            180
        """
        if isinstance(data, str):
            data = data.encode("utf-8")

        # Normalize line endings
        eol_bytes = EOL.encode("utf-8")
        head, sep, body = data.partition(b"\r\n\r\n")
        if not sep:
            head, sep, body = data.partition(b"\n\n")
        head = head.replace(b"\r\n", b"\n")

        lines = head.lstrip(eol_bytes).split(b"\n")
        if not lines or not lines[0].strip():
            raise DecodeError("Empty SIP message")

        try:
            start_line = lines[0].decode("utf-8").strip()
        except UnicodeDecodeError as exc:
            raise DecodeError("Start line is not valid UTF-8") from exc

        headers = HeaderParser.parse_lines(lines[1:])
        body = _trim_body(body, headers)

        if start_line.startswith(f"{SCHEME}/"):
            return MessageParser.parse_response(start_line, headers, body)
        return MessageParser.parse_request(start_line, headers, body)

    @staticmethod
    def parse_request(start_line: str, headers: Headers, body: bytes) -> Request:
        parts = start_line.split(" ")
        if len(parts) != 3 or not parts[2].startswith(f"{SCHEME}/"):
            raise DecodeError(f"Invalid request line: {start_line!r}")

        method, uri, version = parts
        if not method.isalpha():
            raise DecodeError(f"Invalid request method: {method!r}")

        return Request(method, uri, version=version, headers=headers, content=body)

    @staticmethod
    def parse_response(start_line: str, headers: Headers, body: bytes) -> Response:
        match = _STATUS_LINE.match(start_line)
        if not match:
            raise DecodeError(f"Invalid status line: {start_line!r}")

        status_code = int(match.group(1))
        if not 100 <= status_code <= 699:
            raise DecodeError(f"Status code out of range: {status_code}")

        if "Call-ID" not in headers:
            raise DecodeError("Response missing Call-ID")
        if _split_cseq(headers.get("CSeq")) is None:
            raise DecodeError("Response missing or malformed CSeq")

        return Response(
            status_code,
            version=start_line.split(" ", 1)[0],
            reason_phrase=match.group(2) or "",
            headers=headers,
            content=body,
        )


def _trim_body(body: bytes, headers: Headers) -> bytes:
    """Cut the body to Content-Length when the datagram carries trailing bytes."""
    length = headers.get("Content-Length")
    if length is None or not length.strip().isdigit():
        return body
    return body[: int(length)]


__all__ = [
    "SIPMessage",
    "Request",
    "Response",
    "MessageBuilder",
    "MessageParser",
]
