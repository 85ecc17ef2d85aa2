"""
SIP Headers implementation.

Provides a case-insensitive, order-preserving headers container and a
HeaderParser that handles folding, compact forms and repeated headers.
"""

from __future__ import annotations

import typing
from collections.abc import Mapping

from .._types import HeaderTypes
from .._utils import EOL, HEADERS, HEADERS_COMPACT, REPEATABLE_HEADERS


# ============================================================================
# Headers Implementation
# ============================================================================


class Headers(typing.MutableMapping[str, str]):
    """Case-insensitive SIP headers preserving insertion order.

    Indexing returns the first value of a header. Headers that legitimately
    repeat (Via, Contact, WWW-Authenticate, ...) keep every value, reachable
    through ``get_all``.

    Examples:
        >>> h = Headers({"Via": "SIP/2.0/UDP server.com", "from": "<sip:alice@example.com>"})
        >>> h["FROM"]
        '<sip:alice@example.com>'
        >>> h.add("Via", "SIP/2.0/UDP proxy.com")
        >>> h.get_all("via")
        ['SIP/2.0/UDP server.com', 'SIP/2.0/UDP proxy.com']
    """

    __slots__ = ("_store", "_names", "_order", "_encoding")

    @staticmethod
    def _canonical(name: str) -> str:
        """
        Convert header name to canonical form.

        - 'i' -> 'Call-ID' (compact form)
        - 'cseq' -> 'CSeq' (mapped header)
        - 'x-custom' -> 'X-Custom' (title-case fallback)
        """
        name = name.strip()

        if len(name) == 1 and name.lower() in HEADERS_COMPACT:
            expanded = HEADERS_COMPACT[name.lower()]
            return HEADERS.get(expanded, expanded.title())

        lower_name = name.lower()
        if lower_name in HEADERS:
            return HEADERS[lower_name]

        if name.islower():
            return "-".join(part.capitalize() for part in name.split("-"))

        return name

    @classmethod
    def _key(cls, name: str) -> str:
        """Lookup key: the canonical name, lowercased."""
        return cls._canonical(name).lower()

    def __init__(
        self,
        headers: HeaderTypes | None = None,
        encoding: str = "utf-8",
    ) -> None:
        # _store maps lowercase key -> list of values, in arrival order;
        # _names keeps the name each header was first written with
        self._store: dict[str, list[str]] = {}
        self._names: dict[str, str] = {}
        self._order: list[str] = []
        self._encoding = encoding

        if isinstance(headers, Headers):
            self._store = {k: list(v) for k, v in headers._store.items()}
            self._names = dict(headers._names)
            self._order = headers._order.copy()
            self._encoding = headers._encoding
        elif isinstance(headers, Mapping):
            for key, value in headers.items():
                self[key] = value
        elif headers is not None:
            raise TypeError("headers must be Headers or Mapping")

    def _slot(self, name: str) -> str:
        key = self._key(name)
        if key not in self._store:
            self._order.append(key)
            self._names[key] = self._canonical(name)
            self._store[key] = []
        return key

    def __getitem__(self, key: str) -> str:
        """Get the first value for the given header (case-insensitive)."""
        values = self._store.get(self._key(key))
        if not values:
            raise KeyError(key)
        return values[0]

    def __setitem__(self, key: str, value: str) -> None:
        """Set a header value, replacing any existing values for this key."""
        self._store[self._slot(key)] = [str(value)]

    def __delitem__(self, key: str) -> None:
        lookup = self._key(key)
        if lookup not in self._store:
            raise KeyError(key)
        del self._store[lookup]
        del self._names[lookup]
        self._order.remove(lookup)

    def __iter__(self) -> typing.Iterator[str]:
        return iter([self._names[key] for key in self._order])

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        return self._key(key) in self._store

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return self._store == other._store and self._order == other._order

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {v!r}" for k, v in self.multi_items())
        return f"Headers({{{items}}})"

    def add(self, key: str, value: str) -> None:
        """Append another value for a header, keeping the existing ones."""
        self._store[self._slot(key)].append(str(value))

    def get_all(self, key: str) -> list[str]:
        """Return every value of a header, in arrival order."""
        return list(self._store.get(self._key(key), []))

    def multi_items(self) -> typing.Iterator[tuple[str, str]]:
        """Iterate over (name, value) pairs, one per header occurrence."""
        for key in self._order:
            for value in self._store[key]:
                yield self._names[key], value

    def copy(self) -> Headers:
        return Headers(self, encoding=self._encoding)

    @property
    def encoding(self) -> str:
        return self._encoding

    def to_lines(self) -> list[str]:
        """Convert headers to 'Name: Value' lines, Content-Length last."""
        lines = [
            f"{name}: {value}"
            for name, value in self.multi_items()
            if name != "Content-Length"
        ]
        if "content-length" in self._store:
            lines.append(f"Content-Length: {self._store['content-length'][0]}")
        return lines

    def raw(self, encoding: str | None = None) -> bytes:
        """Serialize headers to wire format, each line CRLF-terminated."""
        enc = encoding or self._encoding
        lines = self.to_lines()
        if not lines:
            return b""
        return (EOL.join(lines) + EOL).encode(enc)


# ============================================================================
# Header Parser
# ============================================================================


class HeaderParser:
    """
    Parser for SIP headers.

    Handles parsing of header lines with support for:
    - Line folding (RFC 3261 Section 7.3.1)
    - Compact header forms
    - Repeated headers (first occurrence wins unless the header may repeat)
    """

    @staticmethod
    def parse(header_data: bytes | str, encoding: str = "utf-8") -> Headers:
        """
        Parse SIP headers from raw data.

        Example:
            >>> data = b"Via: SIP/2.0/UDP pc33.atlanta.com\\r\\nf: <sip:alice@atlanta.com>\\r\\n"
            >>> HeaderParser.parse(data)["From"]
            '<sip:alice@atlanta.com>'
        """
        if isinstance(header_data, str):
            header_data = header_data.encode(encoding)

        header_data = header_data.replace(b"\r\n", b"\n")
        return HeaderParser.parse_lines(header_data.split(b"\n"), encoding=encoding)

    @staticmethod
    def parse_lines(header_lines: list[bytes], encoding: str = "utf-8") -> Headers:
        """Parse headers from a list of header lines (folding supported)."""
        headers = Headers(encoding=encoding)
        current_name: str | None = None
        current_value: str = ""

        def _store(name: str, value: str) -> None:
            canonical = Headers._canonical(name)
            if canonical in REPEATABLE_HEADERS:
                headers.add(canonical, value)
            elif canonical not in headers:
                headers[canonical] = value

        for line in header_lines:
            if not line:
                continue

            # Folded line (starts with whitespace)
            if line[0:1] in (b" ", b"\t"):
                if current_name is None:
                    continue
                current_value += " " + line.decode(encoding, errors="replace").strip()
                continue

            if current_name is not None:
                _store(current_name, current_value)
                current_name = None

            if b":" not in line:
                continue  # Invalid header line, skip

            name, _, value = line.partition(b":")
            current_name = name.decode(encoding, errors="replace").strip()
            current_value = value.decode(encoding, errors="replace").strip()

        if current_name is not None:
            _store(current_name, current_value)

        return headers

    @staticmethod
    def parse_params(value: str) -> dict[str, str]:
        """
        Parse the parameters of a name-addr header value.

        Parameters inside the angle-bracketed URI are not header parameters
        and are ignored.

        Example:
            >>> HeaderParser.parse_params('"Bob" <sip:bob@biloxi.com;user=phone>;tag=a6c85cf')
            {'tag': 'a6c85cf'}
        """
        if ">" in value:
            value = value.rsplit(">", 1)[1]
        elif ";" in value:
            value = value.split(";", 1)[1]
        else:
            return {}

        params: dict[str, str] = {}
        for part in value.split(";"):
            part = part.strip()
            if not part:
                continue
            if "=" in part:
                key, val = part.split("=", 1)
                params[key.strip().lower()] = val.strip().strip('"')
            else:
                params[part.lower()] = ""
        return params

    @staticmethod
    def parse_uri(value: str) -> str:
        """
        Extract the URI from a name-addr or addr-spec header value.

        Example:
            >>> HeaderParser.parse_uri('"Bob" <sip:bob@biloxi.com>;tag=1')
            'sip:bob@biloxi.com'
        """
        if "<" in value and ">" in value:
            return value.split("<", 1)[1].split(">", 1)[0].strip()
        return value.split(";", 1)[0].strip()


__all__ = [
    "Headers",
    "HeaderParser",
]
