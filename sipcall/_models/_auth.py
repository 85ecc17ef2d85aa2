"""
SIP Authentication module implementing HTTP Digest Authentication (RFC 2617/7616).

Implements the client side of the SIP challenge-response model:
- Challenge parsing from 401 Unauthorized / 407 Proxy Authentication Required
- Authorization/Proxy-Authorization header generation
- Digest authentication (MD5, SHA-256)
- QoP (Quality of Protection) ``auth`` with nonce count and client nonce

Security Notes:
- Digest provides message authentication but NOT integrity/confidentiality
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass, field

from .._types import AuthenticationError


_HASHES = {
    "MD5": hashlib.md5,
    "SHA-256": hashlib.sha256,
}


def _hash_for(algorithm: str):
    try:
        return _HASHES[algorithm.upper()]
    except KeyError:
        raise AuthenticationError(f"Unsupported digest algorithm: {algorithm}") from None


def challenge_response(
    username: str,
    realm: str,
    secret: str,
    method: str,
    uri: str,
    nonce: str,
    algorithm: str = "MD5",
    *,
    qop: str | None = None,
    nc: str | None = None,
    cnonce: str | None = None,
) -> str:
    """
    Compute the digest response hash.

    ``H(H(username:realm:secret):nonce:H(method:uri))``, or the RFC 2617 form
    ``H(HA1:nonce:nc:cnonce:qop:HA2)`` when ``qop`` is given.

    Example:
        >>> len(challenge_response("1001", "asterisk", "secret", "REGISTER",
        ...                        "sip:pbx.example.com", "abc123"))
        32
    """
    hash_func = _hash_for(algorithm)

    ha1 = hash_func(f"{username}:{realm}:{secret}".encode()).hexdigest()
    ha2 = hash_func(f"{method}:{uri}".encode()).hexdigest()

    if qop:
        if not nc or not cnonce:
            raise AuthenticationError("qop digest requires nc and cnonce")
        data = f"{ha1}:{nonce}:{nc}:{cnonce}:{qop}:{ha2}"
    else:
        data = f"{ha1}:{nonce}:{ha2}"

    return hash_func(data.encode()).hexdigest()


@dataclass
class DigestChallenge:
    """
    Parsed Digest authentication challenge from WWW-Authenticate or
    Proxy-Authenticate.

    Attributes:
        realm: Protection space (realm) - identifies credential domain
        nonce: Server-specified nonce value for replay attack prevention
        algorithm: Hash algorithm (MD5, SHA-256)
        qop: Quality of protection options offered by the server
        opaque: Server-specified opaque value (returned unchanged by client)
        stale: If TRUE, only nonce expired (credentials were valid)
        is_proxy: True if from Proxy-Authenticate header
    """

    realm: str
    nonce: str
    algorithm: str = "MD5"
    qop: str | None = None
    opaque: str | None = None
    stale: bool = False
    is_proxy: bool = False
    _raw_params: dict[str, str] = field(default_factory=dict, repr=False)

    @property
    def scheme(self) -> str:
        return "Digest"

    @property
    def header_name(self) -> str:
        """Header carrying the answer: Authorization or Proxy-Authorization."""
        return "Proxy-Authorization" if self.is_proxy else "Authorization"

    @classmethod
    def parse(cls, header_value: str, *, is_proxy: bool = False) -> DigestChallenge:
        """
        Parse WWW-Authenticate or Proxy-Authenticate header value.

        Unknown parameters are ignored; quoted values may contain commas.

        Raises:
            AuthenticationError: If the header is not Digest or lacks realm or nonce.

        Example:
            >>> ch = DigestChallenge.parse('Digest realm="asterisk", nonce="1a2b", qop="auth,auth-int"')
            >>> ch.realm, ch.nonce, ch.qop
            ('asterisk', '1a2b', 'auth,auth-int')
        """
        value = header_value.strip()
        if not value.lower().startswith("digest "):
            raise AuthenticationError(f"Expected Digest challenge, got: {value[:20]}")

        params = _parse_auth_params(value[7:].strip())

        missing = [name for name in ("realm", "nonce") if not params.get(name)]
        if missing:
            raise AuthenticationError(
                f"Digest challenge missing {', '.join(missing)}"
            )

        return cls(
            realm=params["realm"],
            nonce=params["nonce"],
            algorithm=params.get("algorithm", "MD5"),
            qop=params.get("qop"),
            opaque=params.get("opaque"),
            stale=params.get("stale", "").lower() == "true",
            is_proxy=is_proxy,
            _raw_params=params,
        )

    @classmethod
    def from_response(cls, response) -> DigestChallenge:
        """
        Extract the topmost challenge of a 401/407 response.

        Raises:
            AuthenticationError: If the response carries no usable challenge.
        """
        is_proxy = response.status_code == 407
        header = "Proxy-Authenticate" if is_proxy else "WWW-Authenticate"
        values = response.headers.get_all(header)
        if not values:
            raise AuthenticationError(f"{response.status_code} response without {header}")

        digest_values = [v for v in values if v.strip().lower().startswith("digest ")]
        if not digest_values:
            raise AuthenticationError(f"No Digest challenge in {header}")
        return cls.parse(digest_values[0], is_proxy=is_proxy)


@dataclass
class DigestAuth:
    """
    SIP Digest Authentication handler for one challenge.

    Usage:
        challenge = DigestChallenge.from_response(response)
        auth = DigestAuth("alice", "secret123", challenge)
        request.headers[challenge.header_name] = auth.build_authorization(
            method="INVITE", uri="sip:bob@biloxi.com"
        )

    Attributes:
        nonce_count: Counter for nonce reuse (incremented on each auth)
        client_nonce: Client-generated nonce for qop mode
    """

    username: str
    password: str = field(repr=False)
    challenge: DigestChallenge
    nonce_count: int = 0
    client_nonce: str | None = None

    def build_authorization(self, method: str, uri: str) -> str:
        """
        Build Authorization or Proxy-Authorization header value.

        Returns:
            Complete header value, e.g. 'Digest username="alice", realm="atlanta.com", ...'
        """
        qop_value = None
        if self.challenge.qop:
            qop_options = [q.strip() for q in self.challenge.qop.split(",")]
            if "auth" in qop_options:
                qop_value = "auth"

        nc_value = None
        cnonce = None
        if qop_value:
            self.nonce_count += 1
            nc_value = f"{self.nonce_count:08x}"
            if not self.client_nonce:
                self.client_nonce = secrets.token_hex(8)
            cnonce = self.client_nonce

        response_hash = challenge_response(
            self.username,
            self.challenge.realm,
            self.password,
            method,
            uri,
            self.challenge.nonce,
            self.challenge.algorithm,
            qop=qop_value,
            nc=nc_value,
            cnonce=cnonce,
        )

        parts = [
            f'username="{self.username}"',
            f'realm="{self.challenge.realm}"',
            f'nonce="{self.challenge.nonce}"',
            f'uri="{uri}"',
            f'response="{response_hash}"',
            f"algorithm={self.challenge.algorithm}",
        ]

        if self.challenge.opaque:
            parts.append(f'opaque="{self.challenge.opaque}"')

        if qop_value:
            parts.extend([f"qop={qop_value}", f"nc={nc_value}", f'cnonce="{cnonce}"'])

        return "Digest " + ", ".join(parts)


def _parse_auth_params(params_string: str) -> dict[str, str]:
    """
    Parse authentication parameter string into dict.

    Handles quoted and unquoted values; commas inside quotes are kept.

    Example:
        >>> _parse_auth_params('realm="a,b", nonce=xyz')
        {'realm': 'a,b', 'nonce': 'xyz'}
    """
    params: dict[str, str] = {}
    current_key = ""
    current_value = ""
    in_quotes = False
    in_value = False

    for char in params_string:
        if char == '"':
            in_quotes = not in_quotes
            continue

        if not in_quotes:
            if char == "=" and not in_value:
                in_value = True
                current_key = current_key.strip()
                continue

            if char == ",":
                if in_value:
                    params[current_key.lower()] = current_value.strip()
                current_key = ""
                current_value = ""
                in_value = False
                continue

        if in_value:
            current_value += char
        else:
            current_key += char

    if current_key and in_value:
        params[current_key.strip().lower()] = current_value.strip()

    return params


__all__ = [
    "DigestChallenge",
    "DigestAuth",
    "challenge_response",
]
