from __future__ import annotations

import hashlib

import pytest

from sipcall import (
    AuthenticationError,
    DigestAuth,
    DigestChallenge,
    MessageParser,
    challenge_response,
)


def _md5(text: str) -> str:
    return hashlib.md5(text.encode()).hexdigest()


def test_challenge_response_without_qop() -> None:
    ha1 = _md5("1001:asterisk:s3cret")
    ha2 = _md5("REGISTER:sip:pbx.example.com")
    expected = _md5(f"{ha1}:abc123:{ha2}")

    assert (
        challenge_response("1001", "asterisk", "s3cret", "REGISTER", "sip:pbx.example.com", "abc123")
        == expected
    )


def test_challenge_response_rfc2617_vector() -> None:
    response = challenge_response(
        "Mufasa",
        "testrealm@host.com",
        "Circle Of Life",
        "GET",
        "/dir/index.html",
        "dcd98b7102dd2f0e8b11d0f600bfb0c093",
        qop="auth",
        nc="00000001",
        cnonce="0a4f113b",
    )

    assert response == "6629fae49393a05397450978507c4ef1"


def test_challenge_response_sha256() -> None:
    response = challenge_response("u", "r", "p", "INVITE", "sip:x", "n", algorithm="SHA-256")

    assert len(response) == 64


def test_unsupported_algorithm_is_rejected() -> None:
    with pytest.raises(AuthenticationError):
        challenge_response("u", "r", "p", "INVITE", "sip:x", "n", algorithm="MD5-sess-ish")


def test_parse_challenge_tolerates_commas_and_unknown_keys() -> None:
    challenge = DigestChallenge.parse(
        'Digest realm="sip,example", nonce="n0nce", algorithm=MD5, '
        'qop="auth,auth-int", opaque="op", stale=TRUE, x-vendor="ignored"'
    )

    assert challenge.realm == "sip,example"
    assert challenge.nonce == "n0nce"
    assert challenge.algorithm == "MD5"
    assert challenge.qop == "auth,auth-int"
    assert challenge.opaque == "op"
    assert challenge.stale is True
    assert challenge.header_name == "Authorization"


@pytest.mark.parametrize(
    "value",
    [
        'Digest nonce="abc"',
        'Digest realm="asterisk"',
        'Digest realm="", nonce="abc"',
        'Basic realm="asterisk"',
    ],
)
def test_unusable_challenges_raise(value: str) -> None:
    with pytest.raises(AuthenticationError):
        DigestChallenge.parse(value)


def test_authorization_echoes_opaque() -> None:
    challenge = DigestChallenge.parse('Digest realm="asterisk", nonce="abc", opaque="xyz"')
    auth = DigestAuth("1001", "s3cret", challenge)

    value = auth.build_authorization("REGISTER", "sip:pbx.example.com")

    expected = challenge_response("1001", "asterisk", "s3cret", "REGISTER", "sip:pbx.example.com", "abc")
    assert value.startswith('Digest username="1001", realm="asterisk", nonce="abc"')
    assert 'uri="sip:pbx.example.com"' in value
    assert f'response="{expected}"' in value
    assert "algorithm=MD5" in value
    assert 'opaque="xyz"' in value
    assert "qop=" not in value


def test_authorization_with_qop_counts_nonces() -> None:
    challenge = DigestChallenge.parse('Digest realm="asterisk", nonce="abc", qop="auth"')
    auth = DigestAuth("1001", "s3cret", challenge, client_nonce="c0ffee")

    first = auth.build_authorization("INVITE", "sip:100@pbx")
    second = auth.build_authorization("INVITE", "sip:100@pbx")

    assert "qop=auth, nc=00000001" in first
    assert 'cnonce="c0ffee"' in first
    assert "nc=00000002" in second


def test_password_never_in_repr() -> None:
    challenge = DigestChallenge(realm="r", nonce="n")

    assert "s3cret" not in repr(DigestAuth("1001", "s3cret", challenge))


def test_challenge_from_407_uses_proxy_headers() -> None:
    response = MessageParser.parse(
        b"SIP/2.0 407 Proxy Authentication Required\r\n"
        b"Call-ID: c@h\r\nCSeq: 1 INVITE\r\n"
        b'Proxy-Authenticate: Digest realm="proxy", nonce="p1"\r\n\r\n'
    )

    challenge = DigestChallenge.from_response(response)

    assert challenge.is_proxy is True
    assert challenge.realm == "proxy"
    assert challenge.header_name == "Proxy-Authorization"


def test_challenge_missing_from_401_raises() -> None:
    response = MessageParser.parse(b"SIP/2.0 401 Unauthorized\r\nCall-ID: c@h\r\nCSeq: 1 REGISTER\r\n\r\n")

    with pytest.raises(AuthenticationError):
        DigestChallenge.from_response(response)
