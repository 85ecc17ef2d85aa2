from __future__ import annotations

import pytest

from sipcall import ConfigurationError, Credentials, EngineConfig, TransportAddress

ENV = {
    "SIP_HOST": "203.0.113.10",
    "SIP_PORT": "5080",
    "SIP_USERNAME": "1001",
    "SIP_PASSWORD": "s3cret",
    "SIP_DOMAIN": "pbx.example.com",
    "SIP_CALLER_ID": "551140000000",
    "SIP_T1": "0.25",
    "SIP_MAX_RETRIES": "4",
}


def test_from_env_reads_and_converts() -> None:
    config = EngineConfig.from_env(environ=ENV)

    assert config.host == "203.0.113.10"
    assert config.port == 5080
    assert config.t1 == 0.25
    assert config.max_retries == 4
    assert config.expires == 300
    assert config.trunk == TransportAddress("203.0.113.10", 5080, "UDP")
    assert config.validate() is config


def test_from_env_defaults_domain_and_caller_id() -> None:
    config = EngineConfig.from_env(
        environ={"SIP_HOST": "trunk.example.com", "SIP_USERNAME": "1001", "SIP_PASSWORD": "x"}
    )

    assert config.domain == "trunk.example.com"
    assert config.caller_id == "1001"
    assert config.port == 5060


def test_overrides_win_over_environment() -> None:
    config = EngineConfig.from_env(environ=ENV, port=5060, public_host="198.51.100.7")

    assert config.port == 5060
    assert config.public_host == "198.51.100.7"


@pytest.mark.parametrize("name", ["SIP_PORT", "SIP_T1", "SIP_MEDIA_PORT"])
def test_unparsable_numbers_raise(name: str) -> None:
    with pytest.raises(ConfigurationError, match=name):
        EngineConfig.from_env(environ={**ENV, name: "not-a-number"})


def test_validate_names_every_missing_field() -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        EngineConfig(host="203.0.113.10").validate()

    message = str(excinfo.value)
    for name in ("username", "password", "domain", "caller_id"):
        assert name in message
    assert "host" not in message.split(":", 1)[1]


@pytest.mark.parametrize(
    "overrides",
    [{"port": 70000}, {"t1": 0}, {"max_retries": -1}],
)
def test_validate_rejects_bad_tuning(overrides: dict) -> None:
    with pytest.raises(ConfigurationError):
        EngineConfig.from_env(environ=ENV, **overrides).validate()


def test_credentials_hide_password() -> None:
    config = EngineConfig.from_env(environ=ENV)

    assert config.credentials == Credentials("1001", "s3cret", "pbx.example.com", "551140000000")
    assert config.credentials.aor == "sip:1001@pbx.example.com"
    assert "s3cret" not in repr(config)
    assert "s3cret" not in repr(config.credentials)
