"""
Engine configuration.

``EngineConfig`` carries everything the engine consumes at construction:
the trunk address, the credentials, the caller identity and the timer
tuning. It can be built directly or loaded from ``SIP_*`` environment
variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import Mapping, Optional

from ._types import ConfigurationError, TransportAddress

DEFAULT_USER_AGENT = "sipcall/0.1"

REQUIRED_FIELDS = ("host", "port", "username", "password", "domain", "caller_id")


@dataclass(frozen=True)
class Credentials:
    """Identity and secret used to answer digest challenges."""

    username: str
    password: str = field(repr=False)
    domain: str
    caller_id: str

    @property
    def aor(self) -> str:
        """Address of record, e.g. ``sip:1001@pbx.example.com``."""
        return f"sip:{self.username}@{self.domain}"


@dataclass(frozen=True)
class EngineConfig:
    """
    Configuration of one SIP call engine.

    Attributes:
        host: Trunk host name or address.
        port: Trunk port.
        username: Account used in From/To and digest credentials.
        password: Digest secret. Never logged.
        domain: SIP domain of the account (the digest realm is taken
            from the challenge).
        caller_id: Display identity placed in From on outbound calls.
        local_host: Address the transport binds.
        local_port: Port the transport binds (0 picks an ephemeral one).
        public_host: Address advertised in Contact/Via instead of the
            detected local one.
        user_agent: User-Agent header value.
        expires: Registration lifetime in seconds.
        t1: Initial retransmission timeout in seconds.
        max_retries: Retransmissions before a transaction times out.
        dtmf_duration: Duration advertised in DTMF relay bodies (ms).
        media_port: Audio port offered in the SDP.
    """

    host: str = ""
    port: int = 5060
    username: str = ""
    password: str = field(default="", repr=False)
    domain: str = ""
    caller_id: str = ""
    local_host: str = "0.0.0.0"
    local_port: int = 0
    public_host: Optional[str] = None
    user_agent: str = DEFAULT_USER_AGENT
    expires: int = 300
    t1: float = 0.5
    max_retries: int = 6
    dtmf_duration: int = 100
    media_port: int = 8000

    @classmethod
    def from_env(
        cls,
        prefix: str = "SIP_",
        environ: Optional[Mapping[str, str]] = None,
        **overrides,
    ) -> EngineConfig:
        """
        Load configuration from environment variables.

        ``SIP_HOST``, ``SIP_PORT``, ``SIP_USERNAME``, ``SIP_PASSWORD``,
        ``SIP_DOMAIN`` and ``SIP_CALLER_ID`` map to the fields of the same
        name; every other field can be set the same way (``SIP_T1``,
        ``SIP_MAX_RETRIES``...). ``domain`` falls back to ``host`` and
        ``caller_id`` to ``username`` when unset.

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}

        for f in fields(cls):
            raw = env.get(f"{prefix}{f.name.upper()}")
            if raw is None or raw == "":
                continue
            values[f.name] = _convert(f"{prefix}{f.name.upper()}", raw, f.default)

        values.update(overrides)

        if not values.get("domain") and values.get("host"):
            values["domain"] = values["host"]
        if not values.get("caller_id") and values.get("username"):
            values["caller_id"] = values["username"]

        return cls(**values)

    def validate(self) -> EngineConfig:
        """
        Check that every required field is present.

        Raises:
            ConfigurationError: Naming every missing field.
        """
        missing = [name for name in REQUIRED_FIELDS if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}"
            )
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"Invalid trunk port: {self.port}")
        if self.t1 <= 0 or self.max_retries < 0:
            raise ConfigurationError("t1 must be positive and max_retries non-negative")
        return self

    @property
    def credentials(self) -> Credentials:
        return Credentials(
            username=self.username,
            password=self.password,
            domain=self.domain,
            caller_id=self.caller_id,
        )

    @property
    def trunk(self) -> TransportAddress:
        return TransportAddress(host=self.host, port=self.port, protocol="UDP")


def _convert(name: str, raw: str, default: object) -> object:
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError:
            raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
    if isinstance(default, float):
        try:
            return float(raw)
        except ValueError:
            raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
    return raw


__all__ = ["EngineConfig", "Credentials", "DEFAULT_USER_AGENT"]
