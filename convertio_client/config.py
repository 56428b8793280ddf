"""Configuration constants, transport settings, and .env loading.

WHY: The API host, protocol, timeouts and API key are the only knobs the
client has. Keeping them in one module makes them easy to find and
override, and gives the transport a single typed settings record instead of
ad-hoc attribute juggling.

HOW: python-dotenv loads the .env file on import. Defaults are module-level
constants. TransportConfig is a dataclass whose fields are validated on
construction and through one setter per field; with_options() applies a
partial options map atomically by building a fresh, validated copy.

RULES:
- protocol is "http" or "https"
- connect_timeout and total_timeout are non-negative ints (0 = no limit)
- Unknown option keys are ignored, never rejected
- An invalid value never leaves a half-updated config behind
- API key is loaded from .env via python-dotenv, never hardcoded
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from typing import Any, Mapping

from dotenv import load_dotenv

from convertio_client.errors import ConfigurationError

# Load .env from the project root (where the script is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# API defaults
# ---------------------------------------------------------------------------

CONVERTIO_API_HOST = "api.convertio.co"
VALID_PROTOCOLS = ("http", "https")

DEFAULT_PROTOCOL = "https"
DEFAULT_CONNECT_TIMEOUT_S = 10
DEFAULT_TOTAL_TIMEOUT_S = 0

POLL_INTERVAL_S = 0.5
"""Delay between two status polls in Conversion.wait()."""

OPTION_KEYS = ("protocol", "connect_timeout", "total_timeout")
"""Option keys recognized by TransportConfig.with_options()."""


def _validate_protocol(value: Any) -> str:
    if value not in VALID_PROTOCOLS:
        raise ConfigurationError("API protocol can be either http or https")
    return value


def _validate_timeout(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer number of seconds")
    if value < 0:
        raise ConfigurationError(f"{name} can't be negative")
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


@dataclass
class TransportConfig:
    """Settings used by ConvertioAPI to build and time out requests.

    RULES:
    - host is fixed to the Convertio API host by default
    - Fields are validated in __post_init__ and by every setter
    - Setters return self for chaining
    """

    host: str = CONVERTIO_API_HOST
    protocol: str = DEFAULT_PROTOCOL
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT_S
    total_timeout: int = DEFAULT_TOTAL_TIMEOUT_S

    def __post_init__(self) -> None:
        _validate_protocol(self.protocol)
        _validate_timeout("connect_timeout", self.connect_timeout)
        _validate_timeout("total_timeout", self.total_timeout)

    @classmethod
    def from_env(cls) -> TransportConfig:
        """Build a config from CONVERTIO_* environment variables.

        Unset variables fall back to the module defaults.
        """
        return cls(
            protocol=os.getenv("CONVERTIO_PROTOCOL", DEFAULT_PROTOCOL).strip().lower(),
            connect_timeout=_env_int("CONVERTIO_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT_S),
            total_timeout=_env_int("CONVERTIO_TOTAL_TIMEOUT", DEFAULT_TOTAL_TIMEOUT_S),
        )

    def set_protocol(self, value: str) -> TransportConfig:
        self.protocol = _validate_protocol(value)
        return self

    def set_connect_timeout(self, value: int) -> TransportConfig:
        self.connect_timeout = _validate_timeout("connect_timeout", value)
        return self

    def set_total_timeout(self, value: int) -> TransportConfig:
        self.total_timeout = _validate_timeout("total_timeout", value)
        return self

    def with_options(self, options: Mapping[str, Any] | None) -> TransportConfig:
        """Return a validated copy with the recognized keys of ``options`` applied.

        WHY: Callers pass loosely-typed option maps (from a CLI, a settings
        file, ...). Only the known keys should take effect, and a bad value
        must not leave the current config partially modified.

        HOW: Filters ``options`` down to OPTION_KEYS and hands the result to
        dataclasses.replace(), which re-runs __post_init__ validation on
        the new instance.

        RULES:
        - Keys outside OPTION_KEYS are ignored
        - Raises ConfigurationError on an invalid value; self is untouched
        """
        if not options:
            return dataclasses.replace(self)
        changes = {key: options[key] for key in OPTION_KEYS if key in options}
        return dataclasses.replace(self, **changes)

    @property
    def base_url(self) -> str:
        return f"{self.protocol}://{self.host}"


def load_api_key() -> str:
    """Load the Convertio API key from the environment.

    WHY: The API key is required for every conversion. Loading it from the
    environment (via .env) keeps it out of source code.

    HOW: Reads CONVERTIO_API_KEY from os.environ (populated by python-dotenv).

    RULES:
    - Raises ConfigurationError if the key is missing or empty
    - Never returns a default/placeholder value
    """
    key = os.getenv("CONVERTIO_API_KEY", "").strip()
    if not key:
        raise ConfigurationError(
            "Convertio API key not configured. "
            "Add CONVERTIO_API_KEY to the .env file or pass api_key explicitly."
        )
    return key
