"""Session configuration.

Both sessions take plain dataclasses. `from_env()` reads overrides from
environment variables so embedding applications can tune timeouts without
code changes:

    SOURCE_BRIDGE_HELLO_TIMEOUT   seconds to wait for the guest's hello
    SOURCE_BRIDGE_READY_TIMEOUT   seconds to wait for the guest's ready
    SOURCE_BRIDGE_AUTO_READY      guest sends ready right after the handshake
    SOURCE_BRIDGE_DEBUG           log every envelope at INFO level
"""

from __future__ import annotations

import os
from dataclasses import dataclass

ENV_HELLO_TIMEOUT = "SOURCE_BRIDGE_HELLO_TIMEOUT"
ENV_READY_TIMEOUT = "SOURCE_BRIDGE_READY_TIMEOUT"
ENV_AUTO_READY = "SOURCE_BRIDGE_AUTO_READY"
ENV_DEBUG = "SOURCE_BRIDGE_DEBUG"

DEFAULT_HELLO_TIMEOUT = 5.0
DEFAULT_READY_TIMEOUT = 10.0

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


@dataclass
class HostConfig:
    """Configuration for HostSession.

    Timeouts are in seconds and start when boot() is called.
    """

    hello_timeout: float = DEFAULT_HELLO_TIMEOUT
    ready_timeout: float = DEFAULT_READY_TIMEOUT
    debug: bool = False

    def validate(self) -> None:
        """Raise ValueError if a timeout is not positive."""
        if self.hello_timeout <= 0:
            raise ValueError(f"hello_timeout must be positive, got {self.hello_timeout}")
        if self.ready_timeout <= 0:
            raise ValueError(f"ready_timeout must be positive, got {self.ready_timeout}")

    @classmethod
    def from_env(cls) -> HostConfig:
        config = cls(
            hello_timeout=_env_float(ENV_HELLO_TIMEOUT, DEFAULT_HELLO_TIMEOUT),
            ready_timeout=_env_float(ENV_READY_TIMEOUT, DEFAULT_READY_TIMEOUT),
            debug=_env_bool(ENV_DEBUG, False),
        )
        config.validate()
        return config


@dataclass
class GuestConfig:
    """Configuration for GuestSession."""

    auto_ready: bool = True
    debug: bool = False

    @classmethod
    def from_env(cls) -> GuestConfig:
        return cls(
            auto_ready=_env_bool(ENV_AUTO_READY, True),
            debug=_env_bool(ENV_DEBUG, False),
        )
