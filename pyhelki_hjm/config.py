"""
Runtime configuration for the HJM client.

Defaults come from constants.py; every value can be overridden per
instance or from HJM_* environment variables.
"""
import os
from dataclasses import dataclass, fields, replace

from .constants import (
    API_BASE,
    CLIENT_BASIC_AUTH,
    DEFAULT_TIMEOUT,
    MAX_RECONNECT_ATTEMPTS,
    MAX_RECONNECT_DELAY,
    PING_INTERVAL,
    RECONNECT_DELAY,
    SOCKETIO_PATH,
    TOKEN_REFRESH_BUFFER,
)


@dataclass(frozen=True)
class HelkiConfig:
    """
    Connection settings shared by the token manager, REST client and
    realtime channel.

    Durations are in seconds.
    """
    api_base: str = API_BASE
    client_basic_auth: str = CLIENT_BASIC_AUTH
    request_timeout: float = DEFAULT_TIMEOUT
    token_refresh_buffer: float = TOKEN_REFRESH_BUFFER
    socketio_path: str = SOCKETIO_PATH
    ping_interval: float = PING_INTERVAL
    reconnect_delay: float = RECONNECT_DELAY
    max_reconnect_delay: float = MAX_RECONNECT_DELAY
    max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS

    def __post_init__(self):
        if self.reconnect_delay <= 0:
            raise ValueError("reconnect_delay must be positive")
        if self.max_reconnect_delay < self.reconnect_delay:
            raise ValueError("max_reconnect_delay must be >= reconnect_delay")
        if self.max_reconnect_attempts < 0:
            raise ValueError("max_reconnect_attempts must be >= 0")
        # Trailing slash would produce "//api/v2/..." paths
        object.__setattr__(self, "api_base", self.api_base.rstrip("/"))

    @classmethod
    def from_env(cls, prefix: str = "HJM_") -> "HelkiConfig":
        """Build a config, overriding defaults with e.g. HJM_API_BASE or HJM_PING_INTERVAL."""
        overrides = {}
        for field in fields(cls):
            value = os.getenv(f"{prefix}{field.name.upper()}")
            if value is None or value == "":
                continue
            if field.type in (int, "int"):
                overrides[field.name] = int(value)
            elif field.type in (float, "float"):
                overrides[field.name] = float(value)
            else:
                overrides[field.name] = value
        return cls(**overrides)

    def with_overrides(self, **changes) -> "HelkiConfig":
        return replace(self, **changes)
