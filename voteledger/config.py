"""
Service Configuration

Handles listener settings and environment-based configuration.

Environment Variables:
    VOTELEDGER_HOST: Interface to bind (default 0.0.0.0)
    VOTELEDGER_PORT: API port (default 9000)
    VOTELEDGER_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default INFO)

Command-line flags (--host, --port, --log-level) take precedence.
"""

import os
from dataclasses import dataclass, replace
from typing import Optional

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 9000


class ConfigError(ValueError):
    """Raised when configuration values are invalid."""
    pass


def _parse_port(raw: str) -> int:
    try:
        port = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid port: {raw!r}. Must be an integer.")
    if not 0 < port < 65536:
        raise ConfigError(f"Invalid port: {port}. Must be between 1 and 65535.")
    return port


@dataclass(frozen=True)
class ServiceConfig:
    """Listener configuration."""
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"

    def __post_init__(self):
        _parse_port(str(self.port))

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - VOTELEDGER_HOST
        - VOTELEDGER_PORT
        - VOTELEDGER_LOG_LEVEL
        """
        return cls(
            host=os.getenv("VOTELEDGER_HOST", DEFAULT_HOST),
            port=_parse_port(os.getenv("VOTELEDGER_PORT", str(DEFAULT_PORT))),
            log_level=os.getenv("VOTELEDGER_LOG_LEVEL", "INFO").upper(),
        )

    def with_overrides(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        log_level: Optional[str] = None,
    ) -> "ServiceConfig":
        """Return a copy with any non-None values replaced."""
        changes = {}
        if host is not None:
            changes["host"] = host
        if port is not None:
            changes["port"] = _parse_port(str(port))
        if log_level is not None:
            changes["log_level"] = log_level.upper()
        return replace(self, **changes)
