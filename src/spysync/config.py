"""Centralized configuration management for spysync.

Reads from environment variables with sensible defaults.
The client, the CLI and the tests all use this module for configuration.

Environment variables follow the pattern SPYSYNC_*.

Example:
    >>> from spysync.config import get_config
    >>> config = get_config()
    >>> print(config.connect_timeout)
    5.0
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

log = logging.getLogger(__name__)


def _parse_bool(value: str) -> bool:
    """Parse boolean from environment variable string."""
    return value.lower() in ("true", "1", "yes", "on")


def _getenv_int(key: str, default: int) -> int:
    """Get integer from environment with fallback to default."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        log.warning(f"Invalid integer value for {key}={value}, using default {default}")
        return default


def _getenv_float(key: str, default: float | None) -> float | None:
    """Get float from environment with fallback to default."""
    value = os.getenv(key)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        log.warning(f"Invalid float value for {key}={value}, using default {default}")
        return default


@dataclass
class SpySyncConfig:
    """spysync configuration loaded from environment variables.

    Attributes
    ----------
    server_url : str
        Base URL of the game server (socket.io and REST).
    connect_timeout : float
        Seconds to wait for the transport to report a live connection.
    poll_interval : float
        Upper bound in seconds between re-checks of the connected flag while waiting.
    send_retry_delay : float
        Seconds a chat send waits for a reconnect before giving up.
    reconnection : bool
        Let the socket.io client reconnect on its own after a drop.
    reconnection_attempts : int
        Maximum reconnect attempts, 0 means unlimited.
    storage_path : str
        Directory of the durable key-value store.
    room_storage_key : str
        Key under which the last known room is persisted.
    pending_timeout : float | None
        Age in seconds after which an unconfirmed chat message is marked failed.
        None keeps pending messages indefinitely.
    typing_idle_timeout : float
        Seconds without keystrokes before a typing_stop is sent.
    log_level : str
        Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """

    server_url: str = field(
        default_factory=lambda: os.getenv("SPYSYNC_SERVER_URL", "http://localhost:3000")
    )
    connect_timeout: float = field(
        default_factory=lambda: _getenv_float("SPYSYNC_CONNECT_TIMEOUT", 5.0)
    )
    poll_interval: float = field(
        default_factory=lambda: _getenv_float("SPYSYNC_POLL_INTERVAL", 0.1)
    )
    send_retry_delay: float = field(
        default_factory=lambda: _getenv_float("SPYSYNC_SEND_RETRY_DELAY", 1.0)
    )
    reconnection: bool = field(
        default_factory=lambda: _parse_bool(os.getenv("SPYSYNC_RECONNECTION", "true"))
    )
    reconnection_attempts: int = field(
        default_factory=lambda: _getenv_int("SPYSYNC_RECONNECTION_ATTEMPTS", 0)
    )

    # Persistence
    storage_path: str = field(
        default_factory=lambda: os.getenv(
            "SPYSYNC_STORAGE_PATH", str(Path.home() / ".spysync")
        )
    )
    room_storage_key: str = field(
        default_factory=lambda: os.getenv("SPYSYNC_ROOM_STORAGE_KEY", "room")
    )

    # Chat
    pending_timeout: float | None = field(
        default_factory=lambda: _getenv_float("SPYSYNC_PENDING_TIMEOUT", None)
    )
    typing_idle_timeout: float = field(
        default_factory=lambda: _getenv_float("SPYSYNC_TYPING_IDLE_TIMEOUT", 3.0)
    )

    # Logging
    log_level: str = field(
        default_factory=lambda: os.getenv("SPYSYNC_LOG_LEVEL", "WARNING")
    )

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()
        self._log_config()

    def _validate(self):
        """Validate configuration values.

        Raises
        ------
        ValueError
            If configuration is invalid.
        """
        for name in ("connect_timeout", "poll_interval", "typing_idle_timeout"):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"Invalid {name}: {value}. Must be greater than 0")

        if self.send_retry_delay < 0:
            raise ValueError(
                f"Invalid send_retry_delay: {self.send_retry_delay}. Must not be negative"
            )

        if self.pending_timeout is not None and self.pending_timeout <= 0:
            raise ValueError(
                f"Invalid pending_timeout: {self.pending_timeout}. Must be greater than 0"
            )

        if self.reconnection_attempts < 0:
            raise ValueError(
                f"Invalid reconnection_attempts: {self.reconnection_attempts}. Must not be negative"
            )

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_levels:
            log.warning(
                f"Invalid log level '{self.log_level}', using WARNING. "
                f"Valid levels: {', '.join(valid_levels)}"
            )
            self.log_level = "WARNING"

        self.server_url = self.server_url.rstrip("/")

    def _log_config(self):
        """Log configuration for debugging."""
        log.info("spysync configuration:")
        log.info(f"  Server: {self.server_url}")
        log.info(f"  Connect timeout: {self.connect_timeout}s")
        log.info(f"  Reconnection: {'Enabled' if self.reconnection else 'Disabled'}")
        log.info(f"  Storage: {self.storage_path} (key: {self.room_storage_key})")
        log.info(
            f"  Pending timeout: {self.pending_timeout if self.pending_timeout else 'None (indefinite)'}"
        )
        log.info(f"  Log Level: {self.log_level}")


# Global config instance (singleton pattern)
_config: SpySyncConfig | None = None


def get_config() -> SpySyncConfig:
    """Get or create the global configuration instance.

    Returns
    -------
    SpySyncConfig
        Global configuration instance loaded from environment variables.
    """
    global _config
    if _config is None:
        _config = SpySyncConfig()
    return _config


def reload_config() -> SpySyncConfig:
    """Reload configuration from environment.

    Returns
    -------
    SpySyncConfig
        Newly created configuration instance.

    Example
    -------
    >>> import os
    >>> os.environ["SPYSYNC_CONNECT_TIMEOUT"] = "3"
    >>> config = reload_config()
    >>> print(config.connect_timeout)
    3.0
    """
    global _config
    _config = SpySyncConfig()
    return _config
