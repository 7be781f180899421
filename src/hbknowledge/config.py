"""Runtime configuration read from environment variables."""

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DATA_DIR = "~/.hbknowledge"
DEFAULT_INGEST_INTERVAL = 3600  # seconds

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def get_default_data_dir() -> Path:
    """Get the data directory, respecting the HBK_DATA_DIR env var."""
    return Path(os.path.expanduser(os.environ.get("HBK_DATA_DIR") or DEFAULT_DATA_DIR))


def get_default_db_path() -> str:
    """Get the default rule database path under the data directory."""
    return str(get_default_data_dir() / "rules.db")


@dataclass
class AppConfig:
    """Process-wide settings, loaded once at startup."""

    data_dir: Path
    log_level: str = "INFO"
    block_on_error: bool = False  # error findings block, not only critical ones
    auto_approve: bool = False  # approve drafts as soon as they are ingested
    ingest_interval: int = DEFAULT_INGEST_INTERVAL

    @property
    def db_path(self) -> str:
        return str(self.data_dir / "rules.db")

    @property
    def log_dir(self) -> str:
        return str(self.data_dir / "logs")

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Build the configuration from HBK_* environment variables.

        Raises:
            ValueError: if a variable is set to a value of the wrong type.
        """
        log_level = os.environ.get("HBK_LOG_LEVEL", "INFO").upper()
        if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"HBK_LOG_LEVEL is not a log level: {log_level!r}")

        return cls(
            data_dir=get_default_data_dir(),
            log_level=log_level,
            block_on_error=_env_bool("HBK_BLOCK_ON_ERROR", False),
            auto_approve=_env_bool("HBK_AUTO_APPROVE", False),
            ingest_interval=_env_int("HBK_INGEST_INTERVAL", DEFAULT_INGEST_INTERVAL),
        )
