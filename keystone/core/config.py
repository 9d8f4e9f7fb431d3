"""Configuration management for Keystone.

Loads configuration from environment variables and .env file.
Provides validation and sensible defaults.

Usage:
    from keystone.core.config import get_config, validate_config

    config = get_config()
    issues = validate_config(config)
    if issues:
        for issue in issues:
            print(f"Config issue: {issue}")
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from keystone.core.exceptions import ConfigurationError

DEFAULT_DB_PATH = Path.home() / ".keystone" / "keystone.db"
DEFAULT_LOG_PATH = Path.home() / ".keystone" / "logs"
DEFAULT_TIMEZONE = "America/Chicago"
DEFAULT_CLASSIFIER_THRESHOLD = 0.5
DEFAULT_SHOWING_MINUTES = 30
DEFAULT_AGENT_ID = 1
DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8000


@dataclass
class Config:
    """Application configuration.

    Attributes:
        db_path: Path to SQLite database file
        log_path: Directory for log files
        timezone: IANA timezone used to resolve spoken times
        classifier_threshold: Minimum confidence before a label is trusted
        showing_minutes: Length of a showing when only a start time is given
        default_agent_id: Agent booked when a transcript names none
        graph_dir: Optional directory of JSON question graphs
        api_host: HTTP bind host
        api_port: HTTP bind port
        debug: Enable debug mode
        invalid_values: Keys whose raw values could not be parsed
    """

    db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)
    log_path: Path = field(default_factory=lambda: DEFAULT_LOG_PATH)
    timezone: str = DEFAULT_TIMEZONE
    classifier_threshold: float = DEFAULT_CLASSIFIER_THRESHOLD
    showing_minutes: int = DEFAULT_SHOWING_MINUTES
    default_agent_id: int = DEFAULT_AGENT_ID
    graph_dir: Optional[Path] = None
    api_host: str = DEFAULT_API_HOST
    api_port: int = DEFAULT_API_PORT
    debug: bool = False
    invalid_values: list[str] = field(default_factory=list)

    @property
    def tzinfo(self) -> ZoneInfo:
        """Resolved timezone.

        Raises:
            ConfigurationError: If the timezone name is unknown
        """
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(f"Unknown timezone: {self.timezone}") from e


def load_env_file(path: Path) -> dict[str, str]:
    """Parse .env file.

    Handles:
        - KEY=VALUE format
        - Comments (lines starting with #)
        - Blank lines
        - Quoted values

    Args:
        path: Path to .env file

    Returns:
        Dictionary of environment variables
    """
    env_vars: dict[str, str] = {}

    if not path.exists():
        return env_vars

    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()

            if not line or line.startswith("#"):
                continue

            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()

                if value and value[0] in ('"', "'") and value[-1] == value[0]:
                    value = value[1:-1]

                if key:
                    env_vars[key] = value

    return env_vars


def _get_raw(key: str, env_vars: dict[str, str]) -> Optional[str]:
    return os.environ.get(key) or env_vars.get(key) or None


def _get_path(key: str, default: Path, env_vars: dict[str, str]) -> Path:
    """Get path from environment, expanding ~ and resolving."""
    value = _get_raw(key, env_vars)
    if value:
        return Path(value).expanduser().resolve()
    return default


def _get_optional_path(key: str, env_vars: dict[str, str]) -> Optional[Path]:
    value = _get_raw(key, env_vars)
    if value:
        return Path(value).expanduser().resolve()
    return None


def _get_str(key: str, default: str, env_vars: dict[str, str]) -> str:
    return _get_raw(key, env_vars) or default


def _get_bool(key: str, default: bool, env_vars: dict[str, str]) -> bool:
    """Get boolean from environment."""
    value = _get_raw(key, env_vars)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _get_int(key: str, default: int, env_vars: dict[str, str], invalid: list[str]) -> int:
    """Get integer from environment, recording unparseable values."""
    value = _get_raw(key, env_vars)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        invalid.append(key)
        return default


def _get_float(key: str, default: float, env_vars: dict[str, str], invalid: list[str]) -> float:
    value = _get_raw(key, env_vars)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        invalid.append(key)
        return default


def load_config(env_file: Optional[Path] = None) -> Config:
    """Load configuration from environment and .env file.

    Priority:
        1. Environment variables (highest)
        2. .env file
        3. Default values (lowest)

    Args:
        env_file: Path to .env file. Defaults to .env in current directory.

    Returns:
        Loaded configuration
    """
    if env_file is None:
        env_file = Path.cwd() / ".env"

    env_vars = load_env_file(Path(env_file))
    invalid: list[str] = []

    return Config(
        db_path=_get_path("KEYSTONE_DB_PATH", DEFAULT_DB_PATH, env_vars),
        log_path=_get_path("KEYSTONE_LOG_PATH", DEFAULT_LOG_PATH, env_vars),
        timezone=_get_str("KEYSTONE_TIMEZONE", DEFAULT_TIMEZONE, env_vars),
        classifier_threshold=_get_float(
            "KEYSTONE_CLASSIFIER_THRESHOLD", DEFAULT_CLASSIFIER_THRESHOLD, env_vars, invalid
        ),
        showing_minutes=_get_int(
            "KEYSTONE_SHOWING_MINUTES", DEFAULT_SHOWING_MINUTES, env_vars, invalid
        ),
        default_agent_id=_get_int("KEYSTONE_DEFAULT_AGENT_ID", DEFAULT_AGENT_ID, env_vars, invalid),
        graph_dir=_get_optional_path("KEYSTONE_GRAPH_DIR", env_vars),
        api_host=_get_str("KEYSTONE_API_HOST", DEFAULT_API_HOST, env_vars),
        api_port=_get_int("KEYSTONE_API_PORT", DEFAULT_API_PORT, env_vars, invalid),
        debug=_get_bool("KEYSTONE_DEBUG", False, env_vars),
        invalid_values=invalid,
    )


def validate_config(config: Config) -> list[str]:
    """Validate configuration.

    Checks:
        - Required paths exist or can be created
        - Paths are writable
        - Timezone resolves
        - Numeric settings are in range

    Args:
        config: Configuration to validate

    Returns:
        List of issues (empty if valid)
    """
    issues: list[str] = []

    for key in config.invalid_values:
        issues.append(f"Invalid value for {key}, using default")

    if str(config.db_path) != ":memory:":
        db_dir = Path(config.db_path).parent
        try:
            db_dir.mkdir(parents=True, exist_ok=True)
            if not os.access(db_dir, os.W_OK):
                issues.append(f"Database directory not writable: {db_dir}")
        except OSError as e:
            issues.append(f"Cannot create database directory {db_dir}: {e}")

    try:
        config.log_path.mkdir(parents=True, exist_ok=True)
        if not os.access(config.log_path, os.W_OK):
            issues.append(f"Log directory not writable: {config.log_path}")
    except OSError as e:
        issues.append(f"Cannot create log directory {config.log_path}: {e}")

    try:
        config.tzinfo
    except ConfigurationError as e:
        issues.append(f"CRITICAL: {e}")

    if not 0.0 < config.classifier_threshold <= 1.0:
        issues.append(
            f"Classifier threshold must be in (0, 1], got {config.classifier_threshold}"
        )

    if config.showing_minutes <= 0:
        issues.append(f"Showing length must be positive, got {config.showing_minutes}")

    if config.graph_dir is not None and not config.graph_dir.is_dir():
        issues.append(f"Question graph directory does not exist: {config.graph_dir}")

    return issues


# Singleton config
_config: Optional[Config] = None


def get_config() -> Config:
    """Return cached configuration singleton.

    Loads configuration on first call, returns cached version thereafter.
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Reset cached configuration.

    Used primarily for testing.
    """
    global _config
    _config = None
