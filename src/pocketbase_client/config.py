"""Configuration management for the PocketBase client.

This module handles loading and validating client configuration from an
optional JSON file and ``POCKETBASE_*`` environment variables.
"""

import dataclasses
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

# Default configuration values
DEFAULT_BASE_URL = "http://127.0.0.1:8090"
DEFAULT_LANG = "en-US"
DEFAULT_TIMEOUT = 30.0
DEFAULT_LOG_LEVEL = "warning"
DEFAULT_MAX_BATCH_SIZE = 50
DEFAULT_CONFIG_PATH = Path.home() / ".pocketbase" / "config.json"
VALID_LOG_LEVELS = ["debug", "info", "warning", "error"]
MIN_TIMEOUT = 1
MAX_TIMEOUT = 300

ENV_VARS = {
    "POCKETBASE_URL": "base_url",
    "POCKETBASE_LANG": "lang",
    "POCKETBASE_TIMEOUT": "timeout",
    "POCKETBASE_LOG_LEVEL": "log_level",
    "POCKETBASE_AUTH_FILE": "auth_file",
    "POCKETBASE_MAX_BATCH_SIZE": "max_batch_size",
}

logger = logging.getLogger(__name__)


@dataclass
class ClientConfig:
    """Configuration for PocketBaseClient.

    Args:
        base_url: Server address, http(s) only
        lang: Value of the Accept-Language header
        timeout: Request timeout in seconds (1-300, default: 30)
        verify_ssl: Verify TLS certificates
        max_batch_size: Largest batch submitted without a round trip
        log_level: Logging level (debug/info/warning/error)
        auth_file: File used to persist the session, None for memory only
        encrypt_auth_file: Encrypt the auth file with Fernet
    """

    base_url: str = DEFAULT_BASE_URL
    lang: str = DEFAULT_LANG
    timeout: float = DEFAULT_TIMEOUT
    verify_ssl: bool = True
    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE
    log_level: str = DEFAULT_LOG_LEVEL
    auth_file: Optional[str] = None
    encrypt_auth_file: bool = False

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.base_url:
            raise ValueError("base_url cannot be empty")
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError(
                f"base_url must start with http:// or https://. Got: {self.base_url[:30]}"
            )

        if self.timeout < MIN_TIMEOUT or self.timeout > MAX_TIMEOUT:
            raise ValueError(
                f"timeout must be between {MIN_TIMEOUT} and {MAX_TIMEOUT} seconds. "
                f"Got: {self.timeout}"
            )

        if self.max_batch_size < 1:
            raise ValueError(f"max_batch_size must be positive. Got: {self.max_batch_size}")

        self.log_level = self.log_level.lower()
        if self.log_level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {VALID_LOG_LEVELS}. Got: {self.log_level}"
            )

        if not self.lang:
            self.lang = DEFAULT_LANG

        self.base_url = self.base_url.rstrip("/")


def _coerce(field_name: str, raw: str) -> Any:
    if field_name == "timeout":
        return float(raw)
    if field_name == "max_batch_size":
        return int(raw)
    return raw


def load_config(config_path: Optional[str] = None, use_env: bool = True) -> ClientConfig:
    """Load configuration from file and/or environment variables.

    Environment variables override file values.

    Args:
        config_path: Path to config JSON file. If None, the default
            ~/.pocketbase/config.json is read when it exists.
        use_env: Whether to apply POCKETBASE_* environment variables

    Returns:
        ClientConfig instance

    Raises:
        FileNotFoundError: If an explicit config file is missing
        json.JSONDecodeError: If the config file contains invalid JSON
        ValueError: If a value is invalid

    Environment Variables:
        POCKETBASE_URL, POCKETBASE_LANG, POCKETBASE_TIMEOUT,
        POCKETBASE_LOG_LEVEL, POCKETBASE_AUTH_FILE, POCKETBASE_MAX_BATCH_SIZE
    """
    config_data: Dict[str, Any] = {}

    path = Path(config_path).expanduser() if config_path else DEFAULT_CONFIG_PATH
    if config_path is not None and not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    if path.exists():
        file_perms = os.stat(path).st_mode & 0o777
        if file_perms != 0o600:
            logger.warning(
                f"Configuration file {path} has insecure permissions {oct(file_perms)}. "
                f"Recommend setting to 0600: chmod 0600 {path}"
            )
        with open(path) as f:
            config_data = json.load(f)

        known = {f.name for f in dataclasses.fields(ClientConfig)}
        for key in list(config_data):
            if key not in known:
                logger.warning(f"Ignoring unknown config key: {key}")
                del config_data[key]

    if use_env:
        for env_name, field_name in ENV_VARS.items():
            if env_name in os.environ:
                try:
                    config_data[field_name] = _coerce(field_name, os.environ[env_name])
                except ValueError:
                    raise ValueError(
                        f"Invalid value for {env_name}: {os.environ[env_name]!r}"
                    ) from None

    return ClientConfig(**config_data)


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Configure root logging for scripts and the CLI.

    httpx and httpcore are held at WARNING unless ``level`` is debug.
    """
    level = level.lower()
    if level not in VALID_LOG_LEVELS:
        raise ValueError(f"log_level must be one of {VALID_LOG_LEVELS}. Got: {level}")
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(levelname)s:%(name)s:%(message)s",
    )
    if level != "debug":
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
