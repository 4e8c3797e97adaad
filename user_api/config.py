"""Configuration management for the user directory service."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"
DEFAULT_BIND_HOST = "127.0.0.1"
DEFAULT_BIND_PORT = 8080

# uvicorn level names; "trace" sits below DEBUG as uvicorn defines it.
LOG_LEVELS = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": 5,
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")

_REQUIRED_DATABASE_VARIABLES = ("DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD")


class ConfigurationError(ValueError):
    """Raised when the process configuration is missing or malformed."""


def _env_flag(name: str, value: Optional[str], default: bool = False) -> bool:
    if value is None or not value.strip():
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean flag (true/false), got {value!r}")


def parse_port(name: str, value: str) -> int:
    """Parse ``value`` as a TCP port in the range 1-65535."""

    try:
        port = int(str(value).strip())
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a valid port number") from exc
    if not 0 < port <= 65535:
        raise ConfigurationError(f"{name} must be a valid port number")
    return port


def _parse_positive_int(name: str, value: Optional[str], default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer") from exc
    if parsed < 1:
        raise ConfigurationError(f"{name} must be at least 1")
    return parsed


def _parse_timeout(name: str, value: Optional[str], default: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value.strip())
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number of seconds") from exc
    if parsed <= 0:
        raise ConfigurationError(f"{name} must be greater than zero")
    return parsed


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection parameters for the SQL Server instance holding the users table."""

    host: str
    port: int
    database: str
    username: str
    password: str
    driver: str = DEFAULT_ODBC_DRIVER
    trust_server_certificate: bool = False
    pool_size: int = 5
    pool_timeout: float = 30.0
    table: str = "users"
    strict_rows: bool = False

    def __post_init__(self) -> None:
        if not _IDENTIFIER.match(self.table):
            raise ConfigurationError(f"Invalid table name: {self.table!r}")

    @staticmethod
    def from_env(environ: Optional[Mapping[str, str]] = None) -> "DatabaseSettings":
        """Create :class:`DatabaseSettings` from ``DB_*`` environment variables."""

        env = os.environ if environ is None else environ

        missing = [
            name for name in _REQUIRED_DATABASE_VARIABLES if not (env.get(name) or "").strip()
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required database environment variables: {', '.join(missing)}"
            )

        driver = (env.get("DB_ODBC_DRIVER") or "").strip() or DEFAULT_ODBC_DRIVER
        table = (env.get("DB_USERS_TABLE") or "").strip() or "users"

        return DatabaseSettings(
            host=env["DB_HOST"].strip(),
            port=parse_port("DB_PORT", env["DB_PORT"]),
            database=env["DB_NAME"].strip(),
            username=env["DB_USER"].strip(),
            password=env["DB_PASSWORD"],
            driver=driver,
            trust_server_certificate=_env_flag(
                "DB_TRUST_SERVER_CERTIFICATE", env.get("DB_TRUST_SERVER_CERTIFICATE")
            ),
            pool_size=_parse_positive_int("DB_POOL_SIZE", env.get("DB_POOL_SIZE"), 5),
            pool_timeout=_parse_timeout("DB_POOL_TIMEOUT", env.get("DB_POOL_TIMEOUT"), 30.0),
            table=table,
            strict_rows=_env_flag("DB_STRICT_ROWS", env.get("DB_STRICT_ROWS")),
        )


@dataclass(frozen=True)
class ServiceSettings:
    """Bind address and logging options for the HTTP listener."""

    host: str = DEFAULT_BIND_HOST
    port: int = DEFAULT_BIND_PORT
    log_level: str = "info"

    @staticmethod
    def from_env(environ: Optional[Mapping[str, str]] = None) -> "ServiceSettings":
        env = os.environ if environ is None else environ

        host = (env.get("USER_API_HOST") or "").strip() or DEFAULT_BIND_HOST
        raw_port = (env.get("USER_API_PORT") or "").strip()
        port = parse_port("USER_API_PORT", raw_port) if raw_port else DEFAULT_BIND_PORT
        log_level = (env.get("USER_API_LOG_LEVEL") or "").strip().lower() or "info"
        if log_level not in LOG_LEVELS:
            raise ConfigurationError(
                f"USER_API_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}"
            )
        return ServiceSettings(host=host, port=port, log_level=log_level)

    @property
    def logging_level(self) -> int:
        """Return the :mod:`logging` level matching :attr:`log_level`."""

        return LOG_LEVELS[self.log_level]


__all__ = [
    "ConfigurationError",
    "LOG_LEVELS",
    "DatabaseSettings",
    "ServiceSettings",
    "DEFAULT_ODBC_DRIVER",
    "parse_port",
]
