"""Read-only HTTP directory of the users table."""

from __future__ import annotations

from typing import Any

from .config import ConfigurationError, DatabaseSettings, ServiceSettings
from .database import Database, create_database_engine
from .models import User


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .service import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "ConfigurationError",
    "Database",
    "DatabaseSettings",
    "ServiceSettings",
    "User",
    "create_app",
    "create_database_engine",
]
