"""SQL Server access for the users table, built on SQLAlchemy Core."""
from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import QueuePool

from .config import DatabaseSettings
from .models import User

logger = logging.getLogger("userdirectory.database")

USER_COLUMNS = ("id", "username", "email", "full_name")


class DatabaseError(RuntimeError):
    """Base class for failures talking to the users database."""


class DatabaseConnectionError(DatabaseError):
    """Raised when the initial connection or authentication fails."""


class QueryError(DatabaseError):
    """Raised when the listing query cannot be executed."""


class ResultProcessingError(DatabaseError):
    """Raised when a result set cannot be fetched or converted into records."""


def build_database_url(settings: DatabaseSettings) -> URL:
    """Return the ``mssql+pyodbc`` URL described by ``settings``."""

    return URL.create(
        "mssql+pyodbc",
        username=settings.username,
        password=settings.password,
        host=settings.host,
        port=settings.port,
        database=settings.database,
        query={
            "driver": settings.driver,
            "Encrypt": "yes",
            "TrustServerCertificate": "yes" if settings.trust_server_certificate else "no",
        },
    )


def create_database_engine(settings: DatabaseSettings) -> Engine:
    """Create an engine backed by a bounded connection pool."""

    if settings.trust_server_certificate:
        logger.warning(
            "Server certificate validation is disabled for %s:%s. Only enable"
            " DB_TRUST_SERVER_CERTIFICATE for local development.",
            settings.host,
            settings.port,
        )

    return create_engine(
        build_database_url(settings),
        poolclass=QueuePool,
        pool_size=settings.pool_size,
        max_overflow=0,
        pool_timeout=settings.pool_timeout,
        pool_pre_ping=True,
    )


def _int_column(row: Mapping[str, Any], name: str, *, strict: bool) -> int:
    value = row.get(name)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if strict:
        raise ResultProcessingError(f"Column '{name}' is missing or not an integer")
    logger.debug("Column %s has unexpected value %r; defaulting to 0", name, value)
    return 0


def _text_column(row: Mapping[str, Any], name: str, *, strict: bool) -> str:
    value = row.get(name)
    if isinstance(value, str):
        return value
    if strict:
        raise ResultProcessingError(f"Column '{name}' is missing or not a string")
    logger.debug("Column %s has unexpected value %r; defaulting to ''", name, value)
    return ""


def row_to_user(row: Mapping[str, Any], *, strict: bool = False) -> User:
    """Convert a raw result row into a :class:`User`.

    In lenient mode a missing or mistyped column falls back to ``0`` or ``""``;
    in strict mode it raises :class:`ResultProcessingError`. The timestamp
    fields are never populated.
    """

    return User(
        id=_int_column(row, "id", strict=strict),
        username=_text_column(row, "username", strict=strict),
        email=_text_column(row, "email", strict=strict),
        full_name=_text_column(row, "full_name", strict=strict),
        created_at=None,
        updated_at=None,
    )


class Database:
    """Read-only access to the users table through a pooled engine."""

    def __init__(self, engine: Engine, *, table: str = "users", strict: bool = False) -> None:
        self._engine = engine
        self._table = table
        self._strict = strict

    @classmethod
    def from_settings(cls, settings: DatabaseSettings, *, engine: Optional[Engine] = None) -> "Database":
        return cls(
            engine or create_database_engine(settings),
            table=settings.table,
            strict=settings.strict_rows,
        )

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def table(self) -> str:
        return self._table

    @property
    def strict(self) -> bool:
        return self._strict

    def verify_connection(self) -> None:
        """Open a pooled connection and run a trivial query, or raise."""

        url = self._engine.url
        logger.info(
            "Connecting to SQL Server at %s:%s database: %s",
            url.host,
            url.port,
            url.database,
        )
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1")).scalar()
        except SQLAlchemyError as exc:
            raise DatabaseConnectionError(f"Failed to connect to database: {exc}") from exc
        logger.info("Successfully connected to SQL Server database")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def _fetch_user_rows(self) -> List[Mapping[str, Any]]:
        query = text(f"SELECT {', '.join(USER_COLUMNS)} FROM {self._table}")
        try:
            with self._engine.connect() as conn:
                logger.info("Database connection acquired")
                try:
                    result = conn.execute(query)
                except SQLAlchemyError as exc:
                    logger.error("DB error: %s", exc)
                    raise QueryError("Database query failed") from exc
                logger.info("Query executed successfully")

                try:
                    return [dict(row._mapping) for row in result.fetchall()]
                except SQLAlchemyError as exc:
                    logger.error("Failed to fetch rows: %s", exc)
                    raise ResultProcessingError("Failed to process query results") from exc
        except SQLAlchemyError as exc:
            # Checkout timeouts and connection failures surface here.
            logger.error("DB error: %s", exc)
            raise QueryError("Database query failed") from exc

    def list_users(self) -> List[User]:
        """Return every row of the users table in result-set order."""

        rows = self._fetch_user_rows()
        logger.info("Found %d rows", len(rows))

        users = self._map_rows(rows)
        logger.info("Returning %d users", len(users))
        return users

    def _map_rows(self, rows: Sequence[Mapping[str, Any]]) -> List[User]:
        try:
            return [row_to_user(row, strict=self._strict) for row in rows]
        except ResultProcessingError as exc:
            logger.error("Failed to process query results: %s", exc)
            raise

    def dispose(self) -> None:
        """Close every pooled connection."""

        self._engine.dispose()


__all__ = [
    "Database",
    "DatabaseError",
    "DatabaseConnectionError",
    "QueryError",
    "ResultProcessingError",
    "USER_COLUMNS",
    "build_database_url",
    "create_database_engine",
    "row_to_user",
]
