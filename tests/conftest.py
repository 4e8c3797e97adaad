from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterable, Tuple

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


SAMPLE_USERS = [
    (1, "john_doe", "john@example.com", "John Doe"),
    (2, "jane_doe", "jane@example.com", "Jane Doe"),
]


def make_engine(path: Path, *, pool_size: int = 2) -> Engine:
    """Build a pooled SQLite engine standing in for SQL Server."""

    return create_engine(
        f"sqlite:///{path}",
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=0,
        pool_timeout=10,
        connect_args={"check_same_thread": False},
    )


def create_users_table(engine: Engine, rows: Iterable[Tuple[object, ...]] = ()) -> None:
    with engine.begin() as conn:
        conn.execute(
            text(
                """
                CREATE TABLE users (
                    id INTEGER PRIMARY KEY,
                    username TEXT NOT NULL UNIQUE,
                    email TEXT NOT NULL UNIQUE,
                    full_name TEXT NOT NULL,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
        )
        for row in rows:
            conn.execute(
                text(
                    "INSERT INTO users (id, username, email, full_name)"
                    " VALUES (:id, :username, :email, :full_name)"
                ),
                dict(zip(("id", "username", "email", "full_name"), row)),
            )


def create_loose_table(engine: Engine, name: str, rows: Iterable[Tuple[object, ...]]) -> None:
    """Create an untyped table so rows can hold NULLs and mistyped values."""

    with engine.begin() as conn:
        conn.execute(text(f"CREATE TABLE {name} (id, username, email, full_name)"))
        for row in rows:
            conn.execute(
                text(
                    f"INSERT INTO {name} (id, username, email, full_name)"
                    " VALUES (:id, :username, :email, :full_name)"
                ),
                dict(zip(("id", "username", "email", "full_name"), row)),
            )


@pytest.fixture()
def engine(tmp_path: Path):
    engine = make_engine(tmp_path / "users.sqlite3")
    yield engine
    engine.dispose()


@pytest.fixture()
def seeded_engine(engine: Engine) -> Engine:
    create_users_table(engine, SAMPLE_USERS)
    return engine
