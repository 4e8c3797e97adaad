"""Domain models for the user directory service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class User:
    """Represents a row of the users table as returned by the listing endpoint."""

    id: int
    username: str
    email: str
    full_name: str
    # Timestamp columns are not read yet; both are always None.
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


__all__ = ["User"]
