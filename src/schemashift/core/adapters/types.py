"""Database types and configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class DatabaseType(str, Enum):
    """Supported database types."""

    SQLITE = "sqlite"


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Configuration for a database connection.

    Only file-based stores are supported; ``path`` is a filesystem path,
    ``:memory:`` or a ``file:`` URI.
    """

    db_type: DatabaseType = DatabaseType.SQLITE
    path: str | None = None
    readonly: bool = False
    timeout: float = 5.0
    options: dict[str, Any] = field(default_factory=dict)

    def to_connection_string(self) -> str:
        return self.path or ":memory:"


__all__ = ["DatabaseType", "DatabaseConfig"]
