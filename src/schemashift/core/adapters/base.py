"""Database adapter base class.

Manifesto:
    Providers talk to a real store through an adapter that owns exactly one
    connection. Workers never share an adapter: each opens its own, which
    is what makes per-worker provider sessions safe.

Features:
    - Abstract ``connect()``, ``disconnect()``, ``get_connection()``
    - ``query()`` returning plain dicts

Tags:
    schemashift, database, abstract-base, adapter-pattern
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from .types import DatabaseConfig, DatabaseType


class DatabaseAdapter(ABC):
    """
    Abstract base class for database adapters.

    Provides common functionality and defines the interface
    that all adapters must implement.
    """

    def __init__(self, config: DatabaseConfig):
        self._config = config
        self._connected = False

    @property
    def db_type(self) -> DatabaseType:
        return self._config.db_type

    @property
    def is_connected(self) -> bool:
        return self._connected

    @abstractmethod
    def connect(self) -> None:
        """Establish connection to database."""
        ...

    @abstractmethod
    def disconnect(self) -> None:
        """Close connection to database."""
        ...

    @abstractmethod
    def get_connection(self) -> Any:
        """Get the open connection, connecting first if needed."""
        ...

    def query(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        """Execute query and return results as dicts."""
        cursor = self.get_connection().execute(sql, params)
        columns = [desc[0] for desc in cursor.description]
        return [dict(zip(columns, row, strict=False)) for row in cursor.fetchall()]


__all__ = ["DatabaseAdapter"]
