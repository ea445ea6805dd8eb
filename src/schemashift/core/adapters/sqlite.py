"""SQLite database adapter."""

from __future__ import annotations

import sqlite3
from typing import Any

from schemashift.core.errors import ProviderConnectionError

from .base import DatabaseAdapter
from .types import DatabaseConfig, DatabaseType


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite database adapter.

    Uses the built-in sqlite3 module in autocommit mode so that
    ``PRAGMA foreign_keys`` takes effect immediately (SQLite ignores the
    pragma inside an open transaction).
    """

    def __init__(
        self,
        path: str = ":memory:",
        *,
        readonly: bool = False,
        timeout: float = 5.0,
        **kwargs: Any,
    ):
        super().__init__(
            DatabaseConfig(
                db_type=DatabaseType.SQLITE,
                path=path,
                readonly=readonly,
                timeout=timeout,
                options=kwargs,
            )
        )
        self._conn: sqlite3.Connection | None = None

    @property
    def path(self) -> str:
        return self._config.to_connection_string()

    def connect(self) -> None:
        """Connect to SQLite database."""
        path = self._config.to_connection_string()
        uri = path.startswith("file:")

        try:
            self._conn = sqlite3.connect(
                path,
                timeout=self._config.timeout,
                check_same_thread=False,
                uri=uri,
                isolation_level=None,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")

            if self._config.readonly:
                self._conn.execute("PRAGMA query_only = ON")

            self._connected = True

        except sqlite3.Error as e:
            raise ProviderConnectionError(
                f"Failed to connect to SQLite database {path!r}: {e}",
                cause=e,
            ) from e

    def disconnect(self) -> None:
        """Close SQLite connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            self._connected = False

    def get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self.connect()
        assert self._conn is not None
        return self._conn


__all__ = ["SQLiteAdapter"]
