"""Database adapters used by the reference catalog provider.

Usage::

    from schemashift.core.adapters import SQLiteAdapter

    adapter = SQLiteAdapter("source.db", readonly=True)
    adapter.connect()
    rows = adapter.query("SELECT name FROM sqlite_master")
    adapter.disconnect()
"""

from .base import DatabaseAdapter
from .sqlite import SQLiteAdapter
from .types import DatabaseConfig, DatabaseType

__all__ = ["DatabaseAdapter", "SQLiteAdapter", "DatabaseConfig", "DatabaseType"]
