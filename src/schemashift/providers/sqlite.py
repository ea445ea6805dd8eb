"""SQLite reference provider.

Makes the scheduler exercisable end to end against real files: a source
database is enumerated and scripted, and an export is replayed into a
target database. Built on :class:`~schemashift.core.adapters.SQLiteAdapter`;
every session owns one adapter (one connection).

Supported types::

    Table      CREATE TABLE text from sqlite_master          bucket 08
    Index      CREATE INDEX text, name "table.index"         bucket 10
    Trigger    CREATE TRIGGER text, name "table.trigger"     bucket 13
    View       CREATE VIEW text                              bucket 13
    TableData  INSERT statements, name = table               bucket 20

Everything lives in schema ``main``. SQLite has no modification dates, so
``modified_at`` is always None and delta runs regenerate everything.

Foreign keys:
    Suspension toggles ``PRAGMA foreign_keys``. Validation runs
    ``PRAGMA foreign_key_check`` and maps each violating row back to the
    constraint name declared with ``CONSTRAINT name FOREIGN KEY (...)``,
    or to ``FK_{child}_{parent}_{id}`` for unnamed constraints.

Triggers:
    SQLite cannot disable triggers, and bucket 13 creates them before the
    data bucket loads rows. ``INSERT`` triggers therefore fire during
    replay; tables they write to (audit tables and the like) can end up
    with the source rows plus the rows the triggers derived again.
"""

from __future__ import annotations

import re
import sqlite3
from collections.abc import Iterator, Mapping, Sequence
from pathlib import Path
from typing import Any

from schemashift.core.adapters import SQLiteAdapter
from schemashift.core.errors import (
    DependencyUnresolved,
    ObjectLookupFailure,
    ScriptGenerationFailure,
)
from schemashift.core.logging import get_logger
from schemashift.core.models import CatalogObject, ObjectIdentity
from schemashift.core.result import Err, Ok, Result
from schemashift.providers.protocol import TypeHandler, TypeRegistry

logger = get_logger(__name__)

SCHEMA = "main"
DEFAULT_ROWS_PER_BATCH = 500

# Messages raised by SQLite when a referenced object does not exist yet
_UNRESOLVED = re.compile(r"no such (table|view|function|column|module|collation)", re.IGNORECASE)
_NAMED_FK = re.compile(
    r"CONSTRAINT\s+(?P<name>\"[^\"]+\"|`[^`]+`|\[[^\]]+\]|\w+)\s+"
    r"FOREIGN\s+KEY\s*\((?P<cols>[^)]*)\)\s*"
    r"REFERENCES\s+(?P<parent>\"[^\"]+\"|`[^`]+`|\[[^\]]+\]|\w+)",
    re.IGNORECASE,
)


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _unquote(token: str) -> str:
    token = token.strip()
    if len(token) >= 2 and token[0] in "\"`[" and token[-1] in "\"`]":
        return token[1:-1]
    return token


def sql_literal(value: Any) -> str:
    """Render a Python value returned by sqlite3 as a SQL literal.

    Line breaks inside text become ``char(10)``/``char(13)`` concatenations
    so a generated script never contains a line of its own data (a value
    line reading ``GO`` would otherwise split the batch).
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "X'" + bytes(value).hex().upper() + "'"
    text = "'" + str(value).replace("'", "''") + "'"
    return text.replace("\r", "' || char(13) || '").replace("\n", "' || char(10) || '")


def _batch(statement: str) -> str:
    return f"{statement.rstrip().rstrip(';')};\nGO\n"


# =============================================================================
# SESSION
# =============================================================================


class SQLiteSession:
    """One SQLite connection used for enumeration, scripting or replay."""

    def __init__(self, adapter: SQLiteAdapter):
        self.adapter = adapter

    @property
    def connection(self) -> sqlite3.Connection:
        return self.adapter.get_connection()

    def query(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        return self.adapter.query(sql, params)

    def execute_batch(self, sql: str) -> Result[int]:
        conn = self.connection
        before = conn.total_changes
        try:
            conn.executescript(sql)
        except sqlite3.Error as e:
            message = str(e)
            if _UNRESOLVED.search(message):
                return Err(DependencyUnresolved(message, cause=e))
            return Err(ScriptGenerationFailure(message, cause=e))
        return Ok(conn.total_changes - before)

    # ── Constraint lifecycle ────────────────────────────────────

    def _foreign_keys(self) -> dict[tuple[str, int], str]:
        """(child table, fk id) → constraint name for every foreign key."""
        names: dict[tuple[str, int], str] = {}
        for table in self.query(
            "SELECT name, sql FROM sqlite_master "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        ):
            declared = {
                (
                    tuple(_unquote(c).lower() for c in m.group("cols").split(",")),
                    _unquote(m.group("parent")).lower(),
                ): _unquote(m.group("name"))
                for m in _NAMED_FK.finditer(table["sql"] or "")
            }
            grouped: dict[int, dict[str, Any]] = {}
            for row in self.query(f"PRAGMA foreign_key_list({quote_identifier(table['name'])})"):
                entry = grouped.setdefault(row["id"], {"parent": row["table"], "cols": []})
                entry["cols"].append((row["seq"], row["from"]))
            for fk_id, entry in grouped.items():
                cols = tuple(col.lower() for _, col in sorted(entry["cols"]))
                name = declared.get((cols, entry["parent"].lower()))
                names[(table["name"], fk_id)] = name or f"FK_{table['name']}_{entry['parent']}_{fk_id}"
        return names

    def suspend_constraints(self) -> list[str]:
        names = sorted(set(self._foreign_keys().values()))
        self.connection.execute("PRAGMA foreign_keys = OFF")
        logger.debug("sqlite.constraints_suspended", count=len(names))
        return names

    def enable_constraints(self, names: Sequence[str]) -> None:
        self.connection.execute("PRAGMA foreign_keys = ON")
        logger.debug("sqlite.constraints_enabled", count=len(names))

    def validate_constraints(self, names: Sequence[str]) -> list[str]:
        wanted = set(names)
        fk_names = self._foreign_keys()
        violating: set[str] = set()
        for row in self.connection.execute("PRAGMA foreign_key_check").fetchall():
            table, _rowid, _parent, fk_id = tuple(row)
            name = fk_names.get((table, fk_id))
            if name is not None and name in wanted:
                violating.add(name)
        return sorted(violating)

    def close(self) -> None:
        self.adapter.disconnect()


# =============================================================================
# TYPE HANDLERS
# =============================================================================


def _master_rows(session: SQLiteSession, kind: str) -> list[dict[str, Any]]:
    return session.query(
        "SELECT type, name, tbl_name, sql FROM sqlite_master WHERE type = ? ORDER BY name",
        (kind,),
    )


def _object_name(object_type: str, row: dict[str, Any]) -> str:
    if object_type in ("Index", "Trigger"):
        return f"{row['tbl_name']}.{row['name']}"
    return row["name"]


def _is_system(row: dict[str, Any]) -> bool:
    return row["name"].startswith("sqlite_") or row["sql"] is None


def _enumerate(kind: str, object_type: str):
    def enumerate_objects(session: SQLiteSession) -> Iterator[CatalogObject]:
        for row in _master_rows(session, kind):
            yield CatalogObject(
                object_type,
                SCHEMA,
                _object_name(object_type, row),
                is_system=_is_system(row),
            )

    return enumerate_objects


def _find_row(session: SQLiteSession, kind: str, identity: ObjectIdentity) -> dict[str, Any]:
    name = identity.name
    if identity.type in ("Index", "Trigger"):
        name = identity.name.split(".", 1)[-1]
    rows = session.query(
        "SELECT type, name, tbl_name, sql FROM sqlite_master WHERE type = ? AND name = ?",
        (kind, name),
    )
    if not rows or identity.schema != SCHEMA:
        raise ObjectLookupFailure(f"{identity} no longer exists").with_context(
            object_type=identity.type, schema=identity.schema, name=identity.name
        )
    return rows[0]


def _lookup(kind: str):
    def lookup(session: SQLiteSession, identity: ObjectIdentity) -> CatalogObject:
        row = _find_row(session, kind, identity)
        return CatalogObject(
            identity.type, SCHEMA, _object_name(identity.type, row), is_system=_is_system(row)
        )

    return lookup


def _generate_ddl(kind: str):
    def generate(
        session: SQLiteSession, objects: Sequence[CatalogObject], options: Mapping[str, Any]
    ) -> str:
        parts = []
        for obj in objects:
            row = _find_row(session, kind, obj.identity)
            if options.get("include_drop"):
                parts.append(_batch(f"DROP {kind.upper()} IF EXISTS {quote_identifier(row['name'])}"))
            parts.append(_batch(row["sql"]))
        return "".join(parts)

    return generate


def _generate_data(
    session: SQLiteSession, objects: Sequence[CatalogObject], options: Mapping[str, Any]
) -> str:
    rows_per_batch = int(options.get("rows_per_batch", DEFAULT_ROWS_PER_BATCH))
    if rows_per_batch < 1:
        raise ScriptGenerationFailure(f"rows_per_batch must be >= 1, got {rows_per_batch}")

    parts = []
    for obj in objects:
        _find_row(session, "table", obj.identity)
        table = quote_identifier(obj.name)
        cursor = session.connection.execute(f"SELECT * FROM {table}")
        columns = ", ".join(quote_identifier(d[0]) for d in cursor.description)
        statements: list[str] = []
        for row in cursor:
            values = ", ".join(sql_literal(v) for v in tuple(row))
            statements.append(f"INSERT INTO {table} ({columns}) VALUES ({values});")
            if len(statements) == rows_per_batch:
                parts.append("\n".join(statements) + "\nGO\n")
                statements = []
        if statements:
            parts.append("\n".join(statements) + "\nGO\n")
    return "".join(parts)


def build_registry() -> TypeRegistry:
    """The SQLite provider's handlers; built once per provider."""
    return TypeRegistry(
        [
            TypeHandler("Table", _enumerate("table", "Table"), _lookup("table"), _generate_ddl("table")),
            TypeHandler("Index", _enumerate("index", "Index"), _lookup("index"), _generate_ddl("index")),
            TypeHandler(
                "Trigger", _enumerate("trigger", "Trigger"), _lookup("trigger"), _generate_ddl("trigger")
            ),
            TypeHandler("View", _enumerate("view", "View"), _lookup("view"), _generate_ddl("view")),
            TypeHandler("TableData", _enumerate("table", "TableData"), _lookup("table"), _generate_data),
        ]
    )


class SQLiteProvider:
    """Catalog provider for one SQLite database file."""

    name = "sqlite"

    def __init__(self, path: str, *, readonly: bool = False, timeout: float = 5.0):
        self.path = path
        self.readonly = readonly
        self.timeout = timeout
        self.registry = build_registry()

    def connect(self) -> SQLiteSession:
        path = self.path
        if self.readonly and path != ":memory:" and not path.startswith("file:"):
            # mode=ro refuses to create a missing source file
            path = Path(path).resolve().as_uri() + "?mode=ro"
        adapter = SQLiteAdapter(path, readonly=self.readonly, timeout=self.timeout)
        adapter.connect()
        return SQLiteSession(adapter)

    def __repr__(self) -> str:
        return f"SQLiteProvider({self.path!r}, readonly={self.readonly})"


__all__ = [
    "SQLiteProvider",
    "SQLiteSession",
    "build_registry",
    "quote_identifier",
    "sql_literal",
]
