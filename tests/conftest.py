"""
Shared pytest fixtures for schemashift tests.

This module provides:
- structlog reset between tests (the CLI reconfigures logging)
- Settings and catalog fixtures
- A small SQLite source database for provider and round-trip tests
"""

import sqlite3
import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest
import structlog

# Ensure schemashift package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent))

from schemashift.core.config import MigrationSettings
from tests._support.fake_provider import FakeProvider, obj


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo configure_logging() calls made by a test."""
    yield
    structlog.reset_defaults()


# =============================================================================
# Settings / catalog
# =============================================================================


@pytest.fixture
def settings() -> MigrationSettings:
    """Default settings with a short progress interval."""
    return MigrationSettings(workers=2, progress_interval=0.05)


@pytest.fixture
def stamp() -> datetime:
    return datetime(2026, 1, 19, 4, 16, 46, tzinfo=UTC)


@pytest.fixture
def sample_objects(stamp):
    """A catalog spanning several buckets, schemas and types."""
    return [
        obj("Schema", "sales", schema="", modified_at=stamp),
        obj("Table", "Customers", modified_at=stamp),
        obj("Table", "Orders", modified_at=stamp),
        obj("Table", "Regions", schema="sales", modified_at=stamp),
        obj("Index", "Orders.IX_Orders_Date", modified_at=stamp),
        obj("UserDefinedFunction", "fn_Total", modified_at=stamp),
        obj("StoredProcedure", "usp_Report", modified_at=stamp),
        obj("View", "vActive", modified_at=stamp),
        obj("View", "vRegions", schema="sales", modified_at=stamp),
        obj("Role", "reporting", schema="", modified_at=stamp),
        obj("TableData", "Customers", modified_at=stamp),
    ]


@pytest.fixture
def fake_provider(sample_objects) -> FakeProvider:
    return FakeProvider(sample_objects)


# =============================================================================
# SQLite
# =============================================================================

SOURCE_DDL = """
CREATE TABLE Parent (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL
);
CREATE TABLE Child (
    id INTEGER PRIMARY KEY,
    parent_id INTEGER NOT NULL,
    note TEXT,
    CONSTRAINT FK_Child_Parent FOREIGN KEY (parent_id) REFERENCES Parent (id)
);
CREATE TABLE Audit (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    child_id INTEGER,
    changed_note TEXT
);
CREATE INDEX IX_Child_Parent ON Child (parent_id);
CREATE VIEW vChildren AS
    SELECT c.id, c.note, p.name AS parent_name
    FROM Child c JOIN Parent p ON p.id = c.parent_id;
CREATE TRIGGER trg_Child_Note AFTER UPDATE OF note ON Child
BEGIN
    INSERT INTO Audit (child_id, changed_note) VALUES (NEW.id, NEW.note);
END;
INSERT INTO Parent (id, name) VALUES (1, 'alpha'), (2, 'O''Brien');
INSERT INTO Child (id, parent_id, note) VALUES (10, 1, 'first'), (11, 2, NULL), (12, 1, 'x;y');
"""


@pytest.fixture
def source_db(tmp_path) -> Path:
    """A SQLite database with tables, an index, a view, a trigger and rows."""
    path = tmp_path / "source.db"
    conn = sqlite3.connect(path)
    try:
        conn.executescript(SOURCE_DDL)
        conn.commit()
    finally:
        conn.close()
    return path
