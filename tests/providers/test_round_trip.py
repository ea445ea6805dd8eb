"""Export a SQLite database and replay it into an empty one."""

import sqlite3

import pytest

from schemashift.core.config import MigrationSettings
from schemashift.core.models import ApplyState
from schemashift.execution import ApplyEngine
from schemashift.orchestration import ExportRunner
from schemashift.providers import SQLiteProvider


@pytest.fixture
def settings():
    return MigrationSettings(workers=3, progress_interval=0.05)


@pytest.fixture
def exported(tmp_path, source_db, settings):
    export_dir = tmp_path / "export"
    report = ExportRunner(SQLiteProvider(str(source_db), readonly=True), settings).run(export_dir)
    assert report.success, report.dispatch.failures
    return export_dir


def _replay(export_dir, target_path, settings):
    session = SQLiteProvider(str(target_path)).connect()
    try:
        return ApplyEngine(session, settings).run(export_dir)
    finally:
        session.close()


def _rows(path, sql):
    conn = sqlite3.connect(path)
    try:
        return conn.execute(sql).fetchall()
    finally:
        conn.close()


class TestExportLayout:
    def test_artifacts(self, exported):
        files = sorted(p.relative_to(exported).as_posix() for p in exported.rglob("*.sql"))
        assert files == [
            "08_Tables_PrimaryKey/main.Audit.sql",
            "08_Tables_PrimaryKey/main.Child.sql",
            "08_Tables_PrimaryKey/main.Parent.sql",
            "10_Indexes/main.Child.IX_Child_Parent.sql",
            "13_Programmability/04_Triggers/main.Child.trg_Child_Note.sql",
            "13_Programmability/05_Views/main.vChildren.sql",
            "20_Data/main.Audit.data.sql",
            "20_Data/main.Child.data.sql",
            "20_Data/main.Parent.data.sql",
        ]

    def test_source_untouched(self, exported, source_db):
        assert _rows(source_db, "SELECT count(*) FROM Child") == [(3,)]


class TestRoundTrip:
    def test_replay_reproduces_schema_and_rows(self, exported, tmp_path, source_db, settings):
        target = tmp_path / "target.db"
        report = _replay(exported, target, settings)

        assert report.success, report.to_dict()
        assert report.constraint_violations == []
        assert {a.outcome for a in report.final.values()} == {ApplyState.APPLIED}

        query = "SELECT type, name FROM sqlite_master WHERE name NOT LIKE 'sqlite_%' ORDER BY type, name"
        assert _rows(target, query) == _rows(source_db, query)
        for table in ("Parent", "Child"):
            sql = f"SELECT * FROM {table} ORDER BY id"
            assert _rows(target, sql) == _rows(source_db, sql)
        assert _rows(target, "SELECT parent_name FROM vChildren ORDER BY id") == [
            ("alpha",),
            ("O'Brien",),
            ("alpha",),
        ]

    def test_replayed_trigger_fires(self, exported, tmp_path, settings):
        target = tmp_path / "target.db"
        _replay(exported, target, settings)
        conn = sqlite3.connect(target)
        try:
            conn.execute("UPDATE Child SET note = 'changed' WHERE id = 10")
            conn.commit()
            assert conn.execute("SELECT child_id, changed_note FROM Audit").fetchall() == [(10, "changed")]
        finally:
            conn.close()

    def test_orphan_row_reported_without_abort(self, exported, tmp_path, settings):
        data = exported / "20_Data/main.Child.data.sql"
        data.write_text(
            data.read_text(encoding="utf-8")
            + 'INSERT INTO "Child" ("id", "parent_id", "note") VALUES (13, 99, \'orphan\');\nGO\n',
            encoding="utf-8",
        )
        target = tmp_path / "target.db"
        report = _replay(exported, target, settings)

        assert not report.aborted
        assert report.failures == []
        assert report.constraint_violations == ["FK_Child_Parent"]
        assert report.exit_code == 1
        assert _rows(target, "SELECT count(*) FROM Child") == [(4,)]

    def test_second_replay_fails_on_existing_objects(self, exported, tmp_path, settings):
        target = tmp_path / "target.db"
        _replay(exported, target, settings)
        report = _replay(exported, target, settings)
        assert not report.success
        assert all(a.outcome is ApplyState.FAILED for a in report.final.values() if "20_Data" not in a.unit.path)


class TestMultilineText:
    def test_separator_lines_inside_values_survive(self, tmp_path, settings):
        source = tmp_path / "notes.db"
        conn = sqlite3.connect(source)
        conn.execute("CREATE TABLE Note (id INTEGER PRIMARY KEY, body TEXT)")
        conn.executemany(
            "INSERT INTO Note VALUES (?, ?)",
            [(1, "line1\nGO\nline2"), (2, "crlf\r\ngo 3\r\n"), (3, "plain")],
        )
        conn.commit()
        conn.close()

        export_dir = tmp_path / "export"
        assert ExportRunner(SQLiteProvider(str(source), readonly=True), settings).run(export_dir).success
        target = tmp_path / "target.db"
        report = _replay(export_dir, target, settings)

        assert report.success, report.to_dict()
        query = "SELECT id, body FROM Note ORDER BY id"
        assert _rows(target, query) == _rows(source, query)


class TestInsertTriggers:
    def test_insert_trigger_fires_again_during_data_load(self, tmp_path, settings):
        source = tmp_path / "logged.db"
        conn = sqlite3.connect(source)
        conn.executescript(
            """
            CREATE TABLE Item (id INTEGER PRIMARY KEY, name TEXT);
            CREATE TABLE ItemLog (item_id INTEGER);
            CREATE TRIGGER trg_Item_Log AFTER INSERT ON Item
            BEGIN
                INSERT INTO ItemLog (item_id) VALUES (NEW.id);
            END;
            INSERT INTO Item VALUES (1, 'a'), (2, 'b');
            """
        )
        conn.commit()
        conn.close()

        export_dir = tmp_path / "export"
        assert ExportRunner(SQLiteProvider(str(source), readonly=True), settings).run(export_dir).success
        target = tmp_path / "target.db"
        assert _replay(export_dir, target, settings).success

        assert _rows(source, "SELECT count(*) FROM ItemLog") == [(2,)]
        # Copied log rows plus the rows the trigger derived while Item loaded
        assert _rows(target, "SELECT count(*) FROM ItemLog") == [(4,)]
