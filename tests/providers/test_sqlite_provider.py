"""Tests for the SQLite reference provider."""

import sqlite3

import pytest

from schemashift.core.errors import (
    DependencyUnresolved,
    ErrorKind,
    ObjectLookupFailure,
    ProviderConnectionError,
    ScriptGenerationFailure,
)
from schemashift.core.models import ObjectIdentity
from schemashift.core.result import Err, Ok
from schemashift.providers import SQLiteProvider
from schemashift.providers.sqlite import SCHEMA, quote_identifier, sql_literal


@pytest.fixture
def source(source_db):
    provider = SQLiteProvider(str(source_db), readonly=True)
    session = provider.connect()
    yield provider, session
    session.close()


@pytest.fixture
def target(tmp_path):
    provider = SQLiteProvider(str(tmp_path / "target.db"))
    session = provider.connect()
    yield session
    session.close()


def _enumerate(provider, session, object_type):
    return list(provider.registry.get(object_type).enumerate(session))


def _generate(provider, session, object_type, name, **options):
    handler = provider.registry.get(object_type)
    obj = handler.lookup(session, ObjectIdentity(object_type, SCHEMA, name))
    return handler.generate(session, [obj], options)


# ── Helpers ──────────────────────────────────────────────────


class TestLiterals:
    @pytest.mark.parametrize(
        "value,literal",
        [
            (None, "NULL"),
            (True, "1"),
            (7, "7"),
            (2.5, "2.5"),
            ("O'Brien", "'O''Brien'"),
            ("x;y", "'x;y'"),
            ("a\nGO\nb", "'a' || char(10) || 'GO' || char(10) || 'b'"),
            ("a\r\nb", "'a' || char(13) || '' || char(10) || 'b'"),
            (b"\x00\xff", "X'00FF'"),
        ],
    )
    def test_sql_literal(self, value, literal):
        assert sql_literal(value) == literal

    def test_quote_identifier(self):
        assert quote_identifier('we"ird') == '"we""ird"'


# ── Enumeration and scripting ────────────────────────────────


class TestCatalog:
    def test_supported_types(self, source):
        provider, _ = source
        assert provider.registry.types() == ["Table", "Index", "Trigger", "View", "TableData"]
        assert provider.name == "sqlite"

    def test_enumerate_tables(self, source):
        provider, session = source
        tables = {o.name: o for o in _enumerate(provider, session, "Table")}
        assert set(tables) == {"Audit", "Child", "Parent", "sqlite_sequence"}
        assert tables["sqlite_sequence"].is_system is True
        assert tables["Parent"].is_system is False
        assert all(o.schema == "main" and o.modified_at is None for o in tables.values())

    def test_child_objects_carry_table_name(self, source):
        provider, session = source
        assert [o.name for o in _enumerate(provider, session, "Index")] == ["Child.IX_Child_Parent"]
        assert [o.name for o in _enumerate(provider, session, "Trigger")] == ["Child.trg_Child_Note"]
        assert [o.name for o in _enumerate(provider, session, "View")] == ["vChildren"]

    def test_generate_table(self, source):
        provider, session = source
        script = _generate(provider, session, "Table", "Parent")
        assert script.startswith("CREATE TABLE Parent (")
        assert script.endswith(");\nGO\n")

    def test_generate_with_drop(self, source):
        provider, session = source
        script = _generate(provider, session, "View", "vChildren", include_drop=True)
        assert script.startswith('DROP VIEW IF EXISTS "vChildren";\nGO\nCREATE VIEW vChildren AS')

    def test_generate_index(self, source):
        provider, session = source
        script = _generate(provider, session, "Index", "Child.IX_Child_Parent")
        assert script == "CREATE INDEX IX_Child_Parent ON Child (parent_id);\nGO\n"

    def test_generate_data(self, source):
        provider, session = source
        script = _generate(provider, session, "TableData", "Parent")
        assert script == (
            'INSERT INTO "Parent" ("id", "name") VALUES (1, \'alpha\');\n'
            'INSERT INTO "Parent" ("id", "name") VALUES (2, \'O\'\'Brien\');\n'
            "GO\n"
        )

    def test_generate_data_in_batches(self, source):
        provider, session = source
        script = _generate(provider, session, "TableData", "Child", rows_per_batch=2)
        assert script.count("\nGO\n") == 2
        assert "'x;y'" in script
        assert "NULL" in script

    def test_generate_data_rejects_bad_batch_size(self, source):
        provider, session = source
        with pytest.raises(ScriptGenerationFailure):
            _generate(provider, session, "TableData", "Child", rows_per_batch=0)

    def test_lookup_missing_object(self, source):
        provider, session = source
        with pytest.raises(ObjectLookupFailure):
            provider.registry.get("Table").lookup(session, ObjectIdentity("Table", SCHEMA, "Gone"))

    def test_lookup_wrong_schema(self, source):
        provider, session = source
        with pytest.raises(ObjectLookupFailure):
            provider.registry.get("Table").lookup(session, ObjectIdentity("Table", "dbo", "Parent"))

    def test_source_is_readonly(self, source):
        _, session = source
        with pytest.raises(sqlite3.OperationalError):
            session.connection.execute("DELETE FROM Parent")


class TestConnect:
    def test_readonly_missing_file_fails(self, tmp_path):
        with pytest.raises(ProviderConnectionError):
            SQLiteProvider(str(tmp_path / "missing.db"), readonly=True).connect()
        assert not (tmp_path / "missing.db").exists()

    def test_memory(self):
        session = SQLiteProvider(":memory:").connect()
        assert session.execute_batch("CREATE TABLE t (x INTEGER)") == Ok(0)
        session.close()


# ── Replay ───────────────────────────────────────────────────


class TestExecuteBatch:
    def test_ok_reports_changes(self, target):
        assert target.execute_batch("CREATE TABLE t (x INTEGER);").is_ok()
        result = target.execute_batch("INSERT INTO t VALUES (1); INSERT INTO t VALUES (2);")
        assert result == Ok(2)

    @pytest.mark.parametrize(
        "sql",
        [
            "INSERT INTO missing VALUES (1)",
            "CREATE TRIGGER trg AFTER INSERT ON missing BEGIN SELECT 1; END",
            "CREATE TABLE t (x INTEGER); SELECT nope FROM t",
        ],
    )
    def test_missing_reference_is_dependency_unresolved(self, target, sql):
        result = target.execute_batch(sql)
        assert isinstance(result, Err)
        assert isinstance(result.error, DependencyUnresolved)
        assert result.error.kind is ErrorKind.DEPENDENCY_UNRESOLVED

    def test_other_errors_are_generation_failures(self, target):
        result = target.execute_batch("CREATE TABLE (")
        assert isinstance(result.error, ScriptGenerationFailure)
        assert not result.error.retryable

    def test_duplicate_object(self, target):
        target.execute_batch("CREATE TABLE t (x INTEGER)")
        result = target.execute_batch("CREATE TABLE t (x INTEGER)")
        assert isinstance(result.error, ScriptGenerationFailure)


class TestConstraints:
    DDL = """
        CREATE TABLE Parent (id INTEGER PRIMARY KEY);
        CREATE TABLE Child (
            id INTEGER PRIMARY KEY,
            parent_id INTEGER,
            CONSTRAINT FK_Child_Parent FOREIGN KEY (parent_id) REFERENCES Parent (id)
        );
        CREATE TABLE Loose (id INTEGER PRIMARY KEY, parent_id INTEGER REFERENCES Parent (id));
    """

    def test_suspend_lists_named_and_generated_names(self, target):
        target.execute_batch(self.DDL)
        assert target.suspend_constraints() == ["FK_Child_Parent", "FK_Loose_Parent_0"]
        assert target.connection.execute("PRAGMA foreign_keys").fetchone()[0] == 0
        target.enable_constraints([])
        assert target.connection.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_clean_load_has_no_violations(self, target):
        target.execute_batch(self.DDL)
        names = target.suspend_constraints()
        target.execute_batch("INSERT INTO Child VALUES (10, 1); INSERT INTO Parent VALUES (1);")
        target.enable_constraints(names)
        assert target.validate_constraints(names) == []

    def test_orphan_reported_by_constraint_name(self, target):
        target.execute_batch(self.DDL)
        names = target.suspend_constraints()
        result = target.execute_batch(
            "INSERT INTO Parent VALUES (1); INSERT INTO Child VALUES (10, 1), (11, 99);"
        )
        assert result.is_ok()
        target.enable_constraints(names)
        assert target.validate_constraints(names) == ["FK_Child_Parent"]
        # Loaded rows stay in place
        assert target.query("SELECT count(*) AS n FROM Child") == [{"n": 2}]

    def test_validation_limited_to_given_names(self, target):
        target.execute_batch(self.DDL)
        target.suspend_constraints()
        target.execute_batch("INSERT INTO Loose VALUES (1, 42);")
        target.enable_constraints([])
        assert target.validate_constraints(["FK_Child_Parent"]) == []
        assert target.validate_constraints(["FK_Loose_Parent_0"]) == ["FK_Loose_Parent_0"]
