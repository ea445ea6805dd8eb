"""Tests for the export runner against the in-memory provider."""

from datetime import timedelta

import pytest

from schemashift.core.config import MigrationSettings
from schemashift.core.errors import DeltaConfigurationError, ErrorKind
from schemashift.core.models import DeltaClass, ObjectIdentity
from schemashift.core.snapshot import SNAPSHOT_FILENAME, ExportSnapshot
from schemashift.orchestration import ExportRunner
from schemashift.orchestration.export import DEPLOYMENT_ORDER_FILENAME
from tests._support.fake_provider import FakeProvider, obj


def _files(root):
    return sorted(
        p.relative_to(root).as_posix()
        for p in root.rglob("*.sql")
    )


class TestFullExport:
    def test_writes_one_file_per_object(self, tmp_path, fake_provider, settings):
        report = ExportRunner(fake_provider, settings).run(tmp_path / "out")

        assert report.success
        assert report.exit_code == 0
        assert report.written == 11
        assert _files(tmp_path / "out") == sorted(
            [
                "02_Schemas/sales.sql",
                "08_Tables_PrimaryKey/dbo.Customers.sql",
                "08_Tables_PrimaryKey/dbo.Orders.sql",
                "08_Tables_PrimaryKey/sales.Regions.sql",
                "10_Indexes/dbo.Orders.IX_Orders_Date.sql",
                "13_Programmability/02_Functions/dbo.fn_Total.sql",
                "13_Programmability/03_StoredProcedures/dbo.usp_Report.sql",
                "13_Programmability/05_Views/dbo.vActive.sql",
                "13_Programmability/05_Views/sales.vRegions.sql",
                "19_Security/01_Roles/reporting.sql",
                "20_Data/dbo.Customers.data.sql",
            ]
        )

    def test_artifact_content(self, tmp_path, fake_provider, settings):
        ExportRunner(fake_provider, settings).run(tmp_path)
        view = tmp_path / "13_Programmability/05_Views/dbo.vActive.sql"
        assert view.read_text(encoding="utf-8") == "CREATE dbo.vActive\nGO\n"

    def test_per_schema_artifact_has_every_member(self, tmp_path, fake_provider):
        settings = MigrationSettings(workers=3, progress_interval=0.05, grouping_default="per-schema")
        report = ExportRunner(fake_provider, settings).run(tmp_path)
        assert report.success
        script = (tmp_path / "13_Programmability/001_dbo.sql").read_text(encoding="utf-8")
        assert script == (
            "CREATE dbo.fn_Total\nGO\nCREATE dbo.usp_Report\nGO\nCREATE dbo.vActive\nGO\n"
        )

    def test_type_options_reach_generator(self, tmp_path, fake_provider):
        settings = MigrationSettings(progress_interval=0.05, type_options={"View": {"header": True}})
        ExportRunner(fake_provider, settings).run(tmp_path)
        view = (tmp_path / "13_Programmability/05_Views/dbo.vActive.sql").read_text(encoding="utf-8")
        assert view.startswith("-- View:dbo.vActive\n")

    def test_snapshot_and_order_written(self, tmp_path, fake_provider, settings, stamp):
        report = ExportRunner(fake_provider, settings).run(tmp_path)
        assert report.snapshot_path == str(tmp_path / SNAPSHOT_FILENAME)

        snapshot = ExportSnapshot.read(tmp_path)
        assert snapshot.provider == "fake"
        entries = snapshot.by_identity()
        assert len(entries) == 11
        customers = entries[ObjectIdentity("Table", "dbo", "Customers")]
        assert customers.output_path == "08_Tables_PrimaryKey/dbo.Customers.sql"
        assert customers.modified_at == stamp

        order = (tmp_path / DEPLOYMENT_ORDER_FILENAME).read_text(encoding="utf-8")
        lines = order.splitlines()
        assert any(line.startswith("08_Tables_PrimaryKey") and " 3 " in line for line in lines)
        assert lines[-1] == "Total artifacts: 11"

    def test_secret_bearing_objects_listed(self, tmp_path, settings):
        provider = FakeProvider([obj("User", "app", schema=""), obj("Table", "T")])
        ExportRunner(provider, settings).run(tmp_path)
        secrets = ExportSnapshot.read(tmp_path).secrets
        assert [(s.type, s.output_path) for s in secrets] == [("User", "19_Security/02_Users/app.sql")]

    def test_filters_apply(self, tmp_path, fake_provider):
        settings = MigrationSettings(progress_interval=0.05, exclude_schemas={"sales"}, exclude_types={"TableData"})
        report = ExportRunner(fake_provider, settings).run(tmp_path)
        files = _files(tmp_path)
        assert "08_Tables_PrimaryKey/sales.Regions.sql" not in files
        assert "13_Programmability/05_Views/sales.vRegions.sql" not in files
        # The schema object itself is schema-less
        assert "02_Schemas/sales.sql" in files
        assert not any(f.startswith("20_Data") for f in files)
        assert report.written == len(files)

    def test_progress_callback(self, tmp_path, fake_provider, settings):
        calls = []
        ExportRunner(fake_provider, settings, progress_callback=lambda done, total: calls.append((done, total))).run(tmp_path)
        assert calls
        assert calls[-1] == (11, 11)


class TestExportFailures:
    def test_object_dropped_after_enumeration(self, tmp_path, fake_provider, settings):
        """Lookup fails for one item; the rest of the run completes."""
        target = ObjectIdentity("View", "dbo", "vActive")
        original_connect = fake_provider.connect
        sessions = []

        def connect():
            session = original_connect()
            sessions.append(session)
            if len(sessions) == 2:
                fake_provider.drop(target)
            return session

        fake_provider.connect = connect
        report = ExportRunner(fake_provider, settings).run(tmp_path)

        assert not report.success
        assert report.exit_code == 1
        (failure,) = report.dispatch.failures
        assert failure.error_kind is ErrorKind.OBJECT_LOOKUP
        assert failure.target == "13_Programmability/05_Views/dbo.vActive.sql"
        assert report.written == 10
        assert target not in ExportSnapshot.read(tmp_path).by_identity()

    def test_all_workers_fail_setup(self, tmp_path, sample_objects, settings):
        # First connection serves enumeration; every worker connection fails
        provider = FakeProvider(sample_objects)
        original_connect = provider.connect

        def connect():
            if provider.connections >= 1:
                provider.fail_connect = True
            return original_connect()

        provider.connect = connect
        report = ExportRunner(provider, settings).run(tmp_path)

        assert not report.success
        assert report.dispatch.completed == 11
        assert len(report.dispatch.setup_failures) == 2
        assert all(r.error_kind is ErrorKind.SETUP for r in report.dispatch.item_results)
        assert ExportSnapshot.read(tmp_path).objects == []


class TestDeltaExport:
    def test_second_run_copies_unchanged(self, tmp_path, fake_provider, settings, stamp):
        settings = MigrationSettings(
            workers=2, progress_interval=0.05, always_modified_types=frozenset()
        )
        first = tmp_path / "run1"
        ExportRunner(fake_provider, settings).run(first)

        fake_provider.add(
            obj("View", "vActive", modified_at=stamp + timedelta(hours=1)),
            "CREATE dbo.vActive REQUIRES dbo.Customers",
        )
        fake_provider.add(obj("Table", "Invoices", modified_at=stamp))
        fake_provider.drop(ObjectIdentity("StoredProcedure", "dbo", "usp_Report"))

        second = tmp_path / "run2"
        report = ExportRunner(fake_provider, settings).run(second, delta_from=first)

        assert report.success
        assert report.delta_counts() == {"new": 1, "modified": 1, "unchanged": 9, "deleted": 1}
        assert report.copied == 9
        assert report.written == 2
        assert (second / "13_Programmability/05_Views/dbo.vActive.sql").read_text() == (
            "CREATE dbo.vActive REQUIRES dbo.Customers\nGO\n"
        )
        assert not (second / "13_Programmability/03_StoredProcedures/dbo.usp_Report.sql").exists()

        snapshot = ExportSnapshot.read(second)
        assert [d.identity for d in snapshot.deleted] == [
            ObjectIdentity("StoredProcedure", "dbo", "usp_Report")
        ]
        assert len(snapshot.objects) == 11

    def test_delta_is_idempotent(self, tmp_path, fake_provider):
        settings = MigrationSettings(progress_interval=0.05, always_modified_types=frozenset())
        ExportRunner(fake_provider, settings).run(tmp_path / "a")
        report = ExportRunner(fake_provider, settings).run(tmp_path / "b", delta_from=tmp_path / "a")
        assert {r.classification for r in report.delta_records} == {DeltaClass.UNCHANGED}
        assert report.written == 0
        for name in _files(tmp_path / "a"):
            assert (tmp_path / "a" / name).read_text() == (tmp_path / "b" / name).read_text()

    def test_in_place_delta(self, tmp_path, fake_provider):
        settings = MigrationSettings(progress_interval=0.05, always_modified_types=frozenset())
        ExportRunner(fake_provider, settings).run(tmp_path)
        report = ExportRunner(fake_provider, settings).run(tmp_path, delta_from=tmp_path)
        assert report.success
        assert report.copied == 11

    def test_in_place_delta_removes_deleted_artifacts(self, tmp_path, fake_provider):
        settings = MigrationSettings(progress_interval=0.05, always_modified_types=frozenset())
        ExportRunner(fake_provider, settings).run(tmp_path)
        stale = tmp_path / "13_Programmability/03_StoredProcedures/dbo.usp_Report.sql"
        assert stale.is_file()

        fake_provider.drop(ObjectIdentity("StoredProcedure", "dbo", "usp_Report"))
        report = ExportRunner(fake_provider, settings).run(tmp_path, delta_from=tmp_path)

        assert report.success
        assert report.delta_counts()["deleted"] == 1
        assert not stale.exists()
        assert len(_files(tmp_path)) == 10

    def test_delta_into_new_directory_keeps_prior_artifacts(self, tmp_path, fake_provider):
        settings = MigrationSettings(progress_interval=0.05, always_modified_types=frozenset())
        ExportRunner(fake_provider, settings).run(tmp_path / "a")
        fake_provider.drop(ObjectIdentity("StoredProcedure", "dbo", "usp_Report"))
        ExportRunner(fake_provider, settings).run(tmp_path / "b", delta_from=tmp_path / "a")
        assert (tmp_path / "a/13_Programmability/03_StoredProcedures/dbo.usp_Report.sql").is_file()

    def test_coarse_grouping_rejected_before_any_work(self, tmp_path, fake_provider, settings):
        ExportRunner(fake_provider, settings).run(tmp_path / "prior")
        connections = fake_provider.connections

        coarse = MigrationSettings(progress_interval=0.05, grouping={"View": "per-schema"})
        with pytest.raises(DeltaConfigurationError):
            ExportRunner(fake_provider, coarse).run(tmp_path / "next", delta_from=tmp_path / "prior")

        assert fake_provider.connections == connections
        assert not (tmp_path / "next").exists()
