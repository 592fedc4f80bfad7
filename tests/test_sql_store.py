"""
Tests for the SQLAlchemy store
"""
import pytest
from sqlalchemy import inspect, select
from sqlalchemy.exc import OperationalError

import sys
sys.path.insert(0, '.')

from dumpwatch.core.config import Settings
from dumpwatch.core.entities import DumpSize, ReportStatus
from dumpwatch.core.exceptions import StoreConflict
from dumpwatch.database.factory import create_store
from dumpwatch.database.memory import InMemoryStore
from dumpwatch.database.models import DumpReportRecord, PhotoHashRecord, VerificationRecord
from dumpwatch.database.sql_store import SqlStore, _is_retryable


def _add_report(session, reporter_id="alice", photo_hash="a" * 64):
    session.fingerprints.add(photo_hash, reporter_id)
    return session.reports.add(
        reporter_id=reporter_id,
        latitude=3.8480,
        longitude=11.5021,
        size=DumpSize.SMALL,
        photo_hash=photo_hash,
        description="Rubble",
    )


class TestDatabaseConnection:
    """Test suite for connection management."""

    def test_check_connection(self, sql_store):
        assert sql_store.db.check_connection()

    def test_sqlite_detection(self, sql_store):
        assert sql_store.db.is_sqlite

    def test_mask_url(self, sql_store):
        masked = sql_store.db._mask_url("postgresql://dumpwatch:secret@db:5432/dumpwatch")
        assert "secret" not in masked
        assert masked == "postgresql://dumpwatch:****@db:5432/dumpwatch"

    def test_get_session_commits(self, sql_store):
        with sql_store.db.get_session() as session:
            session.add(PhotoHashRecord(hash="f" * 64, uploaded_by="alice"))

        with sql_store.db.get_session() as session:
            assert session.get(PhotoHashRecord, "f" * 64) is not None


class TestSqlStore:
    """Test suite for SQL transactions."""

    def test_report_round_trip(self, sql_store):
        with sql_store.transaction() as session:
            created = _add_report(session)

        with sql_store.transaction() as session:
            loaded = session.reports.get(created.id)

        assert loaded.reporter_id == "alice"
        assert loaded.size == DumpSize.SMALL
        assert loaded.status == ReportStatus.UNVERIFIED
        assert loaded.version == 1
        assert loaded.description == "Rubble"

    def test_mark_verified_bumps_version(self, sql_store):
        with sql_store.transaction() as session:
            report = _add_report(session)
            verified = session.reports.mark_verified(report)

        assert verified.status == ReportStatus.VERIFIED
        assert verified.version == 2
        assert verified.updated_at is not None

    def test_rollback_on_error(self, sql_store):
        with pytest.raises(RuntimeError):
            with sql_store.transaction() as session:
                _add_report(session)
                raise RuntimeError("abort")

        with sql_store.db.get_session() as session:
            assert session.scalars(select(DumpReportRecord)).all() == []

    def test_stale_version_is_conflict(self, sql_store):
        """Test a status update on a report changed by another transaction."""
        with sql_store.transaction() as session:
            report = _add_report(session)

        with pytest.raises(StoreConflict):
            with sql_store.transaction() as first:
                stale = first.reports.get(report.id)

                with sql_store.transaction() as second:
                    second.reports.mark_verified(second.reports.get(report.id))

                first.reports.mark_verified(stale)

    def test_unique_violation_is_conflict(self, sql_store):
        """Test a racing insert of a unique key surfaces as StoreConflict."""
        with pytest.raises(StoreConflict):
            with sql_store.transaction() as first:
                with sql_store.transaction() as second:
                    second.fingerprints.add("c" * 64, "bob")

                first.fingerprints.session.add(PhotoHashRecord(hash="c" * 64, uploaded_by="alice"))
                first.fingerprints.session.flush()

    def test_verifications_listed_in_creation_order(self, sql_store):
        """Test verifiers come back through explicit queries, oldest first."""
        with sql_store.transaction() as session:
            report = _add_report(session)
            for verifier in ("alice", "carol", "bob"):
                session.verifications.add(report.id, verifier)

        with sql_store.transaction() as session:
            listed = session.verifications.list_for_report(report.id)

        assert [v.verifier_id for v in listed] == ["alice", "carol", "bob"]
        assert len(inspect(DumpReportRecord).relationships) == 0
        assert len(inspect(VerificationRecord).relationships) == 0

    def test_candidates_filtered_and_ordered(self, sql_store):
        with sql_store.transaction() as session:
            a = _add_report(session, "alice", "a" * 64)
            b = _add_report(session, "bob", "b" * 64)
            _add_report(session, "carol", "c" * 64)

        from dumpwatch.core.geo_utils import bounding_box_around
        bbox = bounding_box_around(3.8480, 11.5021, 100)

        with sql_store.transaction() as session:
            found = session.reports.find_candidates(
                bbox, exclude_reporter="carol", statuses=[ReportStatus.UNVERIFIED]
            )

        assert [r.id for r in found] == [a.id, b.id]


class TestRetryableErrors:
    """Test suite for driver error classification."""

    def test_sqlite_lock_is_retryable(self):
        error = OperationalError("UPDATE", {}, Exception("database is locked"))
        assert _is_retryable(error)

    def test_postgres_serialization_failure_is_retryable(self):
        class PgError(Exception):
            pgcode = "40001"

        assert _is_retryable(OperationalError("UPDATE", {}, PgError("could not serialize")))

    def test_other_errors_are_not_retryable(self):
        assert not _is_retryable(OperationalError("SELECT", {}, Exception("syntax error")))


class TestCreateStore:
    """Test suite for store selection."""

    def test_memory_without_database_url(self):
        assert isinstance(create_store(Settings(database_url=None)), InMemoryStore)

    def test_sql_with_database_url(self, tmp_path):
        store = create_store(Settings(database_url=f"sqlite:///{tmp_path / 'factory.db'}"))
        assert isinstance(store, SqlStore)
        assert store.db.check_connection()
        store.db.close()
