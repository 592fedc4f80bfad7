"""
SQLAlchemy-backed store for DumpWatch
Each transaction is one ORM session; constraint and serialization
failures are reported as StoreConflict so the engine can retry
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Generator, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from dumpwatch.core.exceptions import (
    AlreadyAwarded,
    AlreadyVerified,
    DuplicatePhoto,
    StoreConflict,
)
from dumpwatch.core.entities import (
    DumpReport,
    DumpSize,
    PhotoFingerprint,
    ReportStatus,
    ReputationAward,
    ReputationScore,
    Verification,
)
from dumpwatch.core.geo_utils import BoundingBox

from .connection import DatabaseConnection
from .models import (
    DumpReportRecord,
    PhotoHashRecord,
    ReputationAwardRecord,
    ReputationScoreRecord,
    VerificationRecord,
)
from .repositories import (
    FingerprintRepository,
    ReportRepository,
    ReputationRepository,
    Store,
    StoreSession,
    VerificationRepository,
)

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}


def _is_retryable(error: DBAPIError) -> bool:
    """Check whether a driver error is a transient concurrency failure."""
    orig = error.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code in RETRYABLE_SQLSTATES:
        return True
    # SQLite reports writer contention as a locked database
    return "database is locked" in str(orig).lower()


class SqlReportRepository(ReportRepository):

    def __init__(self, session: Session):
        self.session = session

    def add(
        self,
        reporter_id: str,
        latitude: float,
        longitude: float,
        size: DumpSize,
        photo_hash: str,
        description: Optional[str] = None,
    ) -> DumpReport:
        record = DumpReportRecord(
            reporter_id=reporter_id,
            latitude=latitude,
            longitude=longitude,
            size=size,
            photo_hash=photo_hash,
            description=description,
            status=ReportStatus.UNVERIFIED,
        )
        self.session.add(record)
        self.session.flush()
        return record.to_entity()

    def get(self, report_id: int) -> Optional[DumpReport]:
        record = self.session.get(DumpReportRecord, report_id)
        return record.to_entity() if record else None

    def mark_verified(self, report: DumpReport) -> DumpReport:
        record = self.session.get(DumpReportRecord, report.id)
        if record is None or record.version != report.version:
            raise StoreConflict(f"Report {report.id} changed during transaction")

        record.status = ReportStatus.VERIFIED
        record.updated_at = datetime.utcnow()
        self.session.flush()
        return record.to_entity()

    def find_candidates(
        self,
        bbox: BoundingBox,
        exclude_reporter: str,
        statuses: Iterable[ReportStatus],
    ) -> List[DumpReport]:
        stmt = (
            select(DumpReportRecord)
            .where(
                DumpReportRecord.reporter_id != exclude_reporter,
                DumpReportRecord.status.in_(list(statuses)),
                DumpReportRecord.latitude.between(bbox.south, bbox.north),
                DumpReportRecord.longitude.between(bbox.west, bbox.east),
            )
            .order_by(DumpReportRecord.created_at, DumpReportRecord.id)
            .with_for_update()
        )
        return [r.to_entity() for r in self.session.scalars(stmt)]

    def list(
        self,
        status: Optional[ReportStatus] = None,
        reporter_id: Optional[str] = None,
    ) -> List[DumpReport]:
        stmt = select(DumpReportRecord)
        if status is not None:
            stmt = stmt.where(DumpReportRecord.status == status)
        if reporter_id is not None:
            stmt = stmt.where(DumpReportRecord.reporter_id == reporter_id)
        stmt = stmt.order_by(DumpReportRecord.created_at.desc(), DumpReportRecord.id.desc())
        return [r.to_entity() for r in self.session.scalars(stmt)]


class SqlVerificationRepository(VerificationRepository):

    def __init__(self, session: Session):
        self.session = session

    def add(self, report_id: int, verifier_id: str) -> Verification:
        if self.exists(report_id, verifier_id):
            raise AlreadyVerified(report_id, verifier_id)
        record = VerificationRecord(dump_report_id=report_id, verifier_id=verifier_id)
        self.session.add(record)
        self.session.flush()
        return record.to_entity()

    def exists(self, report_id: int, verifier_id: str) -> bool:
        stmt = select(VerificationRecord.id).where(
            VerificationRecord.dump_report_id == report_id,
            VerificationRecord.verifier_id == verifier_id,
        )
        return self.session.scalar(stmt) is not None

    def count(self, report_id: int) -> int:
        stmt = (
            select(func.count(func.distinct(VerificationRecord.verifier_id)))
            .where(VerificationRecord.dump_report_id == report_id)
        )
        return self.session.scalar(stmt) or 0

    def list_for_report(self, report_id: int) -> List[Verification]:
        stmt = (
            select(VerificationRecord)
            .where(VerificationRecord.dump_report_id == report_id)
            .order_by(VerificationRecord.id)
        )
        return [r.to_entity() for r in self.session.scalars(stmt)]


class SqlReputationRepository(ReputationRepository):

    def __init__(self, session: Session):
        self.session = session

    def add_award(self, report_id: int, verifier_id: str, points: int) -> ReputationAward:
        if self.has_award(report_id, verifier_id):
            raise AlreadyAwarded(report_id, verifier_id)
        record = ReputationAwardRecord(
            dump_report_id=report_id,
            user_id=verifier_id,
            points=points,
        )
        self.session.add(record)
        self.session.flush()
        return record.to_entity()

    def has_award(self, report_id: int, verifier_id: str) -> bool:
        stmt = select(ReputationAwardRecord.id).where(
            ReputationAwardRecord.dump_report_id == report_id,
            ReputationAwardRecord.user_id == verifier_id,
        )
        return self.session.scalar(stmt) is not None

    def awards_for_report(self, report_id: int) -> List[ReputationAward]:
        stmt = (
            select(ReputationAwardRecord)
            .where(ReputationAwardRecord.dump_report_id == report_id)
            .order_by(ReputationAwardRecord.id)
        )
        return [r.to_entity() for r in self.session.scalars(stmt)]

    def increment(self, user_id: str, points: int) -> ReputationScore:
        record = self.session.get(ReputationScoreRecord, user_id, with_for_update=True)
        if record is None:
            record = ReputationScoreRecord(
                user_id=user_id,
                score=points,
                verified_reports=1,
                false_reports=0,
            )
            self.session.add(record)
        else:
            # Increment in SQL so concurrent awards to one user add up
            record.score = ReputationScoreRecord.score + points
            record.verified_reports = ReputationScoreRecord.verified_reports + 1
        self.session.flush()
        self.session.refresh(record)
        return record.to_entity()

    def get(self, user_id: str) -> Optional[ReputationScore]:
        record = self.session.get(ReputationScoreRecord, user_id)
        return record.to_entity() if record else None


class SqlFingerprintRepository(FingerprintRepository):

    def __init__(self, session: Session):
        self.session = session

    def get(self, fingerprint: str) -> Optional[PhotoFingerprint]:
        record = self.session.get(PhotoHashRecord, fingerprint)
        return record.to_entity() if record else None

    def add(self, fingerprint: str, uploaded_by: str) -> PhotoFingerprint:
        if self.get(fingerprint) is not None:
            raise DuplicatePhoto(fingerprint)
        record = PhotoHashRecord(hash=fingerprint, uploaded_by=uploaded_by)
        self.session.add(record)
        self.session.flush()
        return record.to_entity()


class SqlStore(Store):
    """
    Store backed by a relational database.

    Unique constraints reject racing inserts, the version column rejects
    racing status updates, and candidate rows are locked FOR UPDATE. Any of
    these surfaces as StoreConflict after the session is rolled back.
    """

    backend = "sql"

    def __init__(self, db: DatabaseConnection):
        self.db = db

    @contextmanager
    def transaction(self) -> Generator[StoreSession, None, None]:
        session = self.db.SessionLocal()
        try:
            yield StoreSession(
                reports=SqlReportRepository(session),
                verifications=SqlVerificationRepository(session),
                reputation=SqlReputationRepository(session),
                fingerprints=SqlFingerprintRepository(session),
            )
            session.commit()
        except (IntegrityError, StaleDataError) as e:
            session.rollback()
            logger.warning(f"Write conflict, rolled back: {e}")
            raise StoreConflict(str(e)) from e
        except DBAPIError as e:
            session.rollback()
            if _is_retryable(e):
                logger.warning(f"Serialization failure, rolled back: {e.orig}")
                raise StoreConflict(str(e.orig)) from e
            logger.error(f"Database error: {e}")
            raise
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()
