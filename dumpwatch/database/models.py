"""
SQLAlchemy models for DumpWatch
Unique constraints carry the exactly-once guarantees of the consensus engine
"""

from datetime import datetime

from sqlalchemy import (
    Column, Integer, Float, String, Text,
    DateTime, ForeignKey, Index, UniqueConstraint, Enum as SQLEnum
)
from sqlalchemy.orm import declarative_base

from dumpwatch.core.entities import (
    DumpReport,
    DumpSize,
    PhotoFingerprint,
    ReportStatus,
    ReputationAward,
    ReputationScore,
    Verification,
)

Base = declarative_base()


class DumpReportRecord(Base):
    """
    Dump report submitted by a citizen.

    ``version`` is SQLAlchemy's optimistic lock: an UPDATE that finds a
    different version raises StaleDataError.
    """
    __tablename__ = "dump_reports"

    id = Column(Integer, primary_key=True, index=True)
    reporter_id = Column(String(64), nullable=False, index=True)

    # Location
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    # Report details
    size = Column(SQLEnum(DumpSize), nullable=False)
    photo_hash = Column(String(64), ForeignKey("photo_hashes.hash"), nullable=False, unique=True)
    description = Column(Text)

    # Consensus
    status = Column(SQLEnum(ReportStatus), nullable=False, default=ReportStatus.UNVERIFIED)
    version = Column(Integer, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_dump_report_location", latitude, longitude),
        Index("idx_dump_report_status", status),
        Index("idx_dump_report_created_at", created_at),
    )

    def __repr__(self):
        return f"<DumpReportRecord({self.id}, status={self.status.value}, lat={self.latitude})>"

    def to_entity(self) -> DumpReport:
        return DumpReport(
            id=self.id,
            reporter_id=self.reporter_id,
            latitude=self.latitude,
            longitude=self.longitude,
            size=self.size,
            photo_hash=self.photo_hash,
            description=self.description,
            status=self.status,
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class VerificationRecord(Base):
    """A user corroborating a dump report."""
    __tablename__ = "dump_verifications"

    id = Column(Integer, primary_key=True)
    dump_report_id = Column(Integer, ForeignKey("dump_reports.id"), nullable=False)
    verifier_id = Column(String(64), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("dump_report_id", "verifier_id", name="uq_verification_report_verifier"),
    )

    def to_entity(self) -> Verification:
        return Verification(
            report_id=self.dump_report_id,
            verifier_id=self.verifier_id,
            created_at=self.created_at,
        )


class ReputationAwardRecord(Base):
    """Points granted to one verifier for one verified report."""
    __tablename__ = "reputation_awards"

    id = Column(Integer, primary_key=True)
    dump_report_id = Column(Integer, ForeignKey("dump_reports.id"), nullable=False)
    user_id = Column(String(64), nullable=False, index=True)
    points = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("dump_report_id", "user_id", name="uq_award_report_user"),
    )

    def to_entity(self) -> ReputationAward:
        return ReputationAward(
            report_id=self.dump_report_id,
            verifier_id=self.user_id,
            points=self.points,
            created_at=self.created_at,
        )


class ReputationScoreRecord(Base):
    """Per-user reputation accumulator."""
    __tablename__ = "reputation_scores"

    user_id = Column(String(64), primary_key=True)
    score = Column(Integer, nullable=False, default=0)
    verified_reports = Column(Integer, nullable=False, default=0)
    false_reports = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<ReputationScoreRecord({self.user_id}, score={self.score})>"

    def to_entity(self) -> ReputationScore:
        return ReputationScore(
            user_id=self.user_id,
            score=self.score,
            verified_reports=self.verified_reports,
            false_reports=self.false_reports,
            updated_at=self.updated_at,
        )


class PhotoHashRecord(Base):
    """Fingerprint of an accepted photo. Append-only."""
    __tablename__ = "photo_hashes"

    hash = Column(String(64), primary_key=True)
    uploaded_by = Column(String(64), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_entity(self) -> PhotoFingerprint:
        return PhotoFingerprint(
            fingerprint=self.hash,
            uploaded_by=self.uploaded_by,
            created_at=self.created_at,
        )
