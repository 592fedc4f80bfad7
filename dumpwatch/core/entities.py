"""
Domain records for crowd-verified dump reports
Plain dataclasses shared by the consensus engine and the stores
"""

from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple, Union
from dataclasses import dataclass, field
from enum import Enum


class DumpSize(Enum):
    """Estimated size of a waste dump."""
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"


class ReportStatus(Enum):
    """Consensus status of a dump report."""
    UNVERIFIED = "UNVERIFIED"
    VERIFIED = "VERIFIED"


# Statuses that may still gain corroborators
CLUSTERABLE_STATUSES: Tuple[ReportStatus, ...] = (
    ReportStatus.UNVERIFIED,
    ReportStatus.VERIFIED,
)


@dataclass
class DumpReport:
    """
    Dump report submitted by a citizen.

    Only the photo fingerprint is kept; the photo itself lives elsewhere.
    """
    id: int
    reporter_id: str
    latitude: float
    longitude: float
    size: DumpSize
    photo_hash: str
    description: Optional[str] = None
    status: ReportStatus = ReportStatus.UNVERIFIED

    # Optimistic concurrency counter, bumped on every status change
    version: int = 1

    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None

    @property
    def is_verified(self) -> bool:
        return self.status == ReportStatus.VERIFIED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "reporter_id": self.reporter_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "size": self.size.value,
            "photo_hash": self.photo_hash,
            "description": self.description,
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class Verification:
    """A user corroborating a report. Unique per (report, verifier)."""
    report_id: int
    verifier_id: str
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report_id": self.report_id,
            "verifier_id": self.verifier_id,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class ReputationScore:
    """Per-user reputation accumulator."""
    user_id: str
    score: int = 0
    verified_reports: int = 0
    false_reports: int = 0
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "score": self.score,
            "verified_reports": self.verified_reports,
            "false_reports": self.false_reports,
        }


@dataclass(frozen=True)
class ReputationAward:
    """Points granted to one verifier for one verified report."""
    report_id: int
    verifier_id: str
    points: int
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report_id": self.report_id,
            "verifier_id": self.verifier_id,
            "points": self.points,
        }


@dataclass(frozen=True)
class PhotoFingerprint:
    """Registry entry for an accepted photo."""
    fingerprint: str
    uploaded_by: str
    created_at: datetime = field(default_factory=datetime.utcnow)


# =============================================================================
# Cascade outcomes, one per nearby report linked during a submission
# =============================================================================

@dataclass(frozen=True)
class Skipped:
    """Submitter had already verified the nearby report."""
    report_id: int
    reverse_link_created: bool
    reason: str = "already_verified"


@dataclass(frozen=True)
class Created:
    """New verification recorded; the nearby report did not cross the threshold."""
    report_id: int
    reverse_link_created: bool


@dataclass(frozen=True)
class ThresholdCrossed:
    """New verification pushed the nearby report to VERIFIED."""
    report_id: int
    reverse_link_created: bool
    awards: Tuple[ReputationAward, ...] = ()


NeighborOutcome = Union[Skipped, Created, ThresholdCrossed]


def outcome_to_dict(outcome: NeighborOutcome) -> Dict[str, Any]:
    """Serialize a cascade outcome with its tag."""
    data: Dict[str, Any] = {
        "type": type(outcome).__name__,
        "report_id": outcome.report_id,
        "reverse_link_created": outcome.reverse_link_created,
    }
    if isinstance(outcome, ThresholdCrossed):
        data["awards"] = [a.to_dict() for a in outcome.awards]
    return data


@dataclass
class SubmissionResult:
    """Final state of a submitted report after its consensus cascade."""
    report: DumpReport
    verification_count: int
    outcomes: List[NeighborOutcome] = field(default_factory=list)
    awards: List[ReputationAward] = field(default_factory=list)
    attempts: int = 1

    @property
    def is_verified(self) -> bool:
        return self.report.is_verified

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report": self.report.to_dict(),
            "verification_count": self.verification_count,
            "is_verified": self.is_verified,
            "outcomes": [outcome_to_dict(o) for o in self.outcomes],
            "awards": [a.to_dict() for a in self.awards],
        }
