"""
Store interfaces for the consensus engine
Every repository operates inside the transaction of the StoreSession that owns it
"""

from abc import ABC, abstractmethod
from typing import ContextManager, Iterable, List, Optional

from dumpwatch.core.geo_utils import BoundingBox
from dumpwatch.core.entities import (
    DumpReport,
    DumpSize,
    PhotoFingerprint,
    ReportStatus,
    ReputationAward,
    ReputationScore,
    Verification,
)


class ReportRepository(ABC):
    """Create, read and update dump reports."""

    @abstractmethod
    def add(
        self,
        reporter_id: str,
        latitude: float,
        longitude: float,
        size: DumpSize,
        photo_hash: str,
        description: Optional[str] = None,
    ) -> DumpReport:
        """Persist a new UNVERIFIED report and return it with its id."""

    @abstractmethod
    def get(self, report_id: int) -> Optional[DumpReport]:
        """Get report by ID."""

    @abstractmethod
    def mark_verified(self, report: DumpReport) -> DumpReport:
        """
        Move a report to VERIFIED.

        Raises StoreConflict if the report changed since ``report`` was read.
        """

    @abstractmethod
    def find_candidates(
        self,
        bbox: BoundingBox,
        exclude_reporter: str,
        statuses: Iterable[ReportStatus],
    ) -> List[DumpReport]:
        """
        Reports inside ``bbox`` from anyone but ``exclude_reporter``.

        Ordered by ascending creation time, then id. The box is only a
        prefilter; callers apply the exact radius test.
        """

    @abstractmethod
    def list(
        self,
        status: Optional[ReportStatus] = None,
        reporter_id: Optional[str] = None,
    ) -> List[DumpReport]:
        """Reports matching the filters, newest first."""


class VerificationRepository(ABC):
    """Append-only verification rows, unique per (report, verifier)."""

    @abstractmethod
    def add(self, report_id: int, verifier_id: str) -> Verification:
        """Insert a verification. Raises AlreadyVerified for a duplicate pair."""

    @abstractmethod
    def exists(self, report_id: int, verifier_id: str) -> bool:
        pass

    @abstractmethod
    def count(self, report_id: int) -> int:
        pass

    @abstractmethod
    def list_for_report(self, report_id: int) -> List[Verification]:
        """Verifications of a report in creation order."""


class ReputationRepository(ABC):
    """Award rows and per-user score accumulators."""

    @abstractmethod
    def add_award(self, report_id: int, verifier_id: str, points: int) -> ReputationAward:
        """Insert an award row. Raises AlreadyAwarded for a duplicate pair."""

    @abstractmethod
    def has_award(self, report_id: int, verifier_id: str) -> bool:
        pass

    @abstractmethod
    def awards_for_report(self, report_id: int) -> List[ReputationAward]:
        pass

    @abstractmethod
    def increment(self, user_id: str, points: int) -> ReputationScore:
        """Upsert the user's score, adding ``points`` and one verified report."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[ReputationScore]:
        pass


class FingerprintRepository(ABC):
    """Append-only photo fingerprint registry."""

    @abstractmethod
    def get(self, fingerprint: str) -> Optional[PhotoFingerprint]:
        pass

    @abstractmethod
    def add(self, fingerprint: str, uploaded_by: str) -> PhotoFingerprint:
        """Register a fingerprint. Raises DuplicatePhoto if already present."""


class StoreSession:
    """The four repositories bound to one transaction."""

    def __init__(
        self,
        reports: ReportRepository,
        verifications: VerificationRepository,
        reputation: ReputationRepository,
        fingerprints: FingerprintRepository,
    ):
        self.reports = reports
        self.verifications = verifications
        self.reputation = reputation
        self.fingerprints = fingerprints


class Store(ABC):
    """Transactional store shared by all request workers."""

    backend: str = "abstract"

    @abstractmethod
    def transaction(self) -> ContextManager[StoreSession]:
        """
        Open an isolated transaction.

        Commits when the block exits normally and rolls back when it raises.
        Commit raises StoreConflict if a concurrent transaction invalidated
        what this one read or wrote.
        """
