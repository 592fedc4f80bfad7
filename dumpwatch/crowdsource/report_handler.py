"""
Dump report queries
Read-side access to reports, their verifiers and user reputation
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dumpwatch.core.entities import (
    DumpReport,
    ReportStatus,
    ReputationAward,
    ReputationScore,
    Verification,
)
from dumpwatch.core.exceptions import ReportNotFound
from dumpwatch.database.repositories import Store

logger = logging.getLogger(__name__)


@dataclass
class ReportSummary:
    """Report with its verifier count, for list views."""
    report: DumpReport
    verification_count: int

    def to_dict(self) -> Dict[str, Any]:
        data = self.report.to_dict()
        data["verification_count"] = self.verification_count
        return data


@dataclass
class ReportDetails:
    """Report with its verifications and the awards it produced."""
    report: DumpReport
    verifications: List[Verification] = field(default_factory=list)
    awards: List[ReputationAward] = field(default_factory=list)

    @property
    def verification_count(self) -> int:
        return len(self.verifications)

    def to_dict(self) -> Dict[str, Any]:
        data = self.report.to_dict()
        data["verification_count"] = self.verification_count
        data["verifications"] = [v.to_dict() for v in self.verifications]
        data["awards"] = [a.to_dict() for a in self.awards]
        return data


class ReportHandler:
    """
    Handles read queries over dump reports.

    Every call reads from one consistent store snapshot.
    """

    def __init__(self, store: Store):
        self.store = store

    def list_reports(
        self,
        status: Optional[ReportStatus] = None,
        reporter_id: Optional[str] = None
    ) -> List[ReportSummary]:
        """
        List reports, newest first.

        Args:
            status: Only reports with this status
            reporter_id: Only reports submitted by this user

        Returns:
            List of ReportSummary
        """
        with self.store.transaction() as session:
            reports = session.reports.list(status=status, reporter_id=reporter_id)
            return [
                ReportSummary(report=r, verification_count=session.verifications.count(r.id))
                for r in reports
            ]

    def get_report(self, report_id: int) -> ReportDetails:
        """
        Get a report with its verifications.

        Raises:
            ReportNotFound: no report with that id
        """
        with self.store.transaction() as session:
            report = session.reports.get(report_id)
            if report is None:
                raise ReportNotFound(report_id)
            return ReportDetails(
                report=report,
                verifications=session.verifications.list_for_report(report_id),
                awards=session.reputation.awards_for_report(report_id),
            )

    def get_reputation(self, user_id: str) -> Optional[ReputationScore]:
        """Get a user's reputation, or None if they were never awarded."""
        with self.store.transaction() as session:
            return session.reputation.get(user_id)

    def get_statistics(self) -> Dict[str, Any]:
        """Get report statistics."""
        summaries = self.list_reports()
        total = len(summaries)

        by_status: Dict[str, int] = {}
        by_size: Dict[str, int] = {}
        verifications = 0

        for summary in summaries:
            status = summary.report.status.value
            by_status[status] = by_status.get(status, 0) + 1

            size = summary.report.size.value
            by_size[size] = by_size.get(size, 0) + 1

            verifications += summary.verification_count

        verified = by_status.get(ReportStatus.VERIFIED.value, 0)
        return {
            "total_reports": total,
            "by_status": by_status,
            "by_size": by_size,
            "total_verifications": verifications,
            "verification_rate": verified / total if total > 0 else 0
        }
