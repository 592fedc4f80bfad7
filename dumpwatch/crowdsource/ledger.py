"""
Verification ledger
Records who corroborated which report, at most once per pair
"""

import logging
from typing import List

from dumpwatch.core.exceptions import AlreadyVerified
from dumpwatch.database.repositories import VerificationRepository

logger = logging.getLogger(__name__)


class VerificationLedger:
    """Idempotent view over the verification repository of one transaction."""

    def __init__(self, verifications: VerificationRepository):
        self.verifications = verifications

    def record(self, report_id: int, verifier_id: str) -> bool:
        """
        Record that ``verifier_id`` corroborates ``report_id``.

        Returns:
            True if a verification was created, False if the pair existed
        """
        try:
            self.verifications.add(report_id, verifier_id)
        except AlreadyVerified:
            logger.debug(f"Report {report_id} already verified by {verifier_id}")
            return False
        return True

    def count(self, report_id: int) -> int:
        """Number of distinct verifiers of a report."""
        return self.verifications.count(report_id)

    def verifiers(self, report_id: int) -> List[str]:
        """Distinct verifier ids of a report in the order they verified."""
        seen = []
        for verification in self.verifications.list_for_report(report_id):
            if verification.verifier_id not in seen:
                seen.append(verification.verifier_id)
        return seen
