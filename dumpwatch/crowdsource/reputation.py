"""
Reputation accumulator
Grants points to the verifiers of a report once it is VERIFIED
"""

import logging
from typing import Iterable, List

from dumpwatch.core.entities import ReputationAward
from dumpwatch.core.exceptions import AlreadyAwarded
from dumpwatch.database.repositories import ReputationRepository

logger = logging.getLogger(__name__)


class ReputationAccumulator:
    """
    Awards reputation keyed on the (report, verifier) pair.

    A verifier is paid once per report no matter how many submissions later
    re-evaluate that report's threshold.
    """

    def __init__(self, reputation: ReputationRepository):
        self.reputation = reputation

    def award(self, report_id: int, verifier_id: str, points: int) -> ReputationAward:
        """
        Award ``points`` to one verifier of a report.

        Raises:
            AlreadyAwarded: the pair was already rewarded
        """
        award = self.reputation.add_award(report_id, verifier_id, points)
        score = self.reputation.increment(verifier_id, points)
        logger.info(
            f"Awarded {points} reputation to {verifier_id} for report {report_id} "
            f"(score={score.score})"
        )
        return award

    def award_all(
        self,
        report_id: int,
        verifier_ids: Iterable[str],
        points: int
    ) -> List[ReputationAward]:
        """Award every verifier, skipping pairs that were already rewarded."""
        awards = []
        for verifier_id in verifier_ids:
            try:
                awards.append(self.award(report_id, verifier_id, points))
            except AlreadyAwarded:
                logger.debug(f"Skipping award for {verifier_id} on report {report_id}")
        return awards
