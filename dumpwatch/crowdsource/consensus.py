"""
Consensus engine for crowd-verified dump reports

A report becomes VERIFIED once two distinct citizens corroborate it. A new
submission corroborates every report of another user within the cluster
radius, and each of those reporters corroborates the new report in turn.
The whole cascade for one submission runs in a single store transaction and
is re-run from scratch when the store reports a concurrent conflict.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from dumpwatch.core.config import Settings
from dumpwatch.core.constants import (
    CONSENSUS_THRESHOLD,
    DEFAULT_CLUSTER_RADIUS_M,
    DEFAULT_REPUTATION_POINTS,
)
from dumpwatch.core.entities import (
    CLUSTERABLE_STATUSES,
    Created,
    DumpReport,
    DumpSize,
    NeighborOutcome,
    ReportStatus,
    ReputationAward,
    Skipped,
    SubmissionResult,
    ThresholdCrossed,
)
from dumpwatch.core.exceptions import StoreConflict
from dumpwatch.core.geo_utils import bounding_box_around, haversine_distance
from dumpwatch.database.repositories import Store, StoreSession

from .ledger import VerificationLedger
from .photo_guard import PhotoFraudGuard
from .reputation import ReputationAccumulator
from .validation import ReportSubmission, validate_submission

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsensusSettings:
    """Tunable parameters of the consensus engine."""
    cluster_radius_m: float = DEFAULT_CLUSTER_RADIUS_M
    points_per_verified: int = DEFAULT_REPUTATION_POINTS
    max_attempts: int = 3

    def __post_init__(self):
        if self.cluster_radius_m <= 0:
            raise ValueError("cluster_radius_m must be positive")
        if self.points_per_verified < 0:
            raise ValueError("points_per_verified must not be negative")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConsensusSettings":
        return cls(
            cluster_radius_m=settings.geo_cluster_radius_m,
            points_per_verified=settings.reputation_per_verified_dump,
            max_attempts=settings.max_submit_attempts,
        )


class _Cascade:
    """Collaborators bound to the transaction of one attempt."""

    def __init__(self, session: StoreSession):
        self.session = session
        self.ledger = VerificationLedger(session.verifications)
        self.accumulator = ReputationAccumulator(session.reputation)


class ConsensusEngine:
    """
    Decides which reports a submission corroborates and who earns reputation.

    Safe to share between request workers; all state lives in the store.
    """

    def __init__(
        self,
        store: Store,
        config: Optional[ConsensusSettings] = None,
        photo_guard: Optional[PhotoFraudGuard] = None
    ):
        """
        Initialize the engine.

        Args:
            store: Transactional store for reports, verifications and reputation
            config: Cluster radius, award points and retry budget
            photo_guard: Photo decoder and fingerprint registry
        """
        self.store = store
        self.config = config or ConsensusSettings()
        self.photo_guard = photo_guard or PhotoFraudGuard()

        logger.info(
            f"ConsensusEngine initialized (radius={self.config.cluster_radius_m}m, "
            f"points={self.config.points_per_verified}, store={store.backend})"
        )

    def submit_report(
        self,
        reporter_id: str,
        latitude: float,
        longitude: float,
        photo: Union[str, bytes],
        size: Union[DumpSize, str],
        description: Optional[str] = None
    ) -> SubmissionResult:
        """
        Submit a dump report and run its consensus cascade.

        Args:
            reporter_id: Submitting user
            latitude: Report latitude
            longitude: Report longitude
            photo: Base64 photo (optionally a data URL) or raw bytes
            size: SMALL, MEDIUM or LARGE
            description: Optional free text

        Returns:
            SubmissionResult with the report's final status and verifier count

        Raises:
            ValidationError: invalid coordinates, size or description
            InvalidPhoto: photo cannot be decoded or is too small
            DuplicatePhoto: photo was used by an earlier report
            StoreConflict: conflicts persisted after every retry
        """
        submission = validate_submission(
            reporter_id, latitude, longitude, photo, size, description
        )
        photo_bytes = self.photo_guard.decode(submission.photo)
        fingerprint = self.photo_guard.fingerprint(photo_bytes)

        attempt = 1
        while True:
            try:
                result = self._run_cascade(submission, fingerprint)
            except StoreConflict as e:
                if attempt >= self.config.max_attempts:
                    logger.error(
                        f"Submission from {reporter_id} failed after {attempt} attempts: {e}"
                    )
                    raise
                logger.warning(
                    f"Conflict on attempt {attempt} for submission from {reporter_id}, "
                    f"retrying: {e}"
                )
                attempt += 1
                continue

            result.attempts = attempt
            logger.info(
                f"Report {result.report.id} submitted by {reporter_id}: "
                f"{result.report.status.value} with {result.verification_count} verifier(s), "
                f"{len(result.outcomes)} nearby, {len(result.awards)} award(s)"
            )
            return result

    def _run_cascade(self, submission: ReportSubmission, fingerprint: str) -> SubmissionResult:
        with self.store.transaction() as session:
            cascade = _Cascade(session)
            reporter_id = submission.reporter_id

            self.photo_guard.check_and_register(session.fingerprints, fingerprint, reporter_id)

            report = session.reports.add(
                reporter_id=reporter_id,
                latitude=submission.latitude,
                longitude=submission.longitude,
                size=submission.size,
                photo_hash=fingerprint,
                description=submission.description,
            )
            # Self-verification counts toward the threshold
            cascade.ledger.record(report.id, reporter_id)

            outcomes: List[NeighborOutcome] = []
            for neighbor in self.find_nearby(session, report):
                outcomes.append(self._link_neighbor(cascade, report, neighbor))

            report, own_awards = self._evaluate_threshold(cascade, report)
            verification_count = cascade.ledger.count(report.id)

        awards: List[ReputationAward] = []
        for outcome in outcomes:
            if isinstance(outcome, ThresholdCrossed):
                awards.extend(outcome.awards)
        awards.extend(own_awards)

        return SubmissionResult(
            report=report,
            verification_count=verification_count,
            outcomes=outcomes,
            awards=awards,
        )

    def find_nearby(self, session: StoreSession, report: DumpReport) -> List[DumpReport]:
        """Reports of other users within the cluster radius, oldest first."""
        radius = self.config.cluster_radius_m
        bbox = bounding_box_around(report.latitude, report.longitude, radius)
        candidates = session.reports.find_candidates(
            bbox,
            exclude_reporter=report.reporter_id,
            statuses=CLUSTERABLE_STATUSES,
        )
        return [
            c for c in candidates
            if c.id != report.id
            and haversine_distance(report.latitude, report.longitude, c.latitude, c.longitude) <= radius
        ]

    def _link_neighbor(
        self,
        cascade: _Cascade,
        report: DumpReport,
        neighbor: DumpReport
    ) -> NeighborOutcome:
        """Cross-verify a new report with one nearby report."""
        created = cascade.ledger.record(neighbor.id, report.reporter_id)

        crossed = False
        awards: List[ReputationAward] = []
        if created:
            was_unverified = neighbor.status == ReportStatus.UNVERIFIED
            neighbor, awards = self._evaluate_threshold(cascade, neighbor)
            crossed = was_unverified and neighbor.is_verified

        # The nearby reporter corroborates the new report as well
        reverse_created = cascade.ledger.record(report.id, neighbor.reporter_id)

        if not created:
            return Skipped(report_id=neighbor.id, reverse_link_created=reverse_created)
        if crossed:
            return ThresholdCrossed(
                report_id=neighbor.id,
                reverse_link_created=reverse_created,
                awards=tuple(awards),
            )
        return Created(report_id=neighbor.id, reverse_link_created=reverse_created)

    def _evaluate_threshold(
        self,
        cascade: _Cascade,
        report: DumpReport
    ) -> Tuple[DumpReport, List[ReputationAward]]:
        """
        Promote a report to VERIFIED when it reaches the consensus threshold.

        Returns:
            The report as it now stands and the awards granted, empty unless
            this call performed the transition
        """
        if report.status != ReportStatus.UNVERIFIED:
            return report, []
        if cascade.ledger.count(report.id) < CONSENSUS_THRESHOLD:
            return report, []

        verified = cascade.session.reports.mark_verified(report)
        verifiers = cascade.ledger.verifiers(report.id)
        logger.info(f"Report {report.id} VERIFIED by {len(verifiers)} verifiers")

        awards = cascade.accumulator.award_all(
            report.id, verifiers, self.config.points_per_verified
        )
        return verified, awards
