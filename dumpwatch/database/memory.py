"""
In-memory store for DumpWatch
Snapshot isolation with optimistic validation at commit time
"""

import itertools
import logging
import threading
from collections import Counter
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Dict, Generator, Iterable, List, Optional, Set, Tuple, TypeVar

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

from .repositories import (
    FingerprintRepository,
    ReportRepository,
    ReputationRepository,
    Store,
    StoreSession,
    VerificationRepository,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Committed rows are stamped with the sequence number of the commit that wrote them
Stamped = Tuple[int, T]


def _as_of(history: Optional[List[Stamped]], seq: int):
    """Latest value in a version history committed at or before ``seq``."""
    if not history:
        return None
    for stamp, value in reversed(history):
        if stamp <= seq:
            return value
    return None


class _MemoryTransaction:
    """
    Staged writes of one transaction, layered over the committed state.

    Committed rows are read through the store as of ``start_seq``; nothing
    is copied up front.
    """

    def __init__(self, store: "InMemoryStore"):
        self.store = store
        self.start_seq = store._commit_seq

        # Staged writes
        self.reports: Dict[int, DumpReport] = {}
        self.new_reports: Set[int] = set()
        self.updated_reports: Dict[int, int] = {}  # id -> version read
        self.verifications: Dict[int, List[Verification]] = {}
        self.awards: Dict[int, List[ReputationAward]] = {}
        self.score_deltas: Dict[str, Tuple[int, int]] = {}
        self.fingerprints: Dict[str, PhotoFingerprint] = {}

        # Regions scanned for candidates, checked for phantom inserts
        self.scanned: List[BoundingBox] = []

    def session(self) -> StoreSession:
        return StoreSession(
            reports=_MemoryReportRepository(self),
            verifications=_MemoryVerificationRepository(self),
            reputation=_MemoryReputationRepository(self),
            fingerprints=_MemoryFingerprintRepository(self),
        )

    # Reads through the overlay

    def report(self, report_id: int) -> Optional[DumpReport]:
        if report_id in self.reports:
            return self.reports[report_id]
        with self.store._lock:
            return _as_of(self.store._reports.get(report_id), self.start_seq)

    def all_reports(self) -> List[DumpReport]:
        with self.store._lock:
            committed = {
                report_id: report
                for report_id, report in (
                    (rid, _as_of(history, self.start_seq))
                    for rid, history in self.store._reports.items()
                )
                if report is not None
            }
        committed.update(self.reports)
        return list(committed.values())

    def verifications_for(self, report_id: int) -> List[Verification]:
        with self.store._lock:
            committed = [
                v for stamp, v in self.store._verifications.get(report_id, [])
                if stamp <= self.start_seq
            ]
        return committed + self.verifications.get(report_id, [])

    def awards_for(self, report_id: int) -> List[ReputationAward]:
        with self.store._lock:
            committed = [
                a for stamp, a in self.store._awards.get(report_id, [])
                if stamp <= self.start_seq
            ]
        return committed + self.awards.get(report_id, [])

    def score(self, user_id: str) -> Optional[ReputationScore]:
        with self.store._lock:
            return _as_of(self.store._scores.get(user_id), self.start_seq)

    def fingerprint(self, fingerprint: str) -> Optional[PhotoFingerprint]:
        if fingerprint in self.fingerprints:
            return self.fingerprints[fingerprint]
        with self.store._lock:
            committed = self.store._fingerprints.get(fingerprint)
        if committed is None or committed[0] > self.start_seq:
            return None
        return committed[1]


class _MemoryReportRepository(ReportRepository):

    def __init__(self, tx: _MemoryTransaction):
        self.tx = tx

    def add(
        self,
        reporter_id: str,
        latitude: float,
        longitude: float,
        size: DumpSize,
        photo_hash: str,
        description: Optional[str] = None,
    ) -> DumpReport:
        report = DumpReport(
            id=self.tx.store._allocate_id(),
            reporter_id=reporter_id,
            latitude=latitude,
            longitude=longitude,
            size=size,
            photo_hash=photo_hash,
            description=description,
        )
        self.tx.reports[report.id] = report
        self.tx.new_reports.add(report.id)
        return replace(report)

    def get(self, report_id: int) -> Optional[DumpReport]:
        report = self.tx.report(report_id)
        return replace(report) if report else None

    def mark_verified(self, report: DumpReport) -> DumpReport:
        current = self.tx.report(report.id)
        if current is None or current.version != report.version:
            raise StoreConflict(f"Report {report.id} changed during transaction")

        updated = replace(
            current,
            status=ReportStatus.VERIFIED,
            version=current.version + 1,
            updated_at=datetime.utcnow(),
        )
        self.tx.reports[report.id] = updated
        if report.id not in self.tx.new_reports:
            self.tx.updated_reports.setdefault(report.id, current.version)
        return replace(updated)

    def find_candidates(
        self,
        bbox: BoundingBox,
        exclude_reporter: str,
        statuses: Iterable[ReportStatus],
    ) -> List[DumpReport]:
        wanted = set(statuses)
        self.tx.scanned.append(bbox)
        found = [
            replace(r) for r in self.tx.all_reports()
            if r.reporter_id != exclude_reporter
            and r.status in wanted
            and bbox.contains(r.latitude, r.longitude)
        ]
        return sorted(found, key=lambda r: (r.created_at, r.id))

    def list(
        self,
        status: Optional[ReportStatus] = None,
        reporter_id: Optional[str] = None,
    ) -> List[DumpReport]:
        found = [
            replace(r) for r in self.tx.all_reports()
            if (status is None or r.status == status)
            and (reporter_id is None or r.reporter_id == reporter_id)
        ]
        return sorted(found, key=lambda r: (r.created_at, r.id), reverse=True)


class _MemoryVerificationRepository(VerificationRepository):

    def __init__(self, tx: _MemoryTransaction):
        self.tx = tx

    def add(self, report_id: int, verifier_id: str) -> Verification:
        if self.exists(report_id, verifier_id):
            raise AlreadyVerified(report_id, verifier_id)
        verification = Verification(report_id=report_id, verifier_id=verifier_id)
        self.tx.verifications.setdefault(report_id, []).append(verification)
        return verification

    def exists(self, report_id: int, verifier_id: str) -> bool:
        return any(
            v.verifier_id == verifier_id
            for v in self.tx.verifications_for(report_id)
        )

    def count(self, report_id: int) -> int:
        return len(self.tx.verifications_for(report_id))

    def list_for_report(self, report_id: int) -> List[Verification]:
        return self.tx.verifications_for(report_id)


class _MemoryReputationRepository(ReputationRepository):

    def __init__(self, tx: _MemoryTransaction):
        self.tx = tx

    def add_award(self, report_id: int, verifier_id: str, points: int) -> ReputationAward:
        if self.has_award(report_id, verifier_id):
            raise AlreadyAwarded(report_id, verifier_id)
        award = ReputationAward(report_id=report_id, verifier_id=verifier_id, points=points)
        self.tx.awards.setdefault(report_id, []).append(award)
        return award

    def has_award(self, report_id: int, verifier_id: str) -> bool:
        return any(a.verifier_id == verifier_id for a in self.tx.awards_for(report_id))

    def awards_for_report(self, report_id: int) -> List[ReputationAward]:
        return self.tx.awards_for(report_id)

    def increment(self, user_id: str, points: int) -> ReputationScore:
        delta_points, delta_count = self.tx.score_deltas.get(user_id, (0, 0))
        self.tx.score_deltas[user_id] = (delta_points + points, delta_count + 1)
        return self.get(user_id)

    def get(self, user_id: str) -> Optional[ReputationScore]:
        base = self.tx.score(user_id)
        delta = self.tx.score_deltas.get(user_id)
        if delta is None:
            return replace(base) if base else None
        if base is None:
            base = ReputationScore(user_id=user_id)
        return replace(
            base,
            score=base.score + delta[0],
            verified_reports=base.verified_reports + delta[1],
        )


class _MemoryFingerprintRepository(FingerprintRepository):

    def __init__(self, tx: _MemoryTransaction):
        self.tx = tx

    def get(self, fingerprint: str) -> Optional[PhotoFingerprint]:
        return self.tx.fingerprint(fingerprint)

    def add(self, fingerprint: str, uploaded_by: str) -> PhotoFingerprint:
        if self.get(fingerprint) is not None:
            raise DuplicatePhoto(fingerprint)
        entry = PhotoFingerprint(fingerprint=fingerprint, uploaded_by=uploaded_by)
        self.tx.fingerprints[fingerprint] = entry
        return entry


class InMemoryStore(Store):
    """
    Thread-safe in-memory store.

    Every committed row carries the sequence number of its commit, and a
    transaction only sees rows committed before it started. At commit the
    staged writes are validated against everything committed since: a report
    updated concurrently, a report inserted concurrently inside a scanned
    cluster, or a unique key taken concurrently raises StoreConflict and
    nothing is applied. Unrelated clusters never conflict.
    """

    backend = "memory"

    def __init__(self):
        self._lock = threading.RLock()
        self._ids = itertools.count(1)

        # Reports and scores change after insert, so they keep a short history
        self._reports: Dict[int, List[Stamped[DumpReport]]] = {}
        self._scores: Dict[str, List[Stamped[ReputationScore]]] = {}
        # Append-only rows
        self._verifications: Dict[int, List[Stamped[Verification]]] = {}
        self._awards: Dict[int, List[Stamped[ReputationAward]]] = {}
        self._fingerprints: Dict[str, Stamped[PhotoFingerprint]] = {}

        self._commit_seq = 0
        # (commit seq, latitude, longitude) of reports inserted by recent commits
        self._recent_inserts: List[Tuple[int, float, float]] = []
        self._active: Counter = Counter()

        logger.info("InMemoryStore initialized")

    def _allocate_id(self) -> int:
        with self._lock:
            return next(self._ids)

    @contextmanager
    def transaction(self) -> Generator[StoreSession, None, None]:
        with self._lock:
            tx = _MemoryTransaction(self)
            self._active[tx.start_seq] += 1

        try:
            yield tx.session()
            self._commit(tx)
        finally:
            with self._lock:
                self._active[tx.start_seq] -= 1
                if self._active[tx.start_seq] <= 0:
                    del self._active[tx.start_seq]
                self._prune_inserts()

    def _commit(self, tx: _MemoryTransaction) -> None:
        with self._lock:
            self._validate(tx)

            self._commit_seq += 1
            seq = self._commit_seq
            oldest = self._oldest_visible_seq(committing=tx)

            for report_id in tx.new_reports:
                report = tx.reports[report_id]
                self._reports[report_id] = [(seq, report)]
                self._recent_inserts.append((seq, report.latitude, report.longitude))
            for report_id in tx.updated_reports:
                self._append_version(self._reports[report_id], seq, tx.reports[report_id], oldest)

            for report_id, rows in tx.verifications.items():
                self._verifications.setdefault(report_id, []).extend((seq, v) for v in rows)
            for report_id, rows in tx.awards.items():
                self._awards.setdefault(report_id, []).extend((seq, a) for a in rows)
            for fingerprint, entry in tx.fingerprints.items():
                self._fingerprints[fingerprint] = (seq, entry)

            now = datetime.utcnow()
            for user_id, (points, count) in tx.score_deltas.items():
                history = self._scores.setdefault(user_id, [])
                score = history[-1][1] if history else ReputationScore(user_id=user_id)
                self._append_version(history, seq, replace(
                    score,
                    score=score.score + points,
                    verified_reports=score.verified_reports + count,
                    updated_at=now,
                ), oldest)

    def _validate(self, tx: _MemoryTransaction) -> None:
        for report_id, version in tx.updated_reports.items():
            history = self._reports.get(report_id)
            if not history or history[-1][1].version != version:
                raise StoreConflict(f"Report {report_id} was modified concurrently")

        if tx.scanned:
            for seq, lat, lon in self._recent_inserts:
                if seq <= tx.start_seq:
                    continue
                if any(box.contains(lat, lon) for box in tx.scanned):
                    raise StoreConflict(
                        f"Report inserted concurrently near ({lat:.5f}, {lon:.5f})"
                    )

        for fingerprint in tx.fingerprints:
            if fingerprint in self._fingerprints:
                raise StoreConflict("Photo fingerprint registered concurrently")

        for report_id, rows in tx.verifications.items():
            committed = {v.verifier_id for _, v in self._verifications.get(report_id, [])}
            for verification in rows:
                if verification.verifier_id in committed:
                    raise StoreConflict(
                        f"Verification ({report_id}, {verification.verifier_id}) "
                        "recorded concurrently"
                    )

        for report_id, rows in tx.awards.items():
            committed = {a.verifier_id for _, a in self._awards.get(report_id, [])}
            for award in rows:
                if award.verifier_id in committed:
                    raise StoreConflict(
                        f"Award ({report_id}, {award.verifier_id}) granted concurrently"
                    )

    def _oldest_visible_seq(self, committing: Optional[_MemoryTransaction] = None) -> int:
        active = +self._active
        if committing is not None:
            active[committing.start_seq] -= 1
            active = +active
        return min(active) if active else self._commit_seq

    def _append_version(self, history: List[Stamped], seq: int, value, oldest: int) -> None:
        history.append((seq, value))
        # Keep only the newest version the oldest open transaction can see
        while len(history) > 1 and history[1][0] <= oldest:
            history.pop(0)

    def _prune_inserts(self) -> None:
        oldest = self._oldest_visible_seq()
        self._recent_inserts = [e for e in self._recent_inserts if e[0] > oldest]
