"""
DumpWatch - Error taxonomy
Exceptions raised by the consensus engine and the report stores.
"""

from typing import Any, Dict, List, Optional


class DumpWatchError(Exception):
    """Base class for all DumpWatch errors."""


class ValidationError(DumpWatchError):
    """Submission payload failed validation (coordinates, size, description)."""

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.details = details or []


class InvalidPhoto(DumpWatchError):
    """Photo payload could not be decoded or is too small."""


class DuplicatePhoto(DumpWatchError):
    """Photo fingerprint is already registered by an earlier submission."""

    def __init__(self, fingerprint: str):
        super().__init__(f"Photo already used: {fingerprint[:12]}")
        self.fingerprint = fingerprint


class AlreadyVerified(DumpWatchError):
    """The (report, verifier) pair already has a verification."""

    def __init__(self, report_id: int, verifier_id: str):
        super().__init__(f"Report {report_id} already verified by {verifier_id}")
        self.report_id = report_id
        self.verifier_id = verifier_id


class AlreadyAwarded(DumpWatchError):
    """The (report, verifier) pair already received its reputation award."""

    def __init__(self, report_id: int, verifier_id: str):
        super().__init__(f"Reputation for report {report_id} already awarded to {verifier_id}")
        self.report_id = report_id
        self.verifier_id = verifier_id


class StoreConflict(DumpWatchError):
    """A concurrent transaction wrote data this transaction depends on."""


class ReportNotFound(DumpWatchError):
    """No report exists with the requested id."""

    def __init__(self, report_id: int):
        super().__init__(f"Dump report {report_id} not found")
        self.report_id = report_id
