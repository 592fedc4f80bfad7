"""
DumpWatch - Crowdsource Module
Crowd verification of citizen dump reports.
"""

from dumpwatch.crowdsource.consensus import (
    ConsensusEngine,
    ConsensusSettings,
)
from dumpwatch.crowdsource.ledger import VerificationLedger
from dumpwatch.crowdsource.photo_guard import PhotoFraudGuard
from dumpwatch.crowdsource.reputation import ReputationAccumulator
from dumpwatch.crowdsource.report_handler import (
    ReportHandler,
    ReportSummary,
    ReportDetails,
)
from dumpwatch.crowdsource.validation import (
    ReportSubmission,
    validate_submission,
)

__all__ = [
    # Consensus
    "ConsensusEngine",
    "ConsensusSettings",
    "VerificationLedger",
    "PhotoFraudGuard",
    "ReputationAccumulator",
    # Queries
    "ReportHandler",
    "ReportSummary",
    "ReportDetails",
    # Validation
    "ReportSubmission",
    "validate_submission",
]
