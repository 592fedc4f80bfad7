"""
Database module for DumpWatch
Store interfaces with in-memory and SQLAlchemy implementations
"""

from .repositories import (
    Store,
    StoreSession,
    ReportRepository,
    VerificationRepository,
    ReputationRepository,
    FingerprintRepository,
)
from .connection import DatabaseConnection
from .memory import InMemoryStore
from .sql_store import SqlStore
from .factory import create_store
from .models import (
    Base,
    DumpReportRecord,
    VerificationRecord,
    ReputationAwardRecord,
    ReputationScoreRecord,
    PhotoHashRecord,
)

__all__ = [
    "Store",
    "StoreSession",
    "ReportRepository",
    "VerificationRepository",
    "ReputationRepository",
    "FingerprintRepository",
    "DatabaseConnection",
    "InMemoryStore",
    "SqlStore",
    "create_store",
    "Base",
    "DumpReportRecord",
    "VerificationRecord",
    "ReputationAwardRecord",
    "ReputationScoreRecord",
    "PhotoHashRecord",
]
