"""
Pytest configuration and fixtures
"""
import base64
import os
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Keep tests on the in-memory store regardless of the developer's .env
os.environ["DATABASE_URL"] = ""

from dumpwatch.database.connection import DatabaseConnection
from dumpwatch.database.memory import InMemoryStore
from dumpwatch.database.sql_store import SqlStore


# Yaounde, the cluster used by most scenarios
BASE_LAT = 3.8480
BASE_LON = 11.5021
# ~15 m from the base point
NEAR_LAT = 3.8481
NEAR_LON = 11.5022
# ~500 m north of the base point
FAR_LAT = 3.8525
FAR_LON = 11.5021


def make_photo(seed: str, length: int = 256) -> bytes:
    """Deterministic fake photo bytes, distinct per seed."""
    pattern = f"jpeg-{seed}-".encode()
    return (pattern * (length // len(pattern) + 1))[:length]


def make_photo_base64(seed: str, data_url: bool = False) -> str:
    encoded = base64.b64encode(make_photo(seed)).decode()
    if data_url:
        return f"data:image/jpeg;base64,{encoded}"
    return encoded


@pytest.fixture
def photo():
    """Factory for unique base64 photos."""
    return make_photo_base64


@pytest.fixture
def memory_store():
    """Fresh in-memory store."""
    return InMemoryStore()


@pytest.fixture
def sql_store(tmp_path):
    """SQLite-backed store in a temporary file."""
    db = DatabaseConnection(database_url=f"sqlite:///{tmp_path / 'dumpwatch.db'}")
    db.create_tables()
    yield SqlStore(db)
    db.close()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Every store implementation."""
    return request.getfixturevalue(f"{request.param}_store")


def store_state(store):
    """Everything the store holds, for invariant checks."""
    with store.transaction() as session:
        reports = session.reports.list()
        return {
            "reports": {r.id: r for r in reports},
            "verifications": {
                r.id: session.verifications.list_for_report(r.id) for r in reports
            },
            "awards": {
                r.id: session.reputation.awards_for_report(r.id) for r in reports
            },
        }


def reputation_of(store, user_id):
    with store.transaction() as session:
        return session.reputation.get(user_id)
