"""
Tests for API endpoints
"""
import pytest
from fastapi.testclient import TestClient

import sys
sys.path.insert(0, '.')

from dumpwatch.api.main import app, get_engine, get_report_handler
from dumpwatch.crowdsource.consensus import ConsensusEngine
from dumpwatch.crowdsource.report_handler import ReportHandler
from dumpwatch.database.memory import InMemoryStore

from conftest import (
    BASE_LAT, BASE_LON, NEAR_LAT, NEAR_LON, FAR_LAT, FAR_LON,
    make_photo_base64,
)


def _payload(seed, lat=BASE_LAT, lon=BASE_LON, size="MEDIUM", **extra):
    payload = {
        "latitude": lat,
        "longitude": lon,
        "photoBase64": make_photo_base64(seed),
        "size": size,
    }
    payload.update(extra)
    return payload


class TestAPIEndpoints:
    """Test suite for API endpoints."""

    def setup_method(self):
        """Setup a fresh store behind the app for each test."""
        self.store = InMemoryStore()
        engine = ConsensusEngine(self.store)
        handler = ReportHandler(self.store)
        app.dependency_overrides[get_engine] = lambda: engine
        app.dependency_overrides[get_report_handler] = lambda: handler
        self.client = TestClient(app)

    def teardown_method(self):
        app.dependency_overrides.clear()

    def submit(self, user, payload):
        return self.client.post(
            "/api/v1/dumps/report",
            json=payload,
            headers={"X-User-Id": user},
        )

    def test_health_endpoint(self):
        response = self.client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "timestamp" in data

    def test_submit_lone_report(self):
        """Test a first report is created unverified with its own verification."""
        response = self.submit("alice", _payload("a", description="Behind the market"))

        assert response.status_code == 201
        data = response.json()
        assert data["message"] == "Dump report submitted successfully"
        assert data["verificationCount"] == 1
        assert data["isVerified"] is False
        report = data["report"]
        assert report["reporter_id"] == "alice"
        assert report["status"] == "UNVERIFIED"
        assert report["size"] == "MEDIUM"
        assert report["description"] == "Behind the market"
        assert len(report["photo_hash"]) == 64
        assert "photoBase64" not in report

    def test_nearby_report_verifies_both(self):
        """Test a second user's nearby report verifies both reports."""
        first = self.submit("alice", _payload("a")).json()["report"]
        response = self.submit("bob", _payload("b", NEAR_LAT, NEAR_LON, "small"))

        assert response.status_code == 201
        assert response.json()["isVerified"] is True
        assert response.json()["verificationCount"] == 2

        detail = self.client.get(
            f"/api/v1/dumps/{first['id']}", headers={"X-User-Id": "alice"}
        ).json()
        assert detail["status"] == "VERIFIED"
        assert [v["verifier_id"] for v in detail["verifications"]] == ["alice", "bob"]

    def test_far_report_stays_unverified(self):
        self.submit("alice", _payload("a"))
        response = self.submit("bob", _payload("b", FAR_LAT, FAR_LON))

        assert response.status_code == 201
        assert response.json()["isVerified"] is False

    def test_duplicate_photo_conflict(self):
        """Test a reused photo is rejected with 409 for any user."""
        self.submit("alice", _payload("a"))
        response = self.submit("bob", _payload("a", FAR_LAT, FAR_LON))

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "Photo already used"

    def test_invalid_photo_rejected(self):
        payload = _payload("a")
        payload["photoBase64"] = "not a photo"
        response = self.submit("alice", payload)

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "Invalid photo format"

    @pytest.mark.parametrize("overrides", [
        {"latitude": 91.0},
        {"longitude": -181.0},
        {"size": "HUGE"},
    ])
    def test_invalid_submission_rejected(self, overrides):
        response = self.submit("alice", _payload("a", **overrides))

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "Validation failed"
        assert len(detail["details"]) >= 1

    def test_missing_field_rejected(self):
        payload = _payload("a")
        del payload["photoBase64"]
        response = self.submit("alice", payload)

        assert response.status_code == 400

    def test_identity_required(self):
        response = self.client.post("/api/v1/dumps/report", json=_payload("a"))
        assert response.status_code == 401

    def test_list_filters(self):
        """Test list filtering by status and by the caller's own reports."""
        self.submit("alice", _payload("a"))
        self.submit("bob", _payload("b", NEAR_LAT, NEAR_LON))
        self.submit("carol", _payload("c", FAR_LAT, FAR_LON))
        headers = {"X-User-Id": "alice"}

        everything = self.client.get("/api/v1/dumps", headers=headers).json()
        assert everything["count"] == 3
        assert everything["dumps"][0]["reporter_id"] == "carol"

        verified = self.client.get(
            "/api/v1/dumps", params={"status": "VERIFIED"}, headers=headers
        ).json()
        assert {d["reporter_id"] for d in verified["dumps"]} == {"alice", "bob"}

        mine = self.client.get(
            "/api/v1/dumps", params={"myReports": "true"}, headers=headers
        ).json()
        assert mine["count"] == 1
        assert mine["dumps"][0]["reporter_id"] == "alice"

    def test_unknown_report_not_found(self):
        response = self.client.get("/api/v1/dumps/999", headers={"X-User-Id": "alice"})
        assert response.status_code == 404

    def test_reputation_without_awards(self):
        response = self.client.get(
            "/api/v1/dumps/user/reputation", headers={"X-User-Id": "alice"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["score"] == 0
        assert data["verifiedReports"] == 0
        assert data["falseReports"] == 0
        assert data["message"] == "No reputation score found"

    def test_reputation_after_verification(self):
        """Test both users earn points on both reports of a verified pair."""
        self.submit("alice", _payload("a"))
        self.submit("bob", _payload("b", NEAR_LAT, NEAR_LON))

        for user in ("alice", "bob"):
            data = self.client.get(
                "/api/v1/dumps/user/reputation", headers={"X-User-Id": user}
            ).json()
            assert data["user_id"] == user
            assert data["score"] == 20
            assert data["verifiedReports"] == 2
            assert data["message"] is None

    def test_statistics(self):
        self.submit("alice", _payload("a", size="LARGE"))
        self.submit("bob", _payload("b", NEAR_LAT, NEAR_LON, "SMALL"))

        stats = self.client.get(
            "/api/v1/dumps/stats/summary", headers={"X-User-Id": "alice"}
        ).json()
        assert stats["total_reports"] == 2
        assert stats["by_status"] == {"VERIFIED": 2}
        assert stats["by_size"] == {"LARGE": 1, "SMALL": 1}
        assert stats["total_verifications"] == 4
        assert stats["verification_rate"] == 1.0
