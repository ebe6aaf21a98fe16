"""HTTP tests for the complaint, notification, SLA and stats endpoints.

Runs the real application lifespan with the in-memory store and the
bundled demo users; the background SLA scheduler is disabled.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

CITIZEN = {"X-User-Id": "citizen-rajesh"}
OTHER_CITIZEN = {"X-User-Id": "citizen-priya"}
OFFICER = {"X-User-Id": "officer-anita"}
OTHER_OFFICER = {"X-User-Id": "officer-suresh"}
ADMIN = {"X-User-Id": "admin-ramesh"}

DRAFT = {
    "title": "No water since Monday",
    "description": "The municipal supply to Sector 9 has been off for three days",
    "category": "Water Supply",
    "location": {"lat": 28.6, "lng": 77.2, "address": "Sector 9"},
}


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    from config.settings import settings

    monkeypatch.setattr(settings, "enable_sla_monitor", False)
    monkeypatch.setattr(settings, "seed_demo_users", True)
    monkeypatch.setattr(settings, "store_backend", "memory")
    monkeypatch.setattr(settings, "admin_api_key", "")

    from src.main import app

    with TestClient(app) as test_client:
        yield test_client


def _file(client: TestClient) -> dict:
    response = client.post("/api/v1/complaints", json=DRAFT, headers=CITIZEN)
    assert response.status_code == 201, response.text
    return response.json()


def _move(client: TestClient, ref: str, headers: dict, target: str, **payload) -> dict:
    response = client.post(
        f"/api/v1/complaints/{ref}/transitions",
        json={"target_status": target, **payload},
        headers=headers,
    )
    assert response.status_code == 200, response.text
    return response.json()


# ---------------------------------------------------------------------------
# Caller identification
# ---------------------------------------------------------------------------


class TestCallerIdentity:
    def test_missing_header(self, client: TestClient) -> None:
        assert client.get("/api/v1/complaints").status_code == 401

    def test_unknown_user(self, client: TestClient) -> None:
        response = client.get("/api/v1/complaints", headers={"X-User-Id": "mallory"})
        assert response.status_code == 401

    def test_inactive_user(self, client: TestClient) -> None:
        client.app.state.directory.deactivate("citizen-priya")
        assert client.get("/api/v1/complaints", headers=OTHER_CITIZEN).status_code == 403


# ---------------------------------------------------------------------------
# Complaint lifecycle over HTTP
# ---------------------------------------------------------------------------


class TestComplaintFlow:
    def test_full_lifecycle(self, client: TestClient) -> None:
        created = _file(client)
        ref = created["complaint_id"]
        assert created["status"] == "NEW"
        assert created["version"] == 1

        assigned = _move(client, ref, ADMIN, "ASSIGNED", assignee_id="officer-anita")
        assert assigned["assigned_to"] == "officer-anita"

        allowed = client.get(f"/api/v1/complaints/{ref}/allowed-transitions", headers=OFFICER).json()
        assert allowed["allowed"] == ["IN_PROGRESS", "REJECTED"]
        assert allowed["can_comment"] is False
        assert allowed["terminal"] is False

        _move(client, ref, OFFICER, "IN_PROGRESS")

        commented = client.post(
            f"/api/v1/complaints/{ref}/comments",
            json={"comment": "Valve replaced, pressure being restored"},
            headers=OFFICER,
        )
        assert commented.status_code == 200
        assert len(commented.json()["officer_comments"]) == 1

        resolved = _move(
            client, ref, OFFICER, "RESOLVED",
            resolution_proof=["https://img.example/valve.jpg"],
            resolution_notes="Supply restored",
        )
        assert resolved["is_sla_met"] is True

        closed = _move(client, ref, CITIZEN, "CLOSED")
        assert closed["status"] == "CLOSED"
        closed_view = client.get(f"/api/v1/complaints/{ref}/allowed-transitions", headers=ADMIN).json()
        assert closed_view["allowed"] == []
        assert closed_view["terminal"] is True
        assert [h["status"] for h in closed["status_history"]] == [
            "NEW", "ASSIGNED", "IN_PROGRESS", "RESOLVED", "CLOSED",
        ]

        trail = client.get(f"/api/v1/complaints/{ref}/audit", headers=ADMIN).json()
        assert [e["action"] for e in trail["entries"]] == [
            "CREATE", "ASSIGN", "STATUS_CHANGE", "UPDATE", "STATUS_CHANGE", "STATUS_CHANGE",
        ]

    def test_officer_cannot_file(self, client: TestClient) -> None:
        response = client.post("/api/v1/complaints", json=DRAFT, headers=OFFICER)
        assert response.status_code == 403

    def test_invalid_draft(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/complaints",
            json={**DRAFT, "category": "Teleportation"},
            headers=CITIZEN,
        )
        assert response.status_code == 422


class TestTransitionErrors:
    def test_forbidden_move(self, client: TestClient) -> None:
        ref = _file(client)["complaint_id"]
        response = client.post(
            f"/api/v1/complaints/{ref}/transitions",
            json={"target_status": "CLOSED"},
            headers=CITIZEN,
        )
        assert response.status_code == 403
        assert client.get(f"/api/v1/complaints/{ref}", headers=CITIZEN).json()["status"] == "NEW"

    def test_invalid_assignee(self, client: TestClient) -> None:
        ref = _file(client)["complaint_id"]
        response = client.post(
            f"/api/v1/complaints/{ref}/transitions",
            json={"target_status": "ASSIGNED", "assignee_id": "citizen-priya"},
            headers=ADMIN,
        )
        assert response.status_code == 422

    def test_missing_proof(self, client: TestClient) -> None:
        ref = _file(client)["complaint_id"]
        _move(client, ref, ADMIN, "ASSIGNED", assignee_id="officer-anita")
        _move(client, ref, OFFICER, "IN_PROGRESS")
        response = client.post(
            f"/api/v1/complaints/{ref}/transitions",
            json={"target_status": "RESOLVED"},
            headers=OFFICER,
        )
        assert response.status_code == 422

    def test_stale_version(self, client: TestClient) -> None:
        ref = _file(client)["complaint_id"]
        _move(client, ref, ADMIN, "ASSIGNED", assignee_id="officer-anita")
        response = client.post(
            f"/api/v1/complaints/{ref}/transitions",
            json={"target_status": "REJECTED", "expected_version": 1},
            headers=ADMIN,
        )
        assert response.status_code == 409

    def test_unknown_complaint(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/complaints/CMP-2026-999999/transitions",
            json={"target_status": "ASSIGNED"},
            headers=ADMIN,
        )
        assert response.status_code == 404

    def test_unknown_status_value(self, client: TestClient) -> None:
        ref = _file(client)["complaint_id"]
        response = client.post(
            f"/api/v1/complaints/{ref}/transitions",
            json={"target_status": "ARCHIVED"},
            headers=ADMIN,
        )
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Visibility and listing
# ---------------------------------------------------------------------------


class TestVisibility:
    def test_other_citizen_is_denied(self, client: TestClient) -> None:
        ref = _file(client)["complaint_id"]
        assert client.get(f"/api/v1/complaints/{ref}", headers=OTHER_CITIZEN).status_code == 403

    def test_unassigned_officer_is_denied(self, client: TestClient) -> None:
        ref = _file(client)["complaint_id"]
        _move(client, ref, ADMIN, "ASSIGNED", assignee_id="officer-anita")
        assert client.get(f"/api/v1/complaints/{ref}", headers=OFFICER).status_code == 200
        assert client.get(f"/api/v1/complaints/{ref}", headers=OTHER_OFFICER).status_code == 403

    def test_public_tracking_hides_actors(self, client: TestClient) -> None:
        ref = _file(client)["complaint_id"]
        response = client.get(f"/api/v1/complaints/track/{ref.lower()}")
        assert response.status_code == 200
        body = response.json()
        assert body["complaint_id"] == ref
        assert "created_by" not in body
        assert all(entry["changed_by"] == "" for entry in body["history"])

    def test_tracking_unknown(self, client: TestClient) -> None:
        assert client.get("/api/v1/complaints/track/CMP-2026-424242").status_code == 404

    def test_listing_is_role_scoped(self, client: TestClient) -> None:
        first = _file(client)["complaint_id"]
        _file(client)
        _move(client, first, ADMIN, "ASSIGNED", assignee_id="officer-anita")

        assert client.get("/api/v1/complaints", headers=CITIZEN).json()["total"] == 2
        assert client.get("/api/v1/complaints", headers=OTHER_CITIZEN).json()["total"] == 0
        officer_view = client.get("/api/v1/complaints", headers=OFFICER).json()
        assert [c["complaint_id"] for c in officer_view["items"]] == [first]
        filtered = client.get("/api/v1/complaints", params={"status": "NEW"}, headers=ADMIN).json()
        assert filtered["total"] == 1

    def test_audit_trail_is_admin_only(self, client: TestClient) -> None:
        ref = _file(client)["complaint_id"]
        assert client.get(f"/api/v1/complaints/{ref}/audit", headers=CITIZEN).status_code == 403


class TestAuditLog:
    def test_admin_lists_newest_first(self, client: TestClient) -> None:
        ref = _file(client)["complaint_id"]
        _file(client)
        _move(client, ref, ADMIN, "ASSIGNED", assignee_id="officer-anita")

        body = client.get("/api/v1/audit", headers=ADMIN).json()
        assert body["total"] == 3
        assert body["limit"] == 50
        assert [e["action"] for e in body["entries"]] == ["ASSIGN", "CREATE", "CREATE"]
        assert all(len(e["checksum"]) == 64 for e in body["entries"])

    def test_paging(self, client: TestClient) -> None:
        for _ in range(3):
            _file(client)

        first = client.get("/api/v1/audit", params={"limit": 2}, headers=ADMIN).json()
        rest = client.get("/api/v1/audit", params={"limit": 2, "offset": 2}, headers=ADMIN).json()
        assert len(first["entries"]) == 2
        assert len(rest["entries"]) == 1
        assert rest["total"] == 3
        seen = {e["audit_id"] for e in first["entries"]} | {e["audit_id"] for e in rest["entries"]}
        assert len(seen) == 3

    def test_admin_only(self, client: TestClient) -> None:
        assert client.get("/api/v1/audit", headers=CITIZEN).status_code == 403
        assert client.get("/api/v1/audit", headers=OFFICER).status_code == 403

    def test_rejects_bad_limit(self, client: TestClient) -> None:
        assert client.get("/api/v1/audit", params={"limit": 0}, headers=ADMIN).status_code == 422


# ---------------------------------------------------------------------------
# Notifications, SLA and stats
# ---------------------------------------------------------------------------


class TestNotificationInbox:
    def test_inbox_and_read_tracking(self, client: TestClient) -> None:
        _file(client)
        inbox = client.get("/api/v1/notifications", headers=CITIZEN).json()
        assert inbox["unread_count"] == 1
        notification_id = inbox["items"][0]["notification_id"]

        # Another user cannot mark it.
        assert client.post(f"/api/v1/notifications/{notification_id}/read", headers=ADMIN).status_code == 404
        assert client.post(f"/api/v1/notifications/{notification_id}/read", headers=CITIZEN).status_code == 200
        assert client.get("/api/v1/notifications/unread-count", headers=CITIZEN).json() == {"unread_count": 0}

    def test_read_all(self, client: TestClient) -> None:
        _file(client)
        _file(client)
        assert client.post("/api/v1/notifications/read-all", headers=ADMIN).json() == {"updated": 2}


class TestSLAEndpoints:
    def test_policy(self, client: TestClient) -> None:
        body = client.get("/api/v1/sla/policy").json()
        assert body["default_hours"] == 72
        assert body["budgets"]["Electricity"] == 12

    def test_check_runs_sweep(self, client: TestClient) -> None:
        _file(client)
        response = client.post("/api/v1/sla/check")
        assert response.status_code == 200
        assert response.json()["failures"] == 0

    def test_check_requires_key_when_configured(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        from config.settings import settings

        monkeypatch.setattr(settings, "admin_api_key", "cron-secret")
        assert client.post("/api/v1/sla/check").status_code == 401
        assert client.post("/api/v1/sla/check", headers={"X-Admin-API-Key": "wrong"}).status_code == 403
        assert client.post("/api/v1/sla/check", headers={"X-Admin-API-Key": "cron-secret"}).status_code == 200


class TestStatsEndpoints:
    def test_dashboard_requires_staff(self, client: TestClient) -> None:
        assert client.get("/api/v1/stats/dashboard", headers=CITIZEN).status_code == 403

    def test_dashboard_and_public(self, client: TestClient) -> None:
        ref = _file(client)["complaint_id"]
        _file(client)
        _move(client, ref, ADMIN, "ASSIGNED", assignee_id="officer-anita")

        admin_view = client.get("/api/v1/stats/dashboard", headers=ADMIN).json()
        assert admin_view["total"] == 2
        assert admin_view["by_status"]["ASSIGNED"] == 1
        assert admin_view["by_category"] == {"Water Supply": 2}

        officer_view = client.get("/api/v1/stats/dashboard", headers=OFFICER).json()
        assert officer_view["total"] == 1

        public = client.get("/api/v1/stats/public").json()
        assert public == {"total": 2, "resolved": 0, "in_progress": 1, "avg_resolution_hours": 0.0}


class TestHealth:
    def test_readiness(self, client: TestClient) -> None:
        body = client.get("/api/v1/health/ready").json()
        assert body["status"] == "ready"
        assert body["checks"]["sla_scheduler"] == "external_trigger"


class TestLoggingSetup:
    @pytest.mark.parametrize(("level", "log_format"), [("DEBUG", "json"), ("info", "console"), ("WARNING", "json")])
    def test_configures_from_level_name(self, monkeypatch: pytest.MonkeyPatch, level: str, log_format: str) -> None:
        import structlog

        from config.settings import settings
        from src.main import _configure_logging

        monkeypatch.setattr(settings, "log_level", level)
        monkeypatch.setattr(settings, "log_format", log_format)
        try:
            _configure_logging()
            structlog.get_logger("civictrack.tests").info("logging.configured", level=level)
        finally:
            structlog.reset_defaults()
