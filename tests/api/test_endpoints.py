"""
Integration tests for API endpoints using FastAPI TestClient.

The app wraps a test engine (manual clock, recording senders, inline
executor), so requests exercise the full router → engine → store path.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from alertspine.api import create_app
from alertspine.api.errors import status_for_error_code


@pytest.fixture()
def client(engine, make_rule):
    engine.rules.create_rule(make_rule())
    app = create_app(engine)
    with TestClient(app) as c:
        yield c


def _breach(client, value=95.0):
    resp = client.post(
        "/samples",
        json={"samples": [{"server_id": "srv-1", "metric": "cpu_usage", "value": value}]},
    )
    assert resp.status_code == 202
    return resp.json()


def _open_alert_id(client):
    _breach(client)
    return client.get("/alerts").json()["data"][0]["id"]


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["active_rules"] == 1


class TestSamples:
    def test_breach_opens_alert(self, client):
        body = _breach(client)

        assert body["accepted"] == 1
        assert body["decisions"][0]["state"] == "breaching"
        listed = client.get("/alerts").json()
        assert listed["page"]["total"] == 1
        assert listed["data"][0]["current_value"] == 95.0

    def test_empty_batch_rejected(self, client):
        resp = client.post("/samples", json={"samples": []})
        assert resp.status_code == 422

    def test_naive_timestamp_assumed_utc(self, client):
        resp = client.post(
            "/samples",
            json={
                "samples": [
                    {
                        "server_id": "srv-1",
                        "metric": "cpu_usage",
                        "value": 10.0,
                        "timestamp": "2025-01-01T00:00:00",
                    }
                ]
            },
        )
        assert resp.status_code == 202
        assert resp.json()["decisions"][0]["evaluated_at"] == "2025-01-01T00:00:00+00:00"


class TestAlertQueries:
    def test_list_filters_and_paging(self, client):
        _breach(client)
        resp = client.get("/alerts", params={"status": "resolved"})
        assert resp.json()["page"]["total"] == 0

        resp = client.get("/alerts", params={"limit": 1, "offset": 0})
        assert resp.json()["page"] == {"total": 1, "limit": 1, "offset": 0, "has_more": False}

    def test_get_alert(self, client):
        alert_id = _open_alert_id(client)
        resp = client.get(f"/alerts/{alert_id}")
        assert resp.status_code == 200
        assert resp.json()["status"] == "active"

    def test_get_missing_alert_is_problem_404(self, client):
        resp = client.get("/alerts/missing")
        assert resp.status_code == 404
        body = resp.json()
        assert body["code"] == "NOT_FOUND"
        assert body["context"] == {"alert_id": "missing"}

    def test_deliveries(self, client):
        alert_id = _open_alert_id(client)
        body = client.get(f"/alerts/{alert_id}/deliveries").json()

        assert body["channels"][0]["channel_id"] == "ops-slack"
        assert body["channels"][0]["sent"] == 1
        assert body["attempts"][0]["status"] == "sent"

    def test_stats(self, client):
        _breach(client)
        body = client.get("/alerts/stats").json()
        assert body["total"] == 1
        assert body["open"] == 1

        body = client.get("/alerts/stats", params={"since": "2030-01-01T00:00:00"}).json()
        assert body["total"] == 0


class TestAlertActions:
    def test_ack_then_conflict(self, client):
        alert_id = _open_alert_id(client)

        resp = client.post(f"/alerts/{alert_id}/ack", json={"by": "alice"})
        assert resp.status_code == 200
        assert resp.json()["data"]["acknowledged_by"] == "alice"

        resp = client.post(f"/alerts/{alert_id}/ack", json={"by": "bob"})
        assert resp.status_code == 409
        assert resp.json()["code"] == "INVALID_TRANSITION"

    def test_suppress_with_reason(self, client):
        alert_id = _open_alert_id(client)
        resp = client.post(
            f"/alerts/{alert_id}/suppress", json={"by": "alice", "reason": "maintenance"}
        )
        assert resp.json()["data"]["metadata"]["suppression_reason"] == "maintenance"

    def test_resolve_missing_is_404(self, client):
        resp = client.post("/alerts/missing/resolve", json={"by": "alice"})
        assert resp.status_code == 404

    def test_actor_required(self, client):
        alert_id = _open_alert_id(client)
        resp = client.post(f"/alerts/{alert_id}/ack", json={"by": ""})
        assert resp.status_code == 422

    def test_bulk(self, client):
        alert_id = _open_alert_id(client)
        resp = client.post(
            "/alerts/bulk",
            json={
                "actions": [
                    {"alert_id": alert_id, "action": "ack", "by": "alice"},
                    {"alert_id": "missing", "action": "resolve", "by": "alice"},
                    {"alert_id": alert_id, "action": "resolve", "by": "alice"},
                ]
            },
        )
        body = resp.json()
        assert body["succeeded"] == 2
        assert body["failed"] == 1
        assert body["results"][1]["error"]["code"] == "NOT_FOUND"


class TestRules:
    def test_list(self, client):
        body = client.get("/rules").json()
        assert body["total"] == 1
        assert body["data"][0]["id"] == "cpu-high"

    def test_filter_by_server(self, client):
        assert client.get("/rules", params={"server_id": "srv-9"}).json()["total"] == 0


class TestErrorMapping:
    @pytest.mark.parametrize(
        "code, status",
        [
            ("NOT_FOUND", 404),
            ("INVALID_TRANSITION", 409),
            ("CONFIGURATION", 422),
            ("LOCK_TIMEOUT", 503),
            ("SOMETHING_ELSE", 500),
        ],
    )
    def test_status_for_code(self, code, status):
        assert status_for_error_code(code) == status
