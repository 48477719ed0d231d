"""Tests for the HTTP API."""

from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from argus.api import create_app

from tests.conftest import T0


@pytest.fixture
async def client(system):
    app = create_app(system)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


RULE = {
    "name": "High CPU",
    "metric_name": "cpu.usage",
    "service": "web-1",
    "condition": "greater_than",
    "threshold": 90,
    "duration_minutes": 3,
    "severity": "high",
}


async def _breach(client, system):
    """Create RULE, ingest a sustained breach and evaluate at the system clock."""
    created = await client.post("/api/alerts/rules", json=RULE)
    for minute in (1, 2, 3):
        response = await client.post(
            "/api/metrics",
            json={
                "metric_name": "cpu.usage",
                "service": "web-1",
                "value": 95,
                "timestamp": (T0 + timedelta(minutes=minute)).isoformat(),
            },
        )
        assert response.status_code == 201
    system.clock.advance(minutes=3)
    return created.json()


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/api/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["stores"]["metric_samples"] == 0

    async def test_liveness_and_readiness(self, client):
        assert (await client.get("/api/health/live")).json() == {"status": "alive"}
        assert (await client.get("/api/health/ready")).json() == {"status": "ready"}


class TestErrorMapping:
    async def test_invalid_rule_is_400(self, client):
        response = await client.post("/api/alerts/rules", json={**RULE, "condition": "above"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert any(d["loc"] == "condition" for d in body["details"])

    async def test_unknown_channel_is_400(self, client):
        response = await client.post(
            "/api/alerts/rules", json={**RULE, "notification_channels": ["nowhere"]}
        )

        assert response.status_code == 400

    async def test_unknown_alert_is_404(self, client):
        response = await client.post("/api/alerts/missing/resolve")

        assert response.status_code == 404
        body = response.json()
        assert body["entity"] == "alert"
        assert body["transition"] is None

    async def test_negative_limit_rejected(self, client):
        response = await client.get("/api/alerts", params={"limit": -1})

        assert response.status_code == 422


class TestAlertFlow:
    async def test_rule_crud(self, client):
        created = await client.post("/api/alerts/rules", json=RULE)
        assert created.status_code == 201
        rule_id = created.json()["id"]

        updated = await client.put(f"/api/alerts/rules/{rule_id}", json={"threshold": 95})
        assert updated.json()["threshold"] == 95

        assert (await client.delete(f"/api/alerts/rules/{rule_id}")).status_code == 204
        assert (await client.get(f"/api/alerts/rules/{rule_id}")).status_code == 404

    async def test_evaluate_acknowledge_resolve(self, client, system):
        await _breach(client, system)

        evaluated = await client.post("/api/alerts/evaluate")
        assert evaluated.json()["created"] == 1

        page = (await client.get("/api/alerts", params={"status": "active"})).json()
        assert page["count"] == 1
        alert_id = page["items"][0]["id"]

        acked = await client.post(f"/api/alerts/{alert_id}/acknowledge", json={"actor": "oncall"})
        assert acked.json()["status"] == "acknowledged"

        resolved = await client.post(f"/api/alerts/{alert_id}/resolve")
        assert resolved.json()["status"] == "resolved"

        again = await client.post(f"/api/alerts/{alert_id}/resolve")
        assert again.status_code == 404
        assert again.json()["transition"] == "resolve"

    async def test_channel_in_use_cannot_be_deleted(self, client):
        channel = {
            "id": "ops",
            "name": "ops",
            "type": "webhook",
            "config": {"url": "https://hooks.example.com/ops"},
        }
        assert (await client.post("/api/alerts/channels", json=channel)).status_code == 201
        await client.post("/api/alerts/rules", json={**RULE, "notification_channels": ["ops"]})

        response = await client.delete("/api/alerts/channels/ops")

        assert response.status_code == 400


class TestConfigurationLists:
    @pytest.mark.parametrize(
        "path",
        [
            "/api/alerts/rules",
            "/api/alerts/channels",
            "/api/anomalies/configs",
            "/api/security/threats/rules",
        ],
    )
    async def test_empty_lists_carry_count(self, client, path):
        response = await client.get(path)

        assert response.status_code == 200
        assert response.json() == {"items": [], "count": 0, "total": 0}

    async def test_rule_list_counts_items(self, client):
        await client.post("/api/alerts/rules", json=RULE)
        await client.post("/api/alerts/rules", json={**RULE, "name": "Very high CPU", "threshold": 98})

        body = (await client.get("/api/alerts/rules")).json()

        assert body["count"] == 2
        assert body["total"] == 2
        assert {rule["name"] for rule in body["items"]} == {"High CPU", "Very high CPU"}


class TestMetrics:
    async def test_batch_reports_rejected_items(self, client):
        response = await client.post(
            "/api/metrics/batch",
            json={
                "samples": [
                    {"metric_name": "cpu.usage", "service": "web-1", "value": 1,
                     "timestamp": T0.isoformat()},
                    {"metric_name": "cpu.usage", "service": "", "value": 2},
                    {"metric_name": "cpu.usage", "service": "web-1", "value": 3,
                     "timestamp": (T0 - timedelta(minutes=1)).isoformat()},
                ]
            },
        )

        body = response.json()
        assert body["accepted"] == 1
        assert [r["index"] for r in body["rejected"]] == [1, 2]

    async def test_non_numeric_value_is_400(self, client):
        response = await client.post(
            "/api/metrics",
            json={"metric_name": "cpu.usage", "service": "web-1", "value": "high"},
        )

        assert response.status_code == 400

    @pytest.mark.parametrize("value", ["95", True])
    async def test_numeric_string_and_boolean_are_400(self, client, value):
        response = await client.post(
            "/api/metrics",
            json={"metric_name": "cpu.usage", "service": "web-1", "value": value},
        )

        assert response.status_code == 400
        assert any(d["loc"] == "value" for d in response.json()["details"])


class TestAnomalyEndpoints:
    async def test_config_crud_and_detect(self, client, system):
        config = {
            "metric_name": "cpu.usage",
            "service": "web-1",
            "algorithm": "zscore",
            "sensitivity": 5,
            "window_minutes": 6,
        }
        assert (await client.post("/api/anomalies/configs", json=config)).status_code == 201
        duplicate = await client.post("/api/anomalies/configs", json=config)
        assert duplicate.status_code == 400

        for minute, value in enumerate([10, 10, 10, 95, 95, 95]):
            system.ingest_metric("cpu.usage", "web-1", value, T0 + timedelta(minutes=minute))
        system.clock.advance(minutes=5)

        detected = await client.post("/api/anomalies/detect")
        assert detected.json()["created"] == 1

        page = (await client.get("/api/anomalies", params={"service": "web-1"})).json()
        assert page["count"] == 1
        assert page["items"][0]["severity"] == "medium"

        fetched = await client.get("/api/anomalies/configs/cpu.usage", params={"service": "web-1"})
        assert fetched.json()["algorithm"] == "zscore"


class TestSecurityEndpoints:
    async def test_event_ingest_raises_alert(self, client):
        rule = {
            "name": "Failed logins",
            "rule_type": "threshold",
            "event_type": "authentication",
            "outcome": "failure",
            "threshold": 2,
            "window_seconds": 300,
            "group_by": "source_ip",
            "severity": "high",
        }
        assert (await client.post("/api/security/threats/rules", json=rule)).status_code == 201

        event = {
            "event_type": "authentication",
            "severity": "medium",
            "action": "login",
            "outcome": "failure",
            "source_ip": "203.0.113.7",
        }
        first = await client.post("/api/security/events", json=event)
        second = await client.post("/api/security/events", json=event)

        assert first.status_code == 201
        assert first.json()["event"]["risk_score"] == 45.0
        assert first.json()["alerts"] == []
        [alert] = second.json()["alerts"]
        assert alert["affected_assets"] == ["203.0.113.7"]
        assert alert["risk_score"] == 90

        acked = await client.post(
            f"/api/security/alerts/{alert['id']}/acknowledge", json={"actor": "analyst"}
        )
        assert acked.json()["status"] == "investigating"

        events = (await client.get("/api/security/events")).json()
        assert events["count"] == 2

    async def test_invalid_event_is_400(self, client):
        response = await client.post(
            "/api/security/events",
            json={"event_type": "telepathy", "severity": "low", "action": "x", "outcome": "success"},
        )

        assert response.status_code == 400


class TestStats:
    async def test_stats(self, client, system):
        await _breach(client, system)
        await client.post("/api/alerts/evaluate")

        body = (await client.get("/api/stats")).json()

        assert body["alerts"]["by_severity"] == {"high": 1}
        assert body["alerts"]["by_status"] == {"active": 1}
        assert body["registry"]["alert_rules"] == {"total": 1, "enabled": 1}
        assert body["stores"]["metric_samples"] == 3
