"""Tests for the Flask JSON API."""
import pytest
from unittest.mock import patch

from web.app import create_app
from models.enums import Metric
from models.errors import PersistenceFailure


@pytest.fixture
def client(engine, engine_config):
    app = create_app(engine_config, engine)
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c


RULE = {"name": "5xx volume", "metric": "status5xx", "condition": "threshold", "value": 100}


def _create(client, **overrides):
    resp = client.post("/api/rules", json={**RULE, **overrides})
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


class TestRulesAPI:
    def test_list_empty(self, client):
        resp = client.get("/api/rules")
        assert resp.status_code == 200
        assert resp.get_json() == {"rules": [], "count": 0}

    def test_create_and_get(self, client):
        rule = _create(client)
        assert rule["id"].startswith("rule_")
        assert rule["state"] == "normal"
        assert rule["enabled"] is True

        resp = client.get(f"/api/rules/{rule['id']}")
        assert resp.status_code == 200
        assert resp.get_json()["name"] == "5xx volume"
        assert client.get("/api/rules").get_json()["count"] == 1

    def test_create_invalid(self, client):
        resp = client.post("/api/rules", json={**RULE, "condition": "increase", "time_window_minutes": 0})
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "time_window_minutes"
        assert client.get("/api/rules").get_json()["count"] == 0

    def test_create_requires_object_body(self, client):
        assert client.post("/api/rules", json=[1, 2]).status_code == 400
        assert client.post("/api/rules", data="not json").status_code == 400

    def test_patch(self, client):
        rule = _create(client)
        resp = client.patch(f"/api/rules/{rule['id']}", json={"value": 250, "enabled": False})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["value"] == 250
        assert body["enabled"] is False
        assert body["created_at"] == rule["created_at"]

    def test_patch_rule_id_field_is_rejected(self, client):
        rule = _create(client)
        resp = client.patch(f"/api/rules/{rule['id']}", json={"id": "other"})
        assert resp.status_code == 400

    def test_patch_string_flag_is_rejected(self, client):
        rule = _create(client)
        resp = client.patch(f"/api/rules/{rule['id']}", json={"enabled": "false"})
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "enabled"
        assert client.get(f"/api/rules/{rule['id']}").get_json()["enabled"] is True

    def test_patch_missing(self, client):
        assert client.patch("/api/rules/rule_missing", json={"value": 1}).status_code == 404

    def test_get_missing(self, client):
        resp = client.get("/api/rules/rule_missing")
        assert resp.status_code == 404
        assert "rule_missing" in resp.get_json()["error"]

    def test_delete_idempotent(self, client):
        rule = _create(client)
        assert client.delete(f"/api/rules/{rule['id']}").status_code == 204
        assert client.delete(f"/api/rules/{rule['id']}").status_code == 204
        assert client.get(f"/api/rules/{rule['id']}").status_code == 404

    def test_state_reflects_firing(self, client, engine, source):
        rule = _create(client)
        source.set(Metric.STATUS_5XX, 500)
        engine.tick()
        assert client.get(f"/api/rules/{rule['id']}").get_json()["state"] == "firing"


class TestAlertsAPI:
    def _fire(self, client, engine, source):
        _create(client)
        source.set(Metric.STATUS_5XX, 500)
        [alert] = engine.tick()
        return alert

    def test_list_and_limit(self, client, engine, source):
        alert = self._fire(client, engine, source)
        body = client.get("/api/alerts").get_json()
        assert body["count"] == 1
        assert body["alerts"][0]["id"] == alert.id
        assert body["alerts"][0]["severity"] == "high"
        assert client.get("/api/alerts?limit=1").get_json()["count"] == 1

    @pytest.mark.parametrize("limit", ["abc", "0", "-1"])
    def test_bad_limit(self, client, engine, source, limit):
        self._fire(client, engine, source)
        resp = client.get(f"/api/alerts?limit={limit}")
        assert resp.status_code == 400
        assert "limit" in resp.get_json()["error"]

    def test_ack(self, client, engine, source):
        alert = self._fire(client, engine, source)
        first = client.post(f"/api/alerts/{alert.id}/ack")
        assert first.status_code == 200
        assert first.get_json()["acknowledged"] is True
        again = client.post(f"/api/alerts/{alert.id}/ack")
        assert again.get_json()["acknowledged_at"] == first.get_json()["acknowledged_at"]

    def test_ack_missing(self, client):
        assert client.post("/api/alerts/alert_missing/ack").status_code == 404

    def test_clear(self, client, engine, source):
        self._fire(client, engine, source)
        resp = client.delete("/api/alerts")
        assert resp.get_json() == {"removed": 1}
        assert client.get("/api/alerts").get_json()["count"] == 0


class TestStatusAPI:
    def test_status(self, client):
        _create(client)
        body = client.get("/api/status").get_json()
        assert body["initialized"] is True
        assert body["rules"] == 1
        assert body["firing"] == []

    def test_storage_failure_maps_to_503(self, client, engine):
        with patch.object(engine.rules, "list", side_effect=PersistenceFailure("locked")):
            resp = client.get("/api/rules")
        assert resp.status_code == 503
        assert resp.get_json()["error"] == "Storage unavailable"
