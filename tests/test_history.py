"""Tests for alert history."""
import pytest
from datetime import timedelta

from alerts.history import AlertHistory
from models.alerts import Alert
from models.enums import Severity
from models.errors import NotFound
from conftest import FakeClock


@pytest.fixture
def history(temp_db):
    return AlertHistory(temp_db, max_alerts=100, clock=FakeClock())


def _alert(history, alert_id, rule_id="r1", severity=Severity.MEDIUM):
    alert = Alert(id=alert_id, rule_id=rule_id, rule_name="5xx spike", severity=severity,
                  observed_value=120.0, threshold=50.0, message="5xx spike: up",
                  triggered_at=history.clock())
    history.append(alert)
    return alert


def test_list_most_recent_first(history):
    _alert(history, "a1")
    history.clock.advance(minutes=1)
    _alert(history, "a2")
    history.clock.advance(minutes=1)
    _alert(history, "a3")

    assert [a.id for a in history.list()] == ["a3", "a2", "a1"]
    assert [a.id for a in history.list(limit=2)] == ["a3", "a2"]


def test_alert_fields_survive_storage(history):
    original = _alert(history, "a1")
    stored = history.get("a1")
    assert stored == original
    assert stored.severity is Severity.MEDIUM
    assert stored.acknowledged is False


def test_max_alerts_cap(temp_db):
    history = AlertHistory(temp_db, max_alerts=3, clock=FakeClock())
    for i in range(5):
        _alert(history, f"a{i}")
        history.clock.advance(minutes=1)
    assert [a.id for a in history.list()] == ["a4", "a3", "a2"]


def test_acknowledge_is_idempotent(history):
    _alert(history, "a1")
    history.clock.advance(minutes=2)
    first = history.acknowledge("a1")
    assert first.acknowledged
    assert first.acknowledged_at == history.clock()

    history.clock.advance(minutes=5)
    again = history.acknowledge("a1")
    assert again.acknowledged_at == first.acknowledged_at


def test_acknowledge_explicit_time(history):
    _alert(history, "a1")
    at = history.clock() + timedelta(minutes=30)
    assert history.acknowledge("a1", at=at).acknowledged_at == at


def test_acknowledge_missing_raises(history):
    with pytest.raises(NotFound):
        history.acknowledge("alert_missing")
    with pytest.raises(NotFound):
        history.get("alert_missing")


def test_clear_returns_count(history):
    _alert(history, "a1")
    _alert(history, "a2")
    assert history.clear() == 2
    assert history.list() == []
    assert history.clear() == 0


def test_latest_for_rule(history):
    assert history.latest_for_rule("r1") is None
    _alert(history, "a1", rule_id="r1")
    history.clock.advance(minutes=1)
    _alert(history, "a2", rule_id="r1")
    _alert(history, "b1", rule_id="r2")
    assert history.latest_for_rule("r1").id == "a2"


def test_stats(history):
    _alert(history, "a1", severity=Severity.HIGH)
    _alert(history, "a2", severity=Severity.LOW)
    _alert(history, "a3", severity=Severity.LOW)
    history.acknowledge("a2")

    stats = history.stats()
    assert stats["total"] == 3
    assert stats["unacknowledged"] == 2
    assert stats["by_severity"] == {"high": 1, "low": 2}
