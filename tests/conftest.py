"""Shared test fixtures."""
import os
import sys
import pytest
import tempfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timedelta, timezone
from models.database import Database
from models.alerts import AlertRule
from models.enums import Metric, Condition
from monitor.sources import StaticMetricSource
from alerts.engine import AlertEngine


class FakeClock:
    """Manually advanced UTC clock."""
    def __init__(self, start=None):
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, minutes=0, seconds=0):
        self.now += timedelta(minutes=minutes, seconds=seconds)
        return self.now


def make_rule(**overrides):
    """AlertRule with sensible defaults for tests."""
    fields = dict(
        name="5xx spike",
        metric=Metric.STATUS_5XX,
        condition=Condition.INCREASE,
        value=50.0,
        time_window_minutes=5,
        enabled=True,
    )
    fields.update(overrides)
    return AlertRule(**fields)


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    db.connect()
    yield db
    db.close()
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.unlink(db_path + suffix)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def source():
    return StaticMetricSource()


@pytest.fixture
def engine_config():
    return {
        "monitor": {"tick_interval": 60, "query_timeout": 2, "max_workers": 4},
        "alerts": {"cooldown_minutes": 10},
        "history": {"max_alerts": 100},
    }


@pytest.fixture
def engine(temp_db, source, clock, engine_config):
    """Initialized engine without a background scheduler; drive it with tick()."""
    eng = AlertEngine(temp_db, source, engine_config, clock=clock)
    eng.initialize(start_scheduler=False)
    yield eng
    eng.shutdown()
