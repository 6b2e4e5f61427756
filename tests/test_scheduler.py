"""Tests for the background tick scheduler."""
import time
import threading

from models.enums import Metric, Condition
from monitor.scheduler import MonitorScheduler
from conftest import make_rule


def _wait_for(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_start_runs_initial_tick_and_stop_joins():
    calls = []
    sched = MonitorScheduler(lambda: calls.append(1), interval_seconds=60, poll_seconds=0.01)
    sched.start()
    try:
        assert _wait_for(lambda: sched.ticks >= 1)
        assert sched.running
    finally:
        sched.stop()
    assert not sched.running
    assert len(calls) == 1


def test_start_is_idempotent():
    started = threading.Event()
    sched = MonitorScheduler(started.set, interval_seconds=60, poll_seconds=0.01)
    sched.start()
    try:
        assert started.wait(3)
        thread = sched._thread
        sched.start()
        assert sched._thread is thread
    finally:
        sched.stop()


def test_ticks_repeat_on_interval():
    sched = MonitorScheduler(lambda: None, interval_seconds=1, poll_seconds=0.05)
    sched.start()
    try:
        assert _wait_for(lambda: sched.ticks >= 2, timeout=5)
    finally:
        sched.stop()


def test_callbacks_receive_tick_result():
    results = []
    sched = MonitorScheduler(lambda: ["alert"], interval_seconds=60, poll_seconds=0.01)
    sched.on_tick(results.append)
    sched.start()
    try:
        assert _wait_for(lambda: results)
    finally:
        sched.stop()
    assert results[0] == ["alert"]


def test_failed_tick_is_counted_and_loop_survives():
    def boom():
        raise RuntimeError("source down")

    sched = MonitorScheduler(boom, interval_seconds=60, poll_seconds=0.01)
    sched._tick_job()
    sched._tick_job()
    assert sched._consecutive_failures == 2
    assert sched.ticks == 0

    sched.tick = lambda: None
    sched._tick_job()
    assert sched._consecutive_failures == 0
    assert sched.ticks == 1


def test_no_tick_after_stop():
    calls = []
    sched = MonitorScheduler(lambda: calls.append(1), interval_seconds=60)
    sched.stop()
    sched._tick_job()
    assert calls == []


def test_engine_scheduler_drives_ticks(engine, source):
    received = []
    engine.subscribe(received.append)
    engine.create_rule(make_rule(condition=Condition.THRESHOLD, value=100))
    source.set(Metric.STATUS_5XX, 500)

    engine.scheduler.poll_seconds = 0.01
    engine.scheduler.start()
    assert _wait_for(lambda: received)
    assert engine.status()["scheduler_running"] is True
    engine.shutdown()
    assert engine.status()["scheduler_running"] is False
