"""Alert evaluation engine.

Owns the rule store, sample history, per-rule state and alert history, and
drives them from a background scheduler. One engine is constructed by the
host application and passed to whatever needs it (CLI, web API).
"""
import math
import uuid
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait, FIRST_COMPLETED
from datetime import timedelta

from alerts.channels import CallbackChannel
from alerts.evaluator import evaluate, classify_severity, render_message, DEFAULT_MEDIUM_RATIO, DEFAULT_HIGH_RATIO
from alerts.history import AlertHistory
from alerts.rules_manager import RulesManager
from alerts.state import AlertStateMachine
from models.alerts import Alert, utcnow
from models.errors import MetricUnavailable, PersistenceFailure
from monitor.history import SampleHistory
from monitor.scheduler import MonitorScheduler

logger = logging.getLogger("cfalerts.alerts.engine")

# How often a waiting tick checks for shutdown
STOP_POLL_SECONDS = 0.1


class AlertEngine:
    def __init__(self, db, source, config=None, channels=None, clock=utcnow):
        cfg = config or {}
        monitor_cfg = cfg.get("monitor", {})
        alerts_cfg = cfg.get("alerts", {})
        severity_cfg = alerts_cfg.get("severity", {})

        self.source = source
        self.channels = list(channels or [])
        self.clock = clock

        self.tick_interval = monitor_cfg.get("tick_interval", 60)
        self.query_timeout = monitor_cfg.get("query_timeout", 5)
        self.lookback = timedelta(seconds=monitor_cfg.get("lookback_seconds", self.tick_interval))
        self.max_workers = monitor_cfg.get("max_workers", 4)
        self.cooldown_minutes = alerts_cfg.get("cooldown_minutes", 10)
        self.medium_ratio = severity_cfg.get("medium_ratio", DEFAULT_MEDIUM_RATIO)
        self.high_ratio = severity_cfg.get("high_ratio", DEFAULT_HIGH_RATIO)

        self.rules = RulesManager(db, clock=clock)
        self.history = AlertHistory(db, max_alerts=cfg.get("history", {}).get("max_alerts", 100), clock=clock)
        self.samples = SampleHistory(sample_interval_seconds=self.tick_interval)
        self.states = AlertStateMachine()
        self.scheduler = MonitorScheduler(self.tick, interval_seconds=self.tick_interval)

        self._lock = threading.RLock()
        self._tick_lock = threading.Lock()
        self._executor = None
        # Metric queries still running from an earlier tick, by (metric, zone_id)
        self._inflight = {}
        self._stopping = threading.Event()
        self._initialized = False
        # Rules updated or deleted since the running tick took its snapshot
        self._changed = set()
        self.last_tick_at = None

    # ── Lifecycle ────────────────────────────────────────

    @property
    def initialized(self):
        return self._initialized

    def initialize(self, start_scheduler=True):
        """Load rules and history, rebuild per-rule state, start ticking.

        Calling again while initialized is a no-op.
        """
        with self._lock:
            if self._initialized:
                logger.debug("Engine already initialized")
                return
            rules = self.rules.list()
            latest = {}
            for rule in rules:
                alert = self.history.latest_for_rule(rule.id)
                if alert is not None:
                    latest[rule.id] = alert
            self.states.restore(rules, latest, self.clock(), self.cooldown_minutes)
            self._update_retention([r for r in rules if r.enabled])
            self._stopping.clear()
            self._initialized = True
            logger.info(f"Engine initialized with {len(rules)} rule(s)")

        if start_scheduler:
            self.scheduler.start()

    def shutdown(self):
        """Stop ticking and abandon in-flight metric queries. Nothing to flush."""
        self._stopping.set()
        self.scheduler.stop()
        with self._lock:
            if self._executor is not None:
                self._executor.shutdown(wait=False, cancel_futures=True)
                self._executor = None
            self._inflight.clear()
            self._initialized = False
        logger.info("Engine shut down")

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, *args):
        self.shutdown()

    # ── Evaluation ───────────────────────────────────────

    def tick(self):
        """Run one evaluation pass over all enabled rules. Returns emitted alerts."""
        if not self._initialized:
            raise RuntimeError("initialize() must be called before evaluation")
        with self._tick_lock:
            emitted = self._run_tick()
        self._dispatch(emitted)
        return emitted

    def _run_tick(self):
        with self._lock:
            self._changed.clear()
        try:
            rules = self.rules.get_enabled_rules()
        except PersistenceFailure as e:
            logger.error(f"Could not load rules, skipping tick: {e}")
            return []
        if self._stopping.is_set():
            return []

        values = self._sample(rules)
        now = self.clock()
        emitted = []

        with self._lock:
            if self._stopping.is_set():
                logger.info("Shutdown requested, abandoning tick")
                return []
            for rule in rules:
                if rule.id in self._changed:
                    logger.debug(f"Rule {rule.id} changed mid-tick, skipping")
                    continue
                value = values.get((rule.metric, rule.zone_id))
                if isinstance(value, MetricUnavailable):
                    logger.debug(f"Rule {rule.id} skipped: {value}")
                    continue
                alert = self._evaluate_rule(rule, value, now)
                if alert is not None:
                    emitted.append(alert)

            # Record after evaluating so a rule never uses this tick's value as its baseline
            for (metric, zone_id), value in values.items():
                if not isinstance(value, MetricUnavailable):
                    self.samples.record(metric, zone_id, value, now)
            self._update_retention(rules)
            self.samples.prune(now)
            self.last_tick_at = now

        if emitted:
            logger.info(f"Tick emitted {len(emitted)} alert(s)")
        return emitted

    def _sample(self, rules):
        """Query each distinct (metric, zone) once, concurrently, with a per-query timeout.

        A key whose query from an earlier tick is still running is not queried
        again, so one hung backend holds at most one worker.
        Returns {(metric, zone_id): float | MetricUnavailable}.
        """
        keys = sorted({(r.metric, r.zone_id) for r in rules}, key=lambda k: (k[0].value, k[1] or ""))
        if not keys:
            return {}

        executor = self._get_executor()
        results = {}
        futures = {}
        with self._lock:
            for key in keys:
                previous = self._inflight.get(key)
                if previous is not None and not previous.done():
                    metric, zone_id = key
                    logger.warning(f"Metric query for {metric.value} still running from an earlier tick")
                    results[key] = MetricUnavailable(metric.value, zone_id, "previous query still running")
                    continue
                fut = executor.submit(self.source.query, key[0], key[1], self.lookback)
                self._inflight[key] = fut
                futures[fut] = key

        pending = set(futures)
        deadline = time.monotonic() + self.query_timeout
        while pending and not self._stopping.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            _, pending = wait(pending, timeout=min(remaining, STOP_POLL_SECONDS), return_when=FIRST_COMPLETED)

        for fut, (metric, zone_id) in futures.items():
            if fut in pending:
                fut.cancel()
                logger.warning(f"Metric query for {metric.value} timed out after {self.query_timeout}s")
                results[(metric, zone_id)] = MetricUnavailable(metric.value, zone_id, "timed out")
                continue
            try:
                value = float(fut.result())
                if not math.isfinite(value):
                    raise ValueError(f"non-finite value {value}")
                results[(metric, zone_id)] = value
            except Exception as e:
                logger.warning(f"Metric query failed for {metric.value}: {e}")
                results[(metric, zone_id)] = MetricUnavailable(metric.value, zone_id, e)

        with self._lock:
            for fut, key in futures.items():
                if fut.done() and self._inflight.get(key) is fut:
                    del self._inflight[key]
        return results

    def _get_executor(self):
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self.max_workers,
                                                    thread_name_prefix="metric-query")
            return self._executor

    def _baseline(self, rule, now):
        if not rule.condition.windowed:
            return None
        at = now - timedelta(minutes=rule.time_window_minutes)
        return self.samples.value_at(rule.metric, rule.zone_id, at)

    def _evaluate_rule(self, rule, value, now):
        """Evaluate one rule and apply its state transition. Returns a new Alert or None."""
        result = evaluate(rule, value, self._baseline(rule, now))
        if not result.evaluated:
            logger.debug(f"Rule {rule.id}: no baseline {rule.time_window_minutes} min back yet")
            return None

        if not self.states.apply(rule.id, result.fired):
            return None

        alert = Alert(
            id=f"alert_{uuid.uuid4().hex[:12]}",
            rule_id=rule.id,
            rule_name=rule.name,
            metric=rule.metric,
            condition=rule.condition,
            severity=classify_severity(rule, result.observed, self.medium_ratio, self.high_ratio),
            observed_value=result.observed,
            threshold=rule.value,
            message=render_message(rule, result),
            triggered_at=now,
        )
        try:
            self.history.append(alert)
        except PersistenceFailure as e:
            # Stay Normal so the next tick retries the transition
            logger.error(f"Could not record alert for rule {rule.id}: {e}")
            self.states.reset(rule.id)
            return None
        return alert

    def _update_retention(self, enabled_rules):
        retention = {}
        for rule in enabled_rules:
            if rule.window_seconds:
                retention[rule.metric] = max(retention.get(rule.metric, 0), rule.window_seconds)
        self.samples.set_retention(retention)

    def _dispatch(self, alerts):
        for alert in alerts:
            for channel in self.channels:
                try:
                    channel.send(alert)
                except Exception as e:
                    logger.warning(f"Channel dispatch error: {e}")

    def subscribe(self, callback):
        """Call `callback(alert)` for every alert emitted from now on."""
        channel = CallbackChannel(callback)
        self.channels.append(channel)
        return channel

    def test_rules(self):
        """Evaluate all rules against fresh values without touching state or history.

        Disabled rules are listed but never queried.
        """
        rules = self.rules.list()
        values = self._sample([r for r in rules if r.enabled])
        now = self.clock()
        results = []
        for rule in rules:
            value = values.get((rule.metric, rule.zone_id))
            available = isinstance(value, float)
            result = evaluate(rule, value, self._baseline(rule, now)) if available else None
            results.append({
                "rule_id": rule.id,
                "name": rule.name,
                "metric": rule.metric.value,
                "condition": rule.condition.value,
                "value": rule.value,
                "current_value": value if available else None,
                "observed": result.observed if result else None,
                "would_fire": bool(result and result.fired),
                "state": self.states.state(rule.id).value,
                "enabled": rule.enabled,
            })
        return results

    # ── Rules ────────────────────────────────────────────

    def create_rule(self, rule):
        return self.rules.create(rule)

    def update_rule(self, rule_id, changes=None, **fields):
        with self._lock:
            updated = self.rules.update(rule_id, changes, **fields)
            self._changed.add(rule_id)
            if not updated.enabled:
                self.states.reset(rule_id)
            return updated

    def delete_rule(self, rule_id):
        with self._lock:
            self.rules.delete(rule_id)
            self._changed.add(rule_id)
            self.states.discard(rule_id)

    def get_rule(self, rule_id):
        return self.rules.get(rule_id)

    def list_rules(self):
        return self.rules.list()

    def rule_state(self, rule_id):
        return self.states.state(rule_id)

    # ── Alerts ───────────────────────────────────────────

    def list_alerts(self, limit=None):
        return self.history.list(limit=limit)

    def acknowledge(self, alert_id):
        return self.history.acknowledge(alert_id)

    def clear_history(self):
        return self.history.clear()

    def status(self):
        rules = self.rules.list()
        return {
            "initialized": self._initialized,
            "scheduler_running": self.scheduler.running,
            "tick_interval": self.tick_interval,
            "last_tick_at": self.last_tick_at.isoformat() if self.last_tick_at else None,
            "rules": len(rules),
            "enabled_rules": sum(1 for r in rules if r.enabled),
            "firing": self.states.firing(),
            "samples": self.samples.size(),
            "alerts": self.history.stats(),
        }
