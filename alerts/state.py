"""Per-rule Normal/Firing state machine."""
import logging
import threading
from datetime import timedelta

from models.enums import RuleState

logger = logging.getLogger("cfalerts.alerts.state")


class AlertStateMachine:
    """Tracks which rules are firing. Only Normal→Firing emits an alert.

    State is transient: `restore()` rebuilds it from the latest alert per
    rule instead of persisting a separate flag.
    """

    def __init__(self):
        self._states = {}
        self._lock = threading.Lock()

    def state(self, rule_id):
        with self._lock:
            return self._states.get(rule_id, RuleState.NORMAL)

    def apply(self, rule_id, fired):
        """Feed one evaluation result. Returns True on a Normal→Firing transition."""
        with self._lock:
            previous = self._states.get(rule_id, RuleState.NORMAL)
            if fired:
                self._states[rule_id] = RuleState.FIRING
                transitioned = previous is RuleState.NORMAL
            else:
                self._states.pop(rule_id, None)
                transitioned = False

        if transitioned:
            logger.info(f"Rule {rule_id}: normal → firing")
        elif previous is RuleState.FIRING and not fired:
            logger.info(f"Rule {rule_id}: firing → normal")
        return transitioned

    def reset(self, rule_id):
        """Force Normal without emitting (rule disabled)."""
        with self._lock:
            self._states.pop(rule_id, None)

    def discard(self, rule_id):
        """Forget a deleted rule."""
        self.reset(rule_id)

    def firing(self):
        with self._lock:
            return sorted(rid for rid, s in self._states.items() if s is RuleState.FIRING)

    def restore(self, rules, latest_alerts, now, default_cooldown_minutes):
        """Rebuild state at startup.

        A rule resumes Firing when its most recent alert is unacknowledged
        and younger than the rule's cooldown window.
        `latest_alerts` maps rule_id to that rule's most recent Alert.
        """
        restored = {}
        for rule in rules:
            alert = latest_alerts.get(rule.id)
            if alert is None or alert.acknowledged or not rule.enabled:
                continue
            cooldown = rule.cooldown_minutes
            if cooldown is None:
                cooldown = default_cooldown_minutes
            if now - alert.triggered_at < timedelta(minutes=cooldown):
                restored[rule.id] = RuleState.FIRING

        with self._lock:
            self._states = restored
        if restored:
            logger.info(f"Resumed firing state for {len(restored)} rule(s): {', '.join(sorted(restored))}")
        return sorted(restored)
