"""Alert history: append, list, acknowledge, clear."""
import logging

from models.alerts import Alert, utcnow
from models.errors import NotFound

logger = logging.getLogger("cfalerts.alerts.history")


class AlertHistory:
    def __init__(self, db, max_alerts=100, clock=utcnow):
        self.db = db
        self.max_alerts = max_alerts
        self.clock = clock

    def append(self, alert):
        self.db.insert_alert(alert, max_rows=self.max_alerts)
        logger.debug(f"Appended alert {alert.id} for rule {alert.rule_id}")

    def list(self, limit=None):
        """Alerts, most recent first."""
        return [Alert.from_dict(r) for r in self.db.get_recent_alerts(limit=limit)]

    def get(self, alert_id):
        row = self.db.get_alert(alert_id)
        if row is None:
            raise NotFound("alert", alert_id)
        return Alert.from_dict(row)

    def acknowledge(self, alert_id, at=None):
        """Mark an alert acknowledged. Repeat calls keep the first timestamp."""
        if self.db.acknowledge_alert(alert_id, at or self.clock()):
            logger.info(f"Acknowledged alert {alert_id}")
        return self.get(alert_id)

    def clear(self):
        removed = self.db.clear_alerts()
        logger.info(f"Cleared {removed} alert(s) from history")
        return removed

    def latest_for_rule(self, rule_id):
        row = self.db.get_latest_alert_for_rule(rule_id)
        return Alert.from_dict(row) if row else None

    def stats(self):
        by_severity = self.db.get_alert_stats()
        return {
            "total": sum(v["count"] for v in by_severity.values()),
            "unacknowledged": sum(v["open"] for v in by_severity.values()),
            "by_severity": {sev: v["count"] for sev, v in by_severity.items()},
        }
