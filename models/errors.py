"""Error taxonomy for the alert engine."""


class AlertMonitorError(Exception):
    """Base class for alert engine errors."""


class InvalidRule(AlertMonitorError, ValueError):
    """Rule creation or update violates a rule invariant."""
    def __init__(self, message, field=None):
        super().__init__(message)
        self.field = field


class NotFound(AlertMonitorError, KeyError):
    """Referenced rule or alert id does not exist."""
    def __init__(self, kind, item_id):
        super().__init__(f"{kind} {item_id!r} not found")
        self.kind = kind
        self.item_id = item_id

    def __str__(self):
        # KeyError.__str__ would repr() the message
        return self.args[0]


class MetricUnavailable(AlertMonitorError):
    """Metric source failed or timed out for one tick."""
    def __init__(self, metric, zone_id=None, reason=None):
        scope = f" (zone {zone_id})" if zone_id else ""
        super().__init__(f"{metric}{scope} unavailable: {reason}")
        self.metric = metric
        self.zone_id = zone_id
        self.reason = reason


class PersistenceFailure(AlertMonitorError):
    """Rule or history store could not complete a write."""
