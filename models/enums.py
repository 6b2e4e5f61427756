"""Enums for metrics, conditions, severity, and rule state."""
from enum import Enum


class Metric(str, Enum):
    STATUS_5XX = "status5xx"
    STATUS_4XX = "status4xx"
    STATUS_2XX = "status2xx"
    STATUS_3XX = "status3xx"

    @property
    def label(self):
        return _METRIC_LABELS[self]


_METRIC_LABELS = {
    Metric.STATUS_5XX: "5xx errors",
    Metric.STATUS_4XX: "4xx errors",
    Metric.STATUS_2XX: "2xx responses",
    Metric.STATUS_3XX: "3xx redirects",
}


class Condition(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"
    THRESHOLD = "threshold"

    @property
    def windowed(self):
        """Increase/decrease compare against a baseline from the time window."""
        return self is not Condition.THRESHOLD

    @property
    def label(self):
        return {
            Condition.INCREASE: "Increase",
            Condition.DECREASE: "Decrease",
            Condition.THRESHOLD: "Above threshold",
        }[self]


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RuleState(str, Enum):
    NORMAL = "normal"
    FIRING = "firing"
