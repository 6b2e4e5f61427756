"""Data models."""
from models.enums import Metric, Condition, Severity, RuleState
from models.alerts import AlertRule, Alert, MetricSample
from models.errors import AlertMonitorError, InvalidRule, NotFound, MetricUnavailable, PersistenceFailure
