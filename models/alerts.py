"""Dataclasses for alert rules, metric samples and alert records."""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional

from models.enums import Metric, Condition, Severity
from models.errors import InvalidRule


def utcnow():
    return datetime.now(timezone.utc)


def _parse_enum(enum_cls, value, field_name):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise InvalidRule(f"Unknown {field_name} {value!r} (expected one of: {allowed})", field=field_name)


def _parse_number(value, field_name):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidRule(f"{field_name} must be a number, got {value!r}", field=field_name)
    return float(value)


def _parse_whole(value, field_name):
    """Whole number of minutes; 5.0 is accepted, 5.5 and "5" are not."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRule(f"{field_name} must be a whole number, got {value!r}", field=field_name)
    return value


def _parse_flag(value, field_name):
    # sqlite stores booleans as 0/1
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise InvalidRule(f"{field_name} must be true or false, got {value!r}", field=field_name)


def _parse_time(value):
    if value is None or isinstance(value, datetime):
        return value
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _format_time(value):
    return value.isoformat() if value is not None else None


@dataclass
class AlertRule:
    id: str = ""
    name: str = ""
    metric: Metric = Metric.STATUS_5XX
    condition: Condition = Condition.INCREASE
    value: float = 0.0
    time_window_minutes: int = 5
    enabled: bool = True
    zone_id: Optional[str] = None
    cooldown_minutes: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def window_seconds(self):
        """Lookback for the baseline; zero for threshold rules."""
        if not self.condition.windowed:
            return 0
        return self.time_window_minutes * 60

    def to_dict(self):
        d = asdict(self)
        d["metric"] = self.metric.value
        d["condition"] = self.condition.value
        d["created_at"] = _format_time(self.created_at)
        d["updated_at"] = _format_time(self.updated_at)
        return d

    @classmethod
    def from_dict(cls, d):
        """Build a rule from loosely-typed input (YAML, JSON, DB rows).

        Unknown metric/condition names raise InvalidRule instead of falling
        back to a default.
        """
        value = _parse_number(d.get("value", 0.0), "value")
        window = d.get("time_window_minutes", d.get("time_window"))
        window = _parse_whole(window, "time_window_minutes") if window is not None else 5
        cooldown = d.get("cooldown_minutes")
        cooldown = _parse_whole(cooldown, "cooldown_minutes") if cooldown is not None else None
        return cls(
            id=d.get("id") or "",
            name=d.get("name") or "",
            metric=_parse_enum(Metric, d.get("metric", Metric.STATUS_5XX), "metric"),
            condition=_parse_enum(Condition, d.get("condition", Condition.INCREASE), "condition"),
            value=value,
            time_window_minutes=window,
            enabled=_parse_flag(d.get("enabled", True), "enabled"),
            zone_id=d.get("zone_id") or None,
            cooldown_minutes=cooldown,
            created_at=_parse_time(d.get("created_at")),
            updated_at=_parse_time(d.get("updated_at")),
        )


@dataclass(frozen=True)
class MetricSample:
    metric: Metric
    zone_id: Optional[str]
    value: float
    sampled_at: datetime


@dataclass
class Alert:
    id: str = ""
    rule_id: str = ""
    rule_name: str = ""
    metric: Metric = Metric.STATUS_5XX
    condition: Condition = Condition.THRESHOLD
    severity: Severity = Severity.LOW
    observed_value: float = 0.0
    threshold: float = 0.0
    message: str = ""
    triggered_at: datetime = field(default_factory=utcnow)
    acknowledged_at: Optional[datetime] = None

    @property
    def acknowledged(self):
        return self.acknowledged_at is not None

    def to_dict(self):
        d = asdict(self)
        d["metric"] = self.metric.value
        d["condition"] = self.condition.value
        d["severity"] = self.severity.value
        d["triggered_at"] = _format_time(self.triggered_at)
        d["acknowledged_at"] = _format_time(self.acknowledged_at)
        d["acknowledged"] = self.acknowledged
        return d

    @classmethod
    def from_dict(cls, d):
        return cls(
            id=d["id"],
            rule_id=d["rule_id"],
            rule_name=d.get("rule_name", ""),
            metric=Metric(d["metric"]),
            condition=Condition(d["condition"]),
            severity=Severity(d["severity"]),
            observed_value=d.get("observed_value") or 0.0,
            threshold=d.get("threshold") or 0.0,
            message=d.get("message") or "",
            triggered_at=_parse_time(d["triggered_at"]),
            acknowledged_at=_parse_time(d.get("acknowledged_at")),
        )
