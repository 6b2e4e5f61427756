"""Rule evaluation: percent change, firing decision, severity and message.

Everything here is pure. The engine supplies the current value and the
baseline from sample history; nothing is read from storage or the clock.
"""
from dataclasses import dataclass
from typing import Optional

from models.enums import Condition, Severity
from utils.formatters import format_number, format_count

DEFAULT_MEDIUM_RATIO = 1.5
DEFAULT_HIGH_RATIO = 3.0


@dataclass(frozen=True)
class Evaluation:
    fired: bool
    current: float
    baseline: Optional[float] = None
    # Current value for threshold rules, percent change for windowed rules.
    observed: Optional[float] = None

    @property
    def evaluated(self):
        return self.observed is not None


def percent_change(current, baseline):
    """Percent change from baseline; a zero baseline maps to +100% or 0%."""
    if baseline == 0:
        return 100.0 if current > 0 else 0.0
    return (current - baseline) / baseline * 100


def evaluate(rule, current, baseline=None):
    """Decide whether `rule` fires for this sample.

    Windowed rules without a baseline are not evaluated and never fire.
    """
    if rule.condition is Condition.THRESHOLD:
        return Evaluation(fired=current >= rule.value, current=current, observed=current)

    if baseline is None:
        return Evaluation(fired=False, current=current)

    change = percent_change(current, baseline)
    if rule.condition is Condition.INCREASE:
        fired = change >= rule.value
    else:
        fired = change <= -rule.value
    return Evaluation(fired=fired, current=current, baseline=baseline, observed=change)


def classify_severity(rule, observed, medium_ratio=DEFAULT_MEDIUM_RATIO, high_ratio=DEFAULT_HIGH_RATIO):
    """Bucket how far the observation overshoots the rule's value.

    ratio < medium_ratio → low, ≤ high_ratio → medium, above → high.
    """
    magnitude = abs(observed)
    if rule.value == 0:
        return Severity.HIGH if magnitude > 0 else Severity.LOW
    ratio = magnitude / rule.value
    if ratio < medium_ratio:
        return Severity.LOW
    if ratio <= high_ratio:
        return Severity.MEDIUM
    return Severity.HIGH


def render_message(rule, evaluation):
    """Human-readable alert text, frozen into the alert at emission."""
    metric = rule.metric.label
    if rule.condition is Condition.THRESHOLD:
        return (f"{rule.name}: {metric} reached {format_count(evaluation.current)} "
                f"(threshold {format_number(rule.value)})")

    verb = "increased" if rule.condition is Condition.INCREASE else "decreased"
    return (f"{rule.name}: {metric} {verb} {abs(evaluation.observed):.1f}% "
            f"in {rule.time_window_minutes} min "
            f"({format_count(evaluation.baseline)} → {format_count(evaluation.current)}, "
            f"threshold {format_number(rule.value)}%)")
