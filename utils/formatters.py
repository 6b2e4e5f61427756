"""Formatting utilities for display."""
from datetime import datetime, timezone


def format_pct(value, decimals=1, with_color=False):
    """Format percentage with sign. Optionally include rich color markup."""
    if value is None:
        return "N/A"
    value = float(value)
    sign = "+" if value >= 0 else ""
    formatted = f"{sign}{value:.{decimals}f}%"
    if with_color:
        color = "red" if value >= 0 else "green"
        return f"[{color}]{formatted}[/{color}]"
    return formatted


def format_count(n):
    """Format request counts compactly: 1200000 → '1.2M'."""
    if n is None:
        return "N/A"
    n = float(n)
    if abs(n) >= 1_000_000_000:
        return f"{n / 1_000_000_000:.1f}B"
    elif abs(n) >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    elif abs(n) >= 1_000:
        return f"{n / 1_000:.1f}K"
    if n == int(n):
        return str(int(n))
    return f"{n:.2f}"


def format_number(value):
    """Trim trailing zeros: 50.0 → '50', 12.5 → '12.5'."""
    value = float(value)
    if value == int(value):
        return str(int(value))
    return f"{value:g}"


def format_condition(rule):
    """One-line rule condition, e.g. '5xx errors increase ≥ 50% in 5 min'."""
    metric = rule.metric.label
    if not rule.condition.windowed:
        return f"{metric} ≥ {format_number(rule.value)}"
    return (f"{metric} {rule.condition.value} ≥ {format_number(rule.value)}% "
            f"in {rule.time_window_minutes} min")


def format_timestamp(ts):
    """Format a datetime to human-readable string."""
    if ts is None:
        return "N/A"
    if isinstance(ts, str):
        return ts
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def time_ago(dt, now=None):
    """Return human-readable time since dt. E.g., '3h ago', '2d ago'."""
    if dt is None:
        return "N/A"
    now = now or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    seconds = max(0, int((now - dt).total_seconds()))

    if seconds < 60:
        return f"{seconds}s ago"
    elif seconds < 3600:
        return f"{seconds // 60}m ago"
    elif seconds < 86400:
        return f"{seconds // 3600}h ago"
    else:
        return f"{seconds // 86400}d ago"
