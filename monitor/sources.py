"""Metric sources queried by the alert engine.

A source answers `query(metric, zone_id, lookback)` with one number or
raises. The engine applies its own timeout and treats any exception as the
metric being unavailable for that tick.
"""
import logging
import threading
from typing import Protocol, runtime_checkable

from models.enums import Metric
from utils.http_client import HTTPClient, APIError
from utils.rate_limiter import RateLimiter

logger = logging.getLogger("cfalerts.monitor.sources")


@runtime_checkable
class MetricSource(Protocol):
    def query(self, metric, zone_id, lookback) -> float: ...


class StaticMetricSource:
    """In-memory values, set by the caller. Used for simulation and tests.

    Values are keyed by (metric, zone_id); a zone without its own value
    falls back to the unscoped value.
    """

    def __init__(self, values=None):
        self._values = {}
        self._errors = {}
        self._lock = threading.Lock()
        self.calls = []
        for metric, value in (values or {}).items():
            self.set(Metric(metric), value)

    def set(self, metric, value, zone_id=None):
        with self._lock:
            self._values[(metric, zone_id)] = float(value)
            self._errors.pop((metric, zone_id), None)

    def fail(self, metric, error=None, zone_id=None):
        """Make subsequent queries for this metric raise."""
        with self._lock:
            self._errors[(metric, zone_id)] = error or APIError(f"{metric.value} unavailable")

    def query(self, metric, zone_id, lookback):
        with self._lock:
            self.calls.append((metric, zone_id))
            for key in ((metric, zone_id), (metric, None)):
                if key in self._errors:
                    raise self._errors[key]
                if key in self._values:
                    return self._values[key]
        raise APIError(f"No value for {metric.value}")


class HTTPMetricSource:
    """Reads metric values from a JSON analytics endpoint.

    GET {base_url}/metrics/{metric}?zone=<zone>&minutes=<lookback>
    → {"value": <number>}
    """

    def __init__(self, base_url, api_token=None, rate_limit=60, timeout=5, max_retries=2):
        self.client = HTTPClient(
            base_url=base_url,
            rate_limiter=RateLimiter(rate_limit),
            timeout=timeout,
            max_retries=max_retries,
            api_token=api_token,
        )

    def query(self, metric, zone_id, lookback):
        params = {"minutes": max(1, int(lookback.total_seconds() // 60))}
        if zone_id:
            params["zone"] = zone_id
        data = self.client.get(f"/metrics/{metric.value}", params=params)
        if not isinstance(data, dict) or "value" not in data:
            raise APIError(f"Malformed metric payload for {metric.value}", response_body=str(data)[:200])
        try:
            return float(data["value"])
        except (TypeError, ValueError):
            raise APIError(f"Non-numeric value for {metric.value}: {data['value']!r}")

    def close(self):
        self.client.close()


def build_source(config):
    """Create the metric source named by config['source']['type']."""
    src = config.get("source", {})
    kind = src.get("type", "http")
    if kind == "static":
        return StaticMetricSource(src.get("static_values") or {})
    if kind == "http":
        return HTTPMetricSource(
            base_url=src["base_url"],
            api_token=src.get("api_token"),
            rate_limit=src.get("rate_limit", 60),
            timeout=config.get("monitor", {}).get("query_timeout", 5),
            max_retries=src.get("max_retries", 2),
        )
    raise ValueError(f"Unknown metric source type: {kind}")
