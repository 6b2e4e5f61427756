"""Tests for metric sources, the HTTP client and the rate limiter."""
import time
import pytest
import requests
from datetime import timedelta
from unittest.mock import patch, MagicMock

from models.enums import Metric
from monitor.sources import StaticMetricSource, HTTPMetricSource, MetricSource, build_source
from utils.http_client import HTTPClient, APIError
from utils.rate_limiter import RateLimiter

LOOKBACK = timedelta(minutes=1)


def _response(status=200, payload=None, headers=None):
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers or {}
    resp.text = str(payload)
    resp.json.return_value = payload
    return resp


class TestStaticMetricSource:
    def test_is_a_metric_source(self):
        assert isinstance(StaticMetricSource(), MetricSource)

    def test_set_and_query(self):
        src = StaticMetricSource({"status5xx": 12})
        assert src.query(Metric.STATUS_5XX, None, LOOKBACK) == 12.0
        assert src.calls == [(Metric.STATUS_5XX, None)]

    def test_zone_falls_back_to_unscoped(self):
        src = StaticMetricSource()
        src.set(Metric.STATUS_5XX, 1)
        src.set(Metric.STATUS_5XX, 9, zone_id="zone-a")
        assert src.query(Metric.STATUS_5XX, "zone-a", LOOKBACK) == 9
        assert src.query(Metric.STATUS_5XX, "zone-b", LOOKBACK) == 1

    def test_missing_value_raises(self):
        with pytest.raises(APIError):
            StaticMetricSource().query(Metric.STATUS_2XX, None, LOOKBACK)

    def test_fail_then_set_recovers(self):
        src = StaticMetricSource()
        src.fail(Metric.STATUS_5XX, TimeoutError("slow"))
        with pytest.raises(TimeoutError):
            src.query(Metric.STATUS_5XX, None, LOOKBACK)
        src.set(Metric.STATUS_5XX, 3)
        assert src.query(Metric.STATUS_5XX, None, LOOKBACK) == 3


class TestHTTPMetricSource:
    def test_query_builds_request(self):
        src = HTTPMetricSource("http://metrics.local/", api_token="tok", rate_limit=600)
        with patch.object(src.client.session, "request", return_value=_response(payload={"value": 42})) as req:
            value = src.query(Metric.STATUS_4XX, "zone-a", timedelta(minutes=5))
        assert value == 42.0
        method, url = req.call_args[0]
        assert method == "GET"
        assert url == "http://metrics.local/metrics/status4xx"
        assert req.call_args[1]["params"] == {"minutes": 5, "zone": "zone-a"}
        assert src.client.session.headers["Authorization"] == "Bearer tok"

    @pytest.mark.parametrize("payload", [{"count": 1}, [1, 2], {"value": "lots"}, {"value": None}])
    def test_malformed_payload_raises(self, payload):
        src = HTTPMetricSource("http://metrics.local", rate_limit=600)
        with patch.object(src.client.session, "request", return_value=_response(payload=payload)):
            with pytest.raises(APIError):
                src.query(Metric.STATUS_5XX, None, LOOKBACK)


class TestHTTPClient:
    def test_non_retryable_status_raises_immediately(self):
        client = HTTPClient("http://api.local", max_retries=3)
        with patch.object(client.session, "request", return_value=_response(status=404)) as req:
            with pytest.raises(APIError) as exc:
                client.get("/x")
        assert exc.value.status_code == 404
        assert req.call_count == 1

    @patch("utils.http_client.time.sleep")
    def test_retries_then_succeeds(self, mock_sleep):
        client = HTTPClient("http://api.local", max_retries=2, timeout=5)
        responses = [_response(status=503), _response(payload={"value": 1})]
        with patch.object(client.session, "request", side_effect=responses) as req:
            assert client.get("/x") == {"value": 1}
        assert req.call_count == 2
        mock_sleep.assert_called_once()

    @patch("utils.http_client.time.sleep")
    def test_connection_errors_exhaust_retries(self, mock_sleep):
        client = HTTPClient("http://api.local", max_retries=1, timeout=5)
        err = requests.exceptions.ConnectionError("refused")
        with patch.object(client.session, "request", side_effect=err) as req:
            with pytest.raises(requests.exceptions.ConnectionError):
                client.get("/x")
        assert req.call_count == 2

    def test_non_json_response(self):
        client = HTTPClient("http://api.local")
        resp = _response()
        resp.json.side_effect = ValueError("not json")
        with patch.object(client.session, "request", return_value=resp):
            with pytest.raises(APIError):
                client.get("/x")

    def test_local_rate_limit_fails_fast(self):
        limiter = RateLimiter(1)
        limiter.acquire()
        client = HTTPClient("http://api.local", rate_limiter=limiter, timeout=0.5)
        with patch.object(client.session, "request") as req:
            with pytest.raises(APIError) as exc:
                client.get("/x")
        assert exc.value.status_code == 429
        req.assert_not_called()


class TestRateLimiter:
    def test_rejects_non_positive_rate(self):
        with pytest.raises(ValueError):
            RateLimiter(0)

    def test_burst_up_to_capacity(self):
        limiter = RateLimiter(5)
        assert all(limiter.acquire(timeout=0) for _ in range(5))
        assert limiter.acquire(timeout=0) is False

    def test_acquire_waits_when_within_timeout(self):
        limiter = RateLimiter(600)  # one token per 0.1s
        limiter.tokens = 0
        start = time.monotonic()
        assert limiter.acquire(timeout=1) is True
        assert time.monotonic() - start < 1


class TestBuildSource:
    def test_static(self):
        src = build_source({"source": {"type": "static", "static_values": {"status5xx": 4}}})
        assert src.query(Metric.STATUS_5XX, None, LOOKBACK) == 4

    def test_http(self):
        src = build_source({"source": {"type": "http", "base_url": "http://x"},
                            "monitor": {"query_timeout": 3}})
        assert isinstance(src, HTTPMetricSource)
        assert src.client.timeout == 3

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            build_source({"source": {"type": "carrier-pigeon"}})
