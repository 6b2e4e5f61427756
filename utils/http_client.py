"""HTTP client with retries, rate limiting and a per-call deadline."""
import time
import logging
import requests

logger = logging.getLogger("cfalerts.http")


class APIError(Exception):
    """API request error with status code and response body."""
    def __init__(self, message, status_code=None, response_body=None, source=None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.source = source


class HTTPClient:
    """JSON-over-HTTP client with retry logic, rate limiting and deadlines.

    Every call is bounded by `timeout` seconds in total, retries and
    rate-limit waits included, so a caller's per-query budget is never
    exceeded by backoff.
    """

    RETRYABLE_STATUS = {429, 500, 502, 503, 504}
    NON_RETRYABLE_STATUS = {400, 401, 403, 404}

    def __init__(self, base_url, rate_limiter=None, timeout=5, max_retries=2, api_token=None):
        self.base_url = base_url.rstrip("/")
        self.rate_limiter = rate_limiter
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "CFAlertMonitor/1.0", "Accept": "application/json"})
        if api_token:
            self.session.headers["Authorization"] = f"Bearer {api_token}"

    def get(self, path="", params=None, timeout=None):
        """Make a GET request with retry, bounded by timeout seconds overall."""
        return self._request("GET", path, params, timeout or self.timeout)

    def close(self):
        self.session.close()

    def _request(self, method, path, params, budget):
        url = f"{self.base_url}/{path.lstrip('/')}" if path else self.base_url
        deadline = time.monotonic() + budget

        last_error = None
        for attempt in range(self.max_retries + 1):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break

            if self.rate_limiter and not self.rate_limiter.acquire(timeout=remaining):
                raise APIError(f"Rate limited locally for {url}", status_code=429)

            try:
                start = time.time()
                resp = self.session.request(method, url, params=params,
                                            timeout=max(0.1, deadline - time.monotonic()))
                latency = int((time.time() - start) * 1000)
                logger.debug(f"{method} {url} → {resp.status_code} ({latency}ms)")

                if resp.status_code == 200:
                    try:
                        return resp.json()
                    except ValueError:
                        raise APIError(f"Non-JSON response from {url}",
                                       status_code=200, response_body=resp.text)

                if resp.status_code in self.NON_RETRYABLE_STATUS:
                    raise APIError(
                        f"HTTP {resp.status_code} from {url}",
                        status_code=resp.status_code,
                        response_body=resp.text,
                    )

                if resp.status_code in self.RETRYABLE_STATUS:
                    retry_after = resp.headers.get("Retry-After")
                    wait = float(retry_after) if retry_after else min(2 ** attempt * 0.5, 10)
                    wait = min(wait, max(0.0, deadline - time.monotonic()))
                    logger.warning(f"Retryable {resp.status_code} from {url}, waiting {wait:.1f}s (attempt {attempt + 1})")
                    last_error = APIError(f"HTTP {resp.status_code}", status_code=resp.status_code)
                    time.sleep(wait)
                    continue

                raise APIError(f"Unexpected HTTP {resp.status_code}", status_code=resp.status_code)

            except requests.exceptions.RequestException as e:
                logger.warning(f"Request error for {url}: {e} (attempt {attempt + 1})")
                last_error = e
                if attempt < self.max_retries:
                    time.sleep(min(2 ** attempt * 0.5, max(0.0, deadline - time.monotonic())))

        raise last_error or APIError(f"Deadline exceeded for {url}")
