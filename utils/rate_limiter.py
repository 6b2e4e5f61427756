"""Token bucket rate limiter."""
import time
import threading


class RateLimiter:
    """Token bucket shared by all metric queries against one API, thread-safe.

    `acquire(timeout)` gives up instead of sleeping past the caller's query
    deadline, so a throttled query fails fast and is retried next tick.
    """

    def __init__(self, calls_per_minute):
        if calls_per_minute <= 0:
            raise ValueError("calls_per_minute must be positive")
        self.rate = calls_per_minute / 60.0  # tokens per second
        self.max_tokens = float(calls_per_minute)
        self.tokens = float(calls_per_minute)
        self.last_time = time.monotonic()
        self._lock = threading.Lock()

    def _refill(self, now):
        elapsed = now - self.last_time
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.rate)
        self.last_time = now

    def acquire(self, timeout=None):
        """Take one token. Returns False if none frees up within timeout seconds."""
        with self._lock:
            self._refill(time.monotonic())
            if self.tokens >= 1:
                self.tokens -= 1
                return True

            sleep_time = (1 - self.tokens) / self.rate
            if timeout is not None and sleep_time > timeout:
                return False
            time.sleep(sleep_time)
            self._refill(time.monotonic())
            self.tokens = max(0.0, self.tokens - 1)
            return True
