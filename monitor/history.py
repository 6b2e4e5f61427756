"""In-memory history of recent metric samples, used for windowed baselines."""
import bisect
import logging
import threading
from collections import defaultdict
from datetime import timedelta

from models.alerts import MetricSample

logger = logging.getLogger("cfalerts.monitor.history")


class SampleHistory:
    """Recent samples per (metric, zone) key, oldest first.

    Retention is set per metric by the engine: the largest enabled window
    plus one sampling interval of slack. Keys without a retention keep only
    their latest sample.
    """

    def __init__(self, sample_interval_seconds=60):
        self.sample_interval = timedelta(seconds=sample_interval_seconds)
        self._samples = defaultdict(list)
        self._retention = {}
        self._lock = threading.Lock()

    def record(self, metric, zone_id, value, at):
        """Store one observation. Out-of-order timestamps are inserted in place."""
        sample = MetricSample(metric=metric, zone_id=zone_id, value=float(value), sampled_at=at)
        with self._lock:
            samples = self._samples[(metric, zone_id)]
            if not samples or samples[-1].sampled_at <= at:
                samples.append(sample)
            else:
                times = [s.sampled_at for s in samples]
                samples.insert(bisect.bisect_right(times, at), sample)
        return sample

    def value_at(self, metric, zone_id, at, tolerance=None):
        """Value of the sample nearest to `at`, or None if none is within tolerance.

        Equidistant samples resolve to the older one.
        """
        tolerance = self.sample_interval if tolerance is None else tolerance
        with self._lock:
            samples = self._samples.get((metric, zone_id))
            if not samples:
                return None
            best = None
            best_gap = None
            for s in samples:
                gap = abs(s.sampled_at - at)
                if best_gap is None or gap < best_gap:
                    best, best_gap = s, gap
            if best_gap > tolerance:
                return None
            return best.value

    def set_retention(self, retention):
        """Replace per-metric retention windows: {metric: seconds}."""
        with self._lock:
            self._retention = {m: timedelta(seconds=s) + self.sample_interval
                               for m, s in retention.items() if s > 0}

    def prune(self, now):
        """Evict samples older than their metric's retention window."""
        evicted = 0
        with self._lock:
            for key in list(self._samples):
                samples = self._samples[key]
                window = self._retention.get(key[0])
                if window is None:
                    keep = samples[-1:]
                else:
                    cutoff = now - window
                    keep = [s for s in samples if s.sampled_at >= cutoff]
                evicted += len(samples) - len(keep)
                if keep:
                    self._samples[key] = keep
                else:
                    del self._samples[key]
        if evicted:
            logger.debug(f"Pruned {evicted} sample(s)")
        return evicted

    def size(self, metric=None, zone_id=None):
        with self._lock:
            if metric is None:
                return sum(len(v) for v in self._samples.values())
            return len(self._samples.get((metric, zone_id), []))
