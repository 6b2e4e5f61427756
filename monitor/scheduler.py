"""Background scheduler driving periodic evaluation ticks."""
import logging
import threading
import schedule

logger = logging.getLogger("cfalerts.scheduler")


class MonitorScheduler:
    """Runs `tick` every `interval_seconds` on one background thread.

    Ticks never overlap: a tick that overruns the interval delays the next
    one. Uses a private schedule.Scheduler so several engines can coexist.
    """

    def __init__(self, tick, interval_seconds=60, poll_seconds=1.0):
        self.tick = tick
        self.interval = interval_seconds
        self.poll_seconds = poll_seconds
        self._scheduler = schedule.Scheduler()
        self._thread = None
        self._stop = threading.Event()
        self._callbacks = []
        self._consecutive_failures = 0
        self.ticks = 0

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def on_tick(self, callback):
        """Register callback called with each tick's result."""
        self._callbacks.append(callback)

    def start(self):
        """Start background ticking. No-op if already running."""
        if self.running:
            return
        self._stop.clear()
        self._scheduler.clear()
        self._scheduler.every(self.interval).seconds.do(self._tick_job)

        self._thread = threading.Thread(target=self._run_loop, name="alert-scheduler", daemon=True)
        self._thread.start()
        logger.info(f"Scheduler started (every {self.interval}s)")

    def stop(self, timeout=5):
        """Stop background ticking and wait briefly for the loop to exit."""
        self._stop.set()
        self._scheduler.clear()
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Scheduler thread did not exit within %ss", timeout)
            self._thread = None
        logger.info("Scheduler stopped")

    def _run_loop(self):
        # Do an initial tick immediately
        self._tick_job()
        while not self._stop.is_set():
            self._scheduler.run_pending()
            self._stop.wait(self.poll_seconds)

    def _tick_job(self):
        if self._stop.is_set():
            return
        try:
            result = self.tick()
            self.ticks += 1
            self._consecutive_failures = 0
        except Exception as e:
            self._consecutive_failures += 1
            logger.error(f"Tick failed ({self._consecutive_failures} consecutive): {e}", exc_info=True)
            if self._consecutive_failures >= 5:
                logger.critical("5+ consecutive tick failures!")
            return

        for cb in self._callbacks:
            try:
                cb(result)
            except Exception as e:
                logger.warning(f"Tick callback error: {e}")
