import logging
import threading
import time

from shardchurn import config
from shardchurn.shutdown import StopFlag

logger = logging.getLogger(__name__)


class ThroughputCounter:
    """Counter fed by many workers and drained to zero by one reporter."""

    def __init__(self):
        self._lock = threading.Lock()
        self._value = 0

    def add(self, n: int = 1):
        with self._lock:
            self._value += n

    def drain(self) -> int:
        """Return the accumulated value and reset it, atomically."""
        with self._lock:
            value, self._value = self._value, 0
        return value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


class ThroughputReporter(threading.Thread):
    """Daemon thread logging the counter drained once per interval."""

    def __init__(
        self,
        counter: ThroughputCounter,
        stop: StopFlag,
        interval: float = config.REPORT_INTERVAL,
        label: str = "updates",
    ):
        super().__init__(name="throughput-reporter", daemon=True)
        self.counter = counter
        self.stop = stop
        self.interval = interval
        self.label = label
        self.samples = []
        self.started_at = None

    def run(self):
        self.started_at = time.monotonic()
        while not self.stop.wait(self.interval):
            self.report_once()

    def finish(self):
        """Join the thread, then keep whatever arrived after the last interval."""
        self.join()
        self.samples.append(self.counter.drain())

    def report_once(self) -> int:
        drained = self.counter.drain()
        self.samples.append(drained)
        logger.info("%s/sec: %s", self.label, f"{drained / self.interval:,.0f}")
        return drained

    def summary(self) -> dict:
        total = sum(self.samples)
        elapsed = time.monotonic() - self.started_at if self.started_at else 0
        return {
            "total": total,
            "duration": elapsed,
            "rate": total / elapsed if elapsed > 0 else 0,
        }
