import logging
import signal
import threading

logger = logging.getLogger(__name__)


class StopFlag:
    """One-way stop request shared by the signal handler and every loop.

    Loops poll ``is_set()`` at their own boundaries; nothing in flight is
    interrupted.
    """

    def __init__(self):
        self._event = threading.Event()

    def set(self):
        """Request a stop. Returns True only for the call that flipped it."""
        if self._event.is_set():
            return False
        self._event.set()
        return True

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout=None) -> bool:
        """Sleep up to ``timeout`` seconds, waking early once stop is requested."""
        return self._event.wait(timeout)

    def __bool__(self):
        return self.is_set()


def install_stop_handler(stop: StopFlag, signals=(signal.SIGINT, signal.SIGTERM)):
    """Install handlers that set ``stop`` when any of ``signals`` arrives."""

    def handler(signum, frame):  # pylint: disable=unused-argument
        if stop.set():
            logger.warning(
                "Received %s, will stop after the current phase...",
                signal.Signals(signum).name,
            )

    for signum in signals:
        signal.signal(signum, handler)

    return handler
