import logging
import threading
import time

logger = logging.getLogger(__name__)

COUNTDOWN = 'countdown'
AUTOPLAY = 'autoplay'


class TimerHandle:
    """Cancellable handle for one scheduled callback."""

    def __init__(self, kind: str, label: str = ''):
        self.kind = kind
        self.label = label
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def wait_cancelled(self, delay: float) -> bool:
        return self._cancelled.wait(delay)

    def __repr__(self):
        return f'<TimerHandle {self.kind} {self.label} cancelled={self.cancelled}>'


class BackgroundScheduler:
    """Runs delayed callbacks as Socket.IO background tasks.

    The callback receives its own handle so it can check that it is still the
    room's current timer before acting.
    """

    def __init__(self, socketio):
        self._socketio = socketio

    def call_later(self, delay: float, callback, kind: str, label: str = '') -> TimerHandle:
        handle = TimerHandle(kind, label)

        def _worker():
            if handle.wait_cancelled(delay):
                return
            try:
                callback(handle)
            except Exception:
                logger.exception('[timer-error] %r', handle)

        self._socketio.start_background_task(_worker)
        return handle


def epoch_ms() -> int:
    return int(time.time() * 1000)
