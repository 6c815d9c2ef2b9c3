# timetable/debounce.py
import logging
import threading

from timetable.errors import CredentialRequired

logger = logging.getLogger(__name__)


class WriteCoalescer:
    """
    Collapses bursts of save requests into one write of the newest state.

    Every request bumps a tick and (re)arms a timer for ``delay`` seconds.
    A timer only writes if its tick is still the latest one, so a timer that
    fired before it could be cancelled does nothing.
    """

    def __init__(self, write, delay=0.9, timer_factory=None):
        self._write = write
        self._delay = delay
        self._timer_factory = timer_factory or threading.Timer
        self._lock = threading.Lock()
        self._tick = 0
        self._pending = None
        self._timer = None

    @property
    def pending(self):
        with self._lock:
            return self._pending is not None

    def request(self, state):
        with self._lock:
            self._tick += 1
            self._pending = state
            if self._timer is not None:
                self._timer.cancel()
            timer = self._timer_factory(self._delay, self._fire, args=(self._tick,))
            timer.daemon = True
            self._timer = timer
        timer.start()

    def _fire(self, tick):
        with self._lock:
            if tick != self._tick or self._pending is None:
                return
            state = self._pending
            self._pending = None
            self._timer = None
        self._run(state)

    def flush(self):
        with self._lock:
            state = self._pending
            self._pending = None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        if state is not None:
            self._run(state)

    def _run(self, state):
        try:
            self._write(state)
        except CredentialRequired as e:
            logger.warning("save skipped: %s", e)
        except Exception:
            logger.exception("save failed; next edit will retry with the full state")
