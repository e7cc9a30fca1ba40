"""Cancellable timers for the client engines (lock renewal, polling, autosave debounce)."""
import abc
import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class Handle:
    """A scheduled callback that can be cancelled before it runs."""

    def __init__(self):
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class Scheduler(abc.ABC):
    """
    Timer abstraction used by LockManager and AutosaveEngine.

    ``lock`` serializes callbacks with each other and with callers that
    hold it, so engine state is never touched by two threads at once.
    """

    def __init__(self):
        self.lock = threading.RLock()

    @abc.abstractmethod
    def call_later(self, delay: float, fn: Callable[[], None]) -> Handle:
        """Run ``fn`` once after ``delay`` seconds."""

    @abc.abstractmethod
    def call_every(self, interval: float, fn: Callable[[], None]) -> Handle:
        """Run ``fn`` every ``interval`` seconds until cancelled."""

    def _run(self, handle: Handle, fn: Callable[[], None]) -> None:
        with self.lock:
            if handle.cancelled:
                return
            try:
                fn()
            except Exception:
                # Timer callbacks are background work: nothing above them can handle errors
                logger.exception(f"Scheduled callback {getattr(fn, '__name__', fn)} failed")


class _TimerHandle(Handle):

    def __init__(self):
        super().__init__()
        self.timer = None

    def cancel(self):
        super().cancel()
        if self.timer is not None:
            self.timer.cancel()


class ThreadScheduler(Scheduler):
    """Runs callbacks on daemon threading.Timer threads."""

    def call_later(self, delay, fn):
        handle = _TimerHandle()
        self._start(handle, delay, lambda: self._run(handle, fn))
        return handle

    def call_every(self, interval, fn):
        handle = _TimerHandle()

        def tick():
            self._run(handle, fn)
            if not handle.cancelled:
                self._start(handle, interval, tick)

        self._start(handle, interval, tick)
        return handle

    @staticmethod
    def _start(handle, delay, target):
        timer = threading.Timer(delay, target)
        timer.daemon = True
        handle.timer = timer
        timer.start()
