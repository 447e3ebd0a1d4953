"""
Module for collapsing bursts of file events into one processing trigger.
"""
import logging
import threading
from pathlib import Path
from typing import Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)


class DebounceScheduler:
    """Keeps at most one pending timer per path.

    Every ``notify`` restarts the full delay for its path; when a timer
    expires it is forgotten and the callback runs once with that path.
    """

    def __init__(self, delay: float, callback: Callable[[Path], None],
                 timer_factory: Callable[..., threading.Timer] = threading.Timer):
        """Initialize the scheduler.

        Args:
            delay: Quiet period in seconds before the callback fires
            callback: Called with the path once its timer expires
            timer_factory: Builds timers with ``(interval, function, args)``
        """
        self.delay = delay
        self._callback = callback
        self._timer_factory = timer_factory
        self._timers: Dict[Path, Tuple[object, threading.Timer]] = {}
        self._lock = threading.Lock()

    def notify(self, path: Path) -> None:
        """(Re)start the timer for a path, replacing any pending one."""
        token = object()
        with self._lock:
            existing = self._timers.get(path)
            if existing is not None:
                existing[1].cancel()
                logger.debug(f"Debounce reset for {path}")

            timer = self._timer_factory(self.delay, self._fire, args=[path, token])
            timer.daemon = True
            self._timers[path] = (token, timer)
            timer.start()

    def _fire(self, path: Path, token: object) -> None:
        with self._lock:
            current = self._timers.get(path)
            if current is None or current[0] is not token:
                # cancelled after the wait had already elapsed
                return
            del self._timers[path]
        self._callback(path)

    def cancel_all(self) -> int:
        """Cancel every pending timer without running callbacks.

        Returns:
            Number of timers cancelled
        """
        with self._lock:
            entries = list(self._timers.values())
            self._timers.clear()
        for _, timer in entries:
            timer.cancel()
        return len(entries)

    def pending(self) -> List[Path]:
        """Paths that currently have a timer."""
        with self._lock:
            return list(self._timers)
