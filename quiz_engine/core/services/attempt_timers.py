"""Per-attempt countdowns that trigger automatic submission."""

from __future__ import annotations

from collections.abc import Callable
import logging
from threading import Lock, Timer
from typing import Protocol

logger = logging.getLogger(__name__)


class CancellableTimer(Protocol):
    daemon: bool

    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], CancellableTimer]


def _thread_timer(delay_seconds: float, callback: Callable[[], None]) -> CancellableTimer:
    return Timer(delay_seconds, callback)


class AttemptTimers:
    """Keeps at most one running countdown per attempt."""

    def __init__(self, timer_factory: TimerFactory = _thread_timer) -> None:
        self._lock = Lock()
        self._timers: dict[str, CancellableTimer] = {}
        self._timer_factory = timer_factory

    def schedule(
        self,
        attempt_id: str,
        delay_seconds: float,
        on_expire: Callable[[str], None],
    ) -> None:
        """Start (or restart) the countdown for ``attempt_id``."""

        def fire() -> None:
            with self._lock:
                if self._timers.get(attempt_id) is not timer:
                    return
                del self._timers[attempt_id]
            logger.info("Deadline reached for attempt %s", attempt_id)
            on_expire(attempt_id)

        timer = self._timer_factory(max(0.0, delay_seconds), fire)
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(attempt_id, None)
            self._timers[attempt_id] = timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def cancel(self, attempt_id: str) -> bool:
        with self._lock:
            timer = self._timers.pop(attempt_id, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def cancel_all(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def is_scheduled(self, attempt_id: str) -> bool:
        with self._lock:
            return attempt_id in self._timers

    def active_count(self) -> int:
        with self._lock:
            return len(self._timers)
