"""Time sources used for attempt deadlines."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import time


class MonotonicClock:
    """UTC wall time anchored once and advanced by ``time.monotonic``.

    System clock adjustments after start-up cannot move deadlines backwards.
    """

    def __init__(self) -> None:
        self._anchor_wall = datetime.now(timezone.utc)
        self._anchor_monotonic = time.monotonic()

    def now(self) -> datetime:
        elapsed = time.monotonic() - self._anchor_monotonic
        return self._anchor_wall + timedelta(seconds=elapsed)
