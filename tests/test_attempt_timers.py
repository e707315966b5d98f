from __future__ import annotations

import threading

from conftest import ManualTimerFactory
from quiz_engine.core.services.attempt_timers import AttemptTimers


def test_schedule_starts_daemon_timer_with_delay():
    factory = ManualTimerFactory()
    timers = AttemptTimers(timer_factory=factory)

    timers.schedule("a1", 60.0, lambda attempt_id: None)

    assert factory.last.started
    assert factory.last.daemon
    assert factory.last.delay_seconds == 60.0
    assert timers.is_scheduled("a1")


def test_firing_calls_back_once_and_unregisters():
    factory = ManualTimerFactory()
    timers = AttemptTimers(timer_factory=factory)
    expired: list[str] = []

    timers.schedule("a1", 1.0, expired.append)
    factory.last.fire()
    factory.last.fire()

    assert expired == ["a1"]
    assert not timers.is_scheduled("a1")


def test_cancel_prevents_callback():
    factory = ManualTimerFactory()
    timers = AttemptTimers(timer_factory=factory)
    expired: list[str] = []

    timers.schedule("a1", 1.0, expired.append)
    assert timers.cancel("a1")
    factory.last.fire()

    assert expired == []
    assert not timers.cancel("a1")


def test_rescheduling_replaces_previous_countdown():
    factory = ManualTimerFactory()
    timers = AttemptTimers(timer_factory=factory)
    expired: list[str] = []

    timers.schedule("a1", 5.0, expired.append)
    first = factory.last
    timers.schedule("a1", 10.0, expired.append)

    assert first.cancelled
    first.callback()
    assert expired == []
    assert timers.active_count() == 1


def test_negative_delay_is_clamped():
    factory = ManualTimerFactory()
    timers = AttemptTimers(timer_factory=factory)

    timers.schedule("a1", -3.0, lambda attempt_id: None)

    assert factory.last.delay_seconds == 0.0


def test_cancel_all_stops_every_timer():
    factory = ManualTimerFactory()
    timers = AttemptTimers(timer_factory=factory)
    for attempt_id in ("a1", "a2", "a3"):
        timers.schedule(attempt_id, 1.0, lambda _: None)

    timers.cancel_all()

    assert timers.active_count() == 0
    assert all(timer.cancelled for timer in factory.created)


def test_default_factory_uses_real_threads():
    timers = AttemptTimers()
    fired = threading.Event()

    timers.schedule("a1", 0.01, lambda attempt_id: fired.set())

    assert fired.wait(timeout=2.0)
