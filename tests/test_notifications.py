from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

import pytest

from helpers import LOCAL_TZ, FakeClock, FakeTimers, RecordingAlerter
from pastillero.notifications import (
    LoggingAlerter,
    NotificationScheduler,
    ReminderEvent,
    asyncio_timers,
)
from pastillero.state import AppState


@pytest.fixture
def timers(clock: FakeClock) -> FakeTimers:
    return FakeTimers(clock)


@pytest.fixture
def alerter() -> RecordingAlerter:
    return RecordingAlerter()


@pytest.fixture
def permission() -> dict[str, bool]:
    return {"granted": True}


@pytest.fixture
def scheduler(
    state: AppState,
    timers: FakeTimers,
    alerter: RecordingAlerter,
    permission: dict[str, bool],
) -> NotificationScheduler:
    return NotificationScheduler(
        state, timers, alerter, permission=lambda: permission["granted"]
    )


def _at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 10, day, hour, minute, tzinfo=LOCAL_TZ)


def test_arm_targets_tomorrow_for_passed_time_and_today_otherwise(
    state: AppState, scheduler: NotificationScheduler, timers: FakeTimers
) -> None:
    med = state.add_medication("Aspirin", "81mg", ["08:00", "10:00"])

    assert scheduler.armed == {
        (med.id, "08:00"): _at(19, 8),
        (med.id, "10:00"): _at(18, 10),
    }
    delays = sorted(t.due_at for t in timers.live())
    assert delays == [_at(18, 10), _at(19, 8)]


def test_fire_emits_and_rearms_for_next_day(
    state: AppState,
    scheduler: NotificationScheduler,
    timers: FakeTimers,
    alerter: RecordingAlerter,
) -> None:
    med = state.add_medication("Aspirin", "81mg", ["10:00"])

    timers.advance_to(_at(18, 10, 1))

    [event] = alerter.events
    assert event == ReminderEvent(
        medication_id=med.id,
        medication_name="Aspirin",
        dosage="81mg",
        scheduled_time="10:00",
        fired_at=_at(18, 10),
    )
    assert event.body == "Toma tu 81mg Aspirin ahora"
    assert scheduler.armed == {(med.id, "10:00"): _at(19, 10)}
    assert len(timers.live()) == 1


def test_fires_once_per_day_across_several_days(
    state: AppState,
    scheduler: NotificationScheduler,
    timers: FakeTimers,
    alerter: RecordingAlerter,
) -> None:
    state.add_medication("Aspirin", "", ["08:00", "20:00"])

    timers.advance_to(_at(21, 9))

    fired = [(e.fired_at.date().day, e.scheduled_time) for e in alerter.events]
    assert fired == [
        (18, "20:00"),
        (19, "08:00"),
        (19, "20:00"),
        (20, "08:00"),
        (20, "20:00"),
        (21, "08:00"),
    ]


def test_resume_replaces_timers_instead_of_stacking(
    state: AppState,
    scheduler: NotificationScheduler,
    timers: FakeTimers,
    alerter: RecordingAlerter,
) -> None:
    state.add_medication("Aspirin", "", ["10:00"])

    for _ in range(5):
        scheduler.resume()

    assert len(timers.live()) == 1
    timers.advance_to(_at(18, 23))
    assert len(alerter.events) == 1


def test_resume_after_restart_rearms_from_wall_clock(
    state: AppState, timers: FakeTimers, alerter: RecordingAlerter, clock: FakeClock
) -> None:
    med = state.add_medication("Aspirin", "", ["08:00"])
    # Process was down across the dose time: nothing is replayed.
    clock.set(8, 30)
    scheduler = NotificationScheduler(state, timers, alerter)

    assert scheduler.resume() == 1
    assert scheduler.armed == {(med.id, "08:00"): _at(19, 8)}
    assert alerter.events == []


def test_early_timer_does_not_fire_twice(
    state: AppState,
    scheduler: NotificationScheduler,
    timers: FakeTimers,
    alerter: RecordingAlerter,
    clock: FakeClock,
) -> None:
    med = state.add_medication("Aspirin", "", ["10:00"])
    [timer] = timers.live()

    clock.now = _at(18, 9, 59) + timedelta(seconds=59)
    timer.fired = True
    timer.callback()

    assert len(alerter.events) == 1
    assert scheduler.armed == {(med.id, "10:00"): _at(19, 10)}
    timers.advance_to(_at(18, 23))
    assert len(alerter.events) == 1


def test_without_permission_nothing_is_shown_but_loop_continues(
    state: AppState,
    scheduler: NotificationScheduler,
    timers: FakeTimers,
    alerter: RecordingAlerter,
    permission: dict[str, bool],
) -> None:
    med = state.add_medication("Aspirin", "", ["10:00"])
    permission["granted"] = False

    timers.advance_to(_at(18, 11))
    assert alerter.events == []
    assert scheduler.armed == {(med.id, "10:00"): _at(19, 10)}

    permission["granted"] = True
    timers.advance_to(_at(19, 11))
    assert [e.fired_at for e in alerter.events] == [_at(19, 10)]


def test_sound_and_vibration_follow_settings(
    state: AppState,
    scheduler: NotificationScheduler,
    timers: FakeTimers,
    alerter: RecordingAlerter,
) -> None:
    state.add_medication("Aspirin", "", ["10:00"])
    timers.advance_to(_at(18, 11))
    assert (alerter.sounds, alerter.vibrations) == (1, 1)

    state.update_settings(sound_enabled=False)
    timers.advance_to(_at(19, 11))
    assert (alerter.sounds, alerter.vibrations) == (1, 2)


def test_delete_disarms_and_stale_callback_is_ignored(
    state: AppState,
    scheduler: NotificationScheduler,
    timers: FakeTimers,
    alerter: RecordingAlerter,
) -> None:
    med = state.add_medication("Aspirin", "", ["10:00"])
    [timer] = timers.live()

    state.delete_medication(med.id)

    assert timer.cancelled is True
    assert scheduler.armed == {}
    timer.callback()
    assert alerter.events == []
    assert scheduler.armed == {}


def test_fire_rechecks_store_before_emitting(
    state: AppState,
    timers: FakeTimers,
    alerter: RecordingAlerter,
) -> None:
    med = state.add_medication("Aspirin", "", ["10:00"])
    scheduler = NotificationScheduler(state, timers, alerter)
    scheduler.arm(med, "10:00")
    # Deactivated without going through the listeners.
    state.medications.replace(
        type(med)(
            id=med.id,
            name=med.name,
            dosage=med.dosage,
            times=med.times,
            times_per_day=1,
            active=False,
        )
    )

    timers.advance_to(_at(18, 11))

    assert alerter.events == []
    assert scheduler.armed == {}


def test_disarm_and_shutdown_cancel_handles(
    state: AppState, scheduler: NotificationScheduler, timers: FakeTimers
) -> None:
    a = state.add_medication("A", "", ["08:00", "09:30"])
    state.add_medication("B", "", ["12:00"])

    scheduler.disarm(a.id)
    assert len(timers.live()) == 1

    scheduler.shutdown()
    assert timers.live() == []


def test_asyncio_timers_fire_on_the_loop() -> None:
    fired: list[str] = []

    async def _run() -> None:
        loop = asyncio.get_running_loop()
        schedule = asyncio_timers(loop)
        schedule(0.01, lambda: fired.append("a"))
        cancelled = schedule(0.01, lambda: fired.append("b"))
        cancelled.cancel()
        await asyncio.sleep(0.05)

    asyncio.run(_run())
    assert fired == ["a"]


def test_logging_alerter_writes_reminder(caplog: pytest.LogCaptureFixture) -> None:
    event = ReminderEvent("m1", "Aspirin", "", "08:00", _at(18, 8))
    with caplog.at_level("WARNING"):
        LoggingAlerter().show(event)
    assert "Hora de Aspirin" in caplog.text
