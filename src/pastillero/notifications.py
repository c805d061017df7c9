"""Recordatorios recurrentes: un temporizador por (medicamento, hora)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Protocol

from pastillero.model import Medication
from pastillero.schedule import next_occurrence, seconds_until
from pastillero.state import AppState

logger = logging.getLogger(__name__)

SlotKey = tuple[str, str]


class TimerHandle(Protocol):
    def cancel(self) -> object: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


@dataclass(frozen=True)
class ReminderEvent:
    """Payload delivered to the alert collaborators when a slot fires."""

    medication_id: str
    medication_name: str
    dosage: str
    scheduled_time: str
    fired_at: datetime

    @property
    def title(self) -> str:
        return f"Hora de {self.medication_name}"

    @property
    def body(self) -> str:
        dose = f"{self.dosage} " if self.dosage else ""
        return f"Toma tu {dose}{self.medication_name} ahora"


class Alerter(Protocol):
    """Notification, sound and vibration collaborators."""

    def show(self, event: ReminderEvent) -> None: ...

    def play_sound(self) -> None: ...

    def vibrate(self) -> None: ...


class LoggingAlerter:
    """Alerter that only writes to the log (headless hosts)."""

    def show(self, event: ReminderEvent) -> None:
        logger.warning("%s: %s", event.title, event.body)

    def play_sound(self) -> None:
        logger.debug("sound")

    def vibrate(self) -> None:
        logger.debug("vibrate")


def asyncio_timers(loop: asyncio.AbstractEventLoop) -> TimerFactory:
    """Timer backend on top of ``loop.call_later``."""

    def schedule(delay: float, callback: Callable[[], None]) -> TimerHandle:
        return loop.call_later(delay, callback)

    return schedule


@dataclass
class _Armed:
    handle: TimerHandle
    target: datetime


class NotificationScheduler:
    """Arms, fires and re-arms one timer per (medication, time) pair.

    No next-fire timestamp is persisted: ``resume()`` recomputes every pair
    from the wall clock. Arming a pair cancels its previous handle, so
    repeated resumes never stack timers.

    Args:
        state: Application state; read on every fire.
        timers: Backend creating single-shot timers.
        alerter: Receives reminder events.
        permission: Returns whether reminders may be shown right now.
    """

    def __init__(
        self,
        state: AppState,
        timers: TimerFactory,
        alerter: Alerter,
        permission: Callable[[], bool] = lambda: True,
    ) -> None:
        self._state = state
        self._timers = timers
        self._alerter = alerter
        self._permission = permission
        self._armed: dict[SlotKey, _Armed] = {}
        self._last_fired: dict[SlotKey, date] = {}
        state.subscribe(self.arm_all)

    @property
    def armed(self) -> dict[SlotKey, datetime]:
        """Pending pairs and their target instants."""
        return {key: item.target for key, item in self._armed.items()}

    def arm(
        self,
        medication: Medication,
        scheduled_time: str,
        after: datetime | None = None,
    ) -> datetime:
        """Arm the next occurrence of ``scheduled_time``, replacing any timer.

        Args:
            medication: Medication owning the slot.
            scheduled_time: ``HH:MM`` dose time.
            after: Instant the occurrence must follow; defaults to now.

        Returns:
            The target instant.
        """
        key = (medication.id, scheduled_time)
        self._cancel(key)
        now = self._state.clock()
        target = next_occurrence(scheduled_time, max(now, after) if after else now)
        delay = seconds_until(target, now)
        handle = self._timers(delay, lambda: self._fire(key, target))
        self._armed[key] = _Armed(handle=handle, target=target)
        logger.debug(
            "Armed %s at %s (in %.0fs)", medication.name, target.isoformat(), delay
        )
        return target

    def arm_medication(self, medication: Medication) -> None:
        for scheduled_time in medication.times:
            self.arm(medication, scheduled_time)

    def arm_all(self) -> int:
        """Re-arm every active pair and drop pairs that no longer exist."""
        wanted: set[SlotKey] = set()
        for medication in self._state.medications.active():
            for scheduled_time in medication.times:
                wanted.add((medication.id, scheduled_time))
                self.arm(medication, scheduled_time)
        for key in set(self._armed) - wanted:
            self._cancel(key)
        logger.info("Reminders armed: %d", len(wanted))
        return len(wanted)

    def resume(self) -> int:
        """Called on process start or when the host becomes visible again."""
        return self.arm_all()

    def disarm(self, medication_id: str) -> None:
        for key in [k for k in self._armed if k[0] == medication_id]:
            self._cancel(key)

    def shutdown(self) -> None:
        for key in list(self._armed):
            self._cancel(key)

    def _cancel(self, key: SlotKey) -> None:
        armed = self._armed.pop(key, None)
        if armed is not None:
            armed.handle.cancel()

    def _fire(self, key: SlotKey, target: datetime) -> None:
        current = self._armed.get(key)
        if current is None or current.target != target:
            # Superseded by a later arm.
            return
        del self._armed[key]
        medication_id, scheduled_time = key
        medication = self._state.medications.get(medication_id)
        if (
            medication is None
            or not medication.active
            or scheduled_time not in medication.times
        ):
            logger.info("Dropping reminder for removed slot %s", key)
            return
        try:
            if self._last_fired.get(key) != target.date():
                self._last_fired[key] = target.date()
                self._emit(medication, scheduled_time)
        finally:
            self.arm(medication, scheduled_time, after=target)

    def _emit(self, medication: Medication, scheduled_time: str) -> None:
        if not self._permission():
            logger.info("Reminder suppressed, no permission: %s", medication.name)
            return
        event = ReminderEvent(
            medication_id=medication.id,
            medication_name=medication.name,
            dosage=medication.dosage,
            scheduled_time=scheduled_time,
            fired_at=self._state.clock(),
        )
        self._alerter.show(event)
        settings = self._state.settings
        if settings.sound_enabled:
            self._alerter.play_sound()
        if settings.vibration_enabled:
            self._alerter.vibrate()
