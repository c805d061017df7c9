"""Dobles de prueba compartidos: reloj, temporizadores y avisos."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from dateutil import tz

from pastillero.notifications import ReminderEvent

# Sin horario de verano: la aritmetica de pared coincide con la absoluta.
LOCAL_TZ = tz.gettz("America/Argentina/Buenos_Aires")


class FakeClock:
    """Settable wall clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, hour: int, minute: int = 0, days: int = 0) -> None:
        base = self.now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        self.now = base + timedelta(days=days)


@dataclass
class FakeTimer:
    due_at: datetime
    callback: Callable[[], None]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeTimers:
    """Timer backend driven by ``FakeClock`` instead of real sleeping."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.created: list[FakeTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.clock.now + timedelta(seconds=delay), callback)
        self.created.append(timer)
        return timer

    def live(self) -> list[FakeTimer]:
        return [t for t in self.created if not t.cancelled and not t.fired]

    def advance_to(self, when: datetime) -> None:
        """Fire every live timer due up to ``when``, in due order."""
        while True:
            due = sorted(
                (t for t in self.live() if t.due_at <= when), key=lambda t: t.due_at
            )
            if not due:
                break
            timer = due[0]
            self.clock.now = timer.due_at
            timer.fired = True
            timer.callback()
        self.clock.now = when


@dataclass
class RecordingAlerter:
    events: list[ReminderEvent] = field(default_factory=list)
    sounds: int = 0
    vibrations: int = 0

    def show(self, event: ReminderEvent) -> None:
        self.events.append(event)

    def play_sound(self) -> None:
        self.sounds += 1

    def vibrate(self) -> None:
        self.vibrations += 1
