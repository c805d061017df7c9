"""Modelos tipados para medicamentos, registro de tomas y preferencias."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from dateutil import parser as date_parser
from dateutil import tz

from pastillero.errors import ValidationError

LOCAL_TZ = tz.tzlocal()

_DOSE_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class Action(str, Enum):
    """Adherence event kinds."""

    TAKEN = "taken"
    MISSED = "missed"
    SKIPPED = "skipped"


class SlotStatus(str, Enum):
    """Visible state of a slot for today."""

    UNMARKED = "unmarked"
    TAKEN = "taken"


class TextSize(str, Enum):
    NORMAL = "normal"
    LARGE = "large"
    EXTRA_LARGE = "extra-large"


def new_id() -> str:
    """Return an opaque identifier that is never reused."""
    return uuid.uuid4().hex


def validate_dose_time(value: object) -> str:
    """Return ``value`` if it is a zero-padded 24h ``HH:MM`` string.

    Raises:
        ValidationError: If the value is not a well formed dose time.
    """
    if not isinstance(value, str) or not _DOSE_TIME_RE.match(value.strip()):
        raise ValidationError("times", f"Hora de toma invalida: {value!r}")
    return value.strip()


@dataclass(frozen=True)
class Medication:
    """One medication definition with its daily dose times."""

    id: str
    name: str
    dosage: str
    times: tuple[str, ...]
    times_per_day: int
    active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=LOCAL_TZ))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "dosage": self.dosage,
            "timesPerDay": self.times_per_day,
            "times": list(self.times),
            "createdAt": self.created_at.isoformat(),
            "isActive": self.active,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> Medication:
        """Build a medication from its stored object form.

        Raises:
            ValueError: If required fields are missing or malformed.
        """
        if not isinstance(raw, dict):
            raise ValueError("Medication entry must be an object")
        try:
            times = tuple(validate_dose_time(t) for t in raw["times"])
            return cls(
                id=str(raw["id"]),
                name=str(raw["name"]),
                dosage=str(raw.get("dosage") or ""),
                times=times,
                times_per_day=int(raw.get("timesPerDay", len(times))),
                active=bool(raw.get("isActive", True)),
                created_at=_parse_instant(raw.get("createdAt")),
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Malformed medication entry: {exc}") from exc


@dataclass(frozen=True)
class ActionLogEntry:
    """One recorded adherence event (immutable once appended)."""

    id: str
    medication_id: str
    medication_name: str
    action: Action
    scheduled_time: str
    day: date
    recorded_at: datetime

    def matches_slot(self, medication_id: str, scheduled_time: str, day: date) -> bool:
        return (
            self.medication_id == medication_id
            and self.scheduled_time == scheduled_time
            and self.day == day
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "medicationId": self.medication_id,
            "medicationName": self.medication_name,
            "action": self.action.value,
            "scheduledTime": self.scheduled_time,
            "actualTime": self.recorded_at.isoformat(),
            "date": self.day.isoformat(),
        }

    @classmethod
    def from_dict(cls, raw: Any) -> ActionLogEntry:
        """Build a log entry from its stored object form.

        Raises:
            ValueError: If required fields are missing or malformed.
        """
        if not isinstance(raw, dict):
            raise ValueError("History entry must be an object")
        try:
            recorded_at = _parse_instant(raw["actualTime"])
            day_raw = raw.get("date")
            day = (
                date_parser.parse(str(day_raw)).date()
                if day_raw
                else recorded_at.astimezone(LOCAL_TZ).date()
            )
            return cls(
                id=str(raw["id"]),
                medication_id=str(raw["medicationId"]),
                medication_name=str(raw.get("medicationName") or ""),
                action=Action(raw["action"]),
                scheduled_time=str(raw["scheduledTime"]),
                day=day,
                recorded_at=recorded_at,
            )
        except (KeyError, TypeError, OverflowError) as exc:
            raise ValueError(f"Malformed history entry: {exc}") from exc


@dataclass(frozen=True)
class Settings:
    """Preferencias del usuario."""

    sound_enabled: bool = True
    vibration_enabled: bool = True
    high_contrast: bool = False
    text_size: TextSize = TextSize.NORMAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "soundEnabled": self.sound_enabled,
            "vibrationEnabled": self.vibration_enabled,
            "highContrast": self.high_contrast,
            "textSize": self.text_size.value,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any], base: Settings | None = None) -> Settings:
        """Merge stored values over ``base`` (defaults when omitted).

        Unknown keys are ignored; an unknown text size keeps the base value.
        """
        base = base or cls()
        text_size = base.text_size
        if "textSize" in raw:
            try:
                text_size = TextSize(raw["textSize"])
            except ValueError:
                text_size = base.text_size
        return cls(
            sound_enabled=bool(raw.get("soundEnabled", base.sound_enabled)),
            vibration_enabled=bool(
                raw.get("vibrationEnabled", base.vibration_enabled)
            ),
            high_contrast=bool(raw.get("highContrast", base.high_contrast)),
            text_size=text_size,
        )


def _parse_instant(value: Any) -> datetime:
    """Parse an ISO timestamp; naive values are read as local time."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        dt = date_parser.isoparse(value)
    else:
        return datetime.now(tz=LOCAL_TZ)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=LOCAL_TZ)
    return dt
