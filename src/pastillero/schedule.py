"""Indice de tomas del dia y calculo de la proxima ocurrencia."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, time, timedelta

from dateutil import tz

from pastillero.model import Medication, validate_dose_time


def parse_dose_time(value: str) -> time:
    """Convert ``HH:MM`` into a :class:`datetime.time`."""
    hours, minutes = validate_dose_time(value).split(":")
    return time(int(hours), int(minutes))


def format_dose_time(value: str) -> str:
    """12-hour label for display, e.g. ``"20:05"`` -> ``"8:05 PM"``."""
    parsed = parse_dose_time(value)
    hour12 = parsed.hour % 12 or 12
    suffix = "PM" if parsed.hour >= 12 else "AM"
    return f"{hour12}:{parsed.minute:02d} {suffix}"


def due_today(medications: Iterable[Medication]) -> dict[str, list[Medication]]:
    """Group active medications by dose time.

    Args:
        medications: Medication definitions in store order.

    Returns:
        Mapping ``"HH:MM"`` -> medications due at that time. Keys iterate in
        ascending time order; each group keeps store order.
    """
    groups: dict[str, list[Medication]] = {}
    for medication in medications:
        if not medication.active:
            continue
        for dose_time in medication.times:
            groups.setdefault(dose_time, []).append(medication)
    # Zero-padded HH:MM sorts lexicographically.
    return {key: groups[key] for key in sorted(groups)}


def next_occurrence(dose_time: str, now: datetime) -> datetime:
    """First instant strictly after ``now`` at wall-clock ``dose_time``.

    The result is in ``now``'s time zone: today if the time is still ahead,
    otherwise tomorrow. Local times skipped by a DST jump move forward.
    """
    target_time = parse_dose_time(dose_time)
    candidate = datetime.combine(now.date(), target_time, tzinfo=now.tzinfo)
    if candidate <= now:
        candidate = datetime.combine(
            now.date() + timedelta(days=1), target_time, tzinfo=now.tzinfo
        )
    if candidate.tzinfo is not None:
        candidate = tz.resolve_imaginary(candidate)
    return candidate


def seconds_until(target: datetime, now: datetime) -> float:
    """Elapsed seconds between two instants, honoring UTC offset changes."""
    if target.tzinfo is None or now.tzinfo is None:
        return max((target - now).total_seconds(), 0.0)
    delta = target.astimezone(tz.UTC) - now.astimezone(tz.UTC)
    return max(delta.total_seconds(), 0.0)
