"""Seguimiento de adherencia: estado de cada toma derivado del historial."""

from __future__ import annotations

import logging

from pastillero.model import (
    Action,
    ActionLogEntry,
    SlotStatus,
    new_id,
    validate_dose_time,
)
from pastillero.schedule import due_today
from pastillero.state import AppState

logger = logging.getLogger(__name__)


class AdherenceTracker:
    """Reads and mutates per-slot status for the current calendar day.

    Holds no state: every query scans ``state.log``. Only ``taken`` entries
    flip the visible status; missed and skipped are kept for history only.
    """

    def __init__(self, state: AppState) -> None:
        self._state = state

    def status_of(self, medication_id: str, scheduled_time: str) -> SlotStatus:
        today = self._state.today()
        for entry in self._state.log.for_slot(medication_id, scheduled_time, today):
            if entry.action is Action.TAKEN:
                return SlotStatus.TAKEN
        return SlotStatus.UNMARKED

    def record_action(
        self, medication_id: str, action: Action, scheduled_time: str
    ) -> ActionLogEntry | None:
        """Append an entry for today and persist it.

        Returns:
            The new entry, or None when the medication id is unknown or the
            medication has no dose at ``scheduled_time``.

        Raises:
            ValidationError: If ``scheduled_time`` is not ``HH:MM``.
        """
        scheduled_time = validate_dose_time(scheduled_time)
        medication = self._state.medications.get(medication_id)
        if medication is None:
            logger.debug("Ignoring %s for unknown medication %s", action, medication_id)
            return None
        if scheduled_time not in medication.times:
            logger.debug(
                "Ignoring %s for %s: no dose at %s",
                action,
                medication.name,
                scheduled_time,
            )
            return None
        now = self._state.clock()
        entry = ActionLogEntry(
            id=new_id(),
            medication_id=medication_id,
            medication_name=medication.name,
            action=Action(action),
            scheduled_time=scheduled_time,
            day=now.date(),
            recorded_at=now,
        )
        self._state.log.append(entry)
        self._state.persist()
        logger.info(
            "%s %s at %s", entry.action.value, medication.name, scheduled_time
        )
        return entry

    def mark_taken(
        self, medication_id: str, scheduled_time: str
    ) -> ActionLogEntry | None:
        return self.record_action(medication_id, Action.TAKEN, scheduled_time)

    def mark_missed(
        self, medication_id: str, scheduled_time: str
    ) -> ActionLogEntry | None:
        return self.record_action(medication_id, Action.MISSED, scheduled_time)

    def mark_skipped(
        self, medication_id: str, scheduled_time: str
    ) -> ActionLogEntry | None:
        return self.record_action(medication_id, Action.SKIPPED, scheduled_time)

    def toggle(self, medication_id: str, scheduled_time: str) -> SlotStatus:
        """Flip a slot between unmarked and taken.

        Undo is destructive: today's taken entries for the slot are removed,
        no compensating entry is written.
        """
        if self.status_of(medication_id, scheduled_time) is SlotStatus.TAKEN:
            self.undo(medication_id, scheduled_time)
            return SlotStatus.UNMARKED
        if self.mark_taken(medication_id, scheduled_time) is None:
            return SlotStatus.UNMARKED
        return SlotStatus.TAKEN

    def undo(self, medication_id: str, scheduled_time: str) -> int:
        """Remove today's taken entries for a slot; returns how many went."""
        today = self._state.today()
        removed = self._state.log.remove_where(
            lambda e: e.action is Action.TAKEN
            and e.matches_slot(medication_id, scheduled_time, today)
        )
        if removed:
            self._state.persist()
            logger.info("Unmarked %s at %s", medication_id, scheduled_time)
        return removed

    def resolve_all_for_time(self, scheduled_time: str) -> list[ActionLogEntry]:
        """Mark every unmarked medication due at ``scheduled_time`` as taken.

        Each mark persists on its own, so an interruption leaves the earlier
        ones recorded.
        """
        scheduled_time = validate_dose_time(scheduled_time)
        due = due_today(self._state.medications).get(scheduled_time, [])
        recorded: list[ActionLogEntry] = []
        for medication in due:
            if self.status_of(medication.id, scheduled_time) is SlotStatus.TAKEN:
                continue
            entry = self.mark_taken(medication.id, scheduled_time)
            if entry is not None:
                recorded.append(entry)
        return recorded

    def today_view(self) -> dict[str, list[tuple[str, str, SlotStatus]]]:
        """Due-today groups with each slot's status, for renderers."""
        return {
            dose_time: [
                (m.id, m.name, self.status_of(m.id, dose_time)) for m in meds
            ]
            for dose_time, meds in due_today(self._state.medications).items()
        }

    def history(self) -> list[ActionLogEntry]:
        """All entries, most recent first; equal instants keep log order."""
        return sorted(self._state.log, key=lambda e: e.recorded_at, reverse=True)
