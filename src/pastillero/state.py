"""Estado de la aplicacion: medicamentos, historial y preferencias."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import replace
from datetime import date, datetime
from typing import Any

from pastillero.errors import PersistenceError, ValidationError
from pastillero.model import (
    LOCAL_TZ,
    ActionLogEntry,
    Medication,
    Settings,
    TextSize,
    new_id,
    validate_dose_time,
)
from pastillero.storage import HISTORY_BLOB, MEDICATIONS_BLOB, SQLiteStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
NoticeHandler = Callable[[str], None]


def local_now() -> datetime:
    return datetime.now(tz=LOCAL_TZ)


class MedicationStore:
    """Medication definitions in insertion order."""

    def __init__(self, medications: Iterable[Medication] = ()) -> None:
        self._items: dict[str, Medication] = {m.id: m for m in medications}

    def __iter__(self) -> Iterator[Medication]:
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)

    def get(self, medication_id: str) -> Medication | None:
        return self._items.get(medication_id)

    def active(self) -> list[Medication]:
        return [m for m in self._items.values() if m.active]

    def add(self, medication: Medication) -> None:
        if medication.id in self._items:
            raise ValueError(f"Duplicate medication id {medication.id}")
        self._items[medication.id] = medication

    def replace(self, medication: Medication) -> None:
        """Update a medication in place, keeping its position."""
        if medication.id not in self._items:
            raise KeyError(medication.id)
        self._items[medication.id] = medication

    def remove(self, medication_id: str) -> Medication | None:
        return self._items.pop(medication_id, None)

    def to_list(self) -> list[dict[str, Any]]:
        return [m.to_dict() for m in self._items.values()]


class ActionLog:
    """Append-only adherence log; the only removal is the toggle undo."""

    def __init__(self, entries: Iterable[ActionLogEntry] = ()) -> None:
        self._entries: list[ActionLogEntry] = list(entries)

    def __iter__(self) -> Iterator[ActionLogEntry]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: ActionLogEntry) -> None:
        self._entries.append(entry)

    def for_slot(
        self, medication_id: str, scheduled_time: str, day: date
    ) -> list[ActionLogEntry]:
        return [
            e
            for e in self._entries
            if e.matches_slot(medication_id, scheduled_time, day)
        ]

    def remove_where(self, predicate: Callable[[ActionLogEntry], bool]) -> int:
        """Drop entries matching ``predicate``; returns how many were removed."""
        kept = [e for e in self._entries if not predicate(e)]
        removed = len(self._entries) - len(kept)
        self._entries = kept
        return removed

    def to_list(self) -> list[dict[str, Any]]:
        return [e.to_dict() for e in self._entries]


class AppState:
    """Single owner of the stores, persisted write-through.

    Store failures never abort a mutation: they are logged and reported
    through ``on_notice``, and memory stays authoritative for the session.
    """

    def __init__(
        self,
        store: SQLiteStore | None,
        *,
        medications: MedicationStore | None = None,
        log: ActionLog | None = None,
        settings: Settings | None = None,
        clock: Clock = local_now,
        on_notice: NoticeHandler | None = None,
    ) -> None:
        self.store = store
        self.medications = (
            medications if medications is not None else MedicationStore()
        )
        self.log = log if log is not None else ActionLog()
        self.settings = settings or Settings()
        self.clock = clock
        self._on_notice = on_notice
        self._listeners: list[Callable[[], None]] = []

    @classmethod
    def open(
        cls,
        store: SQLiteStore,
        *,
        clock: Clock = local_now,
        on_notice: NoticeHandler | None = None,
    ) -> AppState:
        """Load every collection from ``store``.

        Each collection loads on its own: an unreadable one starts empty (or
        at defaults) without discarding the others.
        """
        state = cls(store, clock=clock, on_notice=on_notice)
        failed = False
        try:
            state.medications = MedicationStore(
                Medication.from_dict(raw)
                for raw in store.load_collection(MEDICATIONS_BLOB)
            )
        except (PersistenceError, ValueError) as exc:
            logger.error("Error loading medications: %s", exc)
            failed = True
        try:
            state.log = ActionLog(
                ActionLogEntry.from_dict(raw)
                for raw in store.load_collection(HISTORY_BLOB)
            )
        except (PersistenceError, ValueError) as exc:
            logger.error("Error loading history: %s", exc)
            failed = True
        try:
            state.settings = store.load_settings()
        except (PersistenceError, ValueError) as exc:
            logger.error("Error loading settings: %s", exc)
            failed = True
        if failed:
            state.notify("Error al cargar los datos guardados")
        logger.info(
            "Loaded %d medications and %d history entries",
            len(state.medications),
            len(state.log),
        )
        return state

    def close(self) -> None:
        self._listeners.clear()
        self.store = None

    def today(self) -> date:
        return self.clock().date()

    def notify(self, message: str) -> None:
        if self._on_notice is not None:
            self._on_notice(message)

    def subscribe(self, listener: Callable[[], None]) -> None:
        """Register a callback run after the medication set changes."""
        self._listeners.append(listener)

    def _medications_changed(self) -> None:
        for listener in list(self._listeners):
            listener()

    # Persistence

    def persist(self) -> bool:
        """Write every collection; returns False if the store failed."""
        if self.store is None:
            return True
        try:
            self.store.save_collection(MEDICATIONS_BLOB, self.medications.to_list())
            self.store.save_collection(HISTORY_BLOB, self.log.to_list())
            self.store.save_settings(self.settings)
        except PersistenceError as exc:
            logger.error("Error saving data: %s", exc)
            self.notify("Error al guardar los datos")
            return False
        return True

    # Medications

    def add_medication(
        self,
        name: str,
        dosage: str | None,
        times: Sequence[str],
        times_per_day: int | None = None,
    ) -> Medication:
        """Validate and store a new medication.

        Args:
            name: Display name; trimmed, must not be empty.
            dosage: Free text, optional.
            times: Dose times as ``HH:MM``; sorted before storing.
            times_per_day: Declared count; defaults to ``len(times)``.

        Returns:
            The created medication.

        Raises:
            ValidationError: Naming the first invalid field. Nothing is stored.
        """
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("name", "Ingresa el nombre del medicamento")
        declared = len(times) if times_per_day is None else times_per_day
        if not declared or declared < 1:
            raise ValidationError(
                "times_per_day", "Selecciona cuantas veces por dia"
            )
        filled = [t for t in times if t and str(t).strip()]
        if len(filled) != declared:
            raise ValidationError("times", "Completa todas las horas de toma")
        clean_times = [validate_dose_time(t) for t in filled]
        if len(set(clean_times)) != len(clean_times):
            raise ValidationError("times", "Las horas de toma no pueden repetirse")

        medication = Medication(
            id=new_id(),
            name=clean_name,
            dosage=(dosage or "").strip(),
            times=tuple(sorted(clean_times)),
            times_per_day=declared,
            created_at=self.clock(),
        )
        self.medications.add(medication)
        self.persist()
        logger.info("Medication added: %s %s", medication.name, medication.times)
        self._medications_changed()
        return medication

    def delete_medication(self, medication_id: str) -> bool:
        """Hard removal; history entries keep their name snapshot."""
        removed = self.medications.remove(medication_id)
        if removed is None:
            return False
        self.persist()
        logger.info("Medication deleted: %s", removed.name)
        self._medications_changed()
        return True

    def set_active(self, medication_id: str, active: bool) -> Medication | None:
        current = self.medications.get(medication_id)
        if current is None:
            return None
        updated = replace(current, active=active)
        self.medications.replace(updated)
        self.persist()
        self._medications_changed()
        return updated

    # Settings

    def update_settings(self, **changes: Any) -> Settings:
        """Apply preference changes and persist them.

        Raises:
            ValidationError: On unknown keys or an unknown text size.
        """
        allowed = {"sound_enabled", "vibration_enabled", "high_contrast", "text_size"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(sorted(unknown)[0], "Preferencia desconocida")
        if "text_size" in changes:
            try:
                changes["text_size"] = TextSize(changes["text_size"])
            except ValueError as exc:
                raise ValidationError("text_size", "Tamano de texto invalido") from exc
        self.settings = replace(self.settings, **changes)
        self.persist()
        return self.settings

    # Bulk operations

    def clear(self) -> None:
        """Delete every medication and the whole history; preferences stay."""
        self.medications = MedicationStore()
        self.log = ActionLog()
        if self.store is not None:
            try:
                self.store.delete_collection(MEDICATIONS_BLOB)
                self.store.delete_collection(HISTORY_BLOB)
            except PersistenceError as exc:
                logger.error("Error clearing data: %s", exc)
                self.notify("Error al borrar los datos")
        logger.info("All data cleared")
        self._medications_changed()

    def replace_all(
        self,
        medications: Sequence[Medication],
        history: Sequence[ActionLogEntry],
        settings: Settings,
    ) -> None:
        """Swap every collection at once (used by backup import)."""
        self.medications = MedicationStore(medications)
        self.log = ActionLog(history)
        self.settings = settings
        self.persist()
        self._medications_changed()
