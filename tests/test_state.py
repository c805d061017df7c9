from __future__ import annotations

from pathlib import Path

import pytest

from helpers import FakeClock
from pastillero.adherence import AdherenceTracker
from pastillero.errors import PersistenceError, ValidationError
from pastillero.model import TextSize
from pastillero.state import AppState
from pastillero.storage import SQLiteStore


def test_add_medication_sorts_and_persists(
    state: AppState, store: SQLiteStore, clock: FakeClock
) -> None:
    med = state.add_medication("  Aspirin ", " 81mg ", ["20:00", "08:00"], 2)

    assert med.name == "Aspirin"
    assert med.dosage == "81mg"
    assert med.times == ("08:00", "20:00")
    assert med.active is True
    assert med.created_at == clock.now

    reloaded = AppState.open(store, clock=clock)
    assert [m.id for m in reloaded.medications] == [med.id]
    assert reloaded.medications.get(med.id) == med


def test_ids_are_unique(state: AppState) -> None:
    ids = {state.add_medication(f"Med {i}", "", ["08:00"]).id for i in range(20)}
    assert len(ids) == 20


@pytest.mark.parametrize(
    ("name", "times", "per_day", "field"),
    [
        ("   ", ["08:00"], 1, "name"),
        ("Aspirin", [], 0, "times_per_day"),
        ("Aspirin", ["08:00"], 2, "times"),
        ("Aspirin", ["08:00", ""], 2, "times"),
        ("Aspirin", ["8am"], 1, "times"),
        ("Aspirin", ["08:00", "08:00"], 2, "times"),
    ],
)
def test_add_medication_rejects_invalid_input(
    state: AppState,
    store: SQLiteStore,
    name: str,
    times: list[str],
    per_day: int,
    field: str,
) -> None:
    with pytest.raises(ValidationError) as info:
        state.add_medication(name, "", times, per_day)
    assert info.value.field == field
    assert len(state.medications) == 0
    assert store.load_collection("medications") == []


def test_delete_keeps_history_snapshot(state: AppState) -> None:
    tracker = AdherenceTracker(state)
    med = state.add_medication("Aspirin", "81mg", ["08:00"])
    tracker.mark_taken(med.id, "08:00")

    assert state.delete_medication(med.id) is True
    assert state.delete_medication(med.id) is False
    assert len(state.medications) == 0
    [entry] = tracker.history()
    assert entry.medication_name == "Aspirin"
    assert entry.medication_id == med.id


def test_set_active_keeps_store_order(state: AppState) -> None:
    first = state.add_medication("A", "", ["08:00"])
    second = state.add_medication("B", "", ["09:00"])

    updated = state.set_active(first.id, False)

    assert updated is not None and updated.active is False
    assert [m.id for m in state.medications] == [first.id, second.id]
    assert [m.id for m in state.medications.active()] == [second.id]
    assert state.set_active("missing", True) is None


def test_persistence_failure_surfaces_notice_and_keeps_memory(
    state: AppState, notices: list[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    def _fail(*_args: object) -> None:
        raise PersistenceError("disk full")

    monkeypatch.setattr(state.store, "save_collection", _fail)

    med = state.add_medication("Aspirin", "", ["08:00"])

    assert notices == ["Error al guardar los datos"]
    assert state.medications.get(med.id) == med


def test_open_with_unreadable_history_notifies(
    tmp_path: Path, clock: FakeClock
) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    store.save_collection("history", [{"id": "only-id"}])
    notices: list[str] = []

    state = AppState.open(store, clock=clock, on_notice=notices.append)

    assert notices == ["Error al cargar los datos guardados"]
    assert len(state.log) == 0


def test_open_with_corrupt_medications_keeps_history_and_settings(
    state: AppState, store: SQLiteStore, clock: FakeClock
) -> None:
    med = state.add_medication("Aspirin", "", ["08:00"])
    AdherenceTracker(state).mark_taken(med.id, "08:00")
    state.update_settings(text_size="large")
    store.save_collection("medications", [{"id": "broken"}])
    notices: list[str] = []

    reopened = AppState.open(store, clock=clock, on_notice=notices.append)
    reopened.add_medication("Vitamin D", "", ["09:00"])

    assert notices == ["Error al cargar los datos guardados"]
    assert [m.name for m in reopened.medications] == ["Vitamin D"]
    assert len(store.load_collection("history")) == 1
    assert store.load_settings().text_size is TextSize.LARGE


def test_open_with_corrupt_history_keeps_medications_and_settings(
    state: AppState, store: SQLiteStore, clock: FakeClock
) -> None:
    med = state.add_medication("Aspirin", "", ["08:00"])
    state.update_settings(high_contrast=True)
    store.save_collection("history", [{"id": "only-id"}])

    reopened = AppState.open(store, clock=clock)

    assert [m.id for m in reopened.medications] == [med.id]
    assert len(reopened.log) == 0
    assert reopened.settings.high_contrast is True


def test_update_settings_validates_and_persists(
    state: AppState, store: SQLiteStore
) -> None:
    state.update_settings(sound_enabled=False, text_size="large")
    assert store.load_settings().text_size is TextSize.LARGE
    assert store.load_settings().sound_enabled is False

    with pytest.raises(ValidationError) as info:
        state.update_settings(text_size="giant")
    assert info.value.field == "text_size"
    with pytest.raises(ValidationError):
        state.update_settings(theme="dark")


def test_clear_removes_medications_and_history_but_not_settings(
    state: AppState, store: SQLiteStore, clock: FakeClock
) -> None:
    tracker = AdherenceTracker(state)
    med = state.add_medication("Aspirin", "", ["08:00"])
    tracker.mark_taken(med.id, "08:00")
    state.update_settings(high_contrast=True)

    state.clear()

    reloaded = AppState.open(store, clock=clock)
    assert len(reloaded.medications) == 0
    assert len(reloaded.log) == 0
    assert reloaded.settings.high_contrast is True


def test_listeners_run_on_medication_changes(state: AppState) -> None:
    calls: list[int] = []
    state.subscribe(lambda: calls.append(len(state.medications)))

    med = state.add_medication("Aspirin", "", ["08:00"])
    state.delete_medication(med.id)

    assert calls == [1, 0]
