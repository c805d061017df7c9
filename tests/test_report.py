from __future__ import annotations

from datetime import date, datetime, timedelta

import pandas as pd

from helpers import LOCAL_TZ
from pastillero.model import Action, ActionLogEntry
from pastillero.report import (
    HISTORY_COLUMNS,
    SUMMARY_COLUMNS,
    daily_adherence_summary,
    history_to_frame,
)


def _entry(entry_id: str, action: Action, recorded_at: datetime) -> ActionLogEntry:
    return ActionLogEntry(
        id=entry_id,
        medication_id="m1",
        medication_name="Aspirin",
        action=action,
        scheduled_time="08:00",
        day=recorded_at.date(),
        recorded_at=recorded_at,
    )


def test_history_to_frame_empty() -> None:
    df = history_to_frame([])
    assert df.empty
    assert list(df.columns) == HISTORY_COLUMNS


def test_history_to_frame_newest_first_keeps_ties_in_log_order() -> None:
    t0 = datetime(2026, 10, 17, 8, 5, tzinfo=LOCAL_TZ)
    entries = [
        _entry("a", Action.TAKEN, t0),
        _entry("b", Action.MISSED, t0 + timedelta(days=1)),
        _entry("c", Action.SKIPPED, t0 + timedelta(days=1)),
    ]
    df = history_to_frame(entries)
    assert list(df["action"]) == ["missed", "skipped", "taken"]
    newer, older = date(2026, 10, 18), date(2026, 10, 17)
    assert list(df["date"]) == [newer, newer, older]


def test_daily_adherence_summary_empty() -> None:
    out = daily_adherence_summary(pd.DataFrame())
    assert list(out.columns) == SUMMARY_COLUMNS
    assert out.empty


def test_daily_adherence_summary_counts_and_percentage() -> None:
    t0 = datetime(2026, 10, 17, 8, 5, tzinfo=LOCAL_TZ)
    entries = [
        _entry("a", Action.TAKEN, t0),
        _entry("b", Action.TAKEN, t0 + timedelta(hours=12)),
        _entry("c", Action.MISSED, t0 + timedelta(days=1)),
        _entry("d", Action.TAKEN, t0 + timedelta(days=1, hours=1)),
        _entry("e", Action.TAKEN, t0 + timedelta(days=1, hours=2)),
    ]
    out = daily_adherence_summary(history_to_frame(entries))

    assert list(out["date"]) == [date(2026, 10, 17), date(2026, 10, 18)]
    assert list(out["taken"]) == [2, 2]
    assert list(out["missed"]) == [0, 1]
    assert list(out["skipped"]) == [0, 0]
    assert list(out["total"]) == [2, 3]
    assert list(out["taken_pct"]) == [100.0, 66.7]
