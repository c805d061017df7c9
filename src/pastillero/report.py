"""Tablas de historial y resumen diario de adherencia."""

from __future__ import annotations

from collections.abc import Sequence

import pandas as pd

from pastillero.model import Action, ActionLogEntry

HISTORY_COLUMNS = [
    "date",
    "datetime",
    "medication",
    "scheduled_time",
    "action",
]

SUMMARY_COLUMNS = [
    "date",
    "taken",
    "missed",
    "skipped",
    "total",
    "taken_pct",
]


def history_to_frame(entries: Sequence[ActionLogEntry]) -> pd.DataFrame:
    """Convert log entries to a DataFrame, newest first.

    Ties on ``datetime`` keep the input order.
    """
    ordered = sorted(entries, key=lambda e: e.recorded_at, reverse=True)
    rows = [
        {
            "date": e.day,
            "datetime": e.recorded_at,
            "medication": e.medication_name,
            "scheduled_time": e.scheduled_time,
            "action": e.action.value,
        }
        for e in ordered
    ]
    return pd.DataFrame(rows, columns=HISTORY_COLUMNS)


def daily_adherence_summary(history: pd.DataFrame) -> pd.DataFrame:
    """Aggregate actions by day (taken/missed/skipped counts)."""
    if history.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)
    counts = (
        history.groupby(["date", "action"]).size().unstack(fill_value=0)
    )
    for action in Action:
        if action.value not in counts.columns:
            counts[action.value] = 0
    out = counts[[a.value for a in Action]].reset_index()
    out.columns.name = None
    out["total"] = out["taken"] + out["missed"] + out["skipped"]
    out["taken_pct"] = (out["taken"] / out["total"] * 100).round(1)
    return out[SUMMARY_COLUMNS].sort_values("date").reset_index(drop=True)
