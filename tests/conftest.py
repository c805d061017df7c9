from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from helpers import LOCAL_TZ, FakeClock
from pastillero.state import AppState
from pastillero.storage import SQLiteStore


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 18, 9, 0, tzinfo=LOCAL_TZ))


@pytest.fixture
def notices() -> list[str]:
    return []


@pytest.fixture
def store(tmp_path: Path) -> SQLiteStore:
    return SQLiteStore(tmp_path / "pastillero.sqlite3")


@pytest.fixture
def state(store: SQLiteStore, clock: FakeClock, notices: list[str]) -> AppState:
    return AppState.open(store, clock=clock, on_notice=notices.append)
