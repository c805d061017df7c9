"""Persistencia SQLite para medicamentos, historial y preferencias."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from pastillero.errors import PersistenceError
from pastillero.model import Settings

logger = logging.getLogger(__name__)

MEDICATIONS_BLOB = "medications"
HISTORY_BLOB = "history"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS app_config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS blobs (
    name TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT
);
"""

_SETTINGS_KEYS = ("soundEnabled", "vibrationEnabled", "highContrast", "textSize")


class SQLiteStore:
    """Repositorio SQLite: dos colecciones JSON y una tabla clave/valor."""

    def __init__(self, db_path: Path) -> None:
        """Create store and ensure schema exists.

        Raises:
            PersistenceError: If the database cannot be created or opened.
        """
        self._db_path = db_path
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_schema()
        except (OSError, sqlite3.Error) as exc:
            raise PersistenceError(f"No se pudo abrir {db_path}: {exc}") from exc

    @property
    def path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(SCHEMA_SQL)
            self._migrate(conn)
            conn.commit()

    def _migrate(self, conn: sqlite3.Connection) -> None:
        """Apply lightweight schema/data migrations."""
        cols = {row["name"] for row in conn.execute("PRAGMA table_info(blobs)")}
        if "updated_at" not in cols:
            conn.execute("ALTER TABLE blobs ADD COLUMN updated_at TEXT")

        # Older files stored settings as one JSON document under "settings".
        row = conn.execute(
            "SELECT value FROM app_config WHERE key = 'settings'"
        ).fetchone()
        if row is not None:
            legacy = _parse_json(row["value"])
            if isinstance(legacy, dict):
                conn.executemany(
                    """
                    INSERT INTO app_config(key, value) VALUES(?, ?)
                    ON CONFLICT(key) DO NOTHING
                    """,
                    [
                        (key, json.dumps(legacy[key]))
                        for key in _SETTINGS_KEYS
                        if key in legacy
                    ],
                )
            conn.execute("DELETE FROM app_config WHERE key = 'settings'")

    def load_collection(self, name: str) -> list[Any]:
        """Return the stored JSON collection, or ``[]`` if it was never written.

        Raises:
            PersistenceError: If the store is unreadable or the blob is not a list.
        """
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT value FROM blobs WHERE name = ?", (name,)
                ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Error leyendo {name}: {exc}") from exc
        if row is None:
            return []
        parsed = _parse_json(row["value"])
        if not isinstance(parsed, list):
            raise PersistenceError(f"Coleccion {name} corrupta")
        return parsed

    def save_collection(self, name: str, items: list[dict[str, Any]]) -> None:
        """Overwrite a JSON collection wholesale."""
        payload = json.dumps(items, ensure_ascii=False)
        updated_at = datetime.now().isoformat(timespec="seconds")
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO blobs(name, value, updated_at) VALUES(?, ?, ?)
                    ON CONFLICT(name) DO UPDATE SET
                        value=excluded.value, updated_at=excluded.updated_at
                    """,
                    (name, payload, updated_at),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Error guardando {name}: {exc}") from exc
        logger.debug("Saved %s (%d items)", name, len(items))

    def delete_collection(self, name: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM blobs WHERE name = ?", (name,))
                conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Error borrando {name}: {exc}") from exc

    def load_settings(self) -> Settings:
        """Devuelve preferencias guardadas mezcladas sobre los defaults."""
        try:
            with self._connect() as conn:
                rows = conn.execute("SELECT key, value FROM app_config").fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Error leyendo preferencias: {exc}") from exc
        values = {
            row["key"]: _parse_json(row["value"])
            for row in rows
            if row["key"] in _SETTINGS_KEYS
        }
        return Settings.from_dict({k: v for k, v in values.items() if v is not None})

    def save_settings(self, settings: Settings) -> None:
        """Guarda las preferencias en la tabla clave/valor."""
        payload = {key: json.dumps(value) for key, value in settings.to_dict().items()}
        try:
            with self._connect() as conn:
                conn.executemany(
                    """
                    INSERT INTO app_config(key, value) VALUES(?, ?)
                    ON CONFLICT(key) DO UPDATE SET value=excluded.value
                    """,
                    payload.items(),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Error guardando preferencias: {exc}") from exc


def _parse_json(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None
