"""Copia de seguridad JSON: exportar e importar todo el estado."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from pastillero.errors import PersistenceError, ValidationError
from pastillero.model import ActionLogEntry, Medication, Settings
from pastillero.state import AppState

logger = logging.getLogger(__name__)

BACKUP_VERSION = "1.0"

_CONTAINER_FIELDS: dict[str, type] = {
    "medications": list,
    "history": list,
    "settings": dict,
}


def export_document(state: AppState, now: datetime | None = None) -> dict[str, Any]:
    """Serializable snapshot of medications, history and settings."""
    now = now or state.clock()
    return {
        "medications": state.medications.to_list(),
        "history": state.log.to_list(),
        "settings": state.settings.to_dict(),
        "exportDate": now.isoformat(),
        "version": BACKUP_VERSION,
    }


def write_backup(state: AppState, out_dir: Path) -> Path:
    """Write ``medication-data-YYYY-MM-DD.json`` into ``out_dir``."""
    now = state.clock()
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / f"medication-data-{now.date().isoformat()}.json"
    text = json.dumps(export_document(state, now), ensure_ascii=False, indent=2)
    out_path.write_text(text, encoding="utf-8")
    logger.info("Backup written to %s", out_path)
    return out_path


def read_backup(path: Path) -> dict[str, Any]:
    """Load a backup file.

    Raises:
        PersistenceError: If the file cannot be read.
        ValidationError: If the file is not a JSON object.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PersistenceError(f"No se pudo leer {path}: {exc}") from exc
    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValidationError(
            "document", "Archivo invalido: no es un JSON valido"
        ) from exc
    if not isinstance(document, dict):
        raise ValidationError("document", "Archivo invalido: se esperaba un objeto")
    return document


def import_document(state: AppState, document: Any) -> None:
    """Replace the whole state with ``document``.

    Every part is parsed before anything is replaced, so a rejected
    document leaves the state untouched.

    Raises:
        ValidationError: Naming the missing or malformed field.
    """
    if not isinstance(document, dict):
        raise ValidationError("document", "Archivo invalido: se esperaba un objeto")
    for name, container in _CONTAINER_FIELDS.items():
        if not isinstance(document.get(name), container):
            raise ValidationError(name, f"Archivo invalido: falta '{name}'")

    try:
        medications = [Medication.from_dict(raw) for raw in document["medications"]]
        history = [ActionLogEntry.from_dict(raw) for raw in document["history"]]
    except ValueError as exc:
        raise ValidationError("document", f"Archivo invalido: {exc}") from exc
    if len({m.id for m in medications}) != len(medications):
        raise ValidationError("medications", "Archivo invalido: ids repetidos")
    settings = Settings.from_dict(document["settings"], base=state.settings)

    state.replace_all(medications, history, settings)
    logger.info(
        "Imported %d medications and %d history entries",
        len(medications),
        len(history),
    )
