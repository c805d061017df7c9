"""Generación de Excel formateado del historial para la consulta médica."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from pastillero.model import LOCAL_TZ

_DIA_SEMANA: tuple[str, ...] = ("lun", "mar", "mie", "jue", "vie", "sab", "dom")

_ACCION: dict[str, str] = {
    "taken": "Tomada",
    "missed": "Olvidada",
    "skipped": "Salteada",
}

_HEADER_MAP: dict[str, str] = {
    "weekday": "Día",
    "datetime": "Registrado",
    "medication": "Medicamento",
    "scheduled_time": "Horario",
    "action": "Acción",
    "taken": "Tomadas",
    "missed": "Olvidadas",
    "skipped": "Salteadas",
    "total": "Total",
    "taken_pct": "% tomadas",
}

_MISSED_FILL = PatternFill(fill_type="solid", start_color="FFF4CCCC")


@dataclass(frozen=True)
class ExcelLayout:
    """Layout/formatting configuration for the doctor workbook."""

    sheet_name: str = "Historial"
    summary_sheet_name: str = "Resumen diario"


def _weekday_label(i: object) -> str:
    """Convierte índice 0-6 (lunes-domingo) a etiqueta de 3 letras."""
    try:
        if i is None or (isinstance(i, float) and pd.isna(i)):
            return ""
        if isinstance(i, int | float):
            idx = int(i)
            return _DIA_SEMANA[idx] if 0 <= idx < 7 else ""
        return ""
    except (ValueError, TypeError):
        return ""


def _add_weekday_column(export_df: pd.DataFrame) -> pd.DataFrame:
    """Añade columna weekday (Día) a partir de date."""
    if "date" not in export_df.columns or export_df.empty:
        return export_df
    weekday_series = pd.to_datetime(export_df["date"]).dt.weekday
    export_df = export_df.copy()
    export_df["weekday"] = weekday_series.map(_weekday_label)
    cols = ["weekday"] + [c for c in export_df.columns if c != "weekday"]
    return export_df[cols]


def _wall_clock(value: object) -> object:
    """Local wall time without tzinfo, as Excel expects."""
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(LOCAL_TZ).replace(tzinfo=None)
    return value


def _prepare_history(df: pd.DataFrame) -> pd.DataFrame:
    """Quita timezone de datetime, traduce acciones y elimina columna date."""
    export_df = _add_weekday_column(df.copy())
    if "datetime" in export_df.columns and not export_df.empty:
        export_df["datetime"] = export_df["datetime"].map(_wall_clock)
    if "action" in export_df.columns:
        export_df["action"] = export_df["action"].map(lambda a: _ACCION.get(a, a))
    if "date" in export_df.columns:
        export_df = export_df.drop(columns=["date"])
    return export_df.rename(columns=_HEADER_MAP)


def _prepare_summary(df: pd.DataFrame) -> pd.DataFrame:
    export_df = _add_weekday_column(df.copy())
    if "date" in export_df.columns:
        export_df["date"] = pd.to_datetime(export_df["date"])
    return export_df.rename(columns={**_HEADER_MAP, "date": "Fecha"})


def write_doctor_xlsx(
    history: pd.DataFrame,
    out_path: Path,
    layout: ExcelLayout,
    summary: pd.DataFrame | None = None,
) -> None:
    """Write a formatted Excel file suitable for printing.

    Args:
        history: Frame from ``history_to_frame``.
        out_path: Output path for the XLSX file.
        layout: Excel layout parameters.
        summary: Optional frame from ``daily_adherence_summary``.
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)

    with pd.ExcelWriter(out_path, engine="openpyxl") as writer:
        _prepare_history(history).to_excel(
            writer, index=False, sheet_name=layout.sheet_name
        )
        _format_sheet(writer.book[layout.sheet_name])
        if summary is not None:
            _prepare_summary(summary).to_excel(
                writer, index=False, sheet_name=layout.summary_sheet_name
            )
            _format_sheet(writer.book[layout.summary_sheet_name])


def _style_header_row(ws: Any) -> None:
    """Aplica fuente negrita, alineación y borde a la fila de cabecera."""
    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    header_font = Font(bold=True)
    center = Alignment(horizontal="center", vertical="center", wrap_text=True)
    for cell in ws[1]:
        cell.font = header_font
        cell.alignment = center
        cell.border = border


def _style_body_rows(ws: Any) -> None:
    """Aplica alineación, borde y altura fija a las filas de datos."""
    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    center = Alignment(horizontal="center", vertical="center", wrap_text=True)
    for row in ws.iter_rows(min_row=2):
        for cell in row:
            cell.alignment = center
            cell.border = border
        ws.row_dimensions[row[0].row].height = 15


def _get_header_col_index(ws: Any) -> dict[str, int]:
    """Devuelve mapa nombre de cabecera -> índice de columna (1-based)."""
    headers = [str(cell.value) for cell in ws[1]]
    return {name: idx + 1 for idx, name in enumerate(headers)}


def _apply_column_widths(ws: Any, col_index: dict[str, int]) -> None:
    """Establece anchos de columna para evitar ###."""
    widths = [
        ("Día", 6),
        ("Fecha", 12),
        ("Registrado", 18),
        ("Medicamento", 24),
        ("Horario", 9),
        ("Acción", 11),
        ("% tomadas", 11),
    ]
    for header, width in widths:
        idx = col_index.get(header)
        if idx is not None:
            letter = ws.cell(row=1, column=idx).column_letter
            ws.column_dimensions[letter].width = width


def _apply_number_formats(ws: Any, col_index: dict[str, int]) -> None:
    """Aplica formatos numéricos por cabecera."""
    fmt_map: dict[str, str] = {
        "Fecha": "dd/mm/yyyy",
        "Registrado": "dd/mm/yyyy hh:mm",
        "% tomadas": "0.0",
    }
    for row in ws.iter_rows(min_row=2):
        for header, fmt in fmt_map.items():
            idx = col_index.get(header)
            if idx is not None:
                row[idx - 1].number_format = fmt


def _highlight_missed(ws: Any, col_index: dict[str, int]) -> None:
    """Resalta las tomas olvidadas."""
    idx = col_index.get("Acción")
    if idx is None:
        return
    for row in ws.iter_rows(min_row=2):
        if row[idx - 1].value == _ACCION["missed"]:
            for cell in row:
                cell.fill = _MISSED_FILL


def _format_sheet(ws: Any) -> None:
    """Apply borders, widths and number formats to a worksheet.

    Args:
        ws: openpyxl worksheet.
    """
    _style_header_row(ws)
    _style_body_rows(ws)
    col_index = _get_header_col_index(ws)
    _apply_column_widths(ws, col_index)
    _apply_number_formats(ws, col_index)
    _highlight_missed(ws, col_index)
