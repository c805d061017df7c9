"""CLI del pastillero: tomas del dia, historial, copias y reporte Excel."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from pastillero.adherence import AdherenceTracker
from pastillero.backup import import_document, read_backup, write_backup
from pastillero.errors import PastilleroError
from pastillero.excel_writer import ExcelLayout, write_doctor_xlsx
from pastillero.model import LOCAL_TZ, SlotStatus
from pastillero.report import daily_adherence_summary, history_to_frame
from pastillero.schedule import format_dose_time
from pastillero.state import AppState
from pastillero.storage import SQLiteStore

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DB = Path.home() / ".pastillero" / "pastillero.sqlite3"

logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed argparse namespace.
    """
    parser = argparse.ArgumentParser(
        description="Recordatorio de medicamentos: tomas del dia e historial."
    )
    parser.add_argument(
        "--db",
        default=str(DEFAULT_DB),
        help="Archivo SQLite (default: ~/.pastillero/pastillero.sqlite3).",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Nivel de logging.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("today", help="Tomas de hoy agrupadas por horario.")

    add = sub.add_parser("add", help="Agregar un medicamento.")
    add.add_argument("name")
    add.add_argument("times", nargs="+", help="Horas HH:MM.")
    add.add_argument("--dosage", default="")

    for name, help_text in (
        ("take", "Marcar una toma como tomada (o deshacer)."),
        ("miss", "Registrar una toma olvidada."),
        ("skip", "Registrar una toma salteada."),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("medication_id")
        cmd.add_argument("time", help="Hora HH:MM.")

    resolve = sub.add_parser("resolve", help="Marcar todo un horario como tomado.")
    resolve.add_argument("time", help="Hora HH:MM.")

    sub.add_parser("history", help="Historial, mas reciente primero.")

    export = sub.add_parser("export", help="Exportar copia JSON.")
    export.add_argument("--out-dir", default=str(Path.cwd()))

    imp = sub.add_parser("import", help="Importar copia JSON (reemplaza todo).")
    imp.add_argument("path")

    report = sub.add_parser("report", help="Reporte Excel para el medico.")
    report.add_argument("--out-dir", default=str(Path.cwd() / "salidas"))

    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI.

    Returns:
        Exit code (0 on success, 1 on a rejected operation).
    """
    ns = parse_args(argv)
    logging.basicConfig(level=ns.log_level, format=LOG_FORMAT)
    try:
        state = AppState.open(
            SQLiteStore(Path(ns.db).expanduser()), on_notice=_print_notice
        )
    except PastilleroError as exc:
        print(f"Error: {exc}")
        return 1
    try:
        return _run(ns, state)
    except PastilleroError as exc:
        print(f"Error: {exc}")
        return 1
    finally:
        state.close()


def _run(ns: argparse.Namespace, state: AppState) -> int:
    tracker = AdherenceTracker(state)
    if ns.command == "today":
        _print_today(tracker)
    elif ns.command == "add":
        med = state.add_medication(ns.name, ns.dosage, ns.times)
        print(f"OK: {med.name} agregado ({med.id})")
    elif ns.command == "take":
        status = tracker.toggle(ns.medication_id, ns.time)
        print(f"OK: {ns.time} -> {status.value}")
    elif ns.command == "miss":
        _print_recorded(tracker.mark_missed(ns.medication_id, ns.time))
    elif ns.command == "skip":
        _print_recorded(tracker.mark_skipped(ns.medication_id, ns.time))
    elif ns.command == "resolve":
        entries = tracker.resolve_all_for_time(ns.time)
        print(f"OK: {len(entries)} tomas marcadas a las {format_dose_time(ns.time)}")
    elif ns.command == "history":
        for entry in tracker.history():
            print(
                f"{entry.day.isoformat()}  {entry.medication_name:<20} "
                f"{entry.scheduled_time}  {entry.action.value:<8} "
                f"{entry.recorded_at.astimezone(LOCAL_TZ):%d/%m/%Y %H:%M}"
            )
    elif ns.command == "export":
        print(f"OK: {write_backup(state, Path(ns.out_dir).expanduser())}")
    elif ns.command == "import":
        import_document(state, read_backup(Path(ns.path).expanduser()))
        print(f"OK: {len(state.medications)} medicamentos importados")
    elif ns.command == "report":
        history = history_to_frame(tracker.history())
        ts = datetime.now(tz=LOCAL_TZ).strftime("%Y-%m-%d_%H-%M-%S")
        out_path = Path(ns.out_dir).expanduser() / f"adherencia_{ts}.xlsx"
        write_doctor_xlsx(
            history, out_path, ExcelLayout(), summary=daily_adherence_summary(history)
        )
        print(f"OK: Output: {out_path}")
    return 0


def _print_today(tracker: AdherenceTracker) -> None:
    view = tracker.today_view()
    if not view:
        print("Sin medicamentos para hoy.")
        return
    for dose_time, slots in view.items():
        print(format_dose_time(dose_time))
        for medication_id, name, status in slots:
            mark = "x" if status is SlotStatus.TAKEN else " "
            print(f"  [{mark}] {name}  ({medication_id})")


def _print_recorded(entry: object) -> None:
    print("OK: registrado" if entry is not None else "Medicamento desconocido")


def _print_notice(message: str) -> None:
    print(f"Aviso: {message}")
