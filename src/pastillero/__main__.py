"""Punto de entrada de la app Kivy."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from pastillero.cli import DEFAULT_DB, LOG_FORMAT


def main() -> int:
    """Run app entrypoint."""
    parser = argparse.ArgumentParser(description="Pastillero (interfaz grafica).")
    parser.add_argument("--db", default=str(DEFAULT_DB))
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument(
        "--no-notifications",
        action="store_true",
        help="Arrancar sin permiso de recordatorios.",
    )
    ns = parser.parse_args()
    logging.basicConfig(level=ns.log_level, format=LOG_FORMAT)
    try:
        from pastillero.app import run_app

        return run_app(
            Path(ns.db).expanduser(), notifications=not ns.no_notifications
        )
    except ImportError as exc:
        print(f"No se pudo iniciar Kivy: {exc}")
        print("Instala dependencias de GUI: pip install 'pastillero[gui]'")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
