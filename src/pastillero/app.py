"""App Kivy: tomas del dia, historial, preferencias y recordatorios."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from pastillero.adherence import AdherenceTracker
from pastillero.backup import import_document, read_backup, write_backup
from pastillero.errors import PastilleroError
from pastillero.model import SlotStatus, TextSize
from pastillero.notifications import NotificationScheduler, ReminderEvent, TimerHandle
from pastillero.schedule import format_dose_time
from pastillero.state import AppState
from pastillero.storage import SQLiteStore

logger = logging.getLogger(__name__)

DEFAULT_TIMES = ["08:00", "12:00", "18:00", "22:00"]

_FONT_SIZES: dict[TextSize, str] = {
    TextSize.NORMAL: "18sp",
    TextSize.LARGE: "22sp",
    TextSize.EXTRA_LARGE: "26sp",
}


def kivy_timers(delay: float, callback: Callable[[], None]) -> TimerHandle:
    """Timer backend on top of ``Clock.schedule_once``."""
    from kivy.clock import Clock

    return Clock.schedule_once(lambda _dt: callback(), delay)


def run_app(db_path: Path, notifications: bool = True) -> int:
    """Lanza la app Kivy."""
    from kivy.app import App
    from kivy.core.audio import SoundLoader
    from kivy.core.window import Window
    from kivy.uix.boxlayout import BoxLayout
    from kivy.uix.button import Button
    from kivy.uix.checkbox import CheckBox
    from kivy.uix.filechooser import FileChooserListView
    from kivy.uix.gridlayout import GridLayout
    from kivy.uix.label import Label
    from kivy.uix.popup import Popup
    from kivy.uix.scrollview import ScrollView
    from kivy.uix.spinner import Spinner
    from kivy.uix.textinput import TextInput

    class KivyAlerter:
        """Popup, beep and vibration for reminders."""

        def __init__(self, app: PastilleroApp) -> None:
            self._app = app
            self._sound = SoundLoader.load("data/sounds/reminder.wav")

        def show(self, event: ReminderEvent) -> None:
            self._app.show_reminder(event)

        def play_sound(self) -> None:
            if self._sound is not None:
                self._sound.play()

        def vibrate(self) -> None:
            # Desktop hosts have no vibration motor.
            logger.debug("vibrate requested for reminder")

    class PastilleroApp(App):
        """Main Kivy app."""

        def __init__(self, **kwargs: object) -> None:
            super().__init__(**kwargs)
            self.schedule_box: GridLayout | None = None
            self.status: Label | None = None
            self.state = AppState.open(
                SQLiteStore(db_path), on_notice=self._show_notice
            )
            self.tracker = AdherenceTracker(self.state)
            self.notifications_allowed = notifications
            self.scheduler = NotificationScheduler(
                self.state,
                kivy_timers,
                KivyAlerter(self),
                permission=lambda: self.notifications_allowed,
            )

        def build(self) -> BoxLayout:
            Window.bind(on_key_down=self._on_key_down)

            root = BoxLayout(orientation="vertical", spacing=8, padding=10)
            self.status = Label(text="", size_hint_y=None, height=30)

            actions = BoxLayout(
                orientation="horizontal",
                spacing=8,
                size_hint_y=None,
                height=48,
            )
            for text, handler in (
                ("Agregar", self._open_add_popup),
                ("Historial", self._open_history_popup),
                ("Preferencias", self._open_settings_popup),
                ("Exportar", self._on_export),
                ("Importar", self._open_import_popup),
            ):
                btn = Button(text=text)
                btn.bind(on_press=handler)
                actions.add_widget(btn)
            root.add_widget(actions)
            root.add_widget(self.status)

            self.schedule_box = GridLayout(cols=1, spacing=6, size_hint_y=None)
            self.schedule_box.bind(minimum_height=self.schedule_box.setter("height"))
            scroll = ScrollView()
            scroll.add_widget(self.schedule_box)
            root.add_widget(scroll)

            self._apply_contrast()
            self.state.subscribe(self._render_today)
            self.scheduler.resume()
            self._render_today()
            # Day rollover and status refresh.
            from kivy.clock import Clock

            Clock.schedule_interval(lambda _dt: self._render_today(), 60)
            return root

        def on_resume(self) -> bool:
            self.scheduler.resume()
            self._render_today()
            return True

        def on_stop(self) -> None:
            self.scheduler.shutdown()
            self.state.close()

        def _on_key_down(
            self,
            _window: object,
            keycode: int,
            _scancode: int,
            _text: str,
            _modifiers: list[str],
        ) -> bool:
            # Esc: salir de fullscreen o cerrar app.
            if keycode != 27:
                return False
            if Window.fullscreen:
                Window.fullscreen = False
            else:
                self.stop()
            return True

        def _apply_contrast(self) -> None:
            if self.state.settings.high_contrast:
                Window.clearcolor = (0, 0, 0, 1)
            else:
                Window.clearcolor = (0.1, 0.1, 0.1, 1)

        def _font_size(self) -> str:
            return _FONT_SIZES[self.state.settings.text_size]

        def _render_today(self) -> None:
            if self.schedule_box is None:
                return
            box = self.schedule_box
            box.clear_widgets()
            view = self.tracker.today_view()
            if not view:
                box.add_widget(
                    Label(
                        text="Sin medicamentos. Toca 'Agregar' para empezar.",
                        size_hint_y=None,
                        height=60,
                    )
                )
                return
            for dose_time, slots in view.items():
                header = BoxLayout(
                    orientation="horizontal", size_hint_y=None, height=40
                )
                header.add_widget(
                    Label(text=format_dose_time(dose_time), font_size=self._font_size())
                )
                if len(slots) > 1:
                    resolve_btn = Button(text="Resolver todo", size_hint_x=0.35)
                    resolve_btn.bind(
                        on_press=lambda *_a, t=dose_time: self._resolve_all(t)
                    )
                    header.add_widget(resolve_btn)
                box.add_widget(header)
                for medication_id, name, status in slots:
                    box.add_widget(
                        self._slot_row(medication_id, name, dose_time, status)
                    )

        def _slot_row(
            self, medication_id: str, name: str, dose_time: str, status: SlotStatus
        ) -> BoxLayout:
            row = BoxLayout(orientation="horizontal", size_hint_y=None, height=48)
            medication = self.state.medications.get(medication_id)
            dosage = medication.dosage if medication is not None else ""
            row.add_widget(
                Label(text=f"{name} {dosage}".strip(), font_size=self._font_size())
            )
            taken = status is SlotStatus.TAKEN
            toggle_btn = Button(
                text="Tomada" if taken else "Marcar", size_hint_x=0.3
            )
            toggle_btn.bind(
                on_press=lambda *_a: self._on_toggle(medication_id, name, dose_time)
            )
            row.add_widget(toggle_btn)
            delete_btn = Button(text="Borrar", size_hint_x=0.2)
            delete_btn.bind(
                on_press=lambda *_a: self._confirm(
                    "Borrar medicamento",
                    f"¿Borrar {name}? No se puede deshacer.",
                    lambda: self.state.delete_medication(medication_id),
                )
            )
            row.add_widget(delete_btn)
            return row

        def _on_toggle(self, medication_id: str, name: str, dose_time: str) -> None:
            if self.tracker.status_of(medication_id, dose_time) is SlotStatus.TAKEN:
                self._confirm(
                    "Deshacer toma",
                    f"¿Marcar {name} como no tomada?",
                    lambda: self._toggle(medication_id, dose_time),
                )
            else:
                self._toggle(medication_id, dose_time)

        def _toggle(self, medication_id: str, dose_time: str) -> None:
            status = self.tracker.toggle(medication_id, dose_time)
            self._show_notice(
                "Marcada como tomada"
                if status is SlotStatus.TAKEN
                else "Toma desmarcada"
            )
            self._render_today()

        def _resolve_all(self, dose_time: str) -> None:
            self.tracker.resolve_all_for_time(dose_time)
            self._render_today()
            self._show_notice(
                f"Todas las tomas de las {format_dose_time(dose_time)} marcadas"
            )

        def _open_add_popup(self, _: object) -> None:
            content = BoxLayout(orientation="vertical", spacing=8, padding=8)
            name_input = TextInput(hint_text="Nombre", multiline=False)
            dosage_input = TextInput(hint_text="Dosis (opcional)", multiline=False)
            count = Spinner(text="1", values=["1", "2", "3", "4"], size_hint_y=None)
            time_inputs: list[TextInput] = []
            times_box = BoxLayout(orientation="vertical", spacing=4)

            def rebuild_times(*_args: object) -> None:
                times_box.clear_widgets()
                time_inputs.clear()
                for i in range(int(count.text)):
                    inp = TextInput(text=DEFAULT_TIMES[i], multiline=False)
                    time_inputs.append(inp)
                    times_box.add_widget(inp)

            count.bind(text=rebuild_times)
            rebuild_times()
            for widget in (name_input, dosage_input, count, times_box):
                content.add_widget(widget)

            footer = BoxLayout(orientation="horizontal", size_hint_y=None, height=42)
            cancel_btn = Button(text="Cancelar")
            save_btn = Button(text="Guardar")
            footer.add_widget(cancel_btn)
            footer.add_widget(save_btn)
            content.add_widget(footer)
            popup = Popup(title="Agregar medicamento", content=content)
            cancel_btn.bind(on_press=lambda *_a: popup.dismiss())

            def save(*_args: object) -> None:
                try:
                    med = self.state.add_medication(
                        name_input.text,
                        dosage_input.text,
                        [inp.text for inp in time_inputs],
                        times_per_day=int(count.text),
                    )
                except PastilleroError as exc:
                    self._show_notice(str(exc))
                    return
                popup.dismiss()
                self._show_notice(f"{med.name} agregado")

            save_btn.bind(on_press=save)
            popup.open()

        def _open_history_popup(self, _: object) -> None:
            grid = GridLayout(cols=1, spacing=4, size_hint_y=None)
            grid.bind(minimum_height=grid.setter("height"))
            entries = self.tracker.history()
            if not entries:
                grid.add_widget(
                    Label(text="Sin historial", size_hint_y=None, height=30)
                )
            for entry in entries:
                grid.add_widget(
                    Label(
                        text=(
                            f"{entry.day:%d/%m/%Y}  {entry.medication_name}  "
                            f"{format_dose_time(entry.scheduled_time)}  "
                            f"{entry.action.value}  "
                            f"({entry.recorded_at:%d/%m/%Y %H:%M})"
                        ),
                        size_hint_y=None,
                        height=30,
                    )
                )
            scroll = ScrollView()
            scroll.add_widget(grid)
            Popup(title="Historial", content=scroll, size_hint=(0.92, 0.92)).open()

        def _open_settings_popup(self, _: object) -> None:
            content = BoxLayout(orientation="vertical", spacing=8, padding=8)
            settings = self.state.settings
            checks: dict[str, CheckBox] = {}
            for key, label, value in (
                ("sound_enabled", "Sonido", settings.sound_enabled),
                ("vibration_enabled", "Vibracion", settings.vibration_enabled),
                ("high_contrast", "Alto contraste", settings.high_contrast),
            ):
                row = BoxLayout(orientation="horizontal", size_hint_y=None, height=36)
                chk = CheckBox(active=value)
                checks[key] = chk
                row.add_widget(chk)
                row.add_widget(Label(text=label))
                content.add_widget(row)
            size = Spinner(
                text=settings.text_size.value,
                values=[t.value for t in TextSize],
                size_hint_y=None,
                height=40,
            )
            content.add_widget(size)
            clear_btn = Button(
                text="Borrar todos los datos", size_hint_y=None, height=40
            )
            save_btn = Button(text="Guardar", size_hint_y=None, height=40)
            content.add_widget(clear_btn)
            content.add_widget(save_btn)
            popup = Popup(title="Preferencias", content=content, size_hint=(0.8, 0.8))

            def save(*_args: object) -> None:
                self.state.update_settings(
                    text_size=size.text,
                    **{key: chk.active for key, chk in checks.items()},
                )
                popup.dismiss()
                self._apply_contrast()
                self._render_today()
                self._show_notice("Preferencias guardadas.")

            save_btn.bind(on_press=save)
            clear_btn.bind(
                on_press=lambda *_a: self._confirm(
                    "Borrar todo",
                    "¿Borrar todos los medicamentos y el historial?",
                    self.state.clear,
                )
            )
            popup.open()

        def _on_export(self, _: object) -> None:
            try:
                out_path = write_backup(self.state, Path.cwd() / "salidas")
            except OSError as exc:
                self._show_notice(f"Error al exportar: {exc}")
                return
            self._show_notice(f"Copia generada: {out_path}")

        def _open_import_popup(self, _: object) -> None:
            chooser = FileChooserListView(path=str(Path.cwd()), filters=["*.json"])
            buttons = BoxLayout(orientation="horizontal", size_hint_y=None, height=40)
            cancel_btn = Button(text="Cancelar")
            use_btn = Button(text="Importar")
            buttons.add_widget(cancel_btn)
            buttons.add_widget(use_btn)
            content = BoxLayout(orientation="vertical")
            content.add_widget(chooser)
            content.add_widget(buttons)
            popup = Popup(
                title="Seleccionar copia", content=content, size_hint=(0.9, 0.9)
            )
            cancel_btn.bind(on_press=lambda *_a: popup.dismiss())

            def apply_selection(*_: object) -> None:
                if not chooser.selection:
                    return
                try:
                    import_document(self.state, read_backup(Path(chooser.selection[0])))
                except PastilleroError as exc:
                    self._show_notice(str(exc))
                    return
                popup.dismiss()
                self._show_notice("Datos importados")

            use_btn.bind(on_press=apply_selection)
            popup.open()

        def _confirm(
            self, title: str, message: str, on_yes: Callable[[], object]
        ) -> None:
            content = BoxLayout(orientation="vertical", spacing=8, padding=8)
            content.add_widget(Label(text=message))
            buttons = BoxLayout(orientation="horizontal", size_hint_y=None, height=42)
            no_btn = Button(text="No")
            yes_btn = Button(text="Si")
            buttons.add_widget(no_btn)
            buttons.add_widget(yes_btn)
            content.add_widget(buttons)
            popup = Popup(title=title, content=content, size_hint=(0.7, 0.4))
            no_btn.bind(on_press=lambda *_a: popup.dismiss())

            def accept(*_args: object) -> None:
                popup.dismiss()
                on_yes()

            yes_btn.bind(on_press=accept)
            popup.open()

        def show_reminder(self, event: ReminderEvent) -> None:
            content = BoxLayout(orientation="vertical", spacing=8, padding=8)
            content.add_widget(Label(text=event.body, font_size=self._font_size()))
            ok_btn = Button(text="Tomada", size_hint_y=None, height=48)
            later_btn = Button(text="Despues", size_hint_y=None, height=48)
            content.add_widget(ok_btn)
            content.add_widget(later_btn)
            popup = Popup(
                title=event.title,
                content=content,
                size_hint=(0.8, 0.5),
                auto_dismiss=False,
            )

            def take(*_args: object) -> None:
                popup.dismiss()
                if (
                    self.tracker.status_of(event.medication_id, event.scheduled_time)
                    is SlotStatus.UNMARKED
                ):
                    self.tracker.mark_taken(event.medication_id, event.scheduled_time)
                self._render_today()

            ok_btn.bind(on_press=take)
            later_btn.bind(on_press=lambda *_a: popup.dismiss())
            popup.open()

        def _show_notice(self, message: str) -> None:
            logger.info("notice: %s", message)
            if self.status is not None:
                self.status.text = message

    PastilleroApp().run()
    return 0
