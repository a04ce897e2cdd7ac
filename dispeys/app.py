"""The controller that ties window detection, settings and the deck together."""

from __future__ import annotations

import argparse
import logging
import queue
import signal
import subprocess
import threading
from collections.abc import Callable
from typing import Any

from dispeys import autostart
from dispeys.app_detector import AppDetector
from dispeys.config import (
    APP_NAME,
    APP_VERSION,
    get_editor_for_text_file,
    get_icons_dir,
    get_settings_path,
    get_temp_dir,
    shell_escape,
)
from dispeys.device import UlanziD200Device
from dispeys.protocol import Button, SmallWindowMode
from dispeys.settings import AppSettings, Application
from dispeys.window_focus import WindowFocusError, focus_or_run

log = logging.getLogger(__name__)


def to_device_buttons(application: Application) -> dict[int, Button]:
    """Map an application's configured buttons to the icons the deck shows."""
    return {index: Button(icon=button.icon) for index, button in enumerate(application.buttons)}


def _spawn_shell(command: str) -> None:
    try:
        subprocess.Popen(["sh", "-c", command])
    except OSError as exc:
        log.warning("cannot run %r: %s", command, exc)


def open_settings_window() -> str:
    """Open the settings file in the default text editor; return the command run."""
    editor = get_editor_for_text_file()
    if not editor:
        return ""
    command = editor.replace("%U", shell_escape(get_settings_path()))
    _spawn_shell(command)
    return command


class Controller:
    """Chooses the page shown on the deck and runs the commands of its keys."""

    def __init__(self, device: Any) -> None:
        self.device = device
        self.app_settings = AppSettings()
        self.settings: Application | None = None
        self.pinned: Application | None = None
        self.detection_paused = False
        self._lock = threading.RLock()

    def apply(self, application: Application | None) -> None:
        """Show an application's buttons on the deck."""
        if application is None:
            return
        self.device.set_buttons(to_device_buttons(application), False)

    def on_process_changed(self, application: Application | None) -> None:
        """Record the focused application's page and show it unless pinned."""
        with self._lock:
            self.settings = application
            if not self.detection_paused:
                self.apply(application)

    def on_refresh(self) -> None:
        """Re-send the current page after the deck reconnected."""
        with self._lock:
            self.apply(self.pinned if self.detection_paused else self.settings)

    def handle_key(self, index: int) -> None:
        """Run the command bound to a released key.

        '@name' pins the page of process name, a bare '@' unpins it,
        '$program' focuses or starts program, anything else runs in sh.
        """
        with self._lock:
            application = self.pinned if self.detection_paused else self.settings
            if application is None or not 0 <= index < len(application.buttons):
                return
            command = application.buttons[index].command
            if not command:
                return
            log.info("command: %r", command)
            if command.startswith("@"):
                name = command[1:].strip()
                if not name:
                    self.detection_paused = False
                    self.apply(self.settings)
                else:
                    self.detection_paused = True
                    self.pinned = self.app_settings.settings_for_process(name)
                    self.apply(self.pinned)
            elif command.startswith("$"):
                try:
                    focus_or_run(command[1:].strip())
                except WindowFocusError as exc:
                    log.warning("%s", exc)
            else:
                _spawn_shell(command)


def _pump(stop: threading.Event, source: queue.Queue, handler: Callable[[Any], None]) -> None:
    while not stop.is_set():
        try:
            item = source.get(timeout=0.5)
        except queue.Empty:
            continue
        handler(item)


def main(argv=None) -> int:
    """Run the deck controller until interrupted."""
    parser = argparse.ArgumentParser(prog="dispeys", description="Ulanzi D200 deck controller")
    parser.add_argument(
        "--settings", action="store_true", help="open the settings file in the default editor and exit"
    )
    parser.add_argument(
        "--autostart", choices=("on", "off"), help="turn starting on login on or off and exit"
    )
    parser.add_argument("--version", action="version", version=APP_VERSION)
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    if args.autostart == "on":
        try:
            autostart.enable(APP_NAME)
        except OSError as exc:
            print(f"Cannot enable autostart: {exc}")
            return 1
        print("Autostart enabled")
        return 0
    if args.autostart == "off":
        try:
            autostart.disable(APP_NAME)
        except FileNotFoundError:
            pass
        except OSError as exc:
            print(f"Cannot disable autostart: {exc}")
            return 1
        print("Autostart disabled")
        return 0
    if args.settings:
        open_settings_window()
        return 0

    device = UlanziD200Device(SmallWindowMode.CLOCK, get_icons_dir(), get_temp_dir())
    controller = Controller(device)
    detector = AppDetector(get_settings_path(), get_icons_dir(), controller.app_settings)
    stop = threading.Event()

    pumps = [
        (detector.changes, controller.on_process_changed),
        (device.refresh_events, lambda _item: controller.on_refresh()),
        (device.key_events, lambda event: controller.handle_key(event.index)),
    ]
    for source, handler in pumps:
        threading.Thread(target=_pump, args=(stop, source, handler), daemon=True).start()

    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    detector.start()
    device.start()
    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        stop.set()
        detector.stop()
        device.stop()
        print("Shutting down")
    return 0