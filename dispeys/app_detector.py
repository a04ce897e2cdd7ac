"""Watch the focused window and report which application settings apply."""

from __future__ import annotations

import logging
import queue
import subprocess
import threading

from dispeys.settings import AppSettings, Application, SettingsError

log = logging.getLogger(__name__)

POLL_INTERVAL = 2.0


class DetectionError(Exception):
    """The focused window or its process could not be determined."""


def parse_xprop_pid(output: str) -> str:
    """Extract the PID from 'xprop -id <win> _NET_WM_PID' output."""
    parts = output.split(" = ")
    if len(parts) != 2:
        raise DetectionError(f"unexpected xprop format: {output}")
    return parts[1].strip()


def _output(argv: list[str], what: str) -> str:
    try:
        result = subprocess.run(argv, capture_output=True, text=True, check=False)
    except OSError as exc:
        raise DetectionError(f"{what}: {exc}") from exc
    if result.returncode != 0:
        raise DetectionError(f"{what}: exit status {result.returncode}")
    return result.stdout


def get_active_window_process_name(prev_win_id: str) -> tuple[str, str]:
    """Return (process name, window id) of the focused window.

    The name is empty when the window is still prev_win_id.
    """
    win_id = _output(["xdotool", "getactivewindow"], "cannot get active window").strip()
    if win_id == prev_win_id:
        return "", win_id
    xprop = _output(["xprop", "-id", win_id, "_NET_WM_PID"], "xprop cannot get PID")
    pid = parse_xprop_pid(xprop)
    name = _output(["ps", "-p", pid, "-o", "comm="], "cannot get process name")
    return name.strip(), win_id


class AppDetector:
    """Polls the focused window and queues the settings for new processes."""

    def __init__(self, settings_path, icons_dir, settings=None) -> None:
        self.settings_path = settings_path
        self.icons_dir = icons_dir
        self.settings: AppSettings = settings if settings is not None else AppSettings()
        self.changes: "queue.Queue[Application]" = queue.Queue()
        self.interval = POLL_INTERVAL
        self._process_name = ""
        self._win_id = ""
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def poll(self) -> Application | None:
        """Check the focused window once; return and queue new settings, if any."""
        try:
            name, win_id = get_active_window_process_name(self._win_id)
        except DetectionError as exc:
            log.warning("%s", exc)
            return None
        if not name or name == self._process_name:
            return None
        self._process_name = name
        self._win_id = win_id
        try:
            self.settings.load(self.settings_path, self.icons_dir)
        except SettingsError as exc:
            log.warning("%s", exc)
        application = self.settings.settings_for_process(name)
        if application is not None:
            self.changes.put(application)
            log.info("process changed to %s", name)
        return application

    def _loop(self) -> None:
        while True:
            self.poll()
            if self._stop_event.wait(self.interval):
                break

    def start(self) -> None:
        """Start polling in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop polling and wait for the background thread to end."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()