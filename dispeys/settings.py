"""Per-application button settings stored as JSON."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_SETTINGS: dict[str, Any] = {"default": {"name": "default", "buttons": []}}


class SettingsError(Exception):
    """The settings file could not be created, read, parsed or written."""


@dataclass
class SettingsButton:
    """One configured key: label, icon file name and command."""

    name: str = ""
    icon: str = ""
    command: str = ""


@dataclass
class Application:
    """The set of buttons shown while an application is focused."""

    name: str = ""
    buttons: list[SettingsButton] = field(default_factory=list)


def _lookup(obj: dict[str, Any], key: str) -> Any:
    if key in obj:
        return obj[key]
    lowered = key.lower()
    for name, value in obj.items():
        if name.lower() == lowered:
            return value
    return None


def _string_field(obj: dict[str, Any], key: str) -> str:
    value = _lookup(obj, key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise SettingsError(f"field {key!r} must be a string")
    return value


def _application_from_json(raw: Any) -> Application:
    if not isinstance(raw, dict):
        raise SettingsError("application entry must be a JSON object")
    buttons_raw = _lookup(raw, "buttons") or []
    if not isinstance(buttons_raw, list):
        raise SettingsError("'buttons' must be a JSON array")
    buttons = []
    for button in buttons_raw:
        if not isinstance(button, dict):
            raise SettingsError("button entry must be a JSON object")
        buttons.append(
            SettingsButton(
                name=_string_field(button, "name"),
                icon=_string_field(button, "icon"),
                command=_string_field(button, "command"),
            )
        )
    return Application(name=_string_field(raw, "name"), buttons=buttons)


def _application_to_json(app: Application) -> dict[str, Any]:
    return {
        "name": app.name,
        "buttons": [
            {"name": b.name, "icon": b.icon, "command": b.command} for b in app.buttons
        ],
    }


def _atomic_write(path: str, data: bytes) -> None:
    tmp_path = path + ".tmp"
    Path(tmp_path).write_bytes(data)
    try:
        os.replace(tmp_path, path)
    except OSError:
        try:
            os.remove(tmp_path)
        except OSError:
            pass
        raise


class AppSettings:
    """Settings keyed by process name, reloaded when the file changes."""

    def __init__(self, applications: dict[str, Application] | None = None) -> None:
        self.applications: dict[str, Application] = dict(applications or {})
        self._last_modified: int | None = None

    def create_default_files(self, path, icons_dir) -> bool:
        """Write the default settings file and create the icons directory."""
        path = os.fspath(path)
        data = json.dumps(DEFAULT_SETTINGS, indent=2).encode()
        try:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            os.makedirs(icons_dir, exist_ok=True)
        except OSError as exc:
            raise SettingsError(f"mkdir error: {exc}") from exc
        try:
            _atomic_write(path, data)
        except OSError as exc:
            raise SettingsError(f"cannot write default settings: {exc}") from exc
        try:
            self._last_modified = os.stat(path).st_mtime_ns
        except OSError:
            pass
        return True

    def load(self, path, icons_dir) -> bool:
        """Load the file if it changed since the last load; return whether it did."""
        path = os.fspath(path)
        try:
            stat = os.stat(path)
        except FileNotFoundError:
            self.create_default_files(path, icons_dir)
            self._last_modified = None
            return self.load(path, icons_dir)
        except OSError as exc:
            raise SettingsError(f"cannot stat settings file: {exc}") from exc

        mtime = stat.st_mtime_ns
        if self._last_modified is not None and mtime == self._last_modified:
            return False

        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            raise SettingsError(f"cannot read settings file: {exc}") from exc
        try:
            raw = json.loads(data)
        except ValueError as exc:
            raise SettingsError(f"invalid settings JSON: {exc}") from exc
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise SettingsError("settings must map process names to applications")

        self.applications = {
            name: _application_from_json(value) for name, value in raw.items()
        }
        self._last_modified = mtime
        return True

    def save(self, path) -> None:
        """Write the settings to path atomically, indented by two spaces."""
        path = os.fspath(path)
        payload = {
            name: _application_to_json(app)
            for name, app in sorted(self.applications.items())
        }
        data = json.dumps(payload, indent=2, ensure_ascii=False).encode()
        directory = os.path.dirname(path) or "."
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as exc:
            raise SettingsError(f"cannot create dir {directory}: {exc}") from exc
        try:
            _atomic_write(path, data)
        except OSError as exc:
            raise SettingsError(f"cannot write settings file: {exc}") from exc
        try:
            self._last_modified = os.stat(path).st_mtime_ns
        except OSError as exc:
            raise SettingsError(f"saved but stat failed: {exc}") from exc

    def settings_for_process(self, process: str) -> Application | None:
        """Return the process's application, else the 'default' one, else None."""
        if process in self.applications:
            return self.applications[process]
        return self.applications.get("default")