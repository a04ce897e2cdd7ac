"""Application paths and desktop integration helpers."""

from __future__ import annotations

import os
import subprocess
import tempfile
from pathlib import Path

APP_VERSION = "0.0.1"
APP_NAME = "dispeysController"

_SYSTEM_APPLICATION_DIRS = (
    "/usr/local/share/applications/",
    "/usr/share/applications/",
)


def get_home_dir() -> str:
    """Return the current user's home directory."""
    try:
        return str(Path.home())
    except RuntimeError as exc:
        raise RuntimeError("Can't get current user.") from exc


def get_settings_path() -> str:
    """Return the path of the settings JSON file."""
    return os.path.join(get_home_dir(), ".config", APP_NAME, "settings.json")


def get_icons_dir() -> str:
    """Return the directory holding button icons."""
    return os.path.join(get_home_dir(), ".config", APP_NAME, "icons")


def get_temp_dir() -> str:
    """Return the directory used for temporary build files."""
    return os.path.join(tempfile.gettempdir(), APP_NAME)


def get_editor_for_text_file() -> str:
    """Return the Exec line of the default text/plain handler, or ''."""
    try:
        result = subprocess.run(
            ["xdg-mime", "query", "default", "text/plain"],
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return ""
    desktop_file = result.stdout.strip()

    candidates = [get_home_dir() + "/.local/share/applications/" + desktop_file]
    candidates.extend(directory + desktop_file for directory in _SYSTEM_APPLICATION_DIRS)

    for candidate in candidates:
        try:
            text = Path(candidate).read_text(errors="replace")
        except OSError:
            continue
        for line in text.split("\n"):
            if line.startswith("Exec="):
                return line[len("Exec="):].strip()
    return ""


def shell_escape(s: str) -> str:
    """Quote a string for safe use in a POSIX shell command line."""
    if not s:
        return "''"
    return "'" + s.replace("'", "'\"'\"'") + "'"