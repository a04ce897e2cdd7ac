"""Desktop autostart entry management."""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dispeys.config import get_home_dir


def _desktop_path(app_name: str) -> Path:
    return Path(get_home_dir()) / ".config" / "autostart" / f"{app_name}.desktop"


def _executable_path() -> str:
    if sys.argv and sys.argv[0]:
        return os.path.realpath(sys.argv[0])
    return ""


def enable(app_name: str) -> None:
    """Write an autostart desktop entry that launches this program."""
    path = _desktop_path(app_name)
    path.parent.mkdir(parents=True, exist_ok=True)
    entry = (
        "[Desktop Entry]\n"
        "Type=Application\n"
        f"Name={app_name}\n"
        f"Exec={_executable_path()}\n"
        "X-GNOME-Autostart-enabled=true\n"
        "Terminal=false\n"
    )
    path.write_text(entry)


def disable(app_name: str) -> None:
    """Remove the autostart entry; raises FileNotFoundError if absent."""
    _desktop_path(app_name).unlink()


def is_enabled(app_name: str) -> bool:
    """Tell whether the autostart entry exists."""
    try:
        _desktop_path(app_name).stat()
    except FileNotFoundError:
        return False
    return True