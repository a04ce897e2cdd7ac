"""Focus a running program's window, cycling through its windows, or start it."""

from __future__ import annotations

import re
import subprocess

_LEADING_DIGITS = re.compile(r"\+?(\d+)")


class WindowFocusError(Exception):
    """A window could not be found, activated or a program started."""


def _run(argv: list[str]) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(argv, capture_output=True, text=True, check=False)
    except OSError as exc:
        raise WindowFocusError(f"{argv[0]}: {exc}") from exc


def _failure(argv: list[str]) -> str | None:
    """Run a command; return a description of its failure, or None on success."""
    try:
        result = subprocess.run(argv, capture_output=True, text=True, check=False)
    except OSError as exc:
        return str(exc)
    if result.returncode != 0:
        return f"exit status {result.returncode}"
    return None


def get_pids(program: str) -> list[str]:
    """Return the PIDs of processes named exactly program."""
    result = _run(["pgrep", "-x", program])
    if result.returncode != 0:
        if not result.stderr:
            return []
        raise WindowFocusError(f"pgrep failed: {result.stderr.strip()}")
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


def parse_wmctrl_windows(output: str, pids) -> list[str]:
    """Pick the window ids of 'wmctrl -lp' lines whose PID is among pids."""
    wanted = set(pids)
    windows = []
    for line in output.splitlines():
        fields = line.split()
        if len(fields) < 3:
            continue
        if fields[2] in wanted:
            windows.append(fields[0])
    return windows


def windows_for_pids(pids) -> list[str]:
    """Return the ids of the windows owned by the given PIDs."""
    if not pids:
        return []
    result = _run(["wmctrl", "-lp"])
    if result.returncode != 0:
        raise WindowFocusError(f"wmctrl failed with exit status {result.returncode}")
    return parse_wmctrl_windows(result.stdout, pids)


def to_hex_window_id(s: str) -> str:
    """Normalise a window id to lower-case hexadecimal with a 0x prefix."""
    if s.startswith(("0x", "0X")):
        return s.lower()
    match = _LEADING_DIGITS.match(s)
    if match is None:
        raise WindowFocusError(f"invalid window id: {s!r}")
    return hex(int(match.group(1)))


def get_active_window() -> str:
    """Return the active window id in hexadecimal, or '' if there is none."""
    result = _run(["xdotool", "getactivewindow"])
    if result.returncode != 0:
        if not result.stderr:
            return ""
        raise WindowFocusError(f"xdotool failed: {result.stderr.strip()}")
    text = result.stdout.strip()
    if not text:
        return ""
    match = _LEADING_DIGITS.match(text)
    if match is None:
        return to_hex_window_id(text)
    return hex(int(match.group(1)))


def choose_window(win_ids, active: str) -> str:
    """Pick the window after the active one, or the first if active is not listed."""
    windows = list(win_ids)
    if not windows:
        raise WindowFocusError("no windows to choose from")
    if not active:
        return windows[0]
    wanted = active.casefold()
    index = next(
        (i for i, window in enumerate(windows) if window.casefold() == wanted), None
    )
    if index is None:
        return windows[0]
    return windows[(index + 1) % len(windows)]


def activate_window(winid: str) -> None:
    """Bring a window to the front with wmctrl, falling back to xdotool."""
    if not winid:
        raise WindowFocusError("empty window id")
    first = _failure(["wmctrl", "-ia", winid])
    if first is None:
        return
    second = _failure(["xdotool", "windowactivate", winid])
    if second is not None:
        raise WindowFocusError(
            f"wmctrl failed: {first}; xdotool also failed: {second}"
        )


def start_program(program: str, *args: str) -> None:
    """Start a program in the background, detached from our standard streams."""
    try:
        subprocess.Popen(
            [program, *args],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError as exc:
        raise WindowFocusError(f"cannot start {program}: {exc}") from exc


def focus_or_run(program: str, *args: str) -> None:
    """Cycle focus through program's windows, or start it if it has none."""
    try:
        pids = get_pids(program)
    except WindowFocusError as exc:
        raise WindowFocusError(f"get_pids: {exc}") from exc
    try:
        windows = windows_for_pids(pids)
    except WindowFocusError as exc:
        raise WindowFocusError(f"windows_for_pids: {exc}") from exc

    if not windows:
        try:
            start_program(program, *args)
        except WindowFocusError as exc:
            raise WindowFocusError(f"start_program: {exc}") from exc
        return

    try:
        active = get_active_window()
    except WindowFocusError as exc:
        raise WindowFocusError(f"get_active_window: {exc}") from exc

    target = choose_window(windows, active)
    try:
        activate_window(target)
    except WindowFocusError as exc:
        raise WindowFocusError(f"activate_window: {exc}") from exc