import json
import subprocess
from unittest import mock

import pytest

from dispeys.app_detector import (
    AppDetector,
    DetectionError,
    get_active_window_process_name,
    parse_xprop_pid,
)


def make_run(outputs, calls):
    def fake_run(argv, **kwargs):
        calls.append(list(argv))
        rc, out = outputs.get(argv[0], (0, ""))
        return subprocess.CompletedProcess(argv, rc, out, "")

    return fake_run


def window_outputs(process="firefox", window="123"):
    return {
        "xdotool": (0, window + "\n"),
        "xprop": (0, "_NET_WM_PID(CARDINAL) = 42\n"),
        "ps": (0, process + "\n"),
    }


@pytest.fixture
def settings_file(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps(
            {
                "firefox": {
                    "name": "Firefox",
                    "buttons": [{"name": "a", "icon": "a.png", "command": "ls"}],
                },
                "default": {"name": "Default", "buttons": []},
            }
        )
    )
    return path


def test_parse_xprop_pid():
    assert parse_xprop_pid("_NET_WM_PID(CARDINAL) = 4242\n") == "4242"


def test_parse_xprop_pid_bad_format():
    with pytest.raises(DetectionError):
        parse_xprop_pid("_NET_WM_PID:  not found.\n")


def test_get_active_window_process_name():
    calls = []
    with mock.patch("subprocess.run", side_effect=make_run(window_outputs(), calls)):
        assert get_active_window_process_name("") == ("firefox", "123")
    assert calls[1] == ["xprop", "-id", "123", "_NET_WM_PID"]
    assert calls[2] == ["ps", "-p", "42", "-o", "comm="]


def test_same_window_skips_lookup():
    calls = []
    with mock.patch("subprocess.run", side_effect=make_run(window_outputs(), calls)):
        assert get_active_window_process_name("123") == ("", "123")
    assert len(calls) == 1


def test_xdotool_failure_raises():
    calls = []
    outputs = {"xdotool": (1, "")}
    with mock.patch("subprocess.run", side_effect=make_run(outputs, calls)):
        with pytest.raises(DetectionError):
            get_active_window_process_name("")


def test_poll_reports_matching_application(settings_file, tmp_path):
    detector = AppDetector(settings_file, tmp_path / "icons")
    calls = []
    with mock.patch("subprocess.run", side_effect=make_run(window_outputs(), calls)):
        application = detector.poll()
    assert application.name == "Firefox"
    assert application.buttons[0].command == "ls"
    assert detector.changes.get_nowait() is application


def test_poll_unknown_process_uses_default(settings_file, tmp_path):
    detector = AppDetector(settings_file, tmp_path / "icons")
    calls = []
    outputs = window_outputs(process="vim")
    with mock.patch("subprocess.run", side_effect=make_run(outputs, calls)):
        application = detector.poll()
    assert application.name == "Default"


def test_poll_same_window_reports_nothing(settings_file, tmp_path):
    detector = AppDetector(settings_file, tmp_path / "icons")
    calls = []
    with mock.patch("subprocess.run", side_effect=make_run(window_outputs(), calls)):
        detector.poll()
        second = detector.poll()
    assert second is None
    assert detector.changes.qsize() == 1


def test_poll_detection_error_returns_none(settings_file, tmp_path):
    detector = AppDetector(settings_file, tmp_path / "icons")
    calls = []
    with mock.patch("subprocess.run", side_effect=make_run({"xdotool": (1, "")}, calls)):
        assert detector.poll() is None
    assert detector.changes.empty()


def test_start_and_stop_deliver_change(settings_file, tmp_path):
    detector = AppDetector(settings_file, tmp_path / "icons")
    detector.interval = 0.01
    calls = []
    with mock.patch("subprocess.run", side_effect=make_run(window_outputs(), calls)):
        detector.start()
        application = detector.changes.get(timeout=5)
        detector.stop()
    assert application.name == "Firefox"