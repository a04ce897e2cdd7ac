import subprocess
from unittest.mock import patch

import psutil
import pytest

from dispeys import hw_monitor


def test_cpu_usage_passes_psutil_value():
    with patch("psutil.cpu_percent", return_value=12.5) as cpu_percent:
        assert hw_monitor.get_cpu_usage() == 12.5
    cpu_percent.assert_called_once_with(interval=1.0)


def test_cpu_usage_error_is_wrapped():
    with patch("psutil.cpu_percent", side_effect=psutil.Error("boom")):
        with pytest.raises(hw_monitor.HardwareMonitorError):
            hw_monitor.get_cpu_usage()


def test_memory_usage_is_a_percentage():
    usage = hw_monitor.get_memory_usage()
    assert 0.0 <= usage <= 100.0


def test_gpu_usage_parses_output():
    completed = subprocess.CompletedProcess(args=[], returncode=0, stdout="37\n")
    with patch("subprocess.run", return_value=completed):
        assert hw_monitor.get_gpu_usage() == 37.0


def test_gpu_usage_missing_tool():
    with patch("subprocess.run", side_effect=FileNotFoundError("nvidia-smi")):
        with pytest.raises(hw_monitor.HardwareMonitorError):
            hw_monitor.get_gpu_usage()


def test_gpu_usage_failed_tool():
    error = subprocess.CalledProcessError(returncode=9, cmd=["nvidia-smi"])
    with patch("subprocess.run", side_effect=error):
        with pytest.raises(hw_monitor.HardwareMonitorError):
            hw_monitor.get_gpu_usage()


def test_gpu_usage_unparsable_output():
    completed = subprocess.CompletedProcess(args=[], returncode=0, stdout="[N/A]\n")
    with patch("subprocess.run", return_value=completed):
        with pytest.raises(hw_monitor.HardwareMonitorError):
            hw_monitor.get_gpu_usage()