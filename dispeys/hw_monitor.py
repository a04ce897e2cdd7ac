"""CPU, memory and GPU load readings."""

from __future__ import annotations

import subprocess

import psutil


class HardwareMonitorError(Exception):
    """A hardware reading could not be taken."""


def get_cpu_usage() -> float:
    """Return overall CPU usage in percent, sampled over one second."""
    try:
        return float(psutil.cpu_percent(interval=1.0))
    except (psutil.Error, OSError) as exc:
        raise HardwareMonitorError(f"cannot read CPU usage: {exc}") from exc


def get_memory_usage() -> float:
    """Return used virtual memory in percent."""
    try:
        return float(psutil.virtual_memory().percent)
    except (psutil.Error, OSError) as exc:
        raise HardwareMonitorError(f"cannot read memory usage: {exc}") from exc


def get_gpu_usage() -> float:
    """Return GPU utilisation in percent as reported by nvidia-smi."""
    try:
        result = subprocess.run(
            [
                "nvidia-smi",
                "--query-gpu=utilization.gpu",
                "--format=csv,noheader,nounits",
            ],
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        raise HardwareMonitorError("nvidia-smi not found or not installed") from exc
    text = result.stdout.strip()
    try:
        return float(text)
    except ValueError as exc:
        raise HardwareMonitorError(f"cannot parse nvidia-smi output: {text!r}") from exc