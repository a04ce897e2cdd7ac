"""Driver for the Ulanzi D200 deck over Linux hidraw device files."""

from __future__ import annotations

import logging
import os
import queue
import re
import threading
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Any

from dispeys.page_zip import prepare_zip
from dispeys.protocol import (
    HEADER_SIZE,
    PACKET_SIZE,
    Button,
    CommandProtocol,
    LabelStyle,
    ProtocolError,
    SmallWindowData,
    SmallWindowMode,
    build_packet,
    next_mode,
    parse_input,
)

log = logging.getLogger(__name__)

VENDOR_ID = 0x2207
PRODUCT_ID = 0x0019

BUTTON_COUNT = 13
BUTTON_ROWS = 3
BUTTON_COLS = 5

ICON_WIDTH = 196
ICON_HEIGHT = 196

MODE_BUTTON_INDEX = 13
DEFAULT_SYSFS_ROOT = "/sys/class/hidraw"

_INTERFACE_RE = re.compile(r"input(\d+)$")


@dataclass(frozen=True)
class KeyPressedEvent:
    """A key on the deck was released."""

    index: int


def _read_uevent(path: str) -> dict[str, str] | None:
    try:
        text = Path(path).read_text(errors="replace")
    except OSError:
        return None
    fields = {}
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if sep:
            fields[key.strip()] = value.strip()
    return fields


def find_device_paths(sysfs_root=DEFAULT_SYSFS_ROOT) -> list[str]:
    """Return the hidraw device files of attached decks (interface 0), sorted."""
    root = os.fspath(sysfs_root)
    try:
        names = os.listdir(root)
    except OSError:
        return []
    paths = []
    for name in names:
        fields = _read_uevent(os.path.join(root, name, "device", "uevent"))
        if fields is None:
            continue
        ids = fields.get("HID_ID", "").split(":")
        if len(ids) != 3:
            continue
        try:
            vendor = int(ids[1], 16)
            product = int(ids[2], 16)
        except ValueError:
            continue
        match = _INTERFACE_RE.search(fields.get("HID_PHYS", ""))
        if vendor != VENDOR_ID or product != PRODUCT_ID:
            continue
        if match is None or int(match.group(1)) != 0:
            continue
        paths.append("/dev/" + name)
    return sorted(paths)


def chunk_payload(command: int, data: bytes) -> list[bytes]:
    """Split data into 1024-byte packets; only the first carries a header."""
    first_size = PACKET_SIZE - HEADER_SIZE
    packets = [build_packet(command, len(data), data[:first_size])]
    for start in range(first_size, len(data), PACKET_SIZE):
        packets.append(bytes(data[start:start + PACKET_SIZE]).ljust(PACKET_SIZE, b"\x00"))
    return packets


class UlanziD200Device:
    """Sends pages and status to the deck and reports its key presses."""

    def __init__(self, mode, icon_path, tmp_path, transport: Any = None) -> None:
        self.small_window_mode = SmallWindowMode(mode)
        self.icon_path = icon_path
        self.tmp_path = tmp_path
        self.transport = transport
        self.key_events: queue.Queue[KeyPressedEvent] = queue.Queue()
        self.refresh_events: queue.Queue[None] = queue.Queue()
        self.brightness = 0
        self.label_style: LabelStyle | None = None
        self.small_window_data: SmallWindowData | None = None
        self.last_action_time: datetime | None = None
        self.sysfs_root = DEFAULT_SYSFS_ROOT
        self.reconnect_delay = 3.0
        self.refresh_interval = 0.5
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    def _write(self, packet: bytes) -> None:
        with self._lock:
            transport = self.transport
            if transport is None:
                return
            try:
                transport.write(packet)
            except OSError as exc:
                log.warning("write packet error: %s", exc)

    def set_brightness(self, value: int, force: bool = False) -> None:
        """Set the display brightness, skipping unchanged values unless forced."""
        if not force and value == self.brightness:
            return
        self.brightness = value
        data = str(value).encode()
        self._write(build_packet(CommandProtocol.OUT_SET_BRIGHTNESS, len(data), data))

    def set_label_style(self, style: LabelStyle, force: bool = False) -> None:
        """Send the key label style, skipping unchanged styles unless forced."""
        if not force and self.label_style == style:
            return
        self.label_style = style
        payload = style.to_json()
        self._write(build_packet(CommandProtocol.OUT_SET_LABEL_STYLE, len(payload), payload))

    def set_small_window_data(self, data: SmallWindowData, force: bool = False) -> None:
        """Send the small window contents in the device's current mode."""
        data = replace(data, mode=self.small_window_mode)
        if not force and self.small_window_data == data:
            return
        self.small_window_data = data
        payload = data.to_payload()
        self._write(
            build_packet(CommandProtocol.OUT_SET_SMALL_WINDOW_DATA, len(payload), payload)
        )

    def set_buttons(self, buttons: Mapping[int, Button], update_only: bool = False) -> None:
        """Upload a page of buttons, replacing or partially updating the current one."""
        zip_path = prepare_zip(buttons, self.icon_path, self.tmp_path)
        try:
            data = Path(zip_path).read_bytes()
        except OSError as exc:
            log.warning("cannot read page archive %s: %s", zip_path, exc)
            return
        command = (
            CommandProtocol.OUT_PARTIALLY_UPDATE_BUTTONS
            if update_only
            else CommandProtocol.OUT_SET_BUTTONS
        )
        with self._lock:
            for packet in chunk_payload(command, data):
                self._write(packet)

    def handle_packet(self, packet: bytes) -> None:
        """Act on one packet read from the deck; raises ProtocolError if malformed."""
        action, info = parse_input(packet)
        if info is not None:
            self.refresh_events.put(None)
            self.set_brightness(100, True)
        if action is not None:
            self.last_action_time = datetime.now()
            if action.pressed and action.index == MODE_BUTTON_INDEX:
                self.small_window_mode = next_mode(self.small_window_mode)
            elif not action.pressed:
                self.key_events.put(KeyPressedEvent(index=action.index))

    def _close_transport(self) -> None:
        with self._lock:
            transport, self.transport = self.transport, None
        if transport is not None:
            try:
                transport.close()
            except OSError as exc:
                log.warning("cannot close device: %s", exc)

    def _connect(self) -> bool:
        if self.transport is not None:
            self._close_transport()
            if self._stop_event.wait(self.reconnect_delay):
                return False
        for path in find_device_paths(self.sysfs_root):
            try:
                handle = open(path, "r+b", buffering=0)
            except OSError as exc:
                log.warning("error opening device %s: %s", path, exc)
                continue
            log.info("device %s opened", path)
            with self._lock:
                self.transport = handle
            return True
        return False

    def _refresh_loop(self) -> None:
        while not self._stop_event.is_set():
            if self.transport is not None:
                self.set_small_window_data(SmallWindowData.from_dict({}), False)
            self._stop_event.wait(self.refresh_interval)

    def _read_loop(self) -> None:
        try:
            while not self._stop_event.is_set():
                transport = self.transport
                if transport is None:
                    if not self._connect():
                        self._stop_event.wait(self.reconnect_delay)
                    continue
                error: OSError | None = None
                try:
                    packet = transport.read(PACKET_SIZE) or b""
                except OSError as exc:
                    packet, error = b"", exc
                if self._stop_event.is_set():
                    break
                if error is not None or len(packet) < HEADER_SIZE:
                    log.warning("error reading packet: %s", error)
                    self._connect()
                    continue
                try:
                    self.handle_packet(packet)
                except ProtocolError as exc:
                    log.warning("error parsing input: %s", exc)
        finally:
            self._close_transport()

    def start(self) -> None:
        """Connect and run the status and input threads in the background."""
        self._stop_event.clear()
        self._connect()
        self._threads = [
            threading.Thread(target=self._refresh_loop, daemon=True),
            threading.Thread(target=self._read_loop, daemon=True),
        ]
        for thread in self._threads:
            thread.start()

    def stop(self) -> None:
        """Ask the background threads to finish."""
        self._stop_event.set()