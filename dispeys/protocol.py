"""Wire format and data records of the Ulanzi D200 deck."""

from __future__ import annotations

import json
import math
import re
import struct
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Any, Union

from dispeys import hw_monitor

PACKET_SIZE = 1024
HEADER_SIZE = 8
SIGNATURE = b"\x7c\x7c"

_HEX_RE = re.compile(r"[+-]?[0-9a-fA-F]+")


class ProtocolError(ValueError):
    """A packet or payload does not follow the device protocol."""


class CommandProtocol(IntEnum):
    OUT_SET_BUTTONS = 0x0001
    OUT_PARTIALLY_UPDATE_BUTTONS = 0x000D
    OUT_SET_SMALL_WINDOW_DATA = 0x0006
    OUT_SET_BRIGHTNESS = 0x000A
    OUT_SET_LABEL_STYLE = 0x000B
    IN_BUTTON = 0x0101
    IN_DEVICE_INFO = 0x0303


@dataclass
class Button:
    """What a device key displays."""

    name: str = ""
    icon: str = ""


@dataclass
class ButtonPressedData:
    state: int
    index: int
    pressed: bool

    @classmethod
    def parse(cls, data: bytes) -> "ButtonPressedData":
        """Decode state, index, constant 0x01 and pressed flag."""
        if len(data) < 4 or data[2] != 0x01:
            raise ProtocolError("invalid button pressed payload")
        return cls(state=data[0], index=data[1], pressed=data[3] == 0x01)


@dataclass
class ParsedPacket:
    command: CommandProtocol
    data: Union[ButtonPressedData, str]


@dataclass
class ButtonAction:
    index: int
    pressed: bool
    state: int


@dataclass
class DeviceInfo:
    dversion: str = ""
    serial_number: str = ""
    error: str = ""


def _lookup(obj: dict[str, Any], key: str) -> Any:
    if key in obj:
        return obj[key]
    lowered = key.lower()
    for name, value in obj.items():
        if name.lower() == lowered:
            return value
    return None


def _device_info_from_json(text: str) -> DeviceInfo:
    try:
        raw = json.loads(text)
    except ValueError as exc:
        raise ProtocolError(f"invalid device info JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ProtocolError("device info must be a JSON object")

    def text_field(key: str) -> str:
        value = _lookup(raw, key)
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ProtocolError(f"device info field {key!r} must be a string")
        return value

    return DeviceInfo(
        dversion=text_field("Dversion"),
        serial_number=text_field("SerialNumber"),
        error=text_field("error"),
    )


def _hex_to_int(text: str) -> int:
    if not _HEX_RE.fullmatch(text):
        return 0
    return int(text, 16)


@dataclass
class LabelStyle:
    align: str = "bottom"
    color: str = "FFFFFF"
    font_name: str = "Roboto"
    show_title: bool = True
    size: int = 10
    weight: int = 80

    @classmethod
    def from_dict(cls, style: dict[str, Any]) -> "LabelStyle":
        """Build a style from snake_case keys, filling in defaults."""
        defaults = cls()
        return cls(
            align=style.get("align", defaults.align),
            color=style.get("color", defaults.color),
            font_name=style.get("font_name", defaults.font_name),
            show_title=style.get("show_title", defaults.show_title),
            size=style.get("size", defaults.size),
            weight=style.get("weight", defaults.weight),
        )

    def to_json(self) -> bytes:
        """Encode the style as the device expects, colour as an integer."""
        payload = {
            "Align": self.align,
            "Color": _hex_to_int(self.color),
            "FontName": self.font_name,
            "ShowTitle": self.show_title,
            "Size": self.size,
            "Weight": self.weight,
        }
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode()


class SmallWindowMode(IntEnum):
    STATS = 0
    CLOCK = 1
    BACKGROUND = 2


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _reading(probe) -> int:
    try:
        return _round_half_away(probe())
    except hw_monitor.HardwareMonitorError:
        return 0


@dataclass
class SmallWindowData:
    mode: SmallWindowMode
    cpu: int
    mem: int
    gpu: int
    time: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SmallWindowData":
        """Build from given values, measuring or defaulting the missing ones."""
        clock = data["time"] if "time" in data else datetime.now().strftime("%H:%M:%S")
        mode = SmallWindowMode(data["mode"]) if "mode" in data else SmallWindowMode.CLOCK
        cpu = data["cpu"] if "cpu" in data else _reading(hw_monitor.get_cpu_usage)
        mem = data["mem"] if "mem" in data else _reading(hw_monitor.get_memory_usage)
        gpu = data["gpu"] if "gpu" in data else _reading(hw_monitor.get_gpu_usage)
        return cls(mode=mode, cpu=cpu, mem=mem, gpu=gpu, time=clock)

    def to_payload(self) -> bytes:
        """Encode as 'mode|cpu|mem|time|gpu'."""
        return f"{int(self.mode)}|{self.cpu}|{self.mem}|{self.time}|{self.gpu}".encode()


def next_mode(mode: SmallWindowMode) -> SmallWindowMode:
    """Return the mode the small window switches to next."""
    return SmallWindowMode((int(mode) + 2) % 3)


def build_packet(cmd: int, length: int, data: bytes) -> bytes:
    """Build a 1024-byte packet: signature, command, length, padded data."""
    header = SIGNATURE + struct.pack(">H", int(cmd)) + struct.pack("<I", length)
    body = bytes(data[: PACKET_SIZE - HEADER_SIZE])
    return header + body.ljust(PACKET_SIZE - HEADER_SIZE, b"\x00")


def parse_incoming(packet: bytes) -> ParsedPacket:
    """Decode a packet received from the device."""
    if len(packet) < HEADER_SIZE:
        raise ProtocolError("incoming packet is too short")
    if packet[0] != 0x7C or packet[1] != 0x7C:
        raise ProtocolError("invalid signature")
    (command,) = struct.unpack_from(">H", packet, 2)
    (length,) = struct.unpack_from("<I", packet, 4)
    if length + HEADER_SIZE > len(packet):
        raise ProtocolError("data length exceeds packet size")
    data = bytes(packet[HEADER_SIZE:HEADER_SIZE + length])

    if command == CommandProtocol.IN_BUTTON:
        return ParsedPacket(CommandProtocol.IN_BUTTON, ButtonPressedData.parse(data))
    if command == CommandProtocol.IN_DEVICE_INFO:
        text = data.strip(b"\x00").decode("utf-8", errors="replace")
        return ParsedPacket(CommandProtocol.IN_DEVICE_INFO, text)
    raise ProtocolError(f"unknown command protocol: 0x{command:04x}")


def parse_input(packet: bytes) -> tuple[ButtonAction | None, DeviceInfo | None]:
    """Decode a packet into a button action or a device info record."""
    parsed = parse_incoming(packet)
    if parsed.command == CommandProtocol.IN_DEVICE_INFO:
        return None, _device_info_from_json(parsed.data)
    if parsed.command == CommandProtocol.IN_BUTTON:
        pressed = parsed.data
        return ButtonAction(index=pressed.index, pressed=pressed.pressed, state=pressed.state), None
    return None, None