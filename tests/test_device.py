import io
import queue
import struct
import zipfile

import pytest

from dispeys.device import (
    KeyPressedEvent,
    UlanziD200Device,
    chunk_payload,
    find_device_paths,
)
from dispeys.protocol import (
    Button,
    CommandProtocol,
    LabelStyle,
    ProtocolError,
    SmallWindowData,
    SmallWindowMode,
    build_packet,
    next_mode,
)


class FakeTransport:
    def __init__(self):
        self.written = []
        self.closed = False

    def write(self, data):
        self.written.append(bytes(data))
        return len(data)

    def read(self, size):
        raise OSError("no data")

    def close(self):
        self.closed = True


def _incoming(command, payload):
    return b"\x7c\x7c" + struct.pack(">H", command) + struct.pack("<I", len(payload)) + payload


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def device(tmp_path, transport):
    icons = tmp_path / "icons"
    icons.mkdir()
    return UlanziD200Device(SmallWindowMode.CLOCK, icons, tmp_path / "tmp", transport)


def _hidraw(root, name, hid_id, phys):
    directory = root / name / "device"
    directory.mkdir(parents=True)
    (directory / "uevent").write_text(
        f"DRIVER=hid-generic\nHID_ID={hid_id}\nHID_NAME=Deck\nHID_PHYS={phys}\n"
    )


def test_find_device_paths_filters_and_sorts(tmp_path):
    deck = "0003:00002207:00000019"
    _hidraw(tmp_path, "hidraw3", deck, "usb-0000:00:14.0-2/input0")
    _hidraw(tmp_path, "hidraw1", deck, "usb-0000:00:14.0-2/input1")
    _hidraw(tmp_path, "hidraw0", "0003:0000046D:0000C52B", "usb-0000:00:14.0-1/input0")
    _hidraw(tmp_path, "hidraw2", deck, "usb-0000:00:14.0-3/input0")
    assert find_device_paths(tmp_path) == ["/dev/hidraw2", "/dev/hidraw3"]


def test_find_device_paths_missing_root(tmp_path):
    assert find_device_paths(tmp_path / "absent") == []


def test_chunk_payload_single_packet():
    data = b"abc"
    packets = chunk_payload(CommandProtocol.OUT_SET_BUTTONS, data)
    assert len(packets) == 1
    assert packets[0][:4] == b"\x7c\x7c\x00\x01"
    assert struct.unpack("<I", packets[0][4:8])[0] == len(data)
    assert packets[0][8:11] == data
    assert len(packets[0]) == 1024


def test_chunk_payload_round_trip():
    data = bytes(range(256)) * 12
    packets = chunk_payload(CommandProtocol.OUT_SET_BUTTONS, data)
    assert all(len(packet) == 1024 for packet in packets)
    stream = packets[0][8:] + b"".join(packets[1:])
    assert stream[: len(data)] == data
    assert set(stream[len(data):]) <= {0}
    assert len(stream) - len(data) < 1024


def test_set_brightness_skips_unchanged(device, transport):
    device.set_brightness(50)
    device.set_brightness(50)
    assert device.brightness == 50
    expected = build_packet(CommandProtocol.OUT_SET_BRIGHTNESS, 2, b"50")
    assert transport.written == [expected]
    packet = transport.written[0]
    assert packet[2:4] == b"\x00\x0a"
    assert struct.unpack("<I", packet[4:8])[0] == 2
    assert packet[8:10] == b"50"
    device.set_brightness(50, True)
    assert transport.written == [expected, expected]


def test_set_brightness_without_transport(tmp_path):
    dev = UlanziD200Device(SmallWindowMode.CLOCK, tmp_path, tmp_path)
    dev.set_brightness(70)
    assert dev.brightness == 70


def test_set_label_style_deduplicates(device, transport):
    style = LabelStyle.from_dict({})
    device.set_label_style(style)
    device.set_label_style(LabelStyle.from_dict({}))
    assert len(transport.written) == 1
    packet = transport.written[0]
    payload = style.to_json()
    assert packet[2:4] == b"\x00\x0b"
    assert packet[8:8 + len(payload)] == payload


def test_set_small_window_data_uses_device_mode(device, transport):
    data = SmallWindowData(mode=SmallWindowMode.STATS, cpu=5, mem=6, gpu=7, time="12:00:00")
    device.set_small_window_data(data)
    device.set_small_window_data(data)
    assert len(transport.written) == 1
    packet = transport.written[0]
    expected = b"1|5|6|12:00:00|7"
    assert packet[2:4] == b"\x00\x06"
    assert packet[8:8 + len(expected)] == expected
    assert device.small_window_data.mode == SmallWindowMode.CLOCK


def test_key_release_queues_event(device):
    device.handle_packet(_incoming(0x0101, bytes([0, 3, 1, 0])))
    assert device.key_events.get_nowait() == KeyPressedEvent(index=3)
    assert device.last_action_time is not None
    assert device.key_events.empty()


def test_mode_key_press_switches_mode(device):
    device.handle_packet(_incoming(0x0101, bytes([0, 13, 1, 1])))
    assert device.small_window_mode == next_mode(SmallWindowMode.CLOCK)
    assert device.key_events.empty()


def test_other_key_press_is_ignored(device):
    device.handle_packet(_incoming(0x0101, bytes([0, 2, 1, 1])))
    assert device.key_events.empty()
    assert device.small_window_mode == SmallWindowMode.CLOCK


def test_device_info_requests_refresh(device, transport):
    info = b'{"Dversion":"1.0","SerialNumber":"SN-PLACEHOLDER","error":""}'
    device.handle_packet(_incoming(0x0303, info + b"\x00\x00"))
    assert device.refresh_events.get_nowait() is None
    assert device.brightness == 100
    assert transport.written[-1][2:4] == b"\x00\x0a"
    assert transport.written[-1][8:11] == b"100"


def test_handle_packet_rejects_unknown_command(device):
    with pytest.raises(ProtocolError):
        device.handle_packet(_incoming(0x0999, b"\x00\x00\x00\x00"))


def test_handle_packet_rejects_bad_signature(device):
    with pytest.raises(ProtocolError):
        device.handle_packet(b"\x00\x00\x01\x01\x04\x00\x00\x00\x00\x03\x01\x00")


def _uploaded(packets):
    length = struct.unpack("<I", packets[0][4:8])[0]
    stream = packets[0][8:] + b"".join(packets[1:])
    return stream[:length]


@pytest.mark.parametrize(
    "update_only, command",
    [
        (False, CommandProtocol.OUT_SET_BUTTONS),
        (True, CommandProtocol.OUT_PARTIALLY_UPDATE_BUTTONS),
    ],
)
def test_set_buttons_uploads_page_archive(tmp_path, device, transport, update_only, command):
    icon_bytes = b"\x89PNG fake icon data" * 10
    (tmp_path / "icons" / "a.png").write_bytes(icon_bytes)
    device.set_buttons({0: Button(icon="a.png"), 6: Button(name="Go")}, update_only)
    packets = transport.written
    assert all(len(packet) == 1024 for packet in packets)
    assert packets[0][2:4] == struct.pack(">H", int(command))
    uploaded = _uploaded(packets)
    assert list(chunk_payload(command, uploaded)) == packets
    with zipfile.ZipFile(io.BytesIO(uploaded)) as archive:
        names = archive.namelist()
        assert "manifest.json" in names
        assert archive.read("icons/a.png") == icon_bytes


def test_key_events_queue_is_fifo(device):
    for index in (1, 4):
        device.handle_packet(_incoming(0x0101, bytes([0, index, 1, 0])))
    assert [device.key_events.get_nowait().index for _ in range(2)] == [1, 4]
    with pytest.raises(queue.Empty):
        device.key_events.get_nowait()