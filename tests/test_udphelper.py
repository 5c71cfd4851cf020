import socket
import time

import pytest

from pjbus.udphelper import UDPHelper

MAGIC = 0x0DFAC3D0


def _poll(fn, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        result = fn()
        if result is not None:
            return result
        time.sleep(0.001)
    return None


@pytest.fixture
def pair():
    a = UDPHelper(MAGIC)
    b = UDPHelper(MAGIC)
    assert a.begin(0) and b.begin(0)
    yield a, b
    a.close()
    b.close()


def test_wire_format_has_big_endian_magic():
    helper = UDPHelper(MAGIC)
    assert helper.begin(0)
    raw = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        raw.bind(("127.0.0.1", 0))
        raw.settimeout(2)
        assert helper.send_frame(b"abc", "127.0.0.1", raw.getsockname()[1])
        assert raw.recv(100) == bytes.fromhex("0dfac3d0") + b"abc"
    finally:
        raw.close()
        helper.close()


def test_round_trip_and_response(pair):
    a, b = pair
    assert a.send_frame(b"\x01\x02\x03", bytes([127, 0, 0, 1]), b.port)
    assert _poll(lambda: b.receive_frame(50)) == b"\x01\x02\x03"
    assert b.sender == ("127.0.0.1", a.port)
    assert b.send_response(6)
    assert _poll(lambda: a.receive_frame(50)) == b"\x06"


def test_wrong_magic_and_oversize_are_rejected(pair):
    a, b = pair
    other = UDPHelper(0x12345678)
    assert other.begin(0)
    try:
        other.send_frame(b"bad", "127.0.0.1", b.port)
        a.send_frame(b"toolong", "127.0.0.1", b.port)
        a.send_frame(b"ok", "127.0.0.1", b.port)
        assert _poll(lambda: b.receive_frame(3)) == b"ok"
    finally:
        other.close()


def test_nothing_waiting_returns_none(pair):
    _, b = pair
    assert b.receive_frame(50) is None
    assert b.send_response(6) is False


def test_empty_frame_not_sent(pair):
    a, b = pair
    assert a.send_frame(b"", "127.0.0.1", b.port) is False


def test_send_before_begin_raises():
    helper = UDPHelper(MAGIC)
    with pytest.raises(RuntimeError):
        helper.send_frame(b"x", "127.0.0.1", 9)
    assert helper.receive_frame(10) is None


def test_bad_address_length(pair):
    a, _ = pair
    with pytest.raises(ValueError):
        a.send_frame(b"x", bytes([127, 0, 1]), 9)