import socket
import time

import pytest

from pjbus.globaludp import GlobalUDP

MAGIC = bytes.fromhex("0dfac3ff")
LOCALHOST = "127.0.0.1"


def _wait_for(fn, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        result = fn()
        if result:
            return result
        time.sleep(0.005)
    return fn()


@pytest.fixture
def make_bus():
    buses = []

    def factory(**kwargs):
        bus = GlobalUDP(port=0, **kwargs)
        assert bus.begin() is True
        buses.append(bus)
        return bus

    yield factory
    for bus in buses:
        bus.close()


@pytest.fixture
def raw_socket():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind((LOCALHOST, 0))
    sock.settimeout(0.3)
    yield sock
    sock.close()


def test_strategy_constants():
    bus = GlobalUDP()
    assert bus.back_off(5) == 1
    assert bus.get_max_attempts() == 10
    assert bus.get_receive_time() == 0
    assert bus.port == 7000


def test_add_and_find_nodes():
    bus = GlobalUDP()
    assert bus.add_node(44, "192.168.1.10", 7000) == 0
    assert bus.add_node(45, bytes([127, 0, 0, 1]), 7001) == 1
    assert bus.find_remote_node(45) == 1
    assert bus.find_remote_node(99) is None
    assert bus.nodes[1] == (45, LOCALHOST, 7001)


def test_node_table_full():
    bus = GlobalUDP()
    for device_id in range(1, 11):
        bus.add_node(device_id, LOCALHOST)
    with pytest.raises(OverflowError):
        bus.add_node(11, LOCALHOST)
    assert len(bus.nodes) == 10


def test_bad_address_rejected():
    bus = GlobalUDP()
    with pytest.raises(ValueError):
        bus.add_node(1, bytes([1, 2, 3]))


def test_frame_to_specific_node(make_bus):
    sender = make_bus()
    receiver = make_bus()
    sender.add_node(44, LOCALHOST, receiver.port)
    frame = bytes([44, 2, 5, 9, 9])
    sender.send_frame(frame)
    assert _wait_for(receiver.receive_frame) == frame


def test_wire_format_has_magic_header(make_bus, raw_socket):
    bus = make_bus()
    bus.add_node(7, LOCALHOST, raw_socket.getsockname()[1])
    bus.send_frame(bytes([7, 1, 2]))
    data, _ = raw_socket.recvfrom(100)
    assert data == MAGIC + bytes([7, 1, 2])


def test_broadcast_reaches_all_nodes(make_bus):
    sender = make_bus()
    first = make_bus()
    second = make_bus()
    sender.add_node(1, LOCALHOST, first.port)
    sender.add_node(2, LOCALHOST, second.port)
    frame = bytes([0, 3, 4])
    sender.send_frame(frame)
    assert _wait_for(first.receive_frame) == frame
    assert _wait_for(second.receive_frame) == frame


def test_unknown_receiver_sends_nothing(make_bus, raw_socket):
    bus = make_bus()
    bus.add_node(7, LOCALHOST, raw_socket.getsockname()[1])
    bus.send_frame(bytes([8, 1, 2]))
    bus.send_frame(b"")
    with pytest.raises(socket.timeout):
        raw_socket.recvfrom(100)


def test_autoregistration_adds_sender(make_bus, raw_socket):
    bus = make_bus(sender_id_of=lambda packet: packet[1])
    payload = bytes([0, 33, 1, 2, 3, 4])
    raw_socket.sendto(MAGIC + payload, (LOCALHOST, bus.port))
    assert _wait_for(bus.receive_frame) == payload
    assert bus.find_remote_node(33) == 0
    assert bus.nodes[0] == (33, LOCALHOST, raw_socket.getsockname()[1])


def test_autoregistration_updates_existing_node(make_bus, raw_socket):
    bus = make_bus(sender_id_of=lambda packet: packet[1])
    bus.add_node(5, "10.0.0.9", 1234)
    raw_socket.sendto(MAGIC + bytes([0, 5, 1, 2, 3]), (LOCALHOST, bus.port))
    assert _wait_for(bus.receive_frame) is not None
    assert bus.nodes == ((5, LOCALHOST, raw_socket.getsockname()[1]),)


def test_autoregistration_skips_short_and_zero_sender(make_bus, raw_socket):
    bus = make_bus(sender_id_of=lambda packet: packet[1])
    raw_socket.sendto(MAGIC + bytes([0, 9, 1]), (LOCALHOST, bus.port))
    assert _wait_for(bus.receive_frame) == bytes([0, 9, 1])
    raw_socket.sendto(MAGIC + bytes([0, 0, 1, 2, 3]), (LOCALHOST, bus.port))
    assert _wait_for(bus.receive_frame) == bytes([0, 0, 1, 2, 3])
    assert bus.nodes == ()


def test_autoregistration_disabled(make_bus, raw_socket):
    bus = make_bus(sender_id_of=lambda packet: packet[1])
    bus.set_autoregistration(False)
    raw_socket.sendto(MAGIC + bytes([0, 33, 1, 2, 3]), (LOCALHOST, bus.port))
    assert _wait_for(bus.receive_frame) is not None
    assert bus.find_remote_node(33) is None


def test_wrong_magic_is_ignored(make_bus, raw_socket):
    bus = make_bus()
    raw_socket.sendto(b"\x00\x00\x00\x00" + bytes([1, 2]), (LOCALHOST, bus.port))
    time.sleep(0.05)
    assert bus.receive_frame() is None


def test_acknowledge_round_trip(make_bus):
    sender = make_bus()
    receiver = make_bus()
    sender.add_node(44, LOCALHOST, receiver.port)
    sender.send_frame(bytes([44, 1, 2]))
    assert _wait_for(receiver.receive_frame) == bytes([44, 1, 2])
    receiver.send_response(6)
    assert sender.receive_response() is True


def test_receive_response_times_out(make_bus):
    bus = make_bus()
    assert bus.receive_response() is False