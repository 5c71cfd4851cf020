"""Frame strategy delivering packets over UDP to a table of known remote nodes."""

from __future__ import annotations

import socket
import sys
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union

from pjbus import clock
from pjbus.udphelper import UDPHelper

DEFAULT_PORT = 7000
MAGIC_HEADER = 0x0DFAC3FF
RESPONSE_TIMEOUT = 100_000
MAX_REMOTE_NODES = 10
RECEIVE_TIME = 0
MAX_ATTEMPTS = 10
PACKET_MAX_LENGTH = 50
BROADCAST_ID = 0
ACK = 6

_UINT32 = 0xFFFFFFFF
_RESPONSE_BUFFER = 8
_ON_WINDOWS = sys.platform == "win32"

Address = Union[str, bytes, Sequence[int]]


def _host(address: Address) -> str:
    if isinstance(address, str):
        return address
    raw = bytes(address)
    if len(raw) != 4:
        raise ValueError(f"an IPv4 address needs 4 bytes, got {len(raw)}")
    return socket.inet_ntoa(raw)


@dataclass
class _RemoteNode:
    device_id: int
    ip: str
    port: int


class GlobalUDP:
    """Sends frames to registered devices by IP address and port.

    ``sender_id_of`` extracts the sender's device id from a received packet;
    when given, senders of incoming packets are registered automatically.
    """

    def __init__(
        self,
        port: int = DEFAULT_PORT,
        sender_id_of: Optional[Callable[[bytes], int]] = None,
    ) -> None:
        self._port = port
        self._sender_id_of = sender_id_of
        self._udp = UDPHelper(MAGIC_HEADER)
        self._initialized = False
        self._auto_registration = True
        self._nodes: List[_RemoteNode] = []
        self._collisions = 0

    @property
    def port(self) -> int:
        """The bound port once started, else the configured one."""
        return self._udp.port if self._initialized else self._port

    @property
    def nodes(self) -> Tuple[Tuple[int, str, int], ...]:
        """The registered nodes as (device id, IP address, port)."""
        return tuple((n.device_id, n.ip, n.port) for n in self._nodes)

    @property
    def collisions(self) -> int:
        """How many collisions have been reported to this strategy."""
        return self._collisions

    def _check_udp(self) -> bool:
        if not self._initialized and self._udp.begin(self._port):
            self._initialized = True
        return self._initialized

    def add_node(self, remote_id: int, remote_ip: Address, port: int = DEFAULT_PORT) -> int:
        """Register a device; return its position in the node table."""
        if len(self._nodes) >= MAX_REMOTE_NODES:
            raise OverflowError(f"remote node table is full ({MAX_REMOTE_NODES} nodes)")
        self._nodes.append(_RemoteNode(remote_id, _host(remote_ip), port))
        return len(self._nodes) - 1

    def find_remote_node(self, device_id: int) -> Optional[int]:
        """Return the table position of a device id, or None if unknown."""
        for position, node in enumerate(self._nodes):
            if node.device_id == device_id:
                return position
        return None

    def set_autoregistration(self, enabled: bool) -> None:
        """Select whether senders of incoming packets are added as nodes."""
        self._auto_registration = enabled

    def _autoregister_sender(self, message: bytes) -> None:
        if not self._auto_registration or self._sender_id_of is None or len(message) <= 4:
            return
        sender_id = self._sender_id_of(message)
        if not sender_id:
            return
        sender = self._udp.sender
        if sender is None:
            return
        ip, port = sender
        position = self.find_remote_node(sender_id)
        if position is None:
            try:
                self.add_node(sender_id, ip, port)
            except OverflowError:
                pass
        else:
            self._nodes[position].ip = ip
            self._nodes[position].port = port

    def back_off(self, attempts: int) -> int:
        """Return the suggested delay in microseconds; it does not grow with attempts."""
        del attempts
        if _ON_WINDOWS:
            return 1000 + clock.random_below(1000)
        return 1

    def begin(self, device_id: int = 0) -> bool:
        """Open the UDP socket."""
        del device_id
        return self._check_udp()

    def can_start(self) -> bool:
        """Whether the socket is ready for a transmission."""
        return self._check_udp()

    def get_max_attempts(self) -> int:
        """Maximum number of transmission attempts."""
        return MAX_ATTEMPTS

    def get_receive_time(self) -> int:
        """Recommended receive time in microseconds."""
        return RECEIVE_TIME

    def handle_collision(self) -> None:
        """Record a collision; the network itself resolves it, so no delay is added."""
        self._collisions += 1

    def receive_frame(self, max_length: int = PACKET_MAX_LENGTH) -> Optional[bytes]:
        """Return a received frame, registering its sender; None if nothing arrived."""
        frame = self._udp.receive_frame(max_length)
        if frame is not None:
            self._autoregister_sender(frame)
        return frame

    def receive_response(self) -> bool:
        """Wait up to the response timeout for an ACK."""
        start = clock.micros()
        while True:
            reply = self.receive_frame(_RESPONSE_BUFFER)
            if reply is not None and len(reply) == 1 and reply[0] == ACK:
                return True
            if (clock.micros() - start) & _UINT32 >= RESPONSE_TIMEOUT:
                return False

    def send_response(self, response: int) -> None:
        """Reply directly to the sender of the last frame."""
        self._udp.send_response(response)

    def send_frame(self, data: bytes) -> None:
        """Send a frame to its receiver, or to every node if it is a broadcast."""
        if not data:
            return
        receiver = data[0]
        if receiver == BROADCAST_ID:
            for node in self._nodes:
                self._udp.send_frame(data, node.ip, node.port)
            return
        position = self.find_remote_node(receiver)
        if position is not None:
            node = self._nodes[position]
            self._udp.send_frame(data, node.ip, node.port)

    def set_port(self, port: int = DEFAULT_PORT) -> None:
        """Set the UDP port used when the socket is opened."""
        self._port = port

    def close(self) -> None:
        """Close the socket."""
        self._udp.close()
        self._initialized = False