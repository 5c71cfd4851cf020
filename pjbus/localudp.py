"""Frame strategy broadcasting packets over UDP on the local network."""

from __future__ import annotations

import sys
from typing import Optional

from pjbus import clock
from pjbus.udphelper import UDPHelper

DEFAULT_PORT = 7100
MAGIC_HEADER = 0x0DFAC3D0
RESPONSE_TIMEOUT = 100_000
RECEIVE_TIME = 0
MAX_ATTEMPTS = 10
PACKET_MAX_LENGTH = 50
ACK = 6

_UINT32 = 0xFFFFFFFF
_RESPONSE_BUFFER = 6
_ON_WINDOWS = sys.platform == "win32"


class LocalUDP:
    """Sends frames as LAN broadcasts and replies directly to the sender."""

    def __init__(self, port: int = DEFAULT_PORT) -> None:
        self._port = port
        self._udp = UDPHelper(MAGIC_HEADER)
        self._initialized = False
        self._collisions = 0

    @property
    def port(self) -> int:
        """The bound port once started, else the configured one."""
        return self._udp.port if self._initialized else self._port

    @property
    def collisions(self) -> int:
        """How many collisions have been reported to this strategy."""
        return self._collisions

    def _check_udp(self) -> bool:
        if not self._initialized and self._udp.begin(self._port):
            self._initialized = True
        return self._initialized

    def back_off(self, attempts: int) -> int:
        """Return the suggested delay in microseconds for the given attempt."""
        if _ON_WINDOWS:
            return 1000 * attempts + clock.random_below(1000)
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
        """Return a received frame, or None."""
        return self._udp.receive_frame(max_length)

    def receive_response(self) -> bool:
        """Wait up to the response timeout for a directed ACK."""
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
        """Broadcast a frame on the local network."""
        self._udp.broadcast_frame(data)

    def set_port(self, port: int = DEFAULT_PORT) -> None:
        """Set the UDP port used when the socket is opened."""
        self._port = port

    def close(self) -> None:
        """Close the socket."""
        self._udp.close()
        self._initialized = False