"""UDP datagrams carrying frames behind a four-byte magic header."""

from __future__ import annotations

import socket
from typing import Optional, Sequence, Tuple, Union

BROADCAST_ADDRESS = "255.255.255.255"
_MAX_DATAGRAM = 65535

Address = Union[str, bytes, Sequence[int]]


def _host(address: Address) -> str:
    if isinstance(address, str):
        return address
    raw = bytes(address)
    if len(raw) != 4:
        raise ValueError(f"an IPv4 address needs 4 bytes, got {len(raw)}")
    return socket.inet_ntoa(raw)


class UDPHelper:
    """Sends and receives frames prefixed with a magic header over UDP."""

    def __init__(self, magic_header: int) -> None:
        self._magic = (magic_header & 0xFFFFFFFF).to_bytes(4, "big")
        self._sock: Optional[socket.socket] = None
        self._port = 0
        self._sender: Optional[Tuple[str, int]] = None

    @property
    def magic(self) -> bytes:
        """The header bytes placed before every frame."""
        return self._magic

    @property
    def port(self) -> int:
        """The local port the socket is bound to."""
        return self._port

    @property
    def sender(self) -> Optional[Tuple[str, int]]:
        """Address and port of the last datagram received."""
        return self._sender

    def begin(self, port: int) -> bool:
        """Bind a non-blocking socket to ``port`` on all interfaces."""
        self.close()
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.bind(("", port))
            sock.setblocking(False)
        except OSError:
            sock.close()
            return False
        self._sock = sock
        self._port = sock.getsockname()[1]
        return True

    def receive_frame(self, max_length: int) -> Optional[bytes]:
        """Return the payload of a waiting datagram with the right header, else None."""
        if self._sock is None:
            return None
        try:
            packet, address = self._sock.recvfrom(_MAX_DATAGRAM)
        except OSError:
            return None
        self._sender = (address[0], address[1])
        if (
            len(packet) >= 4
            and packet[:4] == self._magic
            and len(packet) - 4 <= max_length
        ):
            return packet[4:]
        return None

    def send_frame(self, data: bytes, remote_ip: Address, remote_port: int) -> bool:
        """Send ``data`` behind the magic header; return whether it went out."""
        if self._sock is None:
            raise RuntimeError("UDP socket not started")
        if not data:
            return False
        try:
            self._sock.sendto(self._magic + bytes(data), (_host(remote_ip), remote_port))
        except OSError:
            return False
        return True

    def broadcast_frame(self, data: bytes) -> bool:
        """Broadcast ``data`` on the local subnet to the bound port."""
        return self.send_frame(data, BROADCAST_ADDRESS, self._port)

    def send_response(self, data: Union[int, bytes]) -> bool:
        """Send ``data`` (a byte value or bytes) back to the last sender."""
        if self._sender is None:
            return False
        payload = bytes((data,)) if isinstance(data, int) else bytes(data)
        return self.send_frame(payload, *self._sender)

    def close(self) -> None:
        """Close the socket."""
        if self._sock is not None:
            self._sock.close()
            self._sock = None