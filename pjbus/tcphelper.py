"""TCP client and server sockets with short read timeouts and no Nagle delay."""

from __future__ import annotations

import errno
import select
import socket
from typing import Optional, Sequence, Tuple, Union

_CONNECT_TIMEOUT_S = 2.0
_READ_TIMEOUT_S = 0.001
_WRITE_TIMEOUT_S = 2.0
_BACKLOG = 5

_IN_PROGRESS = frozenset({errno.EINPROGRESS, errno.EALREADY, errno.EWOULDBLOCK})
_CONNECTED = frozenset({0, errno.EISCONN})

Address = Union[str, bytes, Sequence[int]]


def _host(address: Address) -> str:
    if isinstance(address, str):
        return address
    raw = bytes(address)
    if len(raw) != 4:
        raise ValueError(f"an IPv4 address needs 4 bytes, got {len(raw)}")
    return socket.inet_ntoa(raw)


def _configure_connected(sock: socket.socket) -> None:
    sock.setblocking(True)
    sock.settimeout(_READ_TIMEOUT_S)
    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)


class TCPClient:
    """A TCP connection; reads return promptly when nothing is waiting."""

    def __init__(self, sock: Optional[socket.socket] = None) -> None:
        self._sock = sock
        self._remote: Optional[Tuple[str, int]] = None

    def available(self) -> bool:
        """Whether data (or a hang-up) is waiting to be read."""
        if self._sock is None:
            return False
        try:
            readable, _, _ = select.select([self._sock], [], [], 0)
        except (OSError, ValueError):
            self.stop()
            return False
        return bool(readable)

    def connect(self, address: Address, port: int) -> bool:
        """Connect, blocking for at most the connect timeout."""
        self.stop()
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._remote = (_host(address), port)
        sock.settimeout(_CONNECT_TIMEOUT_S)
        try:
            sock.connect(self._remote)
        except OSError:
            sock.close()
            return False
        _configure_connected(sock)
        self._sock = sock
        return True

    def prepare_connect(self, address: Address, port: int) -> bool:
        """Create a non-blocking socket for a later :meth:`try_connect`."""
        self.stop()
        self._remote = (_host(address), port)
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError:
            return False
        try:
            sock.setblocking(False)
        except OSError:
            sock.close()
            return False
        self._sock = sock
        return True

    def try_connect(self) -> int:
        """Advance a non-blocking connect: -1 on failure, 0 while waiting, 1 when connected."""
        if self._sock is None or self._remote is None:
            return -1
        code = self._sock.connect_ex(self._remote)
        if code not in _CONNECTED:
            if code in _IN_PROGRESS:
                return 0
            self.stop()
            return -1
        _configure_connected(self._sock)
        return 1

    def set_nodelay(self, nodelay: bool) -> None:
        """Enable or disable sending small segments immediately."""
        if self._sock is not None:
            self._sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, int(nodelay))

    def connected(self) -> bool:
        """Whether a socket is open."""
        return self._sock is not None

    def __bool__(self) -> bool:
        return self.connected()

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes; empty when nothing is waiting yet."""
        if self._sock is None:
            raise ConnectionError("not connected")
        try:
            data = self._sock.recv(size)
        except (socket.timeout, BlockingIOError, InterruptedError):
            return b""
        except OSError as exc:
            self.stop()
            raise ConnectionError(f"read failed: {exc}") from exc
        if not data and size > 0:
            self.stop()
            raise ConnectionError("connection closed by peer")
        return data

    def write(self, data: bytes) -> int:
        """Send ``data`` and return how many bytes were written."""
        if self._sock is None:
            raise ConnectionError("not connected")
        try:
            self._sock.settimeout(_WRITE_TIMEOUT_S)
            written = self._sock.send(bytes(data))
            self._sock.settimeout(_READ_TIMEOUT_S)
        except OSError as exc:
            self.stop()
            raise ConnectionError(f"write failed: {exc}") from exc
        return written

    def write_text(self, message: str) -> int:
        """Send a text message encoded as UTF-8."""
        return self.write(message.encode("utf-8"))

    def stop(self) -> None:
        """Shut down and close the connection."""
        if self._sock is None:
            return
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._sock.close()
        self._sock = None


class TCPServer:
    """A non-blocking listening socket handing out accepted clients."""

    def __init__(self, port: int) -> None:
        self._port = port
        self._sock: Optional[socket.socket] = None

    @property
    def port(self) -> int:
        """The bound port once listening, else the configured one."""
        if self._sock is not None:
            return self._sock.getsockname()[1]
        return self._port

    def begin(self) -> bool:
        """Bind and listen on all interfaces; return whether it succeeded."""
        self.stop()
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError:
            return False
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(("", self._port))
            sock.listen(_BACKLOG)
            sock.setblocking(False)
        except OSError:
            sock.close()
            return False
        self._sock = sock
        return True

    def available(self) -> Optional[TCPClient]:
        """Accept a waiting connection, or return None if there is none."""
        if self._sock is None:
            return None
        try:
            connection, _ = self._sock.accept()
        except OSError:
            return None
        _configure_connected(connection)
        return TCPClient(connection)

    def stop(self) -> None:
        """Close the listening socket."""
        if self._sock is not None:
            self._sock.close()
            self._sock = None