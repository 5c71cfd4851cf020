"""A minimal serial port with short, nearly non-blocking timeouts."""

from __future__ import annotations

from typing import Optional

import serial

_SHORT_TIMEOUT_S = 0.001


class SerialPort:
    """A serial port opened in 8N1 mode without hardware flow control."""

    def __init__(self, port: str, baud_rate: int = 115200) -> None:
        try:
            self._port = serial.serial_for_url(
                port,
                baudrate=baud_rate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                rtscts=False,
                dsrdtr=False,
                xonxoff=False,
                timeout=_SHORT_TIMEOUT_S,
                write_timeout=_SHORT_TIMEOUT_S,
            )
        except (serial.SerialException, ValueError) as exc:
            raise OSError(f"could not open serial port {port!r}: {exc}") from exc
        self.port = port
        self.baud_rate = baud_rate

    @property
    def is_open(self) -> bool:
        """Whether the port is still open."""
        return bool(self._port.is_open)

    def write_byte(self, value: int) -> int:
        """Write one byte and return how many bytes were written."""
        if not 0 <= value <= 0xFF:
            raise ValueError(f"byte value out of range: {value}")
        written = self._port.write(bytes((value,)))
        return int(written or 0)

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes, returning what arrived within the short timeout."""
        if size < 0:
            raise ValueError(f"read size must not be negative, got {size}")
        return bytes(self._port.read(size))

    def get_byte(self) -> Optional[int]:
        """Return the next received byte, or None if nothing arrived."""
        data = self.read(1)
        return data[0] if data else None

    def data_available(self) -> bool:
        """Whether received bytes are waiting to be read."""
        return self._port.in_waiting > 0

    def flush(self) -> None:
        """Discard everything pending in the receive and transmit buffers."""
        self._port.reset_input_buffer()
        self._port.reset_output_buffer()

    def close(self) -> None:
        """Close the port."""
        self._port.close()

    def __enter__(self) -> "SerialPort":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()