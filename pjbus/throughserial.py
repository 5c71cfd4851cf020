"""Byte-stuffed framing over a serial link with synchronous acknowledgement."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from pjbus import clock

START = 0x95
END = 0xEA
ESC = 0xBB
ACK = 6

HIGH = 1
LOW = 0

_UINT32 = 0xFFFFFFFF
_SPECIAL = frozenset((START, ESC, END))


class _Serial(Protocol):
    def data_available(self) -> bool: ...

    def get_byte(self) -> Optional[int]: ...

    def write_byte(self, value: int) -> int: ...

    def flush(self) -> None: ...


class State(enum.Enum):
    """Reception state of a frame."""

    WAITING = 0
    RECEIVING = 1
    WAITING_ESCAPE = 2
    WAITING_END = 3
    DONE = 4


@dataclass(frozen=True)
class ThroughSerialConfig:
    """Timing and size limits; durations are microseconds unless noted."""

    initial_delay: int = 1000  # milliseconds
    collision_delay: int = 64
    response_time_out: int = 45000
    time_in: Optional[int] = None  # defaults to response_time_out + collision_delay
    read_interval: int = 100
    byte_time_out: int = 1_000_000
    response_length: int = 1
    max_attempts: int = 20
    back_off_degree: int = 4
    rs485_delay: int = 1  # milliseconds
    flush_offset: int = 152
    receive_time: int = 0
    packet_max_length: int = 50

    @property
    def effective_time_in(self) -> int:
        """The channel-free time required before transmitting."""
        if self.time_in is not None:
            return self.time_in
        return self.response_time_out + self.collision_delay


def _elapsed(since: int) -> int:
    return (clock.micros() - since) & _UINT32


class ThroughSerial:
    """Frame strategy sending byte-stuffed packets over a serial port."""

    def __init__(
        self,
        serial: _Serial,
        config: Optional[ThroughSerialConfig] = None,
        pin_writer: Optional[Callable[[int, int], None]] = None,
    ) -> None:
        self.serial = serial
        self.config = config or ThroughSerialConfig()
        self._pin_writer = pin_writer or (lambda pin, level: None)
        self.buffer = bytearray()
        self.state = State.WAITING
        self.read_interval = self.config.read_interval
        self._fail = False
        self._response = bytes(self.config.response_length)
        self._last_reception_time = 0
        self._last_call_time = 0
        self._rxe_pin: Optional[int] = None
        self._txe_pin: Optional[int] = None
        self._rs485_delay = self.config.rs485_delay
        self._baud_rate = 0
        self._flush_offset = self.config.flush_offset

    def back_off(self, attempts: int) -> int:
        """Return the suggested delay in microseconds after ``attempts`` tries."""
        result = attempts
        for _ in range(self.config.back_off_degree):
            result = (result * attempts) & _UINT32
        return (result + clock.random_below(self.config.collision_delay)) & _UINT32

    def begin(self, device_id: int = 0) -> bool:
        """Wait a random initial delay and start tracking reception time."""
        clock.delay(clock.random_below(self.config.initial_delay) + device_id)
        self._last_reception_time = clock.micros()
        return True

    def can_start(self) -> bool:
        """Whether the channel looks free for a transmission."""
        clock.delay_microseconds(clock.random_below(self.config.collision_delay))
        return not (
            self.state is not State.WAITING
            or self.serial.data_available()
            or _elapsed(self._last_reception_time) < self.config.effective_time_in
        )

    def _fail_to(self, state: State) -> None:
        self.state = state
        return None

    def get_max_attempts(self) -> int:
        """Maximum number of transmission attempts."""
        return self.config.max_attempts

    def get_receive_time(self) -> int:
        """Recommended receive time in microseconds."""
        return self.config.receive_time

    def handle_collision(self) -> None:
        """Wait a random short delay after a collision."""
        clock.delay_microseconds(clock.random_below(self.config.collision_delay))

    def receive_byte(self) -> Optional[int]:
        """Read one byte, recording when it arrived; None if nothing was read."""
        value = self.serial.get_byte()
        if value is None:
            return None
        self._last_reception_time = clock.micros()
        return value

    def receive_response(self) -> bool:
        """Wait for the acknowledgement of the last frame sent."""
        if self._fail:
            return False
        start = clock.micros()
        received = 0
        while _elapsed(start) < self.config.response_time_out:
            if not self.serial.data_available():
                continue
            value = self.serial.get_byte()
            self._last_reception_time = clock.micros()
            if value is None:
                continue
            if self._response[received] != value:
                return False
            received += 1
            if received == self.config.response_length:
                return True
        return False

    def receive_frame(self, max_length: Optional[int] = None) -> Optional[bytes]:
        """Advance frame reception; return a complete frame once one is ready."""
        if max_length is None:
            max_length = self.config.packet_max_length
        if self._last_call_time and _elapsed(self._last_call_time) < self.read_interval:
            return None
        self._last_call_time = clock.micros()

        if (
            self.state in (State.RECEIVING, State.WAITING_END, State.WAITING_ESCAPE)
            and _elapsed(self._last_reception_time) > self.config.byte_time_out
        ):
            return self._fail_to(State.WAITING)

        if self.state is State.WAITING:
            while self.serial.data_available():
                value = self.receive_byte()
                if value is None:
                    return None
                if value == START:
                    self.buffer.clear()
                    return self._fail_to(State.RECEIVING)
            return None

        if self.state is State.RECEIVING:
            while self.serial.data_available():
                value = self.receive_byte()
                if value is None or value == START:
                    return self._fail_to(State.WAITING)
                if value == ESC:
                    if not self.serial.data_available():
                        return self._fail_to(State.WAITING_ESCAPE)
                    value = self.receive_byte()
                    if value is None:
                        return self._fail_to(State.WAITING)
                    value ^= ESC
                    if value not in _SPECIAL:
                        return self._fail_to(State.WAITING)
                    self.buffer.append(value)
                    continue
                if max_length == 1:
                    return self._fail_to(State.WAITING_END)
                if len(self.buffer) + 1 >= self.config.packet_max_length:
                    return self._fail_to(State.WAITING)
                if value == END:
                    return self._fail_to(State.DONE)
                self.buffer.append(value)
            return None

        if self.state is State.WAITING_ESCAPE:
            if self.serial.data_available():
                value = self.receive_byte()
                if value is None:
                    return self._fail_to(State.WAITING)
                value ^= ESC
                if value not in _SPECIAL:
                    return self._fail_to(State.WAITING)
                self.buffer.append(value)
                return self._fail_to(State.RECEIVING)
            return None

        if self.state is State.WAITING_END:
            if self.serial.data_available():
                value = self.receive_byte()
                if value is not None and value == END:
                    return self._fail_to(State.DONE)
                return self._fail_to(State.WAITING)
            return None

        frame = bytes(self.buffer)
        if len(frame) >= self.config.response_length:
            self.prepare_response(frame)
        self.state = State.WAITING
        return frame

    def send_byte(self, value: int) -> None:
        """Write one byte, retrying until accepted or the byte timeout expires."""
        start = clock.micros()
        while True:
            result = self.serial.write_byte(value)
            if result == 1 or _elapsed(start) >= self.config.byte_time_out:
                break
        if result != 1:
            self._fail = True

    def prepare_response(self, frame: bytes) -> bytes:
        """Derive the expected acknowledgement from the last bytes of ``frame``."""
        length = self.config.response_length
        if len(frame) < length:
            raise ValueError(
                f"frame of {len(frame)} bytes is shorter than the response length {length}"
            )
        self._response = bytes(
            raw - 1 if raw in _SPECIAL else raw for raw in frame[len(frame) - length:]
        )
        return self._response

    def send_response(self, response: int) -> None:
        """Send the acknowledgement of the last received frame if ``response`` is ACK."""
        if response != ACK:
            return
        self.start_tx()
        self.wait_rs485_pin_change()
        for value in self._response:
            self.send_byte(value)
        self.serial.flush()
        self.wait_rs485_pin_change()
        self.end_tx()

    def send_frame(self, data: bytes) -> None:
        """Send ``data`` framed by START and END with special bytes escaped."""
        self._fail = False
        self.start_tx()
        overhead = 2
        self.send_byte(START)
        for value in data:
            if self._fail:
                return
            if value in _SPECIAL:
                self.send_byte(ESC)
                self.send_byte(value ^ ESC)
                overhead += 1
            else:
                self.send_byte(value)
        self.send_byte(END)
        if self._baud_rate:
            per_byte = 1_000_000 // (self._baud_rate // 8) + self._flush_offset
            clock.delay_microseconds(per_byte * (overhead + len(data)))
        self.serial.flush()
        self.end_tx()
        self.prepare_response(bytes(data))

    def start_tx(self) -> None:
        """Enable the RS485 transmitter pins, if any."""
        if self._txe_pin is None:
            return
        self._pin_writer(self._txe_pin, HIGH)
        if self._rxe_pin is not None:
            self._pin_writer(self._rxe_pin, HIGH)
        self.wait_rs485_pin_change()

    def end_tx(self) -> None:
        """Disable the RS485 transmitter pins, if any."""
        if self._txe_pin is None:
            return
        self.wait_rs485_pin_change()
        self._pin_writer(self._txe_pin, LOW)
        if self._rxe_pin is not None:
            self._pin_writer(self._rxe_pin, LOW)

    def set_baud_rate(self, baud: int) -> None:
        """Set the baud rate used to wait out transmission after each frame."""
        self._baud_rate = baud

    def set_flush_offset(self, offset: int) -> None:
        """Set the extra per-byte wait in microseconds after each frame."""
        self._flush_offset = offset

    def set_rs485_rxe_pin(self, pin: Optional[int]) -> None:
        """Set the RS485 receiver-enable pin."""
        self._rxe_pin = pin

    def set_rs485_txe_pin(self, pin: Optional[int]) -> None:
        """Set the RS485 transmitter-enable pin."""
        self._txe_pin = pin

    def wait_rs485_pin_change(self) -> None:
        """Wait for the RS485 transceiver to switch direction."""
        if self._txe_pin is not None:
            clock.delay(self._rs485_delay)