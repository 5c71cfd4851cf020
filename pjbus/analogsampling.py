"""Frame strategy sampling digital data through analog readings of a single pin."""

from __future__ import annotations

from typing import Optional, Protocol

from pjbus import clock
from pjbus.timing import AnalogSamplingTiming, analog_sampling_timing

START = 0x95
END = 0xEA
ESC = 0xBB
ACK = 6

HIGH = 1
LOW = 0
OUTPUT = 1

DEFAULT_THRESHOLD = 1
RECEIVE_TIME = 1000
PACKET_MAX_LENGTH = 50

_UINT32 = 0xFFFFFFFF
_SPECIAL = frozenset((START, ESC, END))


class AnalogIO(Protocol):
    """Pin access needed by the strategy."""

    def analog_read(self, pin: int) -> int: ...

    def digital_write(self, pin: int, level: int) -> None: ...

    def pin_mode(self, pin: int, mode: int) -> None: ...

    def pull_down(self, pin: int) -> None: ...


def _elapsed(since: int) -> int:
    return (clock.micros() - since) & _UINT32


class AnalogSampling:
    """Byte-stuffed frames sent as padded bits and sampled with an analog input."""

    def __init__(self, io: AnalogIO, timing: Optional[AnalogSamplingTiming] = None) -> None:
        self.io = io
        self.timing = timing or analog_sampling_timing()
        self.threshold = DEFAULT_THRESHOLD
        self.analog_read_time = 0
        self._last_byte: Optional[int] = None
        self._input_pin: Optional[int] = None
        self._output_pin: Optional[int] = None
        self._last_update = 0

    @property
    def input_pin(self) -> Optional[int]:
        """The pin sampled for incoming data."""
        return self._input_pin

    @property
    def output_pin(self) -> Optional[int]:
        """The pin driven for outgoing data."""
        return self._output_pin

    def _pull_down(self, pin: Optional[int]) -> None:
        if pin is not None:
            self.io.pull_down(pin)

    def _read(self) -> int:
        if self._input_pin is None:
            raise RuntimeError("no input pin configured")
        return int(self.io.analog_read(self._input_pin))

    def _write(self, level: int) -> None:
        if self._output_pin is None:
            raise RuntimeError("no output pin configured")
        self.io.digital_write(self._output_pin, level)

    def _separate_output(self) -> bool:
        return self._output_pin is not None and self._output_pin != self._input_pin

    def back_off(self, attempts: int) -> int:
        """Return the suggested delay in microseconds after ``attempts`` tries."""
        result = attempts
        for _ in range(self.timing.back_off_degree):
            result = (result * attempts) & _UINT32
        return result

    def begin(self, device_id: int = 0) -> bool:
        """Wait a random initial delay, measure the read duration and sample the line."""
        clock.delay(clock.random_below(self.timing.initial_delay) + device_id)
        self.compute_analog_read_duration()
        self._last_byte = self.receive_byte()
        return True

    def can_start(self) -> bool:
        """Whether no transmission is detected on the channel."""
        start = clock.micros()
        window = self.timing.bit_spacer + self.timing.bit_width * 9
        while _elapsed(start) <= window:
            if self.receive_byte() is not None:
                return False
        clock.delay_microseconds(clock.random_below(self.timing.collision_delay))
        return self._read() <= self.threshold

    def compute_analog_read_duration(self) -> int:
        """Measure and remember how long one analog reading takes, in microseconds."""
        start = clock.micros()
        self._read()
        self.analog_read_time = _elapsed(start)
        return self.analog_read_time

    def get_max_attempts(self) -> int:
        """Maximum number of transmission attempts."""
        return self.timing.max_attempts

    def get_receive_time(self) -> int:
        """Recommended receive time in microseconds."""
        return RECEIVE_TIME

    def handle_collision(self) -> None:
        """Wait a random short delay after a collision."""
        clock.delay_microseconds(clock.random_below(self.timing.collision_delay))

    def read_byte(self) -> int:
        """Sample eight bits, least significant first, and adapt the threshold."""
        high_bit = 0
        low_bit = 0
        byte_value = 0
        bit_width = self.timing.bit_width
        for bit in range(8):
            start = clock.micros()
            clock.delay_microseconds(bit_width // 2 - self.timing.read_delay)
            value = self._read()
            if value > self.threshold:
                byte_value |= 1 << bit
                high_bit = (value + high_bit) // 2
            else:
                high_bit = (high_bit + high_bit) // 2
            if value < self.threshold:
                low_bit = (value + low_bit) // 2
            else:
                low_bit = (low_bit + low_bit) // 2
            clock.delay_microseconds(bit_width - _elapsed(start))
        self.threshold = (high_bit + low_bit) // 2
        self._last_update = clock.micros()
        return byte_value

    def receive_byte(self) -> Optional[int]:
        """Synchronise on the padding bits and read a byte; None if none is coming."""
        self._pull_down(self._input_pin)
        if self._separate_output():
            self._pull_down(self._output_pin)
        start = clock.micros()
        if _elapsed(self._last_update) > self.timing.threshold_decrease_interval:
            self.threshold = int(self.threshold * 0.9)
            self._last_update = clock.micros()
        spacer = self.timing.bit_spacer
        while self._read() > self.threshold and _elapsed(start) <= spacer:
            pass
        duration = _elapsed(start)
        if duration < spacer * 0.75 or duration > spacer * 1.25:
            return None
        clock.delay_microseconds(self.timing.bit_width)
        return self.read_byte()

    def receive_response(self) -> bool:
        """Wait for an acknowledgement byte within the response timeout."""
        self._pull_down(self._input_pin)
        if self._separate_output():
            self._write(LOW)
        start = clock.micros()
        while _elapsed(start) <= self.timing.response_timeout:
            if self.receive_byte() == ACK:
                return True
        return False

    def receive_frame(self, max_length: int = PACKET_MAX_LENGTH) -> Optional[bytes]:
        """Receive one unstuffed byte of a frame; None on failure or stuffing violation."""
        if max_length == PACKET_MAX_LENGTH:
            if self.receive_byte() != START or self._last_byte == ESC:
                return None
        result = self.receive_byte()
        if result is None or result == START:
            return None
        if result == ESC:
            result = self.receive_byte()
            if result not in _SPECIAL:
                return None
            result ^= ESC
        if max_length == 1 and self.receive_byte() != END:
            return None
        return bytes((result,))

    def send_byte(self, value: int) -> None:
        """Send the synchronisation padding followed by eight bits, LSB first."""
        self._write(HIGH)
        clock.delay_microseconds(self.timing.bit_spacer)
        self._write(LOW)
        clock.delay_microseconds(self.timing.bit_width)
        for bit in range(8):
            self._write(HIGH if value >> bit & 1 else LOW)
            clock.delay_microseconds(self.timing.bit_width)

    def send_response(self, response: int) -> None:
        """Send a one-byte response to the transmitter of the last frame."""
        clock.delay_microseconds(self.timing.bit_width)
        self._pull_down(self._input_pin)
        if self._output_pin is not None:
            self.io.pin_mode(self._output_pin, OUTPUT)
        self.send_byte(response)
        self._pull_down(self._output_pin)

    def send_frame(self, data: bytes) -> None:
        """Send ``data`` between START and END with special bytes escaped."""
        if self._output_pin is not None:
            self.io.pin_mode(self._output_pin, OUTPUT)
        self.send_byte(START)
        for value in data:
            if value in _SPECIAL:
                self.send_byte(ESC)
                self.send_byte(value ^ ESC)
            else:
                self.send_byte(value)
        self.send_byte(END)
        self._pull_down(self._output_pin)

    def set_pin(self, pin: int) -> None:
        """Use one pin for both input and output."""
        self._pull_down(pin)
        self._input_pin = pin
        self._output_pin = pin

    def set_pins(self, input_pin: Optional[int] = None, output_pin: Optional[int] = None) -> None:
        """Use separate input and output pins."""
        self._pull_down(input_pin)
        self._pull_down(output_pin)
        self._input_pin = input_pin
        self._output_pin = output_pin

    def set_threshold(self, value: int) -> None:
        """Set the analog value separating a low from a high reading."""
        self.threshold = value