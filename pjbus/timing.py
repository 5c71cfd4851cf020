"""Timing tables for the bit-banged and analog-sampling physical layers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

_MHZ_16 = 16_000_000


@dataclass(frozen=True)
class SoftwareBitBangTiming:
    """Durations in microseconds for one SoftwareBitBang mode."""

    bit_width: float
    bit_spacer: float
    acceptance: int
    read_delay: int
    latency: int
    preamble: int = 1
    max_preamble: int = 1
    response_offset: int = 20
    initial_delay: int = 1000
    collision_delay: int = 16
    max_attempts: int = 20
    back_off_degree: int = 4


@dataclass(frozen=True)
class AnalogSamplingTiming:
    """Durations in microseconds for one AnalogSampling mode."""

    bit_width: int
    bit_spacer: int
    read_delay: int
    prescale: Optional[int] = None
    response_timeout: int = 15000
    initial_delay: int = 1000
    collision_delay: int = 64
    max_attempts: int = 10
    back_off_degree: int = 5
    threshold_decrease_interval: int = 10000


# mode -> (bit_width, bit_spacer, acceptance, read_delay, latency)
_SWBB_DEFAULTS = {
    1: (40, 112, 56, 4, 13),
    2: (36, 88, 56, 4, 10),
    3: (24, 66, 30, 8, 8),
    4: (22, 61, 30, 7, 5),
}

_ATMEGA328 = frozenset({"ATMEGA88", "ATMEGA168", "ATMEGA328", "ATMEGA328P"})
_ATMEGA328PB = frozenset({"ATMEGA328PB"})
_ATMEGA32U4 = frozenset({"ATMEGA16U4", "ATMEGA32U4"})
_ATMEGA2560 = frozenset({"ATMEGA1280", "ATMEGA2560"})
_ATTINY85 = frozenset({"ATTINY45", "ATTINY85"})
_ATTINY84 = frozenset({"ATTINY44", "ATTINY84", "ATTINY84A"})
_SAMD_ZERO = frozenset({"SAMD_ZERO"})
_ESP8266 = frozenset({"ESP8266"})
_ESP32 = frozenset({"ESP32"})
_TEENSY = frozenset({"MK20DX256"})
_STM32F1 = frozenset({"STM32F1"})

# (boards, mode, required cpu frequencies or None, (bit_width, bit_spacer, acceptance, read_delay))
_SWBB_BOARDS = (
    (_ATMEGA328, 1, {_MHZ_16}, (40, 112, 56, 4)),
    (_ATMEGA328, 2, {_MHZ_16}, (36, 88, 56, 4)),
    (_ATMEGA328, 3, {_MHZ_16}, (24, 66, 30, 8)),
    (_ATMEGA328, 4, {_MHZ_16}, (22, 61, 30, 7)),
    (_ATMEGA328PB, 1, {_MHZ_16}, (37, 110, 56, 4)),
    (_ATMEGA328PB, 2, {_MHZ_16}, (33, 88, 56, 8)),
    (_ATMEGA32U4, 1, None, (40, 112, 56, 8)),
    (_ATMEGA32U4, 2, None, (36, 88, 56, 12)),
    (_ATMEGA2560, 1, None, (38, 110, 62, 11)),
    (_ATMEGA2560, 2, None, (34, 86, 58, 10)),
    (_ATTINY85, 1, {_MHZ_16}, (40, 112, 56, 4)),
    (_ATTINY85, 2, {_MHZ_16}, (36, 88, 56, 4)),
    (_ATTINY84, 1, {_MHZ_16}, (40, 112, 56, 4)),
    (_ATTINY84, 2, {_MHZ_16}, (36, 88, 56, 4)),
    (_SAMD_ZERO, 1, None, (43, 115, 40, -4)),
    (_ESP8266, 1, {80_000_000, 160_000_000}, (44, 112, 56, -6)),
    (_ESP32, 1, None, (44, 112, 56, -2)),
    (_TEENSY, 1, {96_000_000}, (46, 112, 40, -10)),
    (_STM32F1, 1, {72_000_000}, (43, 115, 60, 3)),
    (_STM32F1, 2, {72_000_000}, (39, 91, 47, 3)),
    (_STM32F1, 3, {72_000_000}, (27.5, 69.5, 33, -5)),
    (_STM32F1, 4, {72_000_000}, (25, 59, 30, 4)),
)

# mode -> (bit_width, bit_spacer, read_delay)
_AS_DEFAULTS = {
    1: (750, 1050, 0),
    2: (572, 728, 0),
    3: (188, 428, 0),
    4: (128, 290, 0),
    5: (56, 128, 16),
}

_AS_PRESCALE_BOARDS = _ATMEGA328 | _ATMEGA2560
_AS_PRESCALE = {3: 32, 4: 16, 5: 8}


def _normalise_board(board: Optional[str]) -> Optional[str]:
    return board.strip().upper() if board else None


def software_bitbang_timing(
    mode: int = 1, board: Optional[str] = None, cpu_frequency: Optional[int] = None
) -> SoftwareBitBangTiming:
    """Return the SoftwareBitBang timing for a mode, tuned for a board when one is known."""
    if mode not in _SWBB_DEFAULTS:
        raise ValueError(f"unknown SoftwareBitBang mode {mode}")
    bit_width, bit_spacer, acceptance, read_delay, latency = _SWBB_DEFAULTS[mode]
    name = _normalise_board(board)
    for boards, entry_mode, frequencies, values in _SWBB_BOARDS:
        if name in boards and entry_mode == mode and (
            frequencies is None or cpu_frequency in frequencies
        ):
            bit_width, bit_spacer, acceptance, read_delay = values
            break
    return SoftwareBitBangTiming(
        bit_width=bit_width,
        bit_spacer=bit_spacer,
        acceptance=acceptance,
        read_delay=read_delay,
        latency=latency,
    )


def analog_sampling_timing(
    mode: int = 1, board: Optional[str] = None, cpu_frequency: Optional[int] = None
) -> AnalogSamplingTiming:
    """Return the AnalogSampling timing for a mode, with the ADC prescale the board needs."""
    if mode not in _AS_DEFAULTS:
        raise ValueError(f"unknown AnalogSampling mode {mode}")
    # Every board-specific table entry equals the standard timing, so the
    # CPU frequency does not change the durations.
    del cpu_frequency
    bit_width, bit_spacer, read_delay = _AS_DEFAULTS[mode]
    prescale = None
    if _normalise_board(board) in _AS_PRESCALE_BOARDS:
        prescale = _AS_PRESCALE.get(mode)
    return AnalogSamplingTiming(
        bit_width=bit_width,
        bit_spacer=bit_spacer,
        read_delay=read_delay,
        prescale=prescale,
    )