import dataclasses

import pytest

from pjbus.timing import (
    AnalogSamplingTiming,
    SoftwareBitBangTiming,
    analog_sampling_timing,
    software_bitbang_timing,
)


def test_swbb_mode1_default():
    t = software_bitbang_timing(1)
    assert (t.bit_width, t.bit_spacer, t.acceptance, t.read_delay, t.latency) == (
        40,
        112,
        56,
        4,
        13,
    )


def test_swbb_mode4_default():
    t = software_bitbang_timing(4)
    assert (t.bit_width, t.bit_spacer, t.acceptance, t.read_delay, t.latency) == (
        22,
        61,
        30,
        7,
        5,
    )


def test_swbb_common_defaults():
    t = software_bitbang_timing(2)
    assert t.max_attempts == 20
    assert t.back_off_degree == 4
    assert t.response_offset == 20
    assert t.initial_delay == 1000


def test_swbb_stm32_mode3_fractional():
    t = software_bitbang_timing(3, "STM32F1", 72000000)
    assert t.bit_width == 27.5
    assert t.bit_spacer == 69.5
    assert t.read_delay == -5


def test_swbb_esp32_mode1():
    t = software_bitbang_timing(1, "ESP32")
    assert t.bit_width == 44
    assert t.read_delay == -2


def test_swbb_esp32_other_mode_falls_back():
    assert software_bitbang_timing(2, "ESP32") == software_bitbang_timing(2)


def test_swbb_esp8266_frequency_condition():
    matched = software_bitbang_timing(1, "ESP8266", 80000000)
    unmatched = software_bitbang_timing(1, "ESP8266", 40000000)
    assert matched.read_delay == -6
    assert unmatched == software_bitbang_timing(1)


def test_swbb_board_name_case_insensitive():
    assert software_bitbang_timing(1, "atmega2560") == software_bitbang_timing(
        1, "ATmega2560"
    )


def test_swbb_board_keeps_mode_latency():
    assert software_bitbang_timing(1, "ATmega2560").latency == software_bitbang_timing(1).latency


def test_swbb_unknown_board_uses_defaults():
    assert software_bitbang_timing(3, "unknown-board") == software_bitbang_timing(3)


@pytest.mark.parametrize("mode", [0, 5, 99])
def test_swbb_invalid_mode(mode):
    with pytest.raises(ValueError):
        software_bitbang_timing(mode)


def test_swbb_is_frozen():
    t = software_bitbang_timing(1)
    with pytest.raises(dataclasses.FrozenInstanceError):
        t.bit_width = 1
    assert t.bit_width == 40


def test_as_mode1_default():
    t = analog_sampling_timing(1)
    assert (t.bit_width, t.bit_spacer, t.read_delay) == (750, 1050, 0)
    assert t.prescale is None


def test_as_mode5_default():
    t = analog_sampling_timing(5)
    assert (t.bit_width, t.bit_spacer, t.read_delay) == (56, 128, 16)


def test_as_common_defaults():
    t = analog_sampling_timing(2)
    assert t.response_timeout == 15000
    assert t.threshold_decrease_interval == 10000
    assert t.max_attempts == 10
    assert t.back_off_degree == 5


@pytest.mark.parametrize("mode,prescale", [(3, 32), (4, 16), (5, 8)])
def test_as_prescale_for_avr(mode, prescale):
    assert analog_sampling_timing(mode, "ATmega328P", 16000000).prescale == prescale
    assert analog_sampling_timing(mode, "ATmega2560").prescale == prescale


def test_as_prescale_absent_for_other_boards():
    assert analog_sampling_timing(3, "ESP8266").prescale is None
    assert analog_sampling_timing(1, "ATmega328P").prescale is None


def test_as_board_keeps_standard_durations():
    a = analog_sampling_timing(4, "ATmega328P", 16000000)
    b = analog_sampling_timing(4)
    assert (a.bit_width, a.bit_spacer, a.read_delay) == (b.bit_width, b.bit_spacer, b.read_delay)


@pytest.mark.parametrize("mode", [0, 6])
def test_as_invalid_mode(mode):
    with pytest.raises(ValueError):
        analog_sampling_timing(mode)


def test_types_returned():
    assert isinstance(analog_sampling_timing(1), AnalogSamplingTiming)
    assert isinstance(software_bitbang_timing(1), SoftwareBitBangTiming)
    assert software_bitbang_timing(1).collision_delay == 16
    assert analog_sampling_timing(1).collision_delay == 64