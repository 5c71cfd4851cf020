# pjbus

Data link strategies for a small multi-master bus network protocol. Each
strategy moves already composed packets over a medium and reports whether
the receiver acknowledged them:

- `pjbus.throughserial.ThroughSerial` – byte-stuffed frames (START `0x95`,
  END `0xEA`, ESC `0xBB`) over a serial port or RS485 line, with a short
  synchronous acknowledgement built from the last bytes of the frame.
  Timing and size limits come from `ThroughSerialConfig`; an optional
  `pin_writer(pin, level)` callable drives RS485 enable pins.
- `pjbus.analogsampling.AnalogSampling` – padded, byte-stuffed frames sampled
  through analog reads, for LEDs, photodiodes or other simple transceivers.
  It works through an object you supply with `analog_read`, `digital_write`,
  `pin_mode` and `pull_down` methods.
- `pjbus.localudp.LocalUDP` – frames broadcast on the local network over UDP;
  acknowledgements are sent straight back to the sender.
- `pjbus.globaludp.GlobalUDP` – frames sent over UDP to a table of up to ten
  registered nodes (`add_node`). Senders of incoming packets are registered
  automatically when a `sender_id_of(packet) -> int` callable is given.

Every strategy offers the same calls: `begin`, `can_start`, `back_off`,
`handle_collision`, `get_max_attempts`, `get_receive_time`, `send_frame`,
`receive_frame`, `send_response` and `receive_response`.

Lower-level helpers:

- `pjbus.serialport.SerialPort` – a serial port opened in 8N1 mode with short
  timeouts; usable as a context manager.
- `pjbus.udphelper.UDPHelper` – a non-blocking UDP socket placing a 4-byte
  magic header before every frame and dropping datagrams without it.
- `pjbus.tcphelper.TCPClient` and `TCPServer` – TCP sockets with Nagle's
  algorithm disabled, short read timeouts and a non-blocking connect
  (`prepare_connect` then `try_connect`, returning -1, 0 or 1).
- `pjbus.clock` – `micros`, `millis`, `delay`, `delay_microseconds`,
  `random_below` and `seed_random`.
- `pjbus.timing` – per-board timing tables: `software_bitbang_timing` and
  `analog_sampling_timing`.

## Installation

```
pip install pjbus
```

For running the test suite:

```
pip install "pjbus[test]"
pytest
```

## Example: local UDP

```python
from pjbus.localudp import LocalUDP

link = LocalUDP(port=7100)
link.begin(1)
link.send_frame(b"\x2c\x02\x08hello\x00")   # broadcast a composed packet
frame = link.receive_frame(255)              # bytes, or None when nothing arrived
link.close()
```

## Example: serial line

```python
from pjbus.serialport import SerialPort
from pjbus.throughserial import ThroughSerial

with SerialPort("/dev/ttyUSB0", 115200) as port:
    link = ThroughSerial(port)
    link.begin(1)
    link.send_frame(b"\x2c\x02\x08hello\x00")
    acknowledged = link.receive_response()   # True or False
```

`ThroughSerial.receive_frame` advances reception a step per call and returns
`None` until a whole frame has arrived; call it repeatedly.
`AnalogSampling.receive_frame` returns one unstuffed byte per call.

## Timing tables

```python
from pjbus.timing import software_bitbang_timing, analog_sampling_timing

print(software_bitbang_timing(1, None, None).bit_width)   # 40
print(analog_sampling_timing(1, None, None).bit_spacer)   # 1050
print(analog_sampling_timing(3, "ATmega328P", None).prescale)  # 32
```

## What this package does not do

pjbus is the data link layer only. It does not compose, parse or check
packets (no headers, addressing or CRC), keep a send queue, retry
deliveries or route between buses; the bytes handed to `send_frame` must
already be a complete packet. `timing.software_bitbang_timing` provides the
bit-banged timing values, but no bit-banging strategy uses them here. There
is no command-line program.