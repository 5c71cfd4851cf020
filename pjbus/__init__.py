"""Serial, analog-sampling, UDP and TCP data link strategies and helpers for a bus protocol."""

__version__ = "0.1.0"