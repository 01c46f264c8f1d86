"""Local ambient health telemetry: presence, posture, blink rate, typing cadence and voice I/O."""

__version__ = "0.1.0"
