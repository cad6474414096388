"""Sensor package exposing the DHT22 reader and shared helpers."""

import math
from dataclasses import dataclass
from typing import Protocol

TEMPERATURE_MIN_C = -40.0
TEMPERATURE_MAX_C = 80.0
HUMIDITY_MIN_PCT = 0.0
HUMIDITY_MAX_PCT = 100.0


class SensorError(Exception):
    """Raised when a sensor is used incorrectly (e.g. read before begin())."""


class Transducer(Protocol):
    """Raw temperature/humidity source; NaN signals a failed read."""

    def begin(self) -> None:
        ...

    def read_temperature(self) -> float:
        ...

    def read_humidity(self) -> float:
        ...


@dataclass
class SensorReading:
    temperature_c: float = math.nan
    humidity_pct: float = math.nan
    valid: bool = False
    error_message: str = ""

    @property
    def temperature_f(self) -> float:
        if not self.valid:
            return math.nan
        return self.temperature_c * 9.0 / 5.0 + 32.0


__all__ = [
    "HUMIDITY_MAX_PCT",
    "HUMIDITY_MIN_PCT",
    "SensorError",
    "SensorReader",
    "SensorReading",
    "TEMPERATURE_MAX_C",
    "TEMPERATURE_MIN_C",
    "Transducer",
]

from .dht22 import SensorReader  # noqa: E402  # isort:skip
