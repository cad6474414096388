"""DHT22 reader with bounded retries and range validation."""

import json
import logging
import math
import time
from typing import Callable, Optional, Tuple

from .. import metrics
from . import (
    HUMIDITY_MAX_PCT,
    HUMIDITY_MIN_PCT,
    TEMPERATURE_MAX_C,
    TEMPERATURE_MIN_C,
    SensorReading,
    Transducer,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_MS = 2000


class SensorReader:
    """Читає DHT22 з повторними спробами та перевіркою діапазонів.

    Every public read performs a full acquisition cycle of its own; nothing is
    cached between calls except ``last_read_ok`` / ``last_error``.
    """

    def __init__(
        self,
        transducer: Transducer,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        if retry_delay_ms < 0:
            raise ValueError(f"retry_delay_ms must be >= 0, got {retry_delay_ms}")
        self.transducer = transducer
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self._sleep = sleep
        self._last_read_ok = False
        self._last_error = ""

    def begin(self) -> None:
        self.transducer.begin()
        self._last_read_ok = False
        self._last_error = ""

    @property
    def last_read_ok(self) -> bool:
        return self._last_read_ok

    @property
    def last_error(self) -> str:
        return self._last_error

    def read(self) -> SensorReading:
        """Acquire one validated reading, retrying up to ``max_retries`` times."""

        for attempt in range(self.max_retries):
            humidity = self.transducer.read_humidity()
            temperature = self.transducer.read_temperature()

            error = self._check(temperature, humidity)
            if not error:
                self._last_read_ok = True
                self._last_error = ""
                metrics.SENSOR_READS_TOTAL.labels(result="ok").inc()
                metrics.TEMPERATURE.set(temperature)
                metrics.HUMIDITY.set(humidity)
                return SensorReading(
                    temperature_c=temperature,
                    humidity_pct=humidity,
                    valid=True,
                )

            self._last_read_ok = False
            self._last_error = error
            logger.debug("Спроба %s/%s невдала: %s", attempt + 1, self.max_retries, error)

            if attempt < self.max_retries - 1:
                self._sleep(self.retry_delay_ms / 1000.0)

        self._last_error += f" after {self.max_retries} attempts"
        metrics.SENSOR_READS_TOTAL.labels(result="failed").inc()
        logger.warning("Не вдалося прочитати DHT22: %s", self._last_error)
        return SensorReading(valid=False, error_message=self._last_error)

    def _check(self, temperature: float, humidity: float) -> str:
        """Return an error message for an attempt, or "" when it is usable."""
        temperature_nan = math.isnan(temperature)
        humidity_nan = math.isnan(humidity)
        if temperature_nan or humidity_nan:
            metrics.SENSOR_ATTEMPT_FAILURES_TOTAL.labels(kind="transducer").inc()
            if temperature_nan and humidity_nan:
                return "Sensor read failed (both values NaN)"
            if humidity_nan:
                return "Humidity read failed (NaN)"
            return "Temperature read failed (NaN)"

        if not TEMPERATURE_MIN_C <= temperature <= TEMPERATURE_MAX_C:
            metrics.SENSOR_ATTEMPT_FAILURES_TOTAL.labels(kind="range").inc()
            return f"Temperature out of range: {temperature:.1f}C"
        if not HUMIDITY_MIN_PCT <= humidity <= HUMIDITY_MAX_PCT:
            metrics.SENSOR_ATTEMPT_FAILURES_TOTAL.labels(kind="range").inc()
            return f"Humidity out of range: {humidity:.1f}%"
        return ""

    def read_temperature(self) -> float:
        """Temperature in Celsius, or NaN when the acquisition failed."""
        return self.read().temperature_c

    def read_fahrenheit(self) -> float:
        return self.read().temperature_f

    def read_humidity(self) -> float:
        return self.read().humidity_pct

    def read_values(self) -> Optional[Tuple[float, float]]:
        reading = self.read()
        if not reading.valid:
            return None
        return reading.temperature_c, reading.humidity_pct

    def read_json(self) -> str:
        from ..telemetry import envelope_payload

        return envelope_payload(self.read())

    async def read_async(self) -> SensorReading:
        from asyncio import to_thread

        return await to_thread(self.read)


def format_reading(reading: SensorReading) -> str:
    """Short human-readable form used in log lines."""
    if not reading.valid:
        return f"error: {reading.error_message}"
    return json.dumps(
        {"temperature": round(reading.temperature_c, 1), "humidity": round(reading.humidity_pct, 1)}
    )
