"""Raw DHT22 transducers: real GPIO hardware or a simulated stand-in."""

import logging
import math
import random
from typing import Optional

from . import SensorError

logger = logging.getLogger(__name__)


class DHT22Transducer:
    """DHT22 на GPIO через adafruit-circuitpython-dht."""

    def __init__(self, pin: int = 4, use_pulseio: bool = False):
        self.pin = pin
        self.use_pulseio = use_pulseio
        self._device = None

    def begin(self) -> None:
        import adafruit_dht
        import board

        if self._device is not None:
            self._device.exit()
        board_pin = getattr(board, f"D{self.pin}")
        self._device = adafruit_dht.DHT22(board_pin, use_pulseio=self.use_pulseio)
        logger.info("DHT22 ініціалізовано на піні D%s", self.pin)

    def _read(self, attribute: str) -> float:
        if self._device is None:
            raise SensorError("DHT22 read before begin()")
        try:
            value = getattr(self._device, attribute)
        except RuntimeError as exc:
            # Checksum and timing errors are routine for DHT sensors
            logger.debug("DHT22 %s: %s", attribute, exc)
            return math.nan
        return math.nan if value is None else float(value)

    def read_temperature(self) -> float:
        return self._read("temperature")

    def read_humidity(self) -> float:
        return self._read("humidity")

    def close(self) -> None:
        if self._device is not None:
            self._device.exit()
            self._device = None


class SimulatedTransducer:
    """Заглушка для DHT22 з випадковими значеннями та збоями."""

    def __init__(self, failure_rate: float = 0.0, rng: Optional[random.Random] = None):
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError(f"failure_rate must be within [0, 1], got {failure_rate}")
        self.failure_rate = failure_rate
        self.rng = rng or random.Random()

    def begin(self) -> None:
        logger.info("Використовується симульований DHT22")

    def _failed(self) -> bool:
        return self.failure_rate > 0 and self.rng.random() < self.failure_rate

    def read_temperature(self) -> float:
        if self._failed():
            return math.nan
        return round(20 + self.rng.random() * 5, 2)

    def read_humidity(self) -> float:
        if self._failed():
            return math.nan
        return round(50 + self.rng.random() * 10, 2)
