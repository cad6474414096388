"""Topic layout and JSON payload builders for published telemetry."""

import json
from dataclasses import dataclass
from typing import Any, Dict

from .sensors import SensorReading

STATUS_ONLINE = "online"
STATUS_RECONNECTED = "reconnected"
STATUS_OFFLINE = "offline"


def _dumps(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"))


@dataclass(frozen=True)
class TopicLayout:
    """Topic names namespaced by node id, e.g. ``microclaw/node-1/sensors/humidity``."""

    namespace: str = "microclaw"
    node_id: str = "microclaw-esp32"
    status_template: str = "{namespace}/{node_id}/status"
    sensor_template: str = "{namespace}/{node_id}/sensors/{channel}"
    command_template: str = "{namespace}/{node_id}/commands"

    def _format(self, template: str, **extra: str) -> str:
        return template.format(namespace=self.namespace.rstrip("/"), node_id=self.node_id, **extra)

    @property
    def status(self) -> str:
        return self._format(self.status_template)

    @property
    def commands(self) -> str:
        return self._format(self.command_template)

    def sensor(self, channel: str) -> str:
        return self._format(self.sensor_template, channel=channel)


def measurement_payload(value: float, unit: str) -> str:
    return _dumps({"value": round(value, 2), "unit": unit})


def temperature_payload(reading: SensorReading) -> str:
    return measurement_payload(reading.temperature_c, "C")


def humidity_payload(reading: SensorReading) -> str:
    return measurement_payload(reading.humidity_pct, "%")


def envelope_payload(reading: SensorReading) -> str:
    """Success or error envelope for a single reading."""
    if reading.valid:
        return _dumps(
            {
                "temperature": round(reading.temperature_c, 1),
                "humidity": round(reading.humidity_pct, 1),
                "status": "ok",
            }
        )
    return _dumps({"error": reading.error_message, "status": "error"})


def status_payload(status: str, version: str) -> str:
    return _dumps({"status": status, "version": version})


def status_report_payload(
    agent: str,
    version: str,
    uptime_s: int,
    last_read_ok: bool,
    last_error: str,
) -> str:
    return _dumps(
        {
            "status": STATUS_ONLINE,
            "version": version,
            "agent": agent,
            "uptime": uptime_s,
            "last_read_ok": last_read_ok,
            "last_error": last_error,
        }
    )
