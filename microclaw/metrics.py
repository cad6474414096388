"""Prometheus metrics for sensor acquisition and MQTT delivery."""

import logging

from prometheus_client import Counter, Gauge, start_http_server

logger = logging.getLogger(__name__)

# Sensor acquisition
SENSOR_READS_TOTAL = Counter(
    "microclaw_sensor_reads_total",
    "Completed sensor acquisitions (after retries)",
    labelnames=["result"],
)
SENSOR_ATTEMPT_FAILURES_TOTAL = Counter(
    "microclaw_sensor_attempt_failures_total",
    "Failed single acquisition attempts",
    labelnames=["kind"],
)
TEMPERATURE = Gauge(
    "microclaw_temperature_celsius",
    "Last valid temperature in Celsius",
)
HUMIDITY = Gauge(
    "microclaw_humidity_percent",
    "Last valid relative humidity in percent",
)

# MQTT connection (1 = connected, 0 = disconnected)
MQTT_CONNECTED = Gauge(
    "microclaw_mqtt_connected",
    "Whether the MQTT session is currently connected",
)
MQTT_CONNECT_ATTEMPTS_TOTAL = Counter(
    "microclaw_mqtt_connect_attempts_total",
    "MQTT connection attempts",
    labelnames=["result"],
)
MQTT_PUBLISH_TOTAL = Counter(
    "microclaw_mqtt_publish_total",
    "MQTT publish calls by outcome",
    labelnames=["result"],
)


def start_metrics_server(port: int) -> bool:
    """Expose metrics over HTTP; a port of 0 disables the exporter."""
    if port <= 0:
        logger.debug("Prometheus експортер вимкнено")
        return False
    start_http_server(port)
    logger.info("Prometheus метрики доступні на порту %s", port)
    return True
