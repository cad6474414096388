#!/usr/bin/env python3
"""MicroClaw: агент, що читає DHT22 і публікує дані в MQTT."""

import logging
import signal
import time
from typing import Callable, Optional

from .commands import CommandHandler, restart_process
from .config import AgentSettings, load_settings
from .connection import ConnectionManager
from .metrics import start_metrics_server
from .mqtt_transport import PahoTransport
from .sensors import SensorReader, SensorReading
from .sensors.dht22 import format_reading
from .sensors.transducers import DHT22Transducer, SimulatedTransducer
from .telemetry import (
    STATUS_OFFLINE,
    TopicLayout,
    envelope_payload,
    humidity_payload,
    status_payload,
    status_report_payload,
    temperature_payload,
)

logger = logging.getLogger(__name__)

LOOP_IDLE_S = 0.01


def _interrupt_on_signal(signum, frame) -> None:
    raise KeyboardInterrupt(signal.Signals(signum).name)


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class Agent:
    """Керує циклом: обслуговування MQTT та періодична публікація."""

    def __init__(
        self,
        settings: AgentSettings,
        reader: SensorReader,
        connection: ConnectionManager,
        topics: TopicLayout,
        clock: Callable[[], int] = monotonic_ms,
        restart: Callable[[], None] = restart_process,
    ):
        self.settings = settings
        self.reader = reader
        self.connection = connection
        self.topics = topics
        self.clock = clock
        self.commands = CommandHandler(topics.commands, self.publish_status_report, restart)
        self.last_publish_ms: Optional[int] = None
        self.started_ms: Optional[int] = None

    def setup(self, now_ms: Optional[int] = None) -> None:
        now_ms = self.clock() if now_ms is None else now_ms
        self.started_ms = now_ms
        self.reader.begin()
        self.connection.on_message(self.commands.handle)
        self.connection.ensure_connected(now_ms)
        logger.info(
            "%s v%s готовий. MQTT=%s:%s, інтервал=%s мс",
            self.settings.agent_name,
            self.settings.version,
            self.settings.mqtt_host,
            self.settings.mqtt_port,
            self.settings.publish_interval_ms,
        )

    def step(self, now_ms: int) -> None:
        self.connection.ensure_connected(now_ms)
        self.connection.tick()

        if self.last_publish_ms is None or now_ms - self.last_publish_ms >= self.settings.publish_interval_ms:
            self.last_publish_ms = now_ms
            self.publish_sensor_data()

    def publish_sensor_data(self) -> SensorReading:
        reading = self.reader.read()
        logger.info("DHT22: %s", format_reading(reading))

        if reading.valid:
            self.connection.publish(self.topics.sensor("temperature"), temperature_payload(reading))
            self.connection.publish(self.topics.sensor("humidity"), humidity_payload(reading))
        self.connection.publish(self.topics.sensor("reading"), envelope_payload(reading))
        return reading

    def uptime_s(self) -> int:
        if self.started_ms is None:
            return 0
        return max(0, (self.clock() - self.started_ms) // 1000)

    def publish_status_report(self) -> bool:
        payload = status_report_payload(
            agent=self.settings.agent_name,
            version=self.settings.version,
            uptime_s=self.uptime_s(),
            last_read_ok=self.reader.last_read_ok,
            last_error=self.reader.last_error,
        )
        return self.connection.publish(self.topics.status, payload)

    def shutdown(self) -> None:
        self.connection.publish(
            self.topics.status, status_payload(STATUS_OFFLINE, self.settings.version), retained=True
        )
        self.connection.close()
        logger.info("Агент зупинено")

    def run_forever(self) -> None:
        # SIGTERM (systemd, docker stop) takes the same shutdown path as Ctrl+C
        signal.signal(signal.SIGTERM, _interrupt_on_signal)
        self.setup()
        try:
            while True:
                self.step(self.clock())
                time.sleep(LOOP_IDLE_S)
        except KeyboardInterrupt:
            logger.info("Отримано сигнал зупинки")
        finally:
            self.shutdown()


def build_agent(settings: AgentSettings) -> Agent:
    topics = TopicLayout(namespace=settings.namespace, node_id=settings.node_id)

    if settings.sensor_backend == "dht22":
        transducer = DHT22Transducer(pin=settings.sensor_pin)
    else:
        transducer = SimulatedTransducer()
    reader = SensorReader(
        transducer,
        max_retries=settings.max_retries,
        retry_delay_ms=settings.retry_delay_ms,
    )

    transport = PahoTransport(
        settings.mqtt_host,
        settings.mqtt_port,
        keepalive=settings.mqtt_keepalive,
        will_topic=topics.status,
        will_payload=status_payload(STATUS_OFFLINE, settings.version),
    )
    connection = ConnectionManager(
        transport,
        client_id=settings.client_id,
        command_topic=topics.commands,
        status_topic=topics.status,
        version=settings.version,
        username=settings.mqtt_username,
        password=settings.mqtt_password,
        cooldown_ms=settings.reconnect_cooldown_ms,
    )
    return Agent(settings, reader, connection, topics)


def main() -> None:
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="[%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("🐾 %s v%s запускається", settings.agent_name, settings.version)
    start_metrics_server(settings.metrics_port)
    build_agent(settings).run_forever()


if __name__ == "__main__":
    main()
