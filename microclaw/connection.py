"""MQTT session maintenance with cooldown-gated reconnection."""

import enum
import logging
from typing import Callable, Optional, Protocol

from . import __version__, metrics
from .telemetry import STATUS_ONLINE, STATUS_RECONNECTED, status_payload

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_MS = 5000

MessageCallback = Callable[[str, bytes], None]


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class PublishTransport(Protocol):
    def connect(
        self, client_id: str, username: Optional[str] = None, password: Optional[str] = None
    ) -> bool:
        ...

    def connected(self) -> bool:
        ...

    def publish(self, topic: str, payload: str, retained: bool = False) -> bool:
        ...

    def subscribe(self, topic: str) -> bool:
        ...

    def set_message_callback(self, callback: MessageCallback) -> None:
        ...

    def service_loop(self) -> None:
        ...

    def reason_code(self) -> int:
        ...

    def disconnect(self) -> None:
        ...


class ConnectionManager:
    """Тримає MQTT-сесію живою та перепідключається не частіше за cooldown.

    Time is supplied by the caller as monotonically increasing milliseconds;
    this class never sleeps.
    """

    def __init__(
        self,
        transport: PublishTransport,
        client_id: str,
        command_topic: str,
        status_topic: Optional[str] = None,
        version: str = __version__,
        username: Optional[str] = None,
        password: Optional[str] = None,
        cooldown_ms: int = DEFAULT_COOLDOWN_MS,
    ):
        self.transport = transport
        self.client_id = client_id
        self.command_topic = command_topic
        self.status_topic = status_topic
        self.version = version
        self.username = username or None
        self.password = password or None
        self.cooldown_ms = cooldown_ms
        self.state = ConnectionState.DISCONNECTED
        self.last_failure_code: Optional[int] = None
        self.connect_attempts = 0
        self._last_attempt_ms: Optional[int] = None
        self._ever_connected = False
        self._callback: Optional[MessageCallback] = None
        self.transport.set_message_callback(self._dispatch)

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def on_message(self, callback: MessageCallback) -> None:
        self._callback = callback

    def ensure_connected(self, now_ms: int) -> bool:
        if self.is_connected:
            return True

        if self._last_attempt_ms is not None and now_ms - self._last_attempt_ms < self.cooldown_ms:
            logger.debug(
                "Перепідключення відкладено: %s мс до кінця cooldown",
                self.cooldown_ms - (now_ms - self._last_attempt_ms),
            )
            return False

        self._last_attempt_ms = now_ms
        return self._attempt()

    def _attempt(self) -> bool:
        self.state = ConnectionState.CONNECTING
        self.connect_attempts += 1
        logger.info("Підключення до MQTT брокера як %s", self.client_id)

        if not self.transport.connect(self.client_id, self.username, self.password):
            self.state = ConnectionState.DISCONNECTED
            self.last_failure_code = self.transport.reason_code()
            metrics.MQTT_CONNECT_ATTEMPTS_TOTAL.labels(result="failed").inc()
            logger.warning(
                "MQTT підключення не вдалося, rc=%s. Наступна спроба через %s мс",
                self.last_failure_code,
                self.cooldown_ms,
            )
            return False

        self.state = ConnectionState.CONNECTED
        self.last_failure_code = None
        metrics.MQTT_CONNECT_ATTEMPTS_TOTAL.labels(result="ok").inc()
        metrics.MQTT_CONNECTED.set(1)

        if self.transport.subscribe(self.command_topic):
            logger.info("Підписано на %s", self.command_topic)
        else:
            logger.warning("Не вдалося підписатися на %s", self.command_topic)

        if self.status_topic:
            status = STATUS_RECONNECTED if self._ever_connected else STATUS_ONLINE
            self.publish(self.status_topic, status_payload(status, self.version), retained=True)
        self._ever_connected = True
        return True

    def tick(self) -> None:
        """Service the transport; call on every driver-loop iteration."""
        if not self.is_connected:
            return
        if self.transport.connected():
            self.transport.service_loop()
        if not self.transport.connected():
            self._mark_disconnected()

    def close(self) -> None:
        if self.is_connected:
            self.transport.disconnect()
        self.state = ConnectionState.DISCONNECTED
        metrics.MQTT_CONNECTED.set(0)

    def _mark_disconnected(self) -> None:
        self.state = ConnectionState.DISCONNECTED
        metrics.MQTT_CONNECTED.set(0)
        logger.warning("MQTT з'єднання втрачено, перепідключення після cooldown")

    def publish(self, topic: str, payload: str, retained: bool = False) -> bool:
        if not self.is_connected:
            metrics.MQTT_PUBLISH_TOTAL.labels(result="disconnected").inc()
            logger.debug("Пропущено MQTT publish %s: клієнт не підключений", topic)
            return False

        if not self.transport.publish(topic, payload, retained):
            metrics.MQTT_PUBLISH_TOTAL.labels(result="failed").inc()
            logger.warning("Брокер не прийняв повідомлення в %s", topic)
            return False

        metrics.MQTT_PUBLISH_TOTAL.labels(result="ok").inc()
        logger.debug("MQTT publish %s: %s", topic, payload)
        return True

    def _dispatch(self, topic: str, payload: bytes) -> None:
        if self._callback is None:
            logger.debug("Немає обробника для повідомлення в %s", topic)
            return
        try:
            self._callback(topic, payload)
        except Exception:
            logger.exception("Помилка обробки MQTT повідомлення в %s", topic)
