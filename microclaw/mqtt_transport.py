import logging
import time
from typing import Any, Optional

import paho.mqtt.client as mqtt

from .connection import MessageCallback

logger = logging.getLogger(__name__)

# Local reason codes for failures that never reach a CONNACK
CONNECT_FAILED = -2
CONNECT_TIMEOUT = -4
NOT_CONNECTED = -1


class PahoTransport:
    """Синхронний адаптер paho-mqtt для ConnectionManager.

    ``connect`` blocks until the broker answers (or ``connect_timeout``
    elapses); everything else is serviced from ``service_loop`` on the
    caller's thread, so no background network thread is started.
    """

    def __init__(
        self,
        host: str,
        port: int = 1883,
        keepalive: int = 60,
        connect_timeout: float = 5.0,
        will_topic: Optional[str] = None,
        will_payload: Optional[str] = None,
    ):
        self.host = host
        self.port = port
        self.keepalive = keepalive
        self.connect_timeout = connect_timeout
        self.will_topic = will_topic
        self.will_payload = will_payload
        self.client: mqtt.Client | None = None
        self._client_id: Optional[str] = None
        self._callback: Optional[MessageCallback] = None
        self._reason_code = NOT_CONNECTED
        self._connack_pending = False

    def _build_client(self, client_id: str) -> mqtt.Client:
        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        if self.will_topic and self.will_payload is not None:
            client.will_set(self.will_topic, self.will_payload, qos=0, retain=True)
        return client

    def connect(
        self, client_id: str, username: Optional[str] = None, password: Optional[str] = None
    ) -> bool:
        if self.client is None or client_id != self._client_id:
            self.client = self._build_client(client_id)
            self._client_id = client_id
        if username:
            self.client.username_pw_set(username, password)

        self._connack_pending = True
        try:
            self.client.connect(self.host, self.port, self.keepalive)
        except OSError as exc:
            self._connack_pending = False
            self._reason_code = CONNECT_FAILED
            logger.warning("Не вдалося підключитися до MQTT %s:%s: %s", self.host, self.port, exc)
            return False

        deadline = time.monotonic() + self.connect_timeout
        while self._connack_pending and time.monotonic() < deadline:
            self.client.loop(timeout=0.1)

        if self._connack_pending:
            self._connack_pending = False
            self._reason_code = CONNECT_TIMEOUT
            logger.warning("MQTT %s:%s не відповів за %s с", self.host, self.port, self.connect_timeout)
            self.client.disconnect()
            return False

        return self._reason_code == 0

    def _on_connect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any = None):
        self._connack_pending = False
        self._reason_code = 0 if not reason_code.is_failure else int(reason_code.value)
        if reason_code.is_failure:
            logger.warning("MQTT брокер відхилив підключення: %s", reason_code)

    def _on_disconnect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any = None):
        logger.info("MQTT відключено: %s", reason_code)

    def _on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage):
        if self._callback is not None:
            self._callback(msg.topic, msg.payload)

    def connected(self) -> bool:
        return self.client is not None and self.client.is_connected()

    def publish(self, topic: str, payload: str, retained: bool = False) -> bool:
        if self.client is None:
            return False
        info = self.client.publish(topic, payload, qos=0, retain=retained)
        return info.rc == mqtt.MQTT_ERR_SUCCESS

    def subscribe(self, topic: str) -> bool:
        if self.client is None:
            return False
        result, _mid = self.client.subscribe(topic)
        return result == mqtt.MQTT_ERR_SUCCESS

    def set_message_callback(self, callback: MessageCallback) -> None:
        self._callback = callback

    def service_loop(self) -> None:
        if self.client is None:
            return
        rc = self.client.loop(timeout=0)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            logger.debug("MQTT loop rc=%s", rc)

    def reason_code(self) -> int:
        return self._reason_code

    def disconnect(self) -> None:
        if self.client is not None and self.client.is_connected():
            self.client.disconnect()
