"""Agent configuration: defaults, optional YAML file, then environment."""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from . import __version__

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "MICROCLAW_CONFIG"

# Налаштування -> змінна оточення
ENV_VARS: Dict[str, str] = {
    "mqtt_host": "MQTT_HOST",
    "mqtt_port": "MQTT_PORT",
    "mqtt_username": "MQTT_USERNAME",
    "mqtt_password": "MQTT_PASSWORD",
    "client_id": "MQTT_CLIENT_ID",
    "mqtt_keepalive": "MQTT_KEEPALIVE",
    "node_id": "NODE_ID",
    "namespace": "TOPIC_NAMESPACE",
    "sensor_backend": "SENSOR_BACKEND",
    "sensor_pin": "SENSOR_PIN",
    "max_retries": "SENSOR_RETRIES",
    "retry_delay_ms": "SENSOR_RETRY_DELAY_MS",
    "publish_interval_ms": "PUBLISH_INTERVAL_MS",
    "reconnect_cooldown_ms": "RECONNECT_COOLDOWN_MS",
    "metrics_port": "METRICS_PORT",
    "log_level": "LOG_LEVEL",
}


class AgentSettings(BaseModel):
    agent_name: str = Field("microclaw", description="Agent name reported in status")
    version: str = Field(__version__, description="Semantic version reported in status")

    mqtt_host: str = Field("mqtt.example.com", description="MQTT broker hostname")
    mqtt_port: int = Field(1883, ge=1, le=65535)
    mqtt_username: Optional[str] = Field(None, description="Empty means anonymous")
    mqtt_password: Optional[str] = None
    client_id: str = Field("microclaw-esp32", min_length=1)
    mqtt_keepalive: int = Field(60, ge=5)

    namespace: str = Field("microclaw", min_length=1)
    node_id: str = Field("microclaw-esp32", min_length=1)

    sensor_backend: Literal["dht22", "simulated"] = "simulated"
    sensor_pin: int = Field(4, ge=0)
    max_retries: int = Field(3, ge=1, le=20)
    retry_delay_ms: int = Field(2000, ge=0)

    publish_interval_ms: int = Field(30000, ge=1000)
    reconnect_cooldown_ms: int = Field(5000, ge=0)

    metrics_port: int = Field(0, ge=0, le=65535, description="0 disables the exporter")
    log_level: str = "INFO"

    @field_validator("mqtt_username", "mqtt_password", mode="before")
    @classmethod
    def empty_credentials_are_anonymous(cls, value: Any) -> Any:
        if isinstance(value, str) and not value:
            return None
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return level


def _expand_env(text: str) -> str:
    pattern = re.compile(r"\$\{([^:}]+)(:-([^}]*))?}")

    def repl(match: re.Match) -> str:
        var_name = match.group(1)
        default = match.group(3) or ""
        return os.environ.get(var_name, default)

    return pattern.sub(repl, text)


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML config with environment variable expansion."""
    raw_text = _expand_env(path.read_text(encoding="utf-8"))
    data = yaml.safe_load(raw_text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at top level")
    return data


def load_settings(
    path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AgentSettings:
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}

    if path is None and environ.get(CONFIG_PATH_ENV):
        path = Path(environ[CONFIG_PATH_ENV])
    if path is not None:
        values.update(load_yaml(path))
        logger.info("Конфігурацію завантажено з %s", path)

    for field_name, env_name in ENV_VARS.items():
        if env_name in environ:
            values[field_name] = environ[env_name]

    return AgentSettings(**values)
