"""MicroClaw sensor agent: DHT22 acquisition and MQTT reporting."""

__version__ = "0.1.0"
