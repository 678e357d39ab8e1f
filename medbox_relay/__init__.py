"""MQTT ↔ WebSocket sync relay for the smart medicine box."""

__version__ = "0.1.0"
