import logging
from typing import Any, Dict, Optional

from amqtt.broker import Broker

from medbox_relay.settings import Settings

"""
Broker MQTT embebido (BUS_MODE=embedded).

El ESP32 se conecta directo al proceso del relay en MQTT_BIND_HOST:MQTT_PORT,
sin Mosquitto aparte. El relay mismo es un cliente mas de este broker
(MqttBus contra 127.0.0.1). Cada BROKER_SYS_INTERVAL_SECONDS el broker publica
$SYS/broker/clients/connected, que es de donde sale brokerClients.
"""

log = logging.getLogger(__name__)

LOCAL_HOST = "127.0.0.1"


def broker_config(settings: Settings) -> Dict[str, Any]:
    return {
        "listeners": {
            "default": {
                "type": "tcp",
                "bind": f"{settings.mqtt_bind_host}:{settings.mqtt_port}",
            },
        },
        "sys_interval": settings.broker_sys_interval_seconds,
        "auth": {
            "allow-anonymous": True,
            "plugins": ["auth_anonymous"],
        },
        "topic-check": {"enabled": False},
    }


class EmbeddedBroker:
    def __init__(self, settings: Settings):
        self.settings = settings
        self._broker: Optional[Broker] = None

    @property
    def running(self) -> bool:
        return self._broker is not None

    async def start(self) -> None:
        if self._broker is not None:
            return
        broker = Broker(broker_config(self.settings))
        await broker.start()
        self._broker = broker
        log.info("[BROKER] listening on %s:%s", self.settings.mqtt_bind_host, self.settings.mqtt_port)

    async def stop(self) -> None:
        broker, self._broker = self._broker, None
        if broker is not None:
            await broker.shutdown()
            log.info("[BROKER] stopped")
