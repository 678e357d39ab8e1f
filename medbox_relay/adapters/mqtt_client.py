import asyncio
import logging
from contextlib import suppress
from typing import AsyncIterator, Optional, Union

import aiomqtt

from medbox_relay.adapters.bus import BusMessage, pump
from medbox_relay.application.services import SyncRelay
from medbox_relay.domain.topics import Topics
from medbox_relay.settings import Settings

"""
Cliente MQTT del relay (broker externo, ej. Mosquitto, o el embebido de
adapters.broker).

Un solo cliente se usa para las dos cosas: suscribirse a <ns>/# para recibir
lo que publica el ESP32, y publicar hacia el dispositivo (data/config/commands).
Si se cae la conexion se reintenta cada MQTT_RECONNECT_SECONDS; lo que se
publique mientras tanto se descarta (QoS 0, at-most-once).
"""

log = logging.getLogger(__name__)


def _as_bytes(payload: Union[bytes, bytearray, str, int, float, None]) -> bytes:
    if payload is None:
        return b""
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    return str(payload).encode("utf-8")


SYS_CLIENTS_TOPIC = "$SYS/broker/clients/connected"


def _parse_count(payload: bytes) -> Optional[int]:
    try:
        return int(payload.decode("utf-8").strip())
    except (UnicodeDecodeError, ValueError):
        return None


class MqttBus:
    def __init__(self, settings: Settings, topics: Topics, host: Optional[str] = None):
        self.settings = settings
        self.topics = topics
        self.host = host or settings.mqtt_host
        # clientes conectados al broker segun $SYS; None hasta el primer reporte
        self.broker_clients: Optional[int] = None
        self._client: Optional[aiomqtt.Client] = None
        self._consume_task: Optional[asyncio.Task] = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    def _new_client(self) -> aiomqtt.Client:
        return aiomqtt.Client(
            hostname=self.host,
            port=self.settings.mqtt_port,
            username=self.settings.mqtt_username,
            password=self.settings.mqtt_password,
            identifier=self.settings.mqtt_client_id,
        )

    async def publish(self, topic: str, payload: Union[str, bytes]) -> None:
        client = self._client
        if client is None:
            log.warning("[MQTT] not connected, dropping publish → %s", topic)
            return
        try:
            await client.publish(topic, payload=payload, qos=0)
        except aiomqtt.MqttError as e:
            log.warning("[MQTT] publish → %s failed: %s", topic, e)

    async def _bus_messages(self, client: aiomqtt.Client) -> AsyncIterator[BusMessage]:
        async for message in client.messages:
            topic = message.topic.value
            payload = _as_bytes(message.payload)
            if topic == SYS_CLIENTS_TOPIC:
                self.broker_clients = _parse_count(payload)
                continue
            yield BusMessage(topic=topic, payload=payload)

    async def _consume(self, relay: SyncRelay) -> None:
        while True:
            try:
                async with self._new_client() as client:
                    self._client = client
                    await client.subscribe(self.topics.subscription)
                    await client.subscribe(SYS_CLIENTS_TOPIC)
                    log.info(
                        "[MQTT] connected to %s:%s, subscribed to %s",
                        self.host, self.settings.mqtt_port, self.topics.subscription,
                    )
                    await pump(self._bus_messages(client), relay)
            except aiomqtt.MqttError as e:
                log.warning(
                    "[MQTT] connection lost (%s); reconnecting in %ss",
                    e, self.settings.mqtt_reconnect_seconds,
                )
            finally:
                self._client = None
                self.broker_clients = None
            await asyncio.sleep(self.settings.mqtt_reconnect_seconds)

    def start(self, relay: SyncRelay) -> None:
        """Conecta al broker, se suscribe y procesa eventos del dispositivo."""
        if self._consume_task is None:
            self._consume_task = asyncio.create_task(self._consume(relay))

    async def stop(self) -> None:
        task, self._consume_task = self._consume_task, None
        if task:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
