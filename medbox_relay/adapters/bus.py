from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Union

from medbox_relay.application.services import SyncRelay

"""
Broker pub/sub en proceso.

Mismo modelo que MQTT: topicos de texto separados por '/', filtros con '+'
(un nivel) y '#' (resto). Cada suscripcion tiene su propia cola, asi que el
orden de entrega por topico es el orden de publicacion de cada publicador.
Se usa con BUS_MODE=memory (todo en un proceso) y en los tests.
"""

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BusMessage:
    topic: str
    payload: bytes
    client_id: Optional[str] = None


def topic_matches(pattern: str, topic: str) -> bool:
    p_parts = pattern.split("/")
    t_parts = topic.split("/")
    # los filtros que empiezan con comodin no ven topicos $SYS/...
    if topic.startswith("$") and p_parts[0] in ("+", "#"):
        return False
    for i, p in enumerate(p_parts):
        if p == "#":
            return True
        if i >= len(t_parts):
            return False
        if p != "+" and p != t_parts[i]:
            return False
    return len(p_parts) == len(t_parts)


class Subscription:
    def __init__(self, bus: "InMemoryBus", pattern: str):
        self.bus = bus
        self.pattern = pattern
        self.queue: asyncio.Queue[BusMessage] = asyncio.Queue()

    def __aiter__(self) -> AsyncIterator[BusMessage]:
        return self._iter()

    async def _iter(self) -> AsyncIterator[BusMessage]:
        while True:
            yield await self.queue.get()

    def close(self) -> None:
        self.bus.unsubscribe(self)


class InMemoryBus:
    connected = True
    # sin red: no hay clientes MQTT que contar
    broker_clients: Optional[int] = None

    def __init__(self) -> None:
        self._subs: List[Subscription] = []
        self._pump_task: Optional[asyncio.Task] = None
        self._pump_sub: Optional[Subscription] = None

    def subscribe(self, pattern: str) -> Subscription:
        sub = Subscription(self, pattern)
        self._subs.append(sub)
        log.info("[BUS] subscribed to %s", pattern)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if sub in self._subs:
            self._subs.remove(sub)

    async def publish(self, topic: str, payload: Union[str, bytes], client_id: Optional[str] = None) -> None:
        data = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)
        msg = BusMessage(topic=topic, payload=data, client_id=client_id)
        for sub in list(self._subs):
            if topic_matches(sub.pattern, topic):
                sub.queue.put_nowait(msg)

    def start(self, relay: SyncRelay) -> None:
        """Suscribe el relay a <ns>/# dentro del mismo proceso."""
        if self._pump_task is None:
            self._pump_sub = self.subscribe(relay.topics.subscription)
            self._pump_task = asyncio.create_task(pump(self._pump_sub, relay))

    async def stop(self) -> None:
        task, self._pump_task = self._pump_task, None
        if task:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        if self._pump_sub:
            self._pump_sub.close()
            self._pump_sub = None


async def pump(messages: AsyncIterator[BusMessage], relay: SyncRelay) -> None:
    """Lee mensajes del bus y despacha cada uno en su propia tarea del relay."""
    async for msg in messages:
        relay.dispatch(msg.topic, msg.payload, msg.client_id)
