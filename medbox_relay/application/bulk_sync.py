from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List

from medbox_relay.application.commands import CommandPublisher
from medbox_relay.application.ports import RecordStore
from medbox_relay.domain.models import DeviceConfig
from medbox_relay.errors import StoreError

"""
Protocolo "load_all": el ESP32 pide todo el estado y el relay lo devuelve en
tres mensajes separados en el tiempo (medicinas, config, destinatarios).

El firmware procesa un mensaje a la vez con poco buffer, por eso los pasos van
espaciados. Los pasos se ejecutan en orden dentro de UNA sola tarea: el paso N+1
no arranca hasta que termino el N, asi que aunque los delays se estiren el orden
publicado no se invierte.
"""

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncStep:
    name: str
    offset_ms: int                       # desde el momento del pedido
    action: Callable[[], Awaitable[int]]  # devuelve cuantos registros publico


class BulkSync:
    def __init__(
        self,
        store: RecordStore,
        publisher: CommandPublisher,
        config_delay_ms: int = 500,
        recipients_delay_ms: int = 1000,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if config_delay_ms < 0 or recipients_delay_ms < config_delay_ms:
            raise ValueError(
                f"invalid bulk-sync offsets: config={config_delay_ms} recipients={recipients_delay_ms}"
            )
        self.store = store
        self.publisher = publisher
        self.config_delay_ms = config_delay_ms
        self.recipients_delay_ms = recipients_delay_ms
        self._sleep = sleep

    def plan(self) -> List[SyncStep]:
        return [
            SyncStep("medicines", 0, self._send_medicines),
            SyncStep("config", self.config_delay_ms, self._send_config),
            SyncStep("recipients", self.recipients_delay_ms, self._send_recipients),
        ]

    async def run(self, requested_by: str = "unknown") -> List[str]:
        """Ejecuta el plan completo; devuelve los nombres de los pasos publicados."""
        log.info("[SYNC] load_all requested by %s", requested_by)
        loop = asyncio.get_running_loop()
        started = loop.time()
        sent: List[str] = []
        counts: List[str] = []

        for step in self.plan():
            wait = step.offset_ms / 1000 - (loop.time() - started)
            if wait > 0:
                await self._sleep(wait)
            try:
                n = await step.action()
            except StoreError as e:
                # se saltea solo este paso, los demas siguen
                log.error("[SYNC] step %s skipped: %s", step.name, e)
                continue
            sent.append(step.name)
            counts.append(f"{n} {step.name}")

        log.info("[SYNC] sent %s to %s", ", ".join(counts) or "nothing", requested_by)
        return sent

    async def _send_medicines(self) -> int:
        medicines = await self.store.list_medicines()
        await self.publisher.publish_medicines(medicines)
        return len(medicines)

    async def _send_config(self) -> int:
        config = await self.store.get_config() or DeviceConfig()
        await self.publisher.publish_config(config)
        return 1

    async def _send_recipients(self) -> int:
        recipients = await self.store.list_recipients()
        await self.publisher.publish_recipients(recipients)
        return len(recipients)
