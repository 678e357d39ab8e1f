import json
import logging
from typing import List

from pydantic import BaseModel

from medbox_relay.application.ports import BusOut
from medbox_relay.domain.models import (
    ConfigPayload,
    ControlCommand,
    DeviceConfig,
    Medicine,
    MedicinesPayload,
    Recipient,
    RecipientsPayload,
)
from medbox_relay.domain.topics import Topics

log = logging.getLogger(__name__)


class CommandPublisher:
    """
    Todo lo que el relay publica hacia el dispositivo.

    Fire-and-forget: el firmware no tiene canal de ACK, asi que "enviado" nunca
    significa "ejecutado".
    """

    def __init__(self, bus: BusOut, topics: Topics):
        self.bus = bus
        self.topics = topics

    async def _publish(self, topic: str, message: BaseModel) -> None:
        payload = message.model_dump()
        log.info("[MQTT] publish → %s type=%s", topic, payload.get("type"))
        await self.bus.publish(topic, json.dumps(payload))

    async def send_control(self, action: str) -> ControlCommand:
        action = (action or "").strip()
        if not action:
            raise ValueError("action required")
        cmd = ControlCommand(action=action)
        await self._publish(self.topics.commands, cmd)
        return cmd

    async def publish_medicines(self, medicines: List[Medicine]) -> MedicinesPayload:
        msg = MedicinesPayload.build(medicines)
        await self._publish(self.topics.data, msg)
        return msg

    async def publish_config(self, config: DeviceConfig) -> ConfigPayload:
        msg = ConfigPayload.build(config)
        await self._publish(self.topics.config, msg)
        return msg

    async def publish_recipients(self, recipients: List[Recipient]) -> RecipientsPayload:
        msg = RecipientsPayload.build(recipients)
        await self._publish(self.topics.data, msg)
        return msg
