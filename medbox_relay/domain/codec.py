import json
from typing import Any, Dict, Union

from pydantic import ValidationError

from medbox_relay.domain.models import (
    BulkLoadRequest,
    DeviceLogEvent,
    DomainEvent,
    QuantityUpdateEvent,
    SensorReadingEvent,
    StatusEvent,
)
from medbox_relay.domain.topics import TopicKind
from medbox_relay.errors import DecodeError

_EVENT_TYPES = {
    TopicKind.LOGS: DeviceLogEvent,
    TopicKind.SENSORS: SensorReadingEvent,
    TopicKind.MEDICINE_UPDATE: QuantityUpdateEvent,
    TopicKind.REQUEST: BulkLoadRequest,
}


def decode_document(topic: str, raw: Union[bytes, bytearray, str]) -> Dict[str, Any]:
    """Decodifica el payload crudo; solo se acepta un objeto JSON."""
    try:
        text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
        doc = json.loads(text)
    except (UnicodeDecodeError, ValueError) as e:
        raise DecodeError(topic, f"invalid JSON: {e}") from e
    if not isinstance(doc, dict):
        raise DecodeError(topic, f"expected an object, got {type(doc).__name__}")
    return doc


def decode_event(kind: TopicKind, topic: str, raw: Union[bytes, bytearray, str]) -> DomainEvent:
    if not kind.handled:
        raise DecodeError(topic, f"no event type for {kind.name}")
    doc = decode_document(topic, raw)
    if kind is TopicKind.STATUS:
        return StatusEvent(data=doc)
    try:
        return _EVENT_TYPES[kind].model_validate(doc)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "<root>" for err in e.errors())
        raise DecodeError(topic, f"schema violation ({fields})") from e
