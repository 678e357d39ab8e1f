from enum import Enum

"""
Topicos MQTT del relay.

Todo topico entrante se clasifica en un TopicKind cerrado antes de tocar la
logica de dominio; un string desconocido termina en UNHANDLED, nunca en un
handler por accidente.
"""

RESERVED_PREFIX = "$"  # $SYS/... y demas topicos internos del broker


class TopicKind(str, Enum):
    # dispositivo -> relay
    LOGS = "logs"
    STATUS = "status"
    SENSORS = "sensors"
    MEDICINE_UPDATE = "medicine_update"
    REQUEST = "request"
    # relay -> dispositivo (eco de nuestras propias publicaciones)
    DATA = "data"
    CONFIG = "config"
    COMMANDS = "commands"
    # resto
    RESERVED = "$reserved"
    UNHANDLED = "$unhandled"

    @property
    def device_originated(self) -> bool:
        return self not in _NOT_FROM_DEVICE

    @property
    def handled(self) -> bool:
        return self in INBOUND


INBOUND = frozenset({
    TopicKind.LOGS,
    TopicKind.STATUS,
    TopicKind.SENSORS,
    TopicKind.MEDICINE_UPDATE,
    TopicKind.REQUEST,
})
OUTBOUND = frozenset({TopicKind.DATA, TopicKind.CONFIG, TopicKind.COMMANDS})
_NOT_FROM_DEVICE = OUTBOUND | {TopicKind.RESERVED}


class Topics:
    """Nombres concretos de topico bajo un namespace (por defecto 'smartmedbox')."""

    def __init__(self, namespace: str = "smartmedbox"):
        self.namespace = namespace.strip("/")

    def topic(self, kind: TopicKind) -> str:
        if kind in (TopicKind.RESERVED, TopicKind.UNHANDLED):
            raise ValueError(f"{kind.name} has no concrete topic")
        return f"{self.namespace}/{kind.value}"

    @property
    def subscription(self) -> str:
        return f"{self.namespace}/#"

    @property
    def data(self) -> str:
        return self.topic(TopicKind.DATA)

    @property
    def config(self) -> str:
        return self.topic(TopicKind.CONFIG)

    @property
    def commands(self) -> str:
        return self.topic(TopicKind.COMMANDS)

    def classify(self, topic: str) -> TopicKind:
        if topic.startswith(RESERVED_PREFIX):
            return TopicKind.RESERVED
        prefix = self.namespace + "/"
        if not topic.startswith(prefix):
            return TopicKind.UNHANDLED
        suffix = topic[len(prefix):]
        for kind in INBOUND | OUTBOUND:
            if kind.value == suffix:
                return kind
        return TopicKind.UNHANDLED
