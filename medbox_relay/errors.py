class RelayError(Exception):
    """Base de los errores propios del relay."""


class DecodeError(RelayError):
    """Payload que no es un documento JSON valido para su topico."""

    def __init__(self, topic: str, reason: str):
        super().__init__(f"{topic}: {reason}")
        self.topic = topic
        self.reason = reason


class StoreError(RelayError):
    """Fallo de lectura/escritura en el Record Store."""


class RecordNotFound(StoreError):
    def __init__(self, collection: str, record_id: str):
        super().__init__(f"{collection} {record_id!r} not found")
        self.collection = collection
        self.record_id = record_id
