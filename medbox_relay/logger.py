import logging

LOG_FORMAT = (
    "%(asctime)s | %(name)s | %(levelname)s | "
    "[%(filename)s:%(lineno)d %(funcName)s] | %(message)s"
)


def setup_logging(level: str = "INFO") -> None:
    """Configura el logger raiz del paquete (consola). Idempotente."""
    root = logging.getLogger("medbox_relay")
    root.setLevel(level)
    root.propagate = False

    # no duplicar handlers si uvicorn --reload reimporta el modulo
    if root.handlers:
        return

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
