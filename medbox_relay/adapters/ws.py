# adapters/ws.py
import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

log = logging.getLogger(__name__)

router = APIRouter()


class LiveFanout:
    """
    Canal push hacia los dashboards: broadcast a todos los WebSocket conectados.

    Los broadcasts pasan por un lock para que cada consumidor vea los eventos en
    el mismo orden en que el relay los emitio. Un consumidor cuyo send falla se
    descarta; al reconectar recibe un snapshot nuevo.
    """

    def __init__(self):
        self.active: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @staticmethod
    def frame(event: str, payload: Any = None) -> str:
        return json.dumps(jsonable_encoder({"event": event, "data": payload}))

    async def connect(self, ws: WebSocket, snapshot: Optional[Callable[[], Dict[str, Any]]] = None) -> None:
        # el snapshot se lee con el lock tomado: si hay un broadcast en curso,
        # el consumidor nuevo ve el estado posterior a ese broadcast
        async with self._lock:
            self.active.add(ws)
            log.info("[WS] connected. active=%d", len(self.active))
            try:
                await ws.send_text(self.frame("initial_status", (snapshot() if snapshot else None) or {}))
            except Exception as e:
                log.warning("[WS] initial_status failed: %s", e)
                self.active.discard(ws)

    def disconnect(self, ws: WebSocket) -> None:
        self.active.discard(ws)
        log.info("[WS] disconnected. active=%d", len(self.active))

    async def broadcast(self, event: str, payload: Any = None) -> None:
        data = self.frame(event, payload)
        async with self._lock:
            for ws in list(self.active):
                try:
                    await ws.send_text(data)
                except Exception as e:
                    log.warning("[WS] send %s failed, dropping consumer: %s", event, e)
                    self.disconnect(ws)


@router.websocket("/ws")
async def ws_endpoint(ws: WebSocket):
    await ws.accept()  # aceptar SOLO acá
    fanout: LiveFanout = ws.app.state.fanout
    relay = ws.app.state.relay
    await fanout.connect(ws, snapshot=lambda: relay.current_status)
    try:
        while True:
            await ws.receive_text()  # opcional
    except WebSocketDisconnect:
        fanout.disconnect(ws)
