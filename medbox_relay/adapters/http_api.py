from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from medbox_relay.application.scheduling import bus_status
from medbox_relay.application.services import SyncRelay
from medbox_relay.errors import StoreError

"""
Endpoints REST del relay (no es el CRUD: ese vive afuera).

    - POST /v1/control publica un comando de control hacia el ESP32
    - GET  /v1/status devuelve el ultimo status del dispositivo + liveness,
      cantidad de medicinas, config publica y estado del broker
    - POST /v1/sync/{medicines|config|recipients} es el hook que llama el CRUD
      externo despues de modificar datos, para empujarlos al dispositivo
"""

api_router = APIRouter()
health_router = APIRouter()


class ControlRequest(BaseModel):
    action: str = ""


def _relay(request: Request) -> SyncRelay:
    return request.app.state.relay


@health_router.get("/health")
async def health(request: Request):
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **bus_status(request.app.state.bus),
    }


@api_router.get("/status")
async def status(request: Request):
    try:
        snapshot = await _relay(request).full_status()
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {**snapshot, **bus_status(request.app.state.bus)}


@api_router.post("/control")
async def control(body: ControlRequest, request: Request):
    try:
        cmd = await _relay(request).publisher.send_control(body.action)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "sent", "action": cmd.action}


@api_router.post("/sync/medicines")
async def sync_medicines(request: Request):
    return {"success": await _relay(request).sync_medicines()}


@api_router.post("/sync/config")
async def sync_config(request: Request):
    return {"success": await _relay(request).sync_config()}


@api_router.post("/sync/recipients")
async def sync_recipients(request: Request):
    return {"success": await _relay(request).sync_recipients()}
