from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
import logging
import asyncio
from typing import Set
from darknova_core.auth import decode_token, JWTError
from darknova_core.events import ChangeEvent

router = APIRouter(prefix="/changes", tags=["changes"])

# Dedicated logger for websocket lifecycle
ws_logger = logging.getLogger("darknova_api.ws")

ws_clients: Set[WebSocket] = set()
main_loop = None


def set_main_loop(loop):
    global main_loop
    main_loop = loop


async def notify_ws_clients(data):
    for ws in list(ws_clients):
        try:
            await ws.send_json(data)
        except (RuntimeError, WebSocketDisconnect):
            ws_clients.discard(ws)


def log_delivery_failure(future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        ws_logger.error("WS broadcast failed: %r", exc, exc_info=exc)


def notify_ws_clients_threadsafe(data):
    if main_loop is None or main_loop.is_closed():
        return
    future = asyncio.run_coroutine_threadsafe(notify_ws_clients(data), main_loop)
    future.add_done_callback(log_delivery_failure)


def change_listener(event: ChangeEvent) -> None:
    """Forward a committed change to every connected client; clients then re-fetch."""
    notify_ws_clients_threadsafe(event.as_dict())


@router.websocket("/ws")
async def ws_changes(websocket: WebSocket):
    client = getattr(websocket, "client", None)
    client_str = f"{client.host}:{client.port}" if hasattr(client, "host") else "unknown"
    token = websocket.query_params.get("token")
    if not token:
        ws_logger.warning("WS reject: missing token from %s", client_str)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    try:
        decode_token(token)
    except JWTError:
        ws_logger.warning("WS reject: invalid token from %s", client_str)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()
    ws_logger.info("WS accepted from %s", client_str)
    ws_clients.add(websocket)
    try:
        await websocket.send_json({"type": "hello"})
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        ws_logger.info("WS disconnected %s", client_str)
    finally:
        ws_clients.discard(websocket)
