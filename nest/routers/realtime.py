"""WebSocket stream of committed table changes."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status

from ..db.session import Base, SessionLocal
from ..deps.auth import profile_from_token
from ..services.realtime import TableChange, hub

router = APIRouter(tags=["realtime"])
logger = logging.getLogger(__name__)


def _authenticate(token: str | None) -> bool:
    if not token:
        return False
    db = SessionLocal()
    try:
        profile_from_token(db, token)
    except HTTPException:
        return False
    finally:
        db.close()
    return True


@router.websocket("/api/realtime/{table}")
async def realtime_stream(websocket: WebSocket, table: str):
    if table not in Base.metadata.tables:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Unknown table")
        return
    if not _authenticate(websocket.query_params.get("token")):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Unauthorized")
        return

    await websocket.accept()
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[TableChange] = asyncio.Queue()

    def _enqueue(change: TableChange) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, change)

    unsubscribe = hub.subscribe(table, _enqueue)
    receiver = asyncio.create_task(websocket.receive_text())
    try:
        while True:
            getter = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                await websocket.send_json(getter.result().as_dict())
            else:
                getter.cancel()
            if receiver in done:
                receiver.result()
                receiver = asyncio.create_task(websocket.receive_text())
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        receiver.cancel()
        logger.info("realtime.disconnected", extra={"extra_data": {"table": table}})
