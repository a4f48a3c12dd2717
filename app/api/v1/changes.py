import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from app.core.logger import logger
from app.schemas.change import ChangeTable
from app.services.change_feed import ChangeFeed, Subscription, get_change_feed

router = APIRouter()

async def _forward(websocket: WebSocket, subscription: Subscription):
    async for event in subscription:
        await websocket.send_text(event.model_dump_json())

async def _drain(websocket: WebSocket):
    # Client messages are ignored; this only surfaces the disconnect
    while True:
        await websocket.receive_text()

@router.websocket("/{table}")
async def subscribe_changes(
    websocket: WebSocket,
    table: ChangeTable,
    field: Optional[str] = None,
    value: Optional[str] = None,
    feed: ChangeFeed = Depends(get_change_feed)
):
    """
    Push a JSON ChangeEvent for every matching row change. Clients treat
    each message as a cue to re-fetch; on disconnect they reconnect and
    re-sync.
    """
    if field and value is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=f"Filter on {field} needs a value")
        return

    # Register before accepting so nothing committed after the handshake is missed
    subscription = feed.subscribe(table, field or None, value if field else None)
    sender = receiver = None
    try:
        await websocket.accept()
        logger.info(f"Change subscriber connected: table={table.value} filter={field}={value}")

        sender = asyncio.create_task(_forward(websocket, subscription))
        receiver = asyncio.create_task(_drain(websocket))
        done, pending = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                raise exc

        if sender in done and sender.exception() is None:
            # The feed dropped us (relay lost); the client reconnects and re-syncs
            await websocket.close(code=status.WS_1012_SERVICE_RESTART)
    finally:
        for task in (sender, receiver):
            if task is not None:
                task.cancel()
        subscription.close()
        logger.info(f"Change subscriber disconnected: table={table.value}")
