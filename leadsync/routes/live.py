# leadsync/routes/live.py
from __future__ import annotations

import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from leadsync.core.exceptions import ServiceUnavailableError
from leadsync.core.logging import get_structlog_logger
from leadsync.services.live_updates import subscribe
from leadsync.services.redis import get_redis_client

logger = get_structlog_logger(__name__)

router = APIRouter(tags=["live"])


@router.websocket("/live/{tenant_id}")
async def live_updates(websocket: WebSocket, tenant_id: str) -> None:
    """Relay the tenant's live-update events until either side goes away."""
    await websocket.accept()
    try:
        client = await get_redis_client()
    except ServiceUnavailableError:
        await websocket.close(code=1011)
        return

    logger.info("live.connected", tenant_id=tenant_id)

    async def forward() -> None:
        async for message in subscribe(client, tenant_id):
            await websocket.send_text(message)

    async def drain() -> None:
        # Only used to notice the client closing.
        while True:
            await websocket.receive_text()

    tasks = [asyncio.create_task(forward()), asyncio.create_task(drain())]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.warning("live.relay_failed", tenant_id=tenant_id, error=str(error))
    finally:
        logger.info("live.disconnected", tenant_id=tenant_id)
