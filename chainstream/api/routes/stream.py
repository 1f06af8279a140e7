"""Stream route - Live block summaries over WebSocket."""

from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from chainstream.core.logging import get_logger
from chainstream.services.broadcast import BLOCKS_TOPIC

router = APIRouter(tags=["stream"])
log = get_logger("stream_routes")


@router.websocket("/ws/blocks")
async def block_feed(websocket: WebSocket, subscriber: Optional[str] = None):
    """Relay ``{block_number, summary}`` for each enriched block. Missed messages are not replayed."""
    runtime = getattr(websocket.app.state, "runtime", None)
    if runtime is None:
        await websocket.close(code=1013)
        return

    await websocket.accept()
    gateway = runtime.broadcast
    subscription = gateway.subscribe(BLOCKS_TOPIC, subscriber_id=subscriber)
    try:
        while True:
            message = await subscription.receive()
            await websocket.send_json(message)
            gateway.acknowledge(subscription)
    except WebSocketDisconnect:
        log.debug(f"Subscriber {subscription.id} disconnected")
    finally:
        gateway.unsubscribe(subscription)
