import asyncio
import json
import logging
from contextlib import suppress

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import redis.asyncio as redis

from ..config import REDIS_URL


logger = logging.getLogger(__name__)

router = APIRouter()


redis_client = redis.from_url(REDIS_URL, decode_responses=True)


def channel(eid: str) -> str:
    return f"event:{eid}"


async def broadcast(eid: str, message: dict) -> None:
    """Publish a scoreboard update for an event to all subscribers."""
    try:
        await redis_client.publish(channel(eid), json.dumps(message))
    except redis.ConnectionError:
        # The update is already committed; subscribers resync on the next one.
        logger.warning("Could not publish update for event %s", eid, exc_info=True)


@router.websocket("/events/{eid}/stream")
async def event_stream(ws: WebSocket, eid: str) -> None:
    """Stream live scoreboard updates via a Redis pub/sub channel."""
    await ws.accept()
    try:
        async with redis_client.pubsub() as pubsub:
            await pubsub.subscribe(channel(eid))

            async def sender() -> None:
                try:
                    async for msg in pubsub.listen():
                        if msg.get("type") == "message":
                            await ws.send_json(json.loads(msg["data"]))
                except redis.ConnectionError:
                    await ws.close()

            send_task = asyncio.create_task(sender())
            try:
                while True:
                    await ws.receive_text()
            except WebSocketDisconnect:
                pass
            finally:
                send_task.cancel()
                with suppress(asyncio.CancelledError):
                    await send_task
                await pubsub.unsubscribe(channel(eid))
    except redis.ConnectionError:
        await ws.close()
