from __future__ import annotations

import json

import redis.asyncio as redis
from .settings import REDIS_URL, QUEUE_NAME, EVENT_TTL_SECONDS

r = redis.from_url(REDIS_URL, decode_responses=True)


def event_key(event_id: str) -> str:
    return f"relayci:event:{event_id}"


async def enqueue_event(event_id: str, payload: dict) -> None:
    # payload lives under its own key; the queue only carries ids
    await r.set(event_key(event_id), json.dumps(payload), ex=EVENT_TTL_SECONDS)
    await r.rpush(QUEUE_NAME, event_id)  # FIFO: push right


async def dequeue_event(timeout_s: int = 5) -> tuple[str, dict] | None:
    while True:
        item = await r.blpop(QUEUE_NAME, timeout=timeout_s)  # FIFO: pop left
        if not item:
            return None
        _q, event_id = item
        raw = await r.getdel(event_key(event_id))
        if raw is None:
            continue  # expired before anyone claimed it
        return event_id, json.loads(raw)
