"""
Calendar sync consumer.

Pops booking events from events:calendar_sync and runs the matching sync
handler in a worker thread (handlers use the synchronous DB session and
the blocking Google client).

Started as an asyncio task in the backend lifespan.
On handler failure, the event is re-queued up to MAX_RETRIES, then moved
to the dead-letter list.
"""

import asyncio
import json
import logging

import redis.asyncio as aioredis

from ..database import SessionLocal
from .calendar_sync import SYNC_HANDLERS, CalendarClient
from .events import CALENDAR_SYNC_QUEUE

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
DEAD_LETTER_QUEUE = f"{CALENDAR_SYNC_QUEUE}:dead"


def process_sync_event(
    data: dict,
    session_factory=SessionLocal,
    client: CalendarClient | None = None,
) -> bool:
    """
    Dispatch one event to its sync handler (synchronous).

    Returns:
        False when the event has no usable type/booking_id or no handler.
    """
    event_type = data.get("type")
    booking_id = data.get("booking_id")

    handler = SYNC_HANDLERS.get(event_type)
    if handler is None:
        logger.warning(f"No sync handler for event type: {event_type}")
        return False
    if not booking_id:
        logger.error(f"{event_type} event without booking_id")
        return False

    db = session_factory()
    try:
        handler(db, booking_id, client=client)
    finally:
        db.close()
    return True


async def calendar_sync_loop(redis_url: str) -> None:
    """
    Consume events from events:calendar_sync.

    Uses BRPOP with 5s timeout to avoid busy-waiting.
    """
    r = aioredis.from_url(redis_url, decode_responses=True)
    logger.info("calendar_sync_loop started")

    try:
        while True:
            try:
                result = await r.brpop(CALENDAR_SYNC_QUEUE, timeout=5)
                if result is None:
                    continue

                _, raw = result
                await _process_event_safe(r, raw)

            except asyncio.CancelledError:
                logger.info("calendar_sync_loop cancelled")
                raise
            except Exception:
                logger.exception("calendar_sync_loop error, retrying in 2s")
                await asyncio.sleep(2)
    finally:
        await r.aclose()


async def _process_event_safe(r: aioredis.Redis, raw: str) -> None:
    """
    Parse and process a single event with retry logic.

    On failure:
    - If attempts < MAX_RETRIES → push back to the queue
    - Otherwise → push to dead-letter queue
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.error(f"Invalid JSON in event queue: {raw[:200]}")
        await r.rpush(DEAD_LETTER_QUEUE, raw)
        return

    attempt = data.get("_attempt", 1)

    try:
        await asyncio.to_thread(process_sync_event, data)
    except Exception:
        logger.exception(
            f"Failed to process event type={data.get('type')} "
            f"(attempt {attempt}/{MAX_RETRIES})"
        )

        if attempt < MAX_RETRIES:
            data["_attempt"] = attempt + 1
            await r.lpush(CALENDAR_SYNC_QUEUE, json.dumps(data))
            logger.info(f"Event re-queued to {CALENDAR_SYNC_QUEUE} (attempt {attempt + 1})")
        else:
            await r.rpush(DEAD_LETTER_QUEUE, json.dumps(data))
            logger.warning(
                f"Event moved to dead-letter queue {DEAD_LETTER_QUEUE}: "
                f"type={data.get('type')}"
            )
