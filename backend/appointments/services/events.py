"""
backend/appointments/services/events.py

Event emitter: pushes booking events to a Redis queue consumed by the
calendar sync worker.

Queue:
- events:calendar_sync: booking_created / booking_cancelled
"""

import json
import time
import logging

from redis.exceptions import RedisError

from ..redis_client import redis_client

logger = logging.getLogger(__name__)

CALENDAR_SYNC_QUEUE = "events:calendar_sync"


def emit_event(event_type: str, payload: dict) -> None:
    """
    Emit an event for the calendar sync worker.

    Best-effort: a Redis failure is logged, never raised.
    """
    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    try:
        redis_client.rpush(CALENDAR_SYNC_QUEUE, json.dumps(event))
        logger.info(f"Event emitted: {event_type} → {CALENDAR_SYNC_QUEUE}")
    except RedisError as e:
        logger.error(f"Failed to emit event {event_type}: {e}")
