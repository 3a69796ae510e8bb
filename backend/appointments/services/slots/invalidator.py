# backend/appointments/services/slots/invalidator.py
"""
Cache invalidation for provider slots.

Triggers:
✓ Booking committed → invalidate the booking's local date
✓ Booking cancelled → invalidate the booking's local date
✓ Availability settings changed → invalidate all dates

Cache errors are logged and never fail the operation that triggered them.
"""

import logging
from datetime import date

from redis import Redis
from redis.exceptions import RedisError

from .redis_store import SlotsRedisStore

logger = logging.getLogger(__name__)


def invalidate_provider_cache(
    redis: Redis,
    provider_id: int,
    dates: list[date] | None = None,
) -> int:
    """
    Invalidate cached slot lists for a provider.

    Args:
        redis: Redis client
        provider_id: Provider ID
        dates: List of specific dates to invalidate,
               or None to invalidate all cached dates

    Returns:
        Number of deleted cache keys
    """
    store = SlotsRedisStore(redis)
    try:
        return store.delete_day_slots(provider_id, dates)
    except RedisError as e:
        logger.warning(f"Failed to invalidate slots cache for provider {provider_id}: {e}")
        return 0
