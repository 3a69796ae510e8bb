# backend/appointments/services/slots/redis_store.py
"""
Redis cache for generated slot lists.

Key format: slots:day:{provider_id}:{service_id}:{date}:{generation}
Value: JSON list of {"start", "end", "available"} (ISO datetimes), with a
short TTL since availability depends on the current time.

Generation: "{provider counter}.{date counter}" read from
slots:gen:{provider_id} and slots:gen:{provider_id}:{date}. Invalidation
bumps the counters, so a list computed before an invalidation and written
after it lands under a stale key that is never read.

Index: slots:index:{provider_id} is a Set of the provider's cached keys,
so every day/service of a provider can be dropped without KEYS scans.

The slot engine never reads this cache; only the HTTP layer does, and
commit/cancel/settings changes invalidate it.
"""

import json
from datetime import date, datetime
from redis import Redis

from ...config import settings
from .calculator import Slot


class SlotsRedisStore:
    """Redis storage wrapper for per-day slot lists."""

    KEY_PREFIX = "slots:day"
    INDEX_PREFIX = "slots:index"
    GENERATION_PREFIX = "slots:gen"

    def __init__(self, redis: Redis, ttl_seconds: int | None = None):
        self.redis = redis
        self.ttl_seconds = ttl_seconds or settings.slots_cache_ttl_seconds

    def _key(self, provider_id: int, service_id: int, dt: date, generation: str) -> str:
        return f"{self.KEY_PREFIX}:{provider_id}:{service_id}:{dt.isoformat()}:{generation}"

    def _index_key(self, provider_id: int) -> str:
        return f"{self.INDEX_PREFIX}:{provider_id}"

    def _generation_keys(self, provider_id: int, dt: date) -> tuple[str, str]:
        return (
            f"{self.GENERATION_PREFIX}:{provider_id}",
            f"{self.GENERATION_PREFIX}:{provider_id}:{dt.isoformat()}",
        )

    def generation(self, provider_id: int, dt: date) -> str:
        """Current cache generation of a provider day. Read it before computing slots."""
        provider_gen, date_gen = self.redis.mget(*self._generation_keys(provider_id, dt))
        return f"{_as_int(provider_gen)}.{_as_int(date_gen)}"

    # ── Write ────────────────────────────────────────────────────────────

    def store_day_slots(
        self,
        provider_id: int,
        service_id: int,
        dt: date,
        slots: list[Slot],
        generation: str | None = None,
    ) -> None:
        """Store a generated slot list for a day (empty list included)."""
        if generation is None:
            generation = self.generation(provider_id, dt)
        key = self._key(provider_id, service_id, dt, generation)
        payload = json.dumps([
            {
                "start": slot.start.isoformat(),
                "end": slot.end.isoformat(),
                "available": slot.available,
            }
            for slot in slots
        ])

        pipe = self.redis.pipeline()
        pipe.setex(key, self.ttl_seconds, payload)
        pipe.sadd(self._index_key(provider_id), key)
        pipe.expire(self._index_key(provider_id), self.ttl_seconds)
        pipe.execute()

    # ── Read ─────────────────────────────────────────────────────────────

    def get_day_slots(
        self,
        provider_id: int,
        service_id: int,
        dt: date,
        generation: str | None = None,
    ) -> list[Slot] | None:
        """
        Get cached slots for a day.

        Returns:
            List of slots, or None on cache miss.
        """
        if generation is None:
            generation = self.generation(provider_id, dt)
        raw = self.redis.get(self._key(provider_id, service_id, dt, generation))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode()

        return [
            Slot(
                start=datetime.fromisoformat(item["start"]),
                end=datetime.fromisoformat(item["end"]),
                available=item["available"],
            )
            for item in json.loads(raw)
        ]

    # ── Delete ───────────────────────────────────────────────────────────

    def delete_day_slots(
        self,
        provider_id: int,
        dates: list[date] | None = None,
    ) -> int:
        """
        Invalidate cached slots.

        Args:
            provider_id: Provider ID
            dates: Specific dates (all services), or None to invalidate all for provider.

        Returns:
            Number of deleted keys.
        """
        # Counters outlive any entry written under the previous generation
        counter_ttl = self.ttl_seconds * 2
        pipe = self.redis.pipeline()
        if dates:
            for dt in dates:
                date_key = self._generation_keys(provider_id, dt)[1]
                pipe.incr(date_key)
                pipe.expire(date_key, counter_ttl)
        else:
            provider_key = f"{self.GENERATION_PREFIX}:{provider_id}"
            pipe.incr(provider_key)
            pipe.expire(provider_key, counter_ttl)
        pipe.execute()

        index_key = self._index_key(provider_id)
        members = self.redis.smembers(index_key)
        keys = [m.decode() if isinstance(m, bytes) else m for m in members]

        if dates:
            fragments = tuple(f":{dt.isoformat()}:" for dt in dates)
            keys = [k for k in keys if any(f in k for f in fragments)]

        if not keys:
            return 0

        pipe = self.redis.pipeline()
        pipe.delete(*keys)
        pipe.srem(index_key, *keys)
        deleted, _ = pipe.execute()
        return deleted


def _as_int(value) -> int:
    return int(value) if value is not None else 0
