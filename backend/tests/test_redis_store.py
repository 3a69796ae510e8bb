"""
Tests for the slot cache and its invalidation.
"""

from redis.exceptions import RedisError

from appointments.services.slots.calculator import Slot
from appointments.services.slots.invalidator import invalidate_provider_cache
from appointments.services.slots.redis_store import SlotsRedisStore

from conftest import MONDAY, PROVIDER_ID, SERVICE_30, SERVICE_60, TUESDAY, local

SLOTS = [
    Slot(start=local(MONDAY, 9), end=local(MONDAY, 10), available=True),
    Slot(start=local(MONDAY, 10, 15), end=local(MONDAY, 11, 15), available=False),
]


class TestSlotsRedisStore:

    def test_store_and_read(self, fake_redis):
        store = SlotsRedisStore(fake_redis, ttl_seconds=30)

        store.store_day_slots(PROVIDER_ID, SERVICE_60, MONDAY, SLOTS)

        assert store.get_day_slots(PROVIDER_ID, SERVICE_60, MONDAY) == SLOTS
        assert fake_redis.ttls[f"slots:day:{PROVIDER_ID}:{SERVICE_60}:2030-01-07:0.0"] == 30

    def test_miss_is_none_and_empty_day_is_cached(self, fake_redis):
        store = SlotsRedisStore(fake_redis, ttl_seconds=30)

        assert store.get_day_slots(PROVIDER_ID, SERVICE_60, MONDAY) is None
        store.store_day_slots(PROVIDER_ID, SERVICE_60, TUESDAY, [])
        assert store.get_day_slots(PROVIDER_ID, SERVICE_60, TUESDAY) == []

    def test_delete_specific_dates_all_services(self, fake_redis):
        store = SlotsRedisStore(fake_redis, ttl_seconds=30)
        store.store_day_slots(PROVIDER_ID, SERVICE_60, MONDAY, SLOTS)
        store.store_day_slots(PROVIDER_ID, SERVICE_30, MONDAY, SLOTS)
        store.store_day_slots(PROVIDER_ID, SERVICE_60, TUESDAY, [])

        deleted = store.delete_day_slots(PROVIDER_ID, [MONDAY])

        assert deleted == 2
        assert store.get_day_slots(PROVIDER_ID, SERVICE_30, MONDAY) is None
        assert store.get_day_slots(PROVIDER_ID, SERVICE_60, TUESDAY) == []

    def test_delete_all_for_provider(self, fake_redis):
        store = SlotsRedisStore(fake_redis, ttl_seconds=30)
        store.store_day_slots(PROVIDER_ID, SERVICE_60, MONDAY, SLOTS)
        store.store_day_slots(2, SERVICE_60, MONDAY, SLOTS)

        assert store.delete_day_slots(PROVIDER_ID) == 1
        assert store.get_day_slots(2, SERVICE_60, MONDAY) == SLOTS

    def test_write_after_invalidation_is_never_read(self, fake_redis):
        """A list computed before an invalidation must not be served after it."""
        store = SlotsRedisStore(fake_redis, ttl_seconds=30)
        generation = store.generation(PROVIDER_ID, MONDAY)

        store.delete_day_slots(PROVIDER_ID, [MONDAY])
        store.store_day_slots(PROVIDER_ID, SERVICE_60, MONDAY, SLOTS, generation)

        assert store.get_day_slots(PROVIDER_ID, SERVICE_60, MONDAY) is None

    def test_provider_invalidation_bumps_every_day(self, fake_redis):
        store = SlotsRedisStore(fake_redis, ttl_seconds=30)
        monday = store.generation(PROVIDER_ID, MONDAY)
        tuesday = store.generation(PROVIDER_ID, TUESDAY)

        store.delete_day_slots(PROVIDER_ID)

        assert store.generation(PROVIDER_ID, MONDAY) != monday
        assert store.generation(PROVIDER_ID, TUESDAY) != tuesday
        assert fake_redis.ttls[f"slots:gen:{PROVIDER_ID}"] == 60

    def test_date_invalidation_leaves_other_days(self, fake_redis):
        store = SlotsRedisStore(fake_redis, ttl_seconds=30)
        tuesday = store.generation(PROVIDER_ID, TUESDAY)

        store.delete_day_slots(PROVIDER_ID, [MONDAY])

        assert store.generation(PROVIDER_ID, MONDAY) == "0.1"
        assert store.generation(PROVIDER_ID, TUESDAY) == tuesday


class TestInvalidateProviderCache:

    def test_invalidates_through_store(self, fake_redis):
        SlotsRedisStore(fake_redis, ttl_seconds=30).store_day_slots(PROVIDER_ID, SERVICE_60, MONDAY, SLOTS)

        assert invalidate_provider_cache(fake_redis, PROVIDER_ID, [MONDAY]) == 1

    def test_redis_error_is_swallowed(self, fake_redis):
        def broken(key):
            raise RedisError("connection refused")

        fake_redis.smembers = broken

        assert invalidate_provider_cache(fake_redis, PROVIDER_ID) == 0
