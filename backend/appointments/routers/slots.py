# backend/appointments/routers/slots.py
"""
Slots API endpoints.

GET /slots/day - Annotated slot grid of a service for a provider-local date
"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..schemas.slots import SlotInfo, SlotsDayResponse
from ..services import repository
from ..services.exceptions import BookingError
from ..services.slots import Slot, SlotsRedisStore, generate_slots
from .errors import to_http

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slots", tags=["slots"])


def get_slots_store() -> SlotsRedisStore | None:
    """Slot cache, or None when caching is disabled."""
    if not settings.slots_cache_enabled:
        return None
    from ..redis_client import redis_client
    return SlotsRedisStore(redis_client)


@router.get("/day", response_model=SlotsDayResponse)
def get_slots_day(
    provider_id: int,
    service_id: int,
    target_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
    store: SlotsRedisStore | None = Depends(get_slots_store),
):
    """Get every candidate slot of a day with its availability."""
    try:
        provider = repository.require_provider(db, provider_id)
        tz = repository.load_timezone(provider)

        generation, slots = _read_cache(store, provider_id, service_id, target_date)
        cached = slots is not None
        if slots is None:
            slots = generate_slots(db, provider_id, service_id, target_date)
            _write_cache(store, provider_id, service_id, target_date, slots, generation)
    except BookingError as e:
        raise to_http(e)

    return SlotsDayResponse(
        provider_id=provider_id,
        service_id=service_id,
        date=target_date,
        timezone=tz.key,
        slots=[_slot_info(slot, tz) for slot in slots],
        available_count=sum(1 for s in slots if s.available),
        cached=cached,
    )


def _slot_info(slot: Slot, tz) -> SlotInfo:
    start = slot.start.astimezone(tz)
    return SlotInfo(
        start=start,
        end=slot.end.astimezone(tz),
        time=start.strftime("%H:%M"),
        available=slot.available,
    )


def _read_cache(store, provider_id: int, service_id: int, target_date: date) -> tuple[str | None, list[Slot] | None]:
    """Cache generation and cached slots (None on miss or cache failure)."""
    if store is None:
        return None, None
    try:
        generation = store.generation(provider_id, target_date)
        return generation, store.get_day_slots(provider_id, service_id, target_date, generation)
    except RedisError as e:
        logger.warning(f"Slots cache read failed: {e}")
        return None, None


def _write_cache(
    store,
    provider_id: int,
    service_id: int,
    target_date: date,
    slots: list[Slot],
    generation: str | None,
) -> None:
    # No generation means the read failed; skip rather than write under a fresh one
    if store is None or generation is None:
        return
    try:
        store.store_day_slots(provider_id, service_id, target_date, slots, generation)
    except RedisError as e:
        logger.warning(f"Slots cache write failed: {e}")
