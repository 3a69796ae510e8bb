# backend/appointments/routers/availability.py
"""
Provider availability settings.

GET /providers/{id}/availability - Stored weekly schedule and policy (defaults filled in)
PUT /providers/{id}/availability - Replace settings, drop the provider's cached slots
"""

import json

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.generated import ProviderProfiles
from ..schemas.availability import AvailabilityRead, AvailabilitySettingsSchema, AvailabilityUpdate
from ..services import repository
from ..services.exceptions import BookingError
from ..services.slots import SlotsRedisStore, get_booking_config, invalidate_provider_cache, update_policy
from ..services.slots.rules import load_policy
from .errors import to_http
from .slots import get_slots_store

router = APIRouter(prefix="/providers", tags=["availability"])


@router.get("/{id}/availability", response_model=AvailabilityRead)
def get_availability(id: int, db: Session = Depends(get_db)):
    try:
        provider = repository.require_provider(db, id)
        return _to_read(provider)
    except BookingError as e:
        raise to_http(e)


@router.put("/{id}/availability", response_model=AvailabilityRead)
def put_availability(
    id: int,
    data: AvailabilityUpdate,
    db: Session = Depends(get_db),
    store: SlotsRedisStore | None = Depends(get_slots_store),
):
    settings = data.model_dump(exclude={"timezone"}, exclude_none=True)
    try:
        update_policy(db, id, settings, data.timezone)
        provider = repository.require_provider(db, id)
        result = _to_read(provider)
    except BookingError as e:
        raise to_http(e)

    if store is not None:
        invalidate_provider_cache(store.redis, id)
    return result


def _to_read(provider: ProviderProfiles) -> AvailabilityRead:
    config = get_booking_config()
    policy = load_policy(provider)
    stored = (
        AvailabilitySettingsSchema.model_validate(json.loads(provider.availability_settings))
        if policy is not None
        else AvailabilitySettingsSchema()
    )

    return AvailabilityRead(
        provider_id=provider.id,
        timezone=provider.timezone or config.default_timezone,
        week_schedule=stored.week_schedule,
        buffer_minutes=policy.buffer_minutes if policy else config.buffer_minutes,
        advance_booking_days=policy.advance_booking_days if policy else config.advance_booking_days,
        minimum_notice_hours=policy.minimum_notice_hours if policy else config.minimum_notice_hours,
    )
