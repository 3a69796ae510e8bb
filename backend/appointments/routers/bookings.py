# backend/appointments/routers/bookings.py
# API.md: PATCH = 405, DELETE = 405 (cancel via POST /bookings/{id}/cancel)

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.generated import Bookings
from ..schemas.bookings import BookingCreate, BookingRead
from ..services import repository
from ..services.booking_commit import EventDispatcher, cancel_booking, commit_booking
from ..services.events import emit_event
from ..services.exceptions import BookingError
from ..services.locks import BookingLocks, get_booking_locks
from ..services.slots import Interval, SlotsRedisStore, invalidate_provider_cache
from ..services.slots.rules import local_dates_covered
from .errors import to_http
from .slots import get_slots_store

router = APIRouter(prefix="/bookings", tags=["bookings"])


def get_event_dispatcher() -> EventDispatcher:
    return emit_event


@router.get("/", response_model=list[BookingRead])
def list_bookings(
    provider_id: int | None = None,
    client_id: int | None = None,
    limit: int = 50,
    db: Session = Depends(get_db),
):
    return repository.list_bookings(db, provider_id, client_id, min(limit, 200))


@router.get("/{id}", response_model=BookingRead)
def get_booking(id: int, db: Session = Depends(get_db)):
    obj = repository.get_booking(db, id)
    if not obj:
        raise HTTPException(status_code=404, detail="Not found")
    return obj


@router.post("/", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    db: Session = Depends(get_db),
    locks: BookingLocks = Depends(get_booking_locks),
    dispatch: EventDispatcher = Depends(get_event_dispatcher),
    store: SlotsRedisStore | None = Depends(get_slots_store),
):
    try:
        obj = commit_booking(
            db,
            provider_id=data.provider_id,
            service_id=data.service_id,
            client_id=data.client_id,
            start=data.start,
            note=data.note,
            locks=locks,
            dispatch=dispatch,
        )
    except BookingError as e:
        raise to_http(e)

    _invalidate_booking_days(db, store, obj)
    return obj


@router.post("/{id}/cancel", response_model=BookingRead)
def cancel(
    id: int,
    db: Session = Depends(get_db),
    dispatch: EventDispatcher = Depends(get_event_dispatcher),
    store: SlotsRedisStore | None = Depends(get_slots_store),
):
    try:
        obj = cancel_booking(db, id, dispatch=dispatch)
    except BookingError as e:
        raise to_http(e)

    _invalidate_booking_days(db, store, obj)
    return obj


@router.patch("/{id}")
def patch_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )


@router.delete("/{id}")
def delete_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )


def _invalidate_booking_days(db: Session, store: SlotsRedisStore | None, booking: Bookings) -> None:
    if store is None:
        return
    tz = repository.load_timezone(repository.require_provider(db, booking.provider_id))
    interval = Interval(
        repository.from_db_datetime(booking.date_start),
        repository.from_db_datetime(booking.date_end),
    )
    invalidate_provider_cache(store.redis, booking.provider_id, local_dates_covered(interval, tz))
