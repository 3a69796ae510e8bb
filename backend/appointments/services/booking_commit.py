"""
backend/appointments/services/booking_commit.py

Booking commit protocol.

1. Resolve the service and derive end = start + duration
2. Under the (provider, local date) locks of every day the booking touches,
   re-read overlapping committed bookings, never an earlier slot listing
3. Reject overlaps with SlotUnavailable, otherwise insert as confirmed
4. After the transaction, emit booking_created for calendar sync

Calendar sync happens in the background consumer; its outcome lands in
bookings.sync_status and never rolls back or fails the booking.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.orm import Session

from ..models.generated import Bookings
from . import repository
from .events import emit_event
from .exceptions import InvalidInput, SlotUnavailable
from .locks import BookingLocks, get_booking_locks, hold_days
from .slots.intervals import Interval
from .slots.rules import local_dates_covered

logger = logging.getLogger(__name__)

EventDispatcher = Callable[[str, dict], None]


def commit_booking(
    db: Session,
    provider_id: int,
    service_id: int,
    client_id: int,
    start: datetime,
    note: str | None = None,
    *,
    locks: BookingLocks | None = None,
    dispatch: EventDispatcher | None = None,
) -> Bookings:
    """
    Validate and persist a booking for [start, start + service duration).

    Raises:
        ServiceNotFound / ProviderNotFound: unknown service or provider
        InvalidInput: naive start or non-positive duration
        SlotUnavailable: interval overlaps a pending/confirmed booking
        PersistenceFailure: database error, nothing persisted
    """
    locks = locks or get_booking_locks()
    dispatch = dispatch or emit_event

    if start.tzinfo is None:
        raise InvalidInput("Booking start must include a UTC offset")

    # Step 1: Service and end time
    service = repository.require_service(db, service_id, provider_id)
    end = start + timedelta(minutes=service.duration_minutes)
    if end <= start:
        raise InvalidInput("End time must be after start time")
    requested = Interval(start, end)

    # Step 2: Provider-local days the booking touches
    provider = repository.require_provider(db, provider_id)
    tz = repository.load_timezone(provider)
    local_dates = local_dates_covered(requested, tz)

    # End the read transaction so the re-check below sees the latest commits
    db.commit()

    # Step 3: Re-check and insert under the day locks
    with hold_days(locks, provider_id, local_dates):
        conflicts = repository.find_overlapping_bookings(db, provider_id, start, end)
        if conflicts:
            logger.info(
                f"Slot conflict for provider {provider_id} at {start.isoformat()}"
            )
            raise SlotUnavailable()

        booking = repository.create_booking(
            db,
            provider_id=provider_id,
            service_id=service_id,
            client_id=client_id,
            start=start,
            end=end,
            notes=note,
            status=repository.STATUS_CONFIRMED,
        )

    logger.info(
        f"Booking {booking.id} confirmed: provider {provider_id}, service {service_id}, "
        f"{booking.date_start} → {booking.date_end} UTC"
    )

    # Step 4: Calendar sync runs after the commit, outside the lock
    _dispatch(dispatch, "booking_created", {
        "booking_id": booking.id,
        "provider_id": provider_id,
    })

    return booking


def cancel_booking(
    db: Session,
    booking_id: int,
    *,
    dispatch: EventDispatcher | None = None,
) -> Bookings:
    """
    Cancel an active booking and schedule removal of its calendar event.

    Raises:
        BookingNotFound: unknown booking
        InvalidInput: booking already cancelled or completed
    """
    dispatch = dispatch or emit_event

    booking = repository.require_booking(db, booking_id)
    if booking.status not in repository.ACTIVE_STATUSES:
        raise InvalidInput(f"Booking {booking_id} is already {booking.status}")

    booking = repository.set_booking_status(db, booking, repository.STATUS_CANCELLED)
    logger.info(f"Booking {booking_id} cancelled")

    _dispatch(dispatch, "booking_cancelled", {
        "booking_id": booking.id,
        "provider_id": booking.provider_id,
    })

    return booking


def _dispatch(dispatch: EventDispatcher, event_type: str, payload: dict) -> None:
    try:
        dispatch(event_type, payload)
    except Exception:
        # The booking is already persisted; sync stays "pending"
        logger.exception(f"Failed to dispatch {event_type} for booking {payload.get('booking_id')}")

