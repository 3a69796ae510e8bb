"""
backend/appointments/services/calendar_sync.py

Best-effort mirroring of bookings into a provider's external calendar.

The external calendar is never authoritative: every failure here ends as
IntegrationUnavailable, which callers turn into sync_status="failed"
(or zero extra busy intervals) and a log line. Booking status and
times are never modified.

Sync handlers run from the calendar sync consumer, after the booking
transaction has committed.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Protocol, TypeVar
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from ..models.generated import Bookings, ProviderIntegrations
from . import repository
from .exceptions import IntegrationUnavailable, PersistenceFailure
from .google_calendar import (
    CALENDAR_ERRORS,
    CalendarAuthError,
    CalendarEvent,
    RefreshedToken,
    get_calendar_client,
)
from .slots.intervals import Interval

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CalendarClient(Protocol):
    def get_busy_intervals(self, integration, start: datetime, end: datetime) -> list[Interval]:
        ...

    def create_event(self, integration, event: CalendarEvent) -> str | None:
        ...

    def delete_event(self, integration, event_id: str) -> bool:
        ...

    def refresh_credentials(self, refresh_token: str) -> RefreshedToken:
        ...


# Registry of sync handlers by event type
SYNC_HANDLERS: dict[str, Callable[..., None]] = {}


def register_sync_handler(event_type: str):
    """Decorator to register a sync handler."""
    def decorator(func):
        SYNC_HANDLERS[event_type] = func
        return func
    return decorator


# ── Gateway ──────────────────────────────────────────────────────────────


def call_with_refresh(
    db: Session,
    integration: ProviderIntegrations,
    operation: Callable[[ProviderIntegrations], T],
    client: CalendarClient,
) -> T:
    """
    Run a calendar operation, refreshing the access token at most once.

    Raises:
        IntegrationUnavailable: remote error, timeout, or still unauthorized
            after the single refresh
    """
    try:
        return operation(integration)
    except CalendarAuthError:
        logger.info(f"Calendar token rejected for provider {integration.provider_id}, refreshing")
    except CALENDAR_ERRORS as e:
        raise IntegrationUnavailable(f"Calendar call failed: {e}") from e

    try:
        token = client.refresh_credentials(integration.refresh_token)
    except CALENDAR_ERRORS as e:
        raise IntegrationUnavailable(f"Token refresh failed: {e}") from e

    try:
        repository.update_integration_tokens(
            db, integration, token.access_token, token.token_expires_at
        )
    except PersistenceFailure as e:
        # The refreshed token is still usable for this call
        logger.warning(f"Could not store refreshed token for provider {integration.provider_id}: {e}")

    try:
        return operation(integration)
    except (CalendarAuthError, *CALENDAR_ERRORS) as e:
        raise IntegrationUnavailable(f"Calendar call failed after token refresh: {e}") from e


def fetch_external_busy(
    db: Session,
    provider_id: int,
    bounds: Interval,
    client: CalendarClient | None = None,
) -> list[Interval]:
    """
    Busy periods from the provider's external calendar within bounds.

    Returns an empty list when there is no active integration.

    Raises:
        IntegrationUnavailable: the calendar could not be read
    """
    integration = repository.get_active_integration(db, provider_id)
    if integration is None:
        return []

    client = client or get_calendar_client()
    return call_with_refresh(
        db,
        integration,
        lambda i: client.get_busy_intervals(i, bounds.start, bounds.end),
        client,
    )


# ── Sync handlers ────────────────────────────────────────────────────────


def _build_event(booking: Bookings) -> CalendarEvent:
    provider = booking.provider
    tz = ZoneInfo(provider.timezone)
    service_name = booking.service.name if booking.service else "Booking"

    description_parts = [f"Client #{booking.client_id}"]
    if booking.notes:
        description_parts.append(booking.notes)

    return CalendarEvent(
        summary=f"{service_name}: client #{booking.client_id}",
        description="\n".join(description_parts),
        start=repository.from_db_datetime(booking.date_start).astimezone(tz),
        end=repository.from_db_datetime(booking.date_end).astimezone(tz),
        timezone=provider.timezone,
    )


@register_sync_handler("booking_created")
def sync_booking_created(
    db: Session,
    booking_id: int,
    client: CalendarClient | None = None,
) -> None:
    """Create the remote event for a booking and record the outcome."""
    booking = repository.get_booking(db, booking_id)
    if booking is None:
        logger.warning(f"booking_created sync: booking {booking_id} not found")
        return
    if booking.status not in repository.ACTIVE_STATUSES:
        logger.info(f"booking_created sync: booking {booking_id} is {booking.status}, skipping")
        return

    integration = repository.get_active_integration(db, booking.provider_id)
    if integration is None:
        return

    client = client or get_calendar_client()
    event = _build_event(booking)

    try:
        event_id = call_with_refresh(
            db, integration, lambda i: client.create_event(i, event), client
        )
    except IntegrationUnavailable as e:
        logger.warning(f"Calendar sync failed for booking {booking_id}: {e}")
        repository.update_booking_sync_state(db, booking_id, repository.SYNC_FAILED)
        return

    if event_id:
        repository.update_booking_sync_state(
            db, booking_id, repository.SYNC_OK, external_event_id=event_id
        )
        repository.mark_integration_synced(db, integration)
        logger.info(f"Booking {booking_id} synced to calendar event {event_id}")
    else:
        repository.update_booking_sync_state(db, booking_id, repository.SYNC_FAILED)
        logger.warning(f"Calendar returned no event ID for booking {booking_id}")


@register_sync_handler("booking_cancelled")
def sync_booking_cancelled(
    db: Session,
    booking_id: int,
    client: CalendarClient | None = None,
) -> None:
    """Delete the remote event of a cancelled booking and record the outcome."""
    booking = repository.get_booking(db, booking_id)
    if booking is None:
        logger.warning(f"booking_cancelled sync: booking {booking_id} not found")
        return
    if not booking.external_event_id:
        return

    integration = repository.get_active_integration(db, booking.provider_id)
    if integration is None:
        return

    client = client or get_calendar_client()
    event_id = booking.external_event_id

    try:
        deleted = call_with_refresh(
            db, integration, lambda i: client.delete_event(i, event_id), client
        )
    except IntegrationUnavailable as e:
        logger.warning(f"Calendar event delete failed for booking {booking_id}: {e}")
        deleted = False

    repository.update_booking_sync_state(
        db, booking_id, repository.SYNC_OK if deleted else repository.SYNC_FAILED
    )
