"""
backend/appointments/services/repository.py

Database access for the slot engine and the booking commit path.

Instants are stored as UTC text "YYYY-MM-DD HH:MM:SS" and converted to
timezone-aware datetimes here, so callers never see naive values.
"""

import json
import logging
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.generated import Bookings, ProviderIntegrations, ProviderProfiles, Services
from .exceptions import (
    BookingNotFound,
    InvalidInput,
    PersistenceFailure,
    ProviderNotFound,
    ServiceNotFound,
    SlotUnavailable,
)
from .slots.config import BookingConfig, get_booking_config
from .slots.rules import AvailabilityPolicy, load_policy, local_day_bounds, resolve_timezone

logger = logging.getLogger(__name__)

DB_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"
ACTIVE_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED)

SYNC_OK = "ok"
SYNC_FAILED = "failed"
SYNC_PENDING = "pending"


# ── Time conversion ──────────────────────────────────────────────────────


def to_db_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        raise ValueError("Refusing to store a naive datetime")
    return value.astimezone(timezone.utc).strftime(DB_DATETIME_FORMAT)


def from_db_datetime(value: str) -> datetime:
    return datetime.strptime(value, DB_DATETIME_FORMAT).replace(tzinfo=timezone.utc)


def utc_now_str() -> str:
    return datetime.now(timezone.utc).strftime(DB_DATETIME_FORMAT)


# ── Providers and services ───────────────────────────────────────────────


def get_provider(db: Session, provider_id: int) -> ProviderProfiles | None:
    return db.get(ProviderProfiles, provider_id)


def require_provider(db: Session, provider_id: int) -> ProviderProfiles:
    provider = get_provider(db, provider_id)
    if provider is None:
        raise ProviderNotFound(provider_id)
    return provider


def get_service(db: Session, service_id: int) -> Services | None:
    """Get active service by ID."""
    return db.query(Services).filter(
        Services.id == service_id,
        Services.is_active == 1,
    ).first()


def require_service(
    db: Session,
    service_id: int,
    provider_id: int | None = None,
    config: BookingConfig | None = None,
) -> Services:
    """
    Get an active service, optionally checking it belongs to the provider.

    Raises:
        ServiceNotFound: missing, inactive or owned by another provider
        InvalidInput: stored duration outside the allowed bounds
    """
    config = config or get_booking_config()
    service = get_service(db, service_id)
    if service is None or (provider_id is not None and service.provider_id != provider_id):
        raise ServiceNotFound(service_id)
    if not config.is_valid_duration(service.duration_minutes):
        raise InvalidInput(
            f"Service {service_id} duration {service.duration_minutes} min is outside "
            f"[{config.min_duration_minutes}, {config.max_duration_minutes}]"
        )
    return service


def get_service_duration(db: Session, service_id: int, provider_id: int | None = None) -> int:
    return require_service(db, service_id, provider_id).duration_minutes


def get_availability_policy(db: Session, provider_id: int) -> AvailabilityPolicy | None:
    return load_policy(require_provider(db, provider_id))


def load_timezone(provider: ProviderProfiles) -> ZoneInfo:
    return resolve_timezone(provider.timezone)


def save_availability_settings(
    db: Session,
    provider_id: int,
    settings: dict,
    timezone_name: str | None = None,
) -> ProviderProfiles:
    """Replace a provider's stored availability settings."""
    provider = require_provider(db, provider_id)
    provider.availability_settings = json.dumps(settings)
    if timezone_name:
        provider.timezone = timezone_name
    _commit(db)
    db.refresh(provider)
    return provider


# ── Bookings ─────────────────────────────────────────────────────────────


def find_bookings_for_provider_on_date(
    db: Session,
    provider_id: int,
    local_date: date,
    tz: ZoneInfo,
    statuses: tuple[str, ...] = ACTIVE_STATUSES,
) -> list[Bookings]:
    """Bookings overlapping the provider-local day, including ones spilling over midnight."""
    bounds = local_day_bounds(local_date, tz)
    return find_overlapping_bookings(db, provider_id, bounds.start, bounds.end, statuses)


def find_overlapping_bookings(
    db: Session,
    provider_id: int,
    start: datetime,
    end: datetime,
    statuses: tuple[str, ...] = ACTIVE_STATUSES,
) -> list[Bookings]:
    """Bookings whose [date_start, date_end) overlaps [start, end)."""
    return (
        db.query(Bookings)
        .filter(
            Bookings.provider_id == provider_id,
            Bookings.date_start < to_db_datetime(end),
            Bookings.date_end > to_db_datetime(start),
            Bookings.status.in_(statuses),
        )
        .all()
    )


def create_booking(
    db: Session,
    provider_id: int,
    service_id: int,
    client_id: int,
    start: datetime,
    end: datetime,
    notes: str | None = None,
    status: str = STATUS_CONFIRMED,
) -> Bookings:
    """
    Insert and commit a booking.

    Raises:
        InvalidInput: end is not after start
        SlotUnavailable: the active-slot unique index rejected the row
        PersistenceFailure: any other database error (transaction rolled back)
    """
    if end <= start:
        raise InvalidInput("End time must be after start time")

    now = utc_now_str()
    booking = Bookings(
        provider_id=provider_id,
        service_id=service_id,
        client_id=client_id,
        date_start=to_db_datetime(start),
        date_end=to_db_datetime(end),
        status=status,
        sync_status=SYNC_PENDING,
        notes=notes,
        created_at=now,
        updated_at=now,
    )
    db.add(booking)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise SlotUnavailable()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to persist booking for provider {provider_id}: {e}")
        raise PersistenceFailure("Failed to persist booking") from e
    db.refresh(booking)
    return booking


def get_booking(db: Session, booking_id: int) -> Bookings | None:
    return db.get(Bookings, booking_id)


def require_booking(db: Session, booking_id: int) -> Bookings:
    booking = get_booking(db, booking_id)
    if booking is None:
        raise BookingNotFound(booking_id)
    return booking


def set_booking_status(db: Session, booking: Bookings, status: str) -> Bookings:
    booking.status = status
    booking.updated_at = utc_now_str()
    _commit(db)
    db.refresh(booking)
    return booking


def update_booking_sync_state(
    db: Session,
    booking_id: int,
    sync_status: str,
    external_event_id: str | None = None,
) -> Bookings:
    """Record the outcome of a calendar sync. Start/end are never touched."""
    booking = require_booking(db, booking_id)
    booking.sync_status = sync_status
    if external_event_id is not None:
        booking.external_event_id = external_event_id
    booking.updated_at = utc_now_str()
    _commit(db)
    return booking


def list_bookings(
    db: Session,
    provider_id: int | None = None,
    client_id: int | None = None,
    limit: int = 50,
) -> list[Bookings]:
    query = db.query(Bookings)
    if provider_id is not None:
        query = query.filter(Bookings.provider_id == provider_id)
    if client_id is not None:
        query = query.filter(Bookings.client_id == client_id)
    return query.order_by(Bookings.date_start.desc()).limit(limit).all()


# ── Integrations ─────────────────────────────────────────────────────────


def get_active_integration(db: Session, provider_id: int) -> ProviderIntegrations | None:
    return db.query(ProviderIntegrations).filter(
        ProviderIntegrations.provider_id == provider_id,
        ProviderIntegrations.provider == "google_calendar",
        ProviderIntegrations.sync_enabled == 1,
    ).first()


def update_integration_tokens(
    db: Session,
    integration: ProviderIntegrations,
    access_token: str,
    token_expires_at: str | None = None,
) -> None:
    integration.access_token = access_token
    integration.token_expires_at = token_expires_at
    integration.updated_at = utc_now_str()
    _commit(db)


def mark_integration_synced(db: Session, integration: ProviderIntegrations) -> None:
    integration.last_sync_at = utc_now_str()
    _commit(db)


def _commit(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailure(str(e)) from e
