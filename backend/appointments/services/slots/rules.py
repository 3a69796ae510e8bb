# backend/appointments/services/slots/rules.py
"""
Availability rules: a provider's recurring weekly schedule and booking policy.

Wall-clock values (working hours, breaks) are interpreted in the provider's
timezone for the requested local date, then converted to UTC instants.
The weekday is always derived from the local date, never from UTC.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import IntEnum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError

from ...schemas.availability import AvailabilitySettingsSchema
from ..exceptions import InvalidInput
from .config import BookingConfig, get_booking_config, parse_time_str
from .intervals import Interval

logger = logging.getLogger(__name__)


class Weekday(IntEnum):
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def of_date(cls, value: date) -> "Weekday":
        return cls(value.weekday())

    @classmethod
    def from_name(cls, name: str) -> "Weekday":
        return cls[name.upper()]


@dataclass(frozen=True)
class DaySettings:
    enabled: bool
    working_hours: tuple[time, time]
    breaks: tuple[tuple[time, time], ...] = ()


@dataclass(frozen=True)
class AvailabilityPolicy:
    timezone: ZoneInfo
    week_schedule: dict[Weekday, DaySettings] = field(default_factory=dict)
    buffer_minutes: int = 15
    advance_booking_days: int = 60
    minimum_notice_hours: int = 0


@dataclass(frozen=True)
class DaySchedule:
    """Working window and breaks of one local date, as UTC instants."""
    date: date
    working_hours: Interval
    breaks: tuple[Interval, ...]


def local_instant(target_date: date, wall_time: time, tz: ZoneInfo) -> datetime:
    """Combine a local date and wall-clock time into a UTC instant."""
    return datetime.combine(target_date, wall_time, tzinfo=tz).astimezone(timezone.utc)


def local_day_bounds(target_date: date, tz: ZoneInfo) -> Interval:
    """[local midnight, next local midnight) as UTC instants."""
    return Interval(
        local_instant(target_date, time.min, tz),
        local_instant(target_date + timedelta(days=1), time.min, tz),
    )


def local_dates_covered(interval: Interval, tz: ZoneInfo) -> list[date]:
    """Provider-local dates a half-open interval touches."""
    first = interval.start.astimezone(tz).date()
    last = (interval.end - timedelta(microseconds=1)).astimezone(tz).date()
    return [first + timedelta(days=i) for i in range((last - first).days + 1)]


def resolve_timezone(name: str | None, config: BookingConfig | None = None) -> ZoneInfo:
    config = config or get_booking_config()
    try:
        return ZoneInfo(name or config.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidInput(f"Unknown timezone {name!r}")


def get_day_schedule(policy: AvailabilityPolicy | None, target_date: date) -> DaySchedule | None:
    """
    Resolve the working window for a local date.

    Returns None when the provider does not work that day (no policy,
    weekday missing or disabled, or an empty working window).
    """
    if policy is None:
        return None

    day = policy.week_schedule.get(Weekday.of_date(target_date))
    if day is None or not day.enabled:
        return None

    tz = policy.timezone
    start = local_instant(target_date, day.working_hours[0], tz)
    end = local_instant(target_date, day.working_hours[1], tz)
    if end <= start:
        logger.warning(f"Empty working window on {target_date.isoformat()}, treating as day off")
        return None

    breaks = []
    for break_start, break_end in day.breaks:
        b_start = local_instant(target_date, break_start, tz)
        b_end = local_instant(target_date, break_end, tz)
        if b_end > b_start:
            breaks.append(Interval(b_start, b_end))

    return DaySchedule(date=target_date, working_hours=Interval(start, end), breaks=tuple(breaks))


def parse_policy(
    raw: str | dict | None,
    timezone_name: str | None,
    config: BookingConfig | None = None,
) -> AvailabilityPolicy | None:
    """
    Build a policy from stored settings JSON.

    Returns None when no settings are stored. Malformed settings raise InvalidInput.
    """
    if not raw:
        return None
    config = config or get_booking_config()

    try:
        data = json.loads(raw) if isinstance(raw, str) else raw
        settings = AvailabilitySettingsSchema.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise InvalidInput(f"Invalid availability settings: {e}")

    week_schedule = {}
    for day_name, day in settings.week_schedule.items():
        week_schedule[Weekday.from_name(day_name)] = DaySettings(
            enabled=day.enabled,
            working_hours=(
                parse_time_str(day.working_hours.start),
                parse_time_str(day.working_hours.end),
            ),
            breaks=tuple(
                (parse_time_str(b.start), parse_time_str(b.end)) for b in day.breaks
            ),
        )

    return AvailabilityPolicy(
        timezone=resolve_timezone(timezone_name, config),
        week_schedule=week_schedule,
        buffer_minutes=_or_default(settings.buffer_minutes, config.buffer_minutes),
        advance_booking_days=_or_default(settings.advance_booking_days, config.advance_booking_days),
        minimum_notice_hours=_or_default(settings.minimum_notice_hours, config.minimum_notice_hours),
    )


def load_policy(profile) -> AvailabilityPolicy | None:
    """Policy of a ProviderProfiles row, or None if it has no settings."""
    return parse_policy(profile.availability_settings, profile.timezone)


def _or_default(value: int | None, default: int) -> int:
    return default if value is None else value


def update_policy(
    db,
    provider_id: int,
    settings: dict,
    timezone_name: str | None = None,
) -> AvailabilityPolicy:
    """
    Validate and store a provider's availability settings.

    Raises:
        ProviderNotFound: unknown provider
        InvalidInput: settings or timezone rejected
    """
    from .. import repository

    provider = repository.require_provider(db, provider_id)
    policy = parse_policy(settings, timezone_name or provider.timezone)
    repository.save_availability_settings(db, provider_id, settings, timezone_name)
    logger.info(f"Availability settings updated for provider {provider_id}")
    return policy
