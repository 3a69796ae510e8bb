# backend/appointments/services/slots/calculator.py
"""
Slot generation for a provider, service and local date.

Walks the day's working window in fixed steps of
(service duration + buffer) starting at the working-hours start.
Every candidate that fits in the window is emitted; conflicting ones are
marked available=False rather than dropped or shifted, so the grid of
a day is stable and predictable.

A candidate is available when it:
✓ does not overlap a break
✓ does not overlap a busy interval (bookings, external calendar)
✓ starts at or after now + minimum_notice_hours (and not in the past)
✓ starts no later than now + advance_booking_days
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy.orm import Session

from .. import calendar_sync, repository
from .busy import BusyInterval, get_busy_intervals
from .intervals import Interval, merge_intervals, overlaps_any
from .rules import AvailabilityPolicy, DaySchedule, get_day_schedule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime
    available: bool

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)


def generate_slots(
    db: Session,
    provider_id: int,
    service_id: int,
    target_date: date,
    *,
    now: datetime | None = None,
    calendar: calendar_sync.CalendarClient | None = None,
) -> list[Slot]:
    """
    Calculate annotated slots for a service on a provider-local date.

    Returns:
        Slots ordered by start, in the provider's timezone. Empty list when
        the provider does not work that day.

    Raises:
        ServiceNotFound: service missing, inactive or not offered by the provider
        ProviderNotFound: provider missing
        InvalidInput: malformed availability settings or service duration
    """
    now = now or datetime.now(timezone.utc)

    # Step 1: Service duration
    duration = repository.get_service_duration(db, service_id, provider_id)

    # Step 2: Day schedule
    policy = repository.get_availability_policy(db, provider_id)
    schedule = get_day_schedule(policy, target_date)
    if schedule is None:
        return []

    # Step 3: Busy intervals
    busy = get_busy_intervals(db, provider_id, target_date, policy.timezone, calendar=calendar)

    slots = build_slots(schedule, policy, duration, busy, now)

    logger.info(
        f"Generated {len(slots)} slots ({sum(s.available for s in slots)} available) "
        f"for provider {provider_id}, service {service_id}, date {target_date.isoformat()}"
    )
    return slots


def build_slots(
    schedule: DaySchedule,
    policy: AvailabilityPolicy,
    duration_minutes: int,
    busy: list[BusyInterval],
    now: datetime,
) -> list[Slot]:
    """Pure slot walk over a resolved day schedule."""
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=duration_minutes + policy.buffer_minutes)

    earliest = now + timedelta(hours=policy.minimum_notice_hours)
    latest = now + timedelta(days=policy.advance_booking_days)
    busy_intervals = merge_intervals(b.interval for b in busy)

    slots: list[Slot] = []
    current = schedule.working_hours.start
    while current + duration <= schedule.working_hours.end:
        candidate = Interval(current, current + duration)

        available = (
            not overlaps_any(candidate, schedule.breaks)
            and not overlaps_any(candidate, busy_intervals)
            and candidate.start >= now
            and candidate.start >= earliest
            and candidate.start <= latest
        )

        slots.append(Slot(
            start=candidate.start.astimezone(policy.timezone),
            end=candidate.end.astimezone(policy.timezone),
            available=available,
        ))

        current += step

    return slots
