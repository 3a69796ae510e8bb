# backend/appointments/services/slots/busy.py
"""
Busy intervals of a provider on one local date.

Sources:
✓ Bookings with status pending/confirmed overlapping the local day
  (a booking running past midnight is busy on both days)
✓ External calendar busy periods (best-effort, optional)

The external calendar never blocks: a timeout, auth failure or missing
integration contributes zero intervals. Commit validation reads bookings only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from .. import calendar_sync, repository
from ..exceptions import IntegrationUnavailable
from .intervals import Interval
from .rules import local_day_bounds

logger = logging.getLogger(__name__)


class BusySource(str, Enum):
    BOOKING = "booking"
    EXTERNAL_CALENDAR = "external_calendar"


@dataclass(frozen=True)
class BusyInterval:
    interval: Interval
    source: BusySource

    @property
    def start(self):
        return self.interval.start

    @property
    def end(self):
        return self.interval.end


def get_busy_intervals(
    db: Session,
    provider_id: int,
    target_date: date,
    tz: ZoneInfo,
    *,
    include_external: bool = True,
    calendar: calendar_sync.CalendarClient | None = None,
) -> list[BusyInterval]:
    """
    Collect busy intervals for the provider-local date.

    Order is unspecified; callers treat the result as a set.
    """
    busy = [
        BusyInterval(_booking_interval(booking), BusySource.BOOKING)
        for booking in repository.find_bookings_for_provider_on_date(
            db, provider_id, target_date, tz
        )
    ]

    if include_external:
        busy.extend(
            BusyInterval(interval, BusySource.EXTERNAL_CALENDAR)
            for interval in _external_busy(db, provider_id, target_date, tz, calendar)
        )

    return busy


def _booking_interval(booking) -> Interval:
    return Interval(
        repository.from_db_datetime(booking.date_start),
        repository.from_db_datetime(booking.date_end),
    )


def _external_busy(
    db: Session,
    provider_id: int,
    target_date: date,
    tz: ZoneInfo,
    calendar: calendar_sync.CalendarClient | None,
) -> list[Interval]:
    try:
        return calendar_sync.fetch_external_busy(
            db, provider_id, local_day_bounds(target_date, tz), calendar
        )
    except IntegrationUnavailable as e:
        logger.warning(
            f"External calendar unavailable for provider {provider_id} "
            f"on {target_date.isoformat()}: {e}"
        )
        return []
