# backend/appointments/services/slots/__init__.py
"""
Slots calculation module.

Rules: weekly schedule and booking policy of a provider
Busy: committed bookings + best-effort external calendar
Calculator: fixed-step slot grid annotated with availability
"""

from .config import BookingConfig, get_booking_config
from .intervals import Interval, overlaps, contains, merge_intervals
from .rules import AvailabilityPolicy, Weekday, get_day_schedule, update_policy
from .busy import BusyInterval, BusySource, get_busy_intervals
from .calculator import Slot, generate_slots
from .redis_store import SlotsRedisStore
from .invalidator import invalidate_provider_cache

__all__ = [
    "BookingConfig",
    "get_booking_config",
    "Interval",
    "overlaps",
    "contains",
    "merge_intervals",
    "AvailabilityPolicy",
    "Weekday",
    "get_day_schedule",
    "update_policy",
    "BusyInterval",
    "BusySource",
    "get_busy_intervals",
    "Slot",
    "generate_slots",
    "SlotsRedisStore",
    "invalidate_provider_cache",
]
