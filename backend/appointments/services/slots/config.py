# backend/appointments/services/slots/config.py
"""
Defaults and time helpers for slot generation.
"""

from dataclasses import dataclass
from datetime import time
from functools import lru_cache


@dataclass(frozen=True)
class BookingConfig:
    """
    Defaults applied when a provider's availability settings omit a field.

    Attributes:
        buffer_minutes: Gap between consecutive slots
        advance_booking_days: How many days ahead a slot can be booked
        minimum_notice_hours: Minimum hours between now and a bookable slot
        min_duration_minutes / max_duration_minutes: Allowed service duration
        default_timezone: Zone used when a provider has none configured
    """
    buffer_minutes: int = 15
    advance_booking_days: int = 60
    minimum_notice_hours: int = 0
    min_duration_minutes: int = 15
    max_duration_minutes: int = 480
    default_timezone: str = "Europe/Belgrade"

    def __post_init__(self):
        """Validate configuration."""
        if self.buffer_minutes < 0:
            raise ValueError(f"buffer_minutes must be >= 0, got {self.buffer_minutes}")
        if self.advance_booking_days < 1:
            raise ValueError(f"advance_booking_days must be >= 1, got {self.advance_booking_days}")
        if self.minimum_notice_hours < 0:
            raise ValueError(f"minimum_notice_hours must be >= 0, got {self.minimum_notice_hours}")

    def is_valid_duration(self, minutes: int) -> bool:
        return self.min_duration_minutes <= minutes <= self.max_duration_minutes


@lru_cache
def get_booking_config() -> BookingConfig:
    """Get booking configuration (singleton)."""
    return BookingConfig()


def parse_time_str(value: str) -> time:
    """Parse "HH:MM" into a time object. Raises ValueError on bad input."""
    hour, minute = (int(part) for part in value.split(":"))
    return time(hour, minute)
