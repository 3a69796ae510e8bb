# backend/appointments/schemas/availability.py
"""
Pydantic schemas for provider availability settings.

The same models validate the JSON stored in
provider_profiles.availability_settings and the provider-facing API payload.
"""

from datetime import datetime
from typing import Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

DayName = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def _check_time(value: str) -> str:
    try:
        datetime.strptime(value, "%H:%M")
    except ValueError:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    return value


class TimeRangeSchema(BaseModel):
    start: str  # "HH:MM"
    end: str    # "HH:MM"

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return _check_time(v)


class DaySettingsSchema(BaseModel):
    enabled: bool = False
    working_hours: TimeRangeSchema = TimeRangeSchema(start="09:00", end="17:00")
    breaks: list[TimeRangeSchema] = []


class AvailabilitySettingsSchema(BaseModel):
    """Stored JSON shape (provider_profiles.availability_settings)."""
    week_schedule: dict[DayName, DaySettingsSchema] = {}
    buffer_minutes: Optional[int] = Field(default=None, ge=0)
    advance_booking_days: Optional[int] = Field(default=None, ge=1)
    minimum_notice_hours: Optional[int] = Field(default=None, ge=0)


class AvailabilityUpdate(AvailabilitySettingsSchema):
    """PUT payload: settings plus the provider timezone."""
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone {v!r}")
        return v


class AvailabilityRead(BaseModel):
    provider_id: int
    timezone: str
    week_schedule: dict[DayName, DaySettingsSchema]
    buffer_minutes: int
    advance_booking_days: int
    minimum_notice_hours: int
