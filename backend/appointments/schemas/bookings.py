# backend/appointments/schemas/bookings.py

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from ..services.repository import from_db_datetime


class BookingCreate(BaseModel):
    provider_id: int
    service_id: int
    client_id: int

    start: datetime
    note: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("start")
    @classmethod
    def validate_start(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("start must include a UTC offset")
        return v


class BookingRead(BaseModel):
    id: int

    provider_id: int
    service_id: int
    client_id: int

    date_start: datetime
    date_end: datetime

    status: str
    sync_status: str
    external_event_id: Optional[str] = None
    notes: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("date_start", "date_end", "created_at", "updated_at", mode="before")
    @classmethod
    def parse_utc(cls, v):
        # Stored as naive UTC text
        if isinstance(v, str):
            return from_db_datetime(v)
        return v
