# backend/appointments/schemas/slots.py
"""
Pydantic schemas for slots API.
"""

from datetime import date, datetime
from pydantic import BaseModel


class SlotInfo(BaseModel):
    """A single candidate slot, in the provider's timezone."""
    start: datetime
    end: datetime
    time: str  # "HH:MM" local
    available: bool

    model_config = {"from_attributes": True}


class SlotsDayResponse(BaseModel):
    """Response with all candidate slots of a day."""
    provider_id: int
    service_id: int
    date: date
    timezone: str
    slots: list[SlotInfo]
    available_count: int = 0
    cached: bool = False

    model_config = {"from_attributes": True}
