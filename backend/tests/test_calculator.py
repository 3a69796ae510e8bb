"""
Tests for slot generation.

Provider works Monday 09:00-17:00 Europe/Belgrade; NOW is the day before.
"""

from datetime import datetime, timedelta, timezone

import pytest

from appointments.models.generated import Services
from appointments.services import repository
from appointments.services.exceptions import InvalidInput, ProviderNotFound, ServiceNotFound
from appointments.services.slots.calculator import generate_slots
from appointments.services.slots.intervals import Interval, overlaps

from conftest import (
    BELGRADE,
    INACTIVE_SERVICE,
    MONDAY,
    NOW,
    OTHER_PROVIDER_SERVICE,
    PROVIDER_ID,
    SERVICE_30,
    SERVICE_60,
    TUESDAY,
    WORKDAY,
    FakeCalendar,
    local,
    set_settings,
)


def starts(slots):
    return [s.start.strftime("%H:%M") for s in slots]


def available(slots):
    return [s.start.strftime("%H:%M") for s in slots if s.available]


def book(db, start, minutes=60):
    return repository.create_booking(
        db, PROVIDER_ID, SERVICE_60, client_id=7, start=start, end=start + timedelta(minutes=minutes),
    )


class TestSlotGrid:

    def test_buffer_15_grid(self, db):
        slots = generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=NOW)

        assert starts(slots) == ["09:00", "10:15", "11:30", "12:45", "14:00", "15:15"]
        assert all(s.available for s in slots)
        assert slots[-1].end == local(MONDAY, 16, 15)

    def test_buffer_0_includes_last_fitting_slot(self, db):
        set_settings(db, buffer_minutes=0)

        slots = generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=NOW)

        assert len(slots) == 8
        assert slots[-1].start == local(MONDAY, 16)
        assert slots[-1].end == local(MONDAY, 17)

    def test_step_is_duration_plus_buffer(self, db):
        slots = generate_slots(db, PROVIDER_ID, SERVICE_30, MONDAY, now=NOW)

        gaps = {b.start - a.start for a, b in zip(slots, slots[1:])}
        assert gaps == {timedelta(minutes=45)}
        assert all(s.end - s.start == timedelta(minutes=30) for s in slots)

    def test_slots_are_provider_local(self, db):
        slots = generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=NOW)

        assert slots[0].start.utcoffset() == timedelta(hours=1)
        assert slots[0].start == datetime(2030, 1, 7, 8, 0, tzinfo=timezone.utc)

    def test_disabled_weekday_is_empty(self, db):
        assert generate_slots(db, PROVIDER_ID, SERVICE_60, TUESDAY, now=NOW) == []

    def test_missing_settings_is_empty(self, db):
        from appointments.models.generated import ProviderProfiles
        db.get(ProviderProfiles, PROVIDER_ID).availability_settings = None
        db.commit()

        assert generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=NOW) == []

    def test_idempotent(self, db):
        book(db, local(MONDAY, 10, 15))

        first = generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=NOW)
        second = generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=NOW)

        assert first == second


class TestAvailability:

    def test_break_marks_overlapping_slots(self, db):
        set_settings(db, week_schedule={"monday": {
            **WORKDAY, "breaks": [{"start": "12:00", "end": "13:00"}],
        }})

        slots = generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=NOW)

        assert starts(slots) == ["09:00", "10:15", "11:30", "12:45", "14:00", "15:15"]
        assert available(slots) == ["09:00", "10:15", "14:00", "15:15"]

    def test_break_with_zero_buffer(self, db):
        set_settings(db, buffer_minutes=0, week_schedule={"monday": {
            **WORKDAY, "breaks": [{"start": "12:00", "end": "13:00"}],
        }})

        slots = generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=NOW)

        by_time = {s.start.strftime("%H:%M"): s.available for s in slots}
        assert by_time["11:00"] is True
        assert by_time["12:00"] is False
        assert by_time["13:00"] is True

    def test_booking_marks_slot_unavailable_without_shifting(self, db):
        book(db, local(MONDAY, 10, 15))

        slots = generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=NOW)

        assert starts(slots) == ["09:00", "10:15", "11:30", "12:45", "14:00", "15:15"]
        assert available(slots) == ["09:00", "11:30", "12:45", "14:00", "15:15"]

    def test_off_grid_booking_blocks_overlapped_slots(self, db):
        book(db, local(MONDAY, 10), minutes=120)

        slots = generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=NOW)

        # 09:00-10:00 only touches the booking
        assert available(slots) == ["09:00", "12:45", "14:00", "15:15"]

    def test_previous_day_booking_blocks_early_slot(self, db):
        set_settings(db, buffer_minutes=0, week_schedule={
            "monday": WORKDAY,
            "tuesday": {"enabled": True, "working_hours": {"start": "00:00", "end": "03:00"}},
        })
        book(db, local(MONDAY, 23, 30))

        slots = generate_slots(db, PROVIDER_ID, SERVICE_60, TUESDAY, now=NOW)

        assert starts(slots) == ["00:00", "01:00", "02:00"]
        assert available(slots) == ["01:00", "02:00"]

    def test_cancelled_booking_frees_slot(self, db):
        booking = book(db, local(MONDAY, 10, 15))
        repository.set_booking_status(db, booking, repository.STATUS_CANCELLED)

        slots = generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=NOW)

        assert all(s.available for s in slots)

    def test_minimum_notice(self, db):
        set_settings(db, minimum_notice_hours=2)
        now = local(MONDAY, 8)

        slots = generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=now)

        assert available(slots) == ["10:15", "11:30", "12:45", "14:00", "15:15"]

    def test_minimum_notice_from_mid_morning(self, db):
        set_settings(db, minimum_notice_hours=2, buffer_minutes=0)

        slots = generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=local(MONDAY, 10))

        assert available(slots) == ["12:00", "13:00", "14:00", "15:00", "16:00"]

    def test_past_slots_unavailable(self, db):
        slots = generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=local(MONDAY, 12))

        assert available(slots) == ["12:45", "14:00", "15:15"]

    def test_advance_window(self, db):
        set_settings(db, advance_booking_days=1)

        slots = generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=NOW)

        # NOW + 1 day is 13:00 local
        assert available(slots) == ["09:00", "10:15", "11:30", "12:45"]

    def test_no_available_slot_overlaps_busy_or_break(self, db):
        set_settings(db, week_schedule={"monday": {
            **WORKDAY, "breaks": [{"start": "11:45", "end": "12:10"}],
        }})
        book(db, local(MONDAY, 9, 30), minutes=30)
        book(db, local(MONDAY, 14, 50), minutes=20)
        blocked = [
            Interval(local(MONDAY, 11, 45), local(MONDAY, 12, 10)),
            Interval(local(MONDAY, 9, 30), local(MONDAY, 10)),
            Interval(local(MONDAY, 14, 50), local(MONDAY, 15, 10)),
        ]

        slots = generate_slots(db, PROVIDER_ID, SERVICE_30, MONDAY, now=NOW)

        for slot in slots:
            if slot.available:
                assert not any(overlaps(slot.interval, b) for b in blocked)
        assert any(not s.available for s in slots)


class TestExternalCalendar:

    def test_external_busy_marks_slot(self, db, integration):
        calendar = FakeCalendar(busy=[Interval(local(MONDAY, 14), local(MONDAY, 14, 30))])

        slots = generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=NOW, calendar=calendar)

        assert "14:00" not in available(slots)
        assert len(available(slots)) == 5

    def test_calendar_timeout_fails_open(self, db, integration):
        calendar = FakeCalendar(error=TimeoutError("timed out"))

        slots = generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=NOW, calendar=calendar)

        assert len(slots) == 6
        assert all(s.available for s in slots)

    def test_expired_token_refreshed_once(self, db, integration):
        calendar = FakeCalendar(
            busy=[Interval(local(MONDAY, 9), local(MONDAY, 9, 30))],
            reject_tokens={"old-access"},
        )

        slots = generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=NOW, calendar=calendar)

        assert calendar.refresh_calls == 1
        assert not slots[0].available
        db.refresh(integration)
        assert integration.access_token == "new-access"

    def test_rejected_refreshed_token_fails_open(self, db, integration):
        calendar = FakeCalendar(reject_tokens={"old-access", "new-access"})

        slots = generate_slots(db, PROVIDER_ID, SERVICE_60, MONDAY, now=NOW, calendar=calendar)

        assert calendar.refresh_calls == 1
        assert all(s.available for s in slots)


class TestErrors:

    def test_unknown_service(self, db):
        with pytest.raises(ServiceNotFound):
            generate_slots(db, PROVIDER_ID, 999, MONDAY, now=NOW)

    def test_inactive_service(self, db):
        with pytest.raises(ServiceNotFound):
            generate_slots(db, PROVIDER_ID, INACTIVE_SERVICE, MONDAY, now=NOW)

    def test_service_of_another_provider(self, db):
        with pytest.raises(ServiceNotFound):
            generate_slots(db, PROVIDER_ID, OTHER_PROVIDER_SERVICE, MONDAY, now=NOW)

    def test_unknown_provider(self, db):
        with pytest.raises((ProviderNotFound, ServiceNotFound)):
            generate_slots(db, 999, SERVICE_60, MONDAY, now=NOW)

    def test_duration_out_of_bounds(self, db):
        db.add(Services(id=50, provider_id=PROVIDER_ID, name="Marathon", duration_minutes=500, price=1.0))
        db.commit()

        with pytest.raises(InvalidInput):
            generate_slots(db, PROVIDER_ID, 50, MONDAY, now=NOW)
