"""Tests for the read-only appointment projection."""

from datetime import timedelta

import pytest

from conftest import MONDAY, local
from tourbook.core.exceptions import NotFoundError, ValidationError
from tourbook.models import AppointmentStatus
from tourbook.services.appointment.appointment_query_service import AppointmentQueryService


@pytest.fixture
def calendar(seed, add_appointment):
    return [
        add_appointment(local(MONDAY, 14), 60, AppointmentStatus.PENDING),
        add_appointment(local(MONDAY, 9), 30, AppointmentStatus.CONFIRMED),
        add_appointment(local(MONDAY, 11), 60, AppointmentStatus.CANCELLED),
        add_appointment(local(MONDAY + timedelta(days=1), 9), 60, AppointmentStatus.CONFIRMED),
        add_appointment(local(MONDAY, 10), 60, provider_id=seed.listing_agent_id),
    ]


class TestListAppointments:
    def test_range_is_half_open_and_sorted(self, db, seed, calendar):
        found = AppointmentQueryService.list_appointments(
            db, seed.provider_id, local(MONDAY, 0), local(MONDAY + timedelta(days=1), 0),
        )
        assert [a.scheduled_start for a in found] == [local(MONDAY, 9), local(MONDAY, 11), local(MONDAY, 14)]

    def test_start_boundary_included_end_excluded(self, db, seed, calendar):
        found = AppointmentQueryService.list_appointments(db, seed.provider_id, local(MONDAY, 9), local(MONDAY, 14))
        assert [a.scheduled_start for a in found] == [local(MONDAY, 9), local(MONDAY, 11)]

    def test_status_filter(self, db, seed, calendar):
        found = AppointmentQueryService.list_appointments(
            db, seed.provider_id, local(MONDAY, 0), local(MONDAY, 23),
            statuses=["pending", AppointmentStatus.CONFIRMED],
        )
        assert {a.status for a in found} == {"pending", "confirmed"}
        assert len(found) == 2

    def test_unknown_status_rejected(self, db, seed, calendar):
        with pytest.raises(ValidationError) as exc_info:
            AppointmentQueryService.list_appointments(
                db, seed.provider_id, local(MONDAY, 0), local(MONDAY, 23), statuses=["booked"],
            )
        assert exc_info.value.issues[0].field == "status"

    def test_naive_bounds_rejected(self, db, seed):
        with pytest.raises(ValidationError) as exc_info:
            AppointmentQueryService.list_appointments(
                db, seed.provider_id, local(MONDAY, 0).replace(tzinfo=None), local(MONDAY, 23).replace(tzinfo=None),
            )
        assert {i.field for i in exc_info.value.issues} == {"start", "end"}

    def test_end_must_follow_start(self, db, seed):
        with pytest.raises(ValidationError):
            AppointmentQueryService.list_appointments(db, seed.provider_id, local(MONDAY, 9), local(MONDAY, 9))

    def test_unknown_provider(self, db, seed):
        with pytest.raises(NotFoundError):
            AppointmentQueryService.list_appointments(db, seed.buyer_id, local(MONDAY, 0), local(MONDAY, 23))


class TestLookup:
    def test_get_by_string_id(self, db, calendar):
        assert AppointmentQueryService.get_appointment(db, str(calendar[0].id)).id == calendar[0].id

    def test_malformed_id_is_not_found(self, db, seed):
        with pytest.raises(NotFoundError):
            AppointmentQueryService.get_appointment(db, "12345")

    def test_summarize(self, db, seed, calendar):
        start, end = local(MONDAY, 0), local(MONDAY, 23)
        found = AppointmentQueryService.list_appointments(db, seed.provider_id, start, end, statuses=["confirmed"])
        summary = AppointmentQueryService.summarize(seed.provider_id, found, start, end, ["confirmed"])

        assert summary["provider_id"] == str(seed.provider_id)
        assert summary["total_appointments"] == 1
        assert summary["filters"]["status"] == ["confirmed"]
        assert summary["filters"]["start"] == start.isoformat()
        assert summary["appointments"] == found
