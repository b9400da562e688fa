"""Tests for BookingService: commit-time checks, the status machine and side effects."""

from datetime import timedelta, timezone
from types import SimpleNamespace

import pytest

from conftest import MONDAY, MONDAY_NINE_TO_FIVE, NOW, local
from tourbook.core.exceptions import (
    ConflictError,
    ConflictReason,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from tourbook.models import Appointment, AppointmentStatus
from tourbook.schemas.appointment import Actor, ActorRole
from tourbook.schemas.availability import Blackout
from tourbook.services.appointment.booking_service import BookingService
from tourbook.services.availability.rule_store import RuleStore
from tourbook.services.availability.slot_generator import SlotGenerator
import tourbook.tasks.notification_tasks as notification_tasks


@pytest.fixture
def events(monkeypatch):
    """Capture everything the notification tasks would deliver"""
    sent = []

    def record(event_type, data):
        sent.append(SimpleNamespace(type=event_type, data=data))
        return {"status": "logged", "event": event_type}

    monkeypatch.setattr(notification_tasks, "post_event", record)
    return sent


def book(db, seed, hour, minute=0, buyer_id=None, **kwargs):
    kwargs.setdefault("now", NOW)
    return BookingService.submit_booking(
        db,
        property_id=seed.property_id,
        buyer_id=buyer_id or seed.buyer_id,
        provider_id=seed.provider_id,
        requested_start=local(MONDAY, hour, minute),
        **kwargs,
    )


def buyer(seed):
    return Actor(id=seed.buyer_id, role=ActorRole.BUYER)


def provider(seed):
    return Actor(id=seed.provider_id, role=ActorRole.PROVIDER)


def admin(seed):
    return Actor(id=seed.admin_id, role=ActorRole.ADMIN)


# ── submit ──────────────────────────────────────────────────────────


class TestSubmit:
    def test_booking_starts_pending(self, db, monday_hours, events):
        appointment = book(db, monday_hours, 10, notes="Bring the floor plan")

        assert appointment.status == AppointmentStatus.PENDING.value
        assert appointment.scheduled_start == local(MONDAY, 10)
        assert appointment.scheduled_start.tzinfo == timezone.utc
        assert appointment.duration_minutes == 60
        assert appointment.notes == "Bring the floor plan"
        assert appointment.reschedule_count == 0
        assert appointment.created_at == NOW

    def test_booking_sends_notification_and_created_event(self, db, monday_hours, events):
        appointment = book(db, monday_hours, 10)

        assert [e.type for e in events] == ["booking.created", "appointment.created"]
        notification = events[0].data
        assert notification["provider_contact"] == "avery@example.com"
        assert notification["buyer_name"] == "Blair Buyer"
        assert notification["property_address"] == "12 Elm St, Springfield, IL 62701"
        assert notification["type"] == "in_person"
        assert events[1].data["appointment_id"] == str(appointment.id)
        assert events[1].data["status"] == "pending"

    def test_booked_slot_shows_unavailable(self, db, monday_hours, events):
        book(db, monday_hours, 10)
        slots = SlotGenerator.list_slots(db, monday_hours.provider_id, MONDAY, now=NOW)
        assert {s.start.strftime("%H:%M"): s.available for s in slots}["10:00"] is False

    def test_virtual_tour_with_custom_duration(self, db, monday_hours, events):
        appointment = book(db, monday_hours, 13, duration_minutes=30, appointment_type="virtual")
        assert appointment.appointment_type == "virtual"
        assert appointment.scheduled_end == local(MONDAY, 13, 30)

    def test_notification_failure_keeps_booking(self, db, monday_hours, monkeypatch):
        def broken(payload):
            raise ConnectionError("broker down")

        monkeypatch.setattr(notification_tasks, "deliver_booking_notification", SimpleNamespace(delay=broken))
        monkeypatch.setattr(notification_tasks, "publish_change_event", SimpleNamespace(delay=broken))

        appointment = book(db, monday_hours, 10)

        assert db.get(Appointment, appointment.id).status == AppointmentStatus.PENDING.value


# ── conflicts ───────────────────────────────────────────────────────


class TestConflicts:
    def test_outside_window(self, db, monday_hours, events):
        with pytest.raises(ConflictError) as exc_info:
            book(db, monday_hours, 8)
        assert exc_info.value.reason == ConflictReason.OUTSIDE_WINDOW

    def test_blackout(self, db, seed, events):
        rules = [MONDAY_NINE_TO_FIVE, Blackout(start_datetime=local(MONDAY, 13), end_datetime=local(MONDAY, 14))]
        RuleStore.replace_rules(db, seed.provider_id, rules, 15, 15)

        with pytest.raises(ConflictError) as exc_info:
            book(db, seed, 13, 30)
        assert exc_info.value.reason == ConflictReason.BLACKOUT

    def test_overlaps_including_buffer(self, db, monday_hours, events):
        book(db, monday_hours, 10)

        with pytest.raises(ConflictError) as exc_info:
            book(db, monday_hours, 11, buyer_id=monday_hours.other_buyer_id)
        assert exc_info.value.reason == ConflictReason.OVERLAPS_EXISTING_APPOINTMENT

        assert book(db, monday_hours, 11, 15, buyer_id=monday_hours.other_buyer_id)

    def test_rejected_booking_writes_nothing(self, db, monday_hours, events):
        with pytest.raises(ConflictError):
            book(db, monday_hours, 18)
        assert db.query(Appointment).count() == 0
        assert events == []


# ── request validation ──────────────────────────────────────────────


class TestValidation:
    def test_buyer_cannot_be_the_provider(self, db, monday_hours, events):
        with pytest.raises(ValidationError) as exc_info:
            book(db, monday_hours, 10, buyer_id=monday_hours.provider_id)
        assert exc_info.value.issues[0].field == "buyer_id"

    def test_listing_agent_cannot_tour_own_listing(self, db, monday_hours, events):
        with pytest.raises(ValidationError):
            book(db, monday_hours, 10, buyer_id=monday_hours.listing_agent_id)

    def test_naive_start_rejected(self, db, monday_hours, events):
        with pytest.raises(ValidationError) as exc_info:
            BookingService.submit_booking(
                db, monday_hours.property_id, monday_hours.buyer_id, monday_hours.provider_id,
                local(MONDAY, 10).replace(tzinfo=None), now=NOW,
            )
        assert exc_info.value.issues[0].field == "requested_start"

    @pytest.mark.parametrize("duration", [0, -60, 481])
    def test_duration_bounds(self, db, monday_hours, events, duration):
        with pytest.raises(ValidationError):
            book(db, monday_hours, 10, duration_minutes=duration)

    def test_start_in_the_past(self, db, monday_hours, events):
        with pytest.raises(ValidationError):
            book(db, monday_hours, 10, now=local(MONDAY, 12))

    def test_start_beyond_horizon(self, db, monday_hours, events):
        with pytest.raises(ValidationError):
            book(db, monday_hours, 10, now=NOW - timedelta(days=120))

    def test_unknown_appointment_type(self, db, monday_hours, events):
        with pytest.raises(ValidationError) as exc_info:
            book(db, monday_hours, 10, appointment_type="drive_by")
        assert exc_info.value.issues[0].field == "appointment_type"

    def test_every_issue_reported_together(self, db, monday_hours, events):
        with pytest.raises(ValidationError) as exc_info:
            book(db, monday_hours, 10, duration_minutes=0, appointment_type="drive_by")
        assert {i.field for i in exc_info.value.issues} == {"duration_minutes", "appointment_type"}

    def test_unknown_property(self, db, monday_hours, events):
        with pytest.raises(NotFoundError):
            BookingService.submit_booking(
                db, "00000000-0000-0000-0000-000000000000", monday_hours.buyer_id,
                monday_hours.provider_id, local(MONDAY, 10), now=NOW,
            )


# ── reschedule ──────────────────────────────────────────────────────


class TestReschedule:
    def test_reschedule_records_history(self, db, monday_hours, events):
        appointment = book(db, monday_hours, 10)
        appointment.reminder_24h_sent_at = NOW
        db.commit()

        moved = BookingService.reschedule_appointment(
            db, appointment.id, local(MONDAY, 14), buyer(monday_hours), reason="Work meeting", now=NOW,
        )

        assert moved.status == AppointmentStatus.RESCHEDULED.value
        assert moved.scheduled_start == local(MONDAY, 14)
        assert moved.scheduled_end == local(MONDAY, 15)
        assert moved.original_start == local(MONDAY, 10)
        assert moved.reschedule_count == 1
        assert moved.reschedule_reason == "Work meeting"
        assert moved.reminder_24h_sent_at is None

        assert events[-1].type == "appointment.rescheduled"
        assert events[-1].data["detail"]["reason"] == "Work meeting"

    def test_own_slot_is_not_a_conflict(self, db, monday_hours, events):
        appointment = book(db, monday_hours, 10)
        moved = BookingService.reschedule_appointment(
            db, appointment.id, local(MONDAY, 10, 30), provider(monday_hours), now=NOW,
        )
        assert moved.scheduled_start == local(MONDAY, 10, 30)

    def test_conflict_leaves_appointment_unchanged(self, db, monday_hours, events):
        appointment = book(db, monday_hours, 10)
        book(db, monday_hours, 14, buyer_id=monday_hours.other_buyer_id)

        with pytest.raises(ConflictError) as exc_info:
            BookingService.reschedule_appointment(
                db, appointment.id, local(MONDAY, 14, 30), buyer(monday_hours), now=NOW,
            )
        assert exc_info.value.reason == ConflictReason.OVERLAPS_EXISTING_APPOINTMENT

        unchanged = db.get(Appointment, appointment.id)
        assert unchanged.scheduled_start == local(MONDAY, 10)
        assert unchanged.status == AppointmentStatus.PENDING.value
        assert unchanged.original_start is None

    def test_rescheduled_appointment_must_be_accepted_first(self, db, monday_hours, events):
        appointment = book(db, monday_hours, 10)
        BookingService.reschedule_appointment(db, appointment.id, local(MONDAY, 12), buyer(monday_hours), now=NOW)

        with pytest.raises(InvalidTransitionError):
            BookingService.reschedule_appointment(
                db, appointment.id, local(MONDAY, 14), buyer(monday_hours), now=NOW,
            )

    def test_accept_then_reschedule_again_keeps_first_original(self, db, monday_hours, events):
        appointment = book(db, monday_hours, 10)
        BookingService.reschedule_appointment(db, appointment.id, local(MONDAY, 12), buyer(monday_hours), now=NOW)

        accepted = BookingService.accept_reschedule(db, appointment.id, provider(monday_hours))
        assert accepted.status == AppointmentStatus.PENDING.value
        assert events[-1].type == "appointment.reschedule_accepted"

        moved = BookingService.reschedule_appointment(
            db, appointment.id, local(MONDAY, 15), buyer(monday_hours), now=NOW,
        )
        assert moved.original_start == local(MONDAY, 10)
        assert moved.reschedule_count == 2

    def test_stranger_cannot_reschedule(self, db, monday_hours, events):
        appointment = book(db, monday_hours, 10)
        stranger = Actor(id=monday_hours.other_buyer_id, role=ActorRole.BUYER)

        with pytest.raises(PermissionDeniedError):
            BookingService.reschedule_appointment(db, appointment.id, local(MONDAY, 14), stranger, now=NOW)

    def test_reschedule_outside_window(self, db, monday_hours, events):
        appointment = book(db, monday_hours, 10)
        with pytest.raises(ConflictError) as exc_info:
            BookingService.reschedule_appointment(
                db, appointment.id, local(MONDAY, 16, 30), buyer(monday_hours), now=NOW,
            )
        assert exc_info.value.reason == ConflictReason.OUTSIDE_WINDOW


# ── status transitions ──────────────────────────────────────────────


class TestTransitions:
    def test_cancel_frees_the_slot(self, db, monday_hours, events):
        appointment = book(db, monday_hours, 10)

        cancelled = BookingService.cancel_appointment(
            db, appointment.id, buyer(monday_hours), reason="Bought elsewhere", now=NOW,
        )
        assert cancelled.status == AppointmentStatus.CANCELLED.value
        assert cancelled.cancelled_at == NOW
        assert cancelled.cancelled_by == monday_hours.buyer_id
        assert cancelled.cancellation_reason == "Bought elsewhere"
        assert events[-1].type == "appointment.cancelled"

        rebooked = book(db, monday_hours, 10, buyer_id=monday_hours.other_buyer_id)
        assert rebooked.status == AppointmentStatus.PENDING.value

    def test_confirm_then_complete(self, db, monday_hours, events):
        appointment = book(db, monday_hours, 10)

        confirmed = BookingService.confirm_appointment(db, appointment.id, provider(monday_hours))
        assert confirmed.status == AppointmentStatus.CONFIRMED.value

        completed = BookingService.complete_appointment(db, appointment.id, provider(monday_hours))
        assert completed.status == AppointmentStatus.COMPLETED.value
        assert [e.type for e in events][-2:] == ["appointment.confirmed", "appointment.completed"]

    def test_buyer_cannot_confirm(self, db, monday_hours, events):
        appointment = book(db, monday_hours, 10)
        with pytest.raises(PermissionDeniedError):
            BookingService.confirm_appointment(db, appointment.id, buyer(monday_hours))

    def test_admin_may_confirm(self, db, monday_hours, events):
        appointment = book(db, monday_hours, 10)
        assert BookingService.confirm_appointment(db, appointment.id, admin(monday_hours)).status == "confirmed"

    def test_other_provider_cannot_confirm(self, db, monday_hours, events):
        appointment = book(db, monday_hours, 10)
        other = Actor(id=monday_hours.listing_agent_id, role=ActorRole.PROVIDER)
        with pytest.raises(PermissionDeniedError):
            BookingService.confirm_appointment(db, appointment.id, other)

    @pytest.mark.parametrize("terminal", ["cancel", "complete"])
    def test_terminal_states_are_final(self, db, monday_hours, events, terminal):
        appointment = book(db, monday_hours, 10)
        if terminal == "cancel":
            BookingService.cancel_appointment(db, appointment.id, buyer(monday_hours))
        else:
            BookingService.confirm_appointment(db, appointment.id, provider(monday_hours))
            BookingService.complete_appointment(db, appointment.id, provider(monday_hours))

        with pytest.raises(InvalidTransitionError):
            BookingService.confirm_appointment(db, appointment.id, provider(monday_hours))
        with pytest.raises(InvalidTransitionError):
            BookingService.cancel_appointment(db, appointment.id, buyer(monday_hours))
        with pytest.raises(InvalidTransitionError):
            BookingService.reschedule_appointment(
                db, appointment.id, local(MONDAY, 14), buyer(monday_hours), now=NOW,
            )

    def test_pending_cannot_complete(self, db, monday_hours, events):
        appointment = book(db, monday_hours, 10)
        with pytest.raises(InvalidTransitionError):
            BookingService.complete_appointment(db, appointment.id, provider(monday_hours))

    def test_accept_requires_rescheduled(self, db, monday_hours, events):
        appointment = book(db, monday_hours, 10)
        with pytest.raises(InvalidTransitionError):
            BookingService.accept_reschedule(db, appointment.id, buyer(monday_hours))

    def test_unknown_appointment(self, db, monday_hours, events):
        with pytest.raises(NotFoundError):
            BookingService.cancel_appointment(db, "no-such-appointment", admin(monday_hours))
