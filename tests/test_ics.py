"""Tests for the .ics invitation export."""

import pytest

from conftest import MONDAY, NOW, local
from tourbook.models import AppointmentStatus, Profile, Property
from tourbook.services.calendar.ics_export import IcsExporter, escape_text, fold_line


@pytest.fixture
def invite(db, seed, add_appointment):
    def _invite(status=AppointmentStatus.CONFIRMED, **changes):
        appointment = add_appointment(local(MONDAY, 10), 60, status)
        for name, value in changes.items():
            setattr(appointment, name, value)
        text = IcsExporter.build_invite(
            appointment,
            db.get(Profile, seed.provider_id),
            db.get(Profile, seed.buyer_id),
            db.get(Property, seed.property_id),
            now=NOW,
        )
        return appointment, text

    return _invite


def unfold(text):
    return text.replace("\r\n ", "")


class TestInvite:
    def test_event_fields(self, invite):
        appointment, text = invite()
        lines = unfold(text).split("\r\n")

        assert lines[0] == "BEGIN:VCALENDAR"
        assert "METHOD:REQUEST" in lines
        assert f"UID:tour-{appointment.id}@tourbook.app" in lines
        assert "DTSTAMP:20260225T120000Z" in lines
        assert "DTSTART:20260302T150000Z" in lines
        assert "DTEND:20260302T160000Z" in lines
        assert "SUMMARY:Property Tour - 12 Elm St" in lines
        assert "LOCATION:12 Elm St\\, Springfield\\, IL 62701" in lines
        assert "STATUS:CONFIRMED" in lines
        assert 'ORGANIZER;CN="Avery Agent":mailto:avery@example.com' in lines
        assert 'ATTENDEE;CN="Blair Buyer";RSVP=TRUE:mailto:blair@example.com' in lines
        assert "TRIGGER:-PT1H" in lines
        assert text.endswith("END:VCALENDAR\r\n")

    def test_pending_is_tentative(self, invite):
        _, text = invite(AppointmentStatus.PENDING)
        assert "STATUS:TENTATIVE" in text

    def test_cancelled_sends_cancel(self, invite):
        _, text = invite(AppointmentStatus.CANCELLED)
        assert "METHOD:CANCEL" in text
        assert "STATUS:CANCELLED" in text

    def test_sequence_follows_reschedules(self, invite):
        _, text = invite(AppointmentStatus.RESCHEDULED, reschedule_count=2)
        assert "SEQUENCE:2" in text

    def test_notes_are_escaped_into_description(self, invite):
        _, text = invite(notes="Gate code 1234; ring twice")
        assert "Notes: Gate code 1234\\; ring twice" in unfold(text)

    def test_stray_carriage_return_stays_out_of_the_invite(self, invite):
        _, text = invite(notes="Side gate\rRing twice")
        assert "\r" not in text.replace("\r\n", "")
        assert "Notes: Side gate\\nRing twice" in unfold(text)

    def test_no_physical_line_exceeds_75_octets(self, invite):
        _, text = invite(notes="A very long note about parking, " * 10)
        for line in text.split("\r\n"):
            assert len(line.encode("utf-8")) <= 75

    def test_filename(self, invite):
        appointment, _ = invite()
        assert IcsExporter.filename(appointment) == f"tour-{appointment.id}.ics"


class TestTextHelpers:
    def test_escape_text(self):
        assert escape_text("a,b;c\\d\ne") == "a\\,b\\;c\\\\d\\ne"

    @pytest.mark.parametrize("notes", ["Side gate\rRing twice", "Side gate\r\nRing twice", "Side gate\nRing twice"])
    def test_every_line_break_becomes_an_escaped_newline(self, notes):
        assert escape_text(notes) == "Side gate\\nRing twice"

    def test_short_line_untouched(self):
        assert fold_line("SUMMARY:Tour") == "SUMMARY:Tour"

    @pytest.mark.parametrize("line", [
        "DESCRIPTION:" + "x" * 200,
        "DESCRIPTION:" + "Ünïcødé " * 30,
    ])
    def test_fold_round_trips(self, line):
        folded = fold_line(line)
        assert all(len(part.encode("utf-8")) <= 75 for part in folded.split("\r\n"))
        assert unfold(folded) == line
