# ============================================================================
# tourbook/services/calendar/ics_export.py
# RFC 5545 calendar invitation for a booked tour
# ============================================================================
from datetime import datetime, timezone
from typing import List, Optional

from tourbook.models.appointment import Appointment, AppointmentStatus, AppointmentType
from tourbook.models.directory import Profile, Property

PRODID = "-//Tourbook//Tour Booking//EN"
UID_DOMAIN = "tourbook.app"
MAX_LINE_OCTETS = 75

EVENT_STATUS = {
    AppointmentStatus.PENDING: "TENTATIVE",
    AppointmentStatus.RESCHEDULED: "TENTATIVE",
    AppointmentStatus.CONFIRMED: "CONFIRMED",
    AppointmentStatus.COMPLETED: "CONFIRMED",
    AppointmentStatus.CANCELLED: "CANCELLED",
}

TYPE_LABELS = {
    AppointmentType.IN_PERSON: "In person",
    AppointmentType.VIRTUAL: "Virtual",
}


def format_utc(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def escape_text(value: str) -> str:
    """TEXT value escaping: backslash, semicolon, comma and newlines"""
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
        .replace("\r", "\\n")
    )


def quote_param(value: str) -> str:
    """Parameter values sit inside double quotes, which they may not contain"""
    return value.replace('"', "'")


def fold_line(line: str) -> str:
    """Split content lines longer than 75 octets, continuing with a leading space"""
    encoded = line.encode("utf-8")
    if len(encoded) <= MAX_LINE_OCTETS:
        return line

    parts = []
    current = ""
    limit = MAX_LINE_OCTETS
    for char in line:
        if len((current + char).encode("utf-8")) > limit:
            parts.append(current)
            current = char
            limit = MAX_LINE_OCTETS - 1  # continuation lines start with a space
        else:
            current += char
    parts.append(current)
    return "\r\n ".join(parts)


class IcsExporter:
    """Builds .ics invitations that calendar clients import as one event"""

    @staticmethod
    def build_invite(
            appointment: Appointment,
            provider_profile: Profile,
            buyer: Profile,
            prop: Property,
            now: Optional[datetime] = None
    ) -> str:
        status = appointment.status_enum
        appointment_type = AppointmentType(appointment.appointment_type)
        location = prop.display_address

        description = [
            "Property Tour",
            "",
            f"Property: {location}",
            "",
            f"Agent: {provider_profile.full_name}",
            f"Buyer: {buyer.full_name}",
            "",
            f"Type: {TYPE_LABELS[appointment_type]}",
        ]
        if appointment.notes:
            description += ["", f"Notes: {appointment.notes}"]

        lines: List[str] = [
            "BEGIN:VCALENDAR",
            "VERSION:2.0",
            f"PRODID:{PRODID}",
            "CALSCALE:GREGORIAN",
            "METHOD:CANCEL" if status == AppointmentStatus.CANCELLED else "METHOD:REQUEST",
            "BEGIN:VEVENT",
            f"UID:tour-{appointment.id}@{UID_DOMAIN}",
            f"DTSTAMP:{format_utc(now or datetime.now(timezone.utc))}",
            f"DTSTART:{format_utc(appointment.scheduled_start)}",
            f"DTEND:{format_utc(appointment.scheduled_end)}",
            f"SEQUENCE:{appointment.reschedule_count or 0}",
            f"SUMMARY:{escape_text('Property Tour - ' + prop.address)}",
            f"DESCRIPTION:{escape_text(chr(10).join(description))}",
            f"LOCATION:{escape_text(location)}",
            f"STATUS:{EVENT_STATUS[status]}",
            f'ORGANIZER;CN="{quote_param(provider_profile.full_name)}":mailto:{provider_profile.email}',
            f'ATTENDEE;CN="{quote_param(buyer.full_name)}";RSVP=TRUE:mailto:{buyer.email}',
            "BEGIN:VALARM",
            "TRIGGER:-PT1H",
            "ACTION:DISPLAY",
            "DESCRIPTION:Property Tour in 1 hour",
            "END:VALARM",
            "END:VEVENT",
            "END:VCALENDAR",
        ]
        return "\r\n".join(fold_line(line) for line in lines) + "\r\n"

    @staticmethod
    def filename(appointment: Appointment) -> str:
        return f"tour-{appointment.id}.ics"
