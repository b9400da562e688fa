# ============================================================================
# tourbook/services/availability/slot_generator.py
# Derives offerable time slots from rules, blackouts and booked appointments
# ============================================================================
from bisect import bisect_left
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID
from zoneinfo import ZoneInfo
import logging

from sqlalchemy.orm import Session

from tourbook.config.settings import get_settings
from tourbook.core.exceptions import ConflictReason, ValidationError, FieldIssue
from tourbook.core.intervals import (
    Interval,
    clip,
    covers,
    discretize,
    merge_intervals,
    overlaps,
    overlaps_any,
    subtract_intervals,
)
from tourbook.models.appointment import Appointment, BLOCKING_STATUSES
from tourbook.models.provider import Provider
from tourbook.schemas.availability import BufferPolicy, RuleSet
from tourbook.schemas.slots import DaySlots, TimeSlot
from tourbook.services.availability.rule_store import RuleStore
from tourbook.services.directory.directory_service import DirectoryService, IdLike

logger = logging.getLogger(__name__)

settings = get_settings()


def day_of_week(day: date) -> int:
    """0=Sunday ... 6=Saturday"""
    return (day.weekday() + 1) % 7


@dataclass
class ProviderCalendar:
    """
    A provider's rules indexed for per-day window computation.

    Recurring rules are bucketed by weekday; one-time windows and blackouts
    are kept as UTC intervals sorted by start. Merged recurring windows are
    cached per (weekday, applicable rules) so range queries compute each
    weekly pattern once.
    """
    tz: ZoneInfo
    ruleset: RuleSet
    recurring_by_day: Dict[int, list] = field(default_factory=dict)
    one_time: List[Interval] = field(default_factory=list)
    blackouts: List[Interval] = field(default_factory=list)
    _recurring_cache: Dict[Tuple, List[Tuple[time, time]]] = field(default_factory=dict)
    _window_cache: Dict[date, List[Interval]] = field(default_factory=dict)

    @classmethod
    def build(cls, ruleset: RuleSet, tz_name: str) -> "ProviderCalendar":
        calendar = cls(tz=ZoneInfo(tz_name), ruleset=ruleset)
        for rule in ruleset.recurring:
            if rule.active:
                calendar.recurring_by_day.setdefault(rule.day_of_week, []).append(rule)
        calendar.one_time = sorted(
            Interval(r.start_datetime.astimezone(timezone.utc), r.end_datetime.astimezone(timezone.utc))
            for r in ruleset.one_time if r.active
        )
        calendar.blackouts = merge_intervals(
            Interval(r.start_datetime.astimezone(timezone.utc), r.end_datetime.astimezone(timezone.utc))
            for r in ruleset.blackouts if r.active
        )
        return calendar

    def local(self, day: date, at: time) -> datetime:
        return datetime.combine(day, at, tzinfo=self.tz).astimezone(timezone.utc)

    def local_offset(self, day: date, offset: timedelta) -> datetime:
        """Wall-clock offset from local midnight, so 24h lands on the next midnight"""
        return (datetime.combine(day, time.min, tzinfo=self.tz) + offset).astimezone(timezone.utc)

    def day_bounds(self, day: date) -> Interval:
        return Interval(self.local(day, time.min), self.local(day + timedelta(days=1), time.min))

    def local_date(self, moment: datetime) -> date:
        return moment.astimezone(self.tz).date()

    def _recurring_pattern(self, day: date) -> List[Tuple[timedelta, timedelta]]:
        rules = [r for r in self.recurring_by_day.get(day_of_week(day), []) if r.applies_on(day)]
        key = (day_of_week(day), tuple(rules))
        if key not in self._recurring_cache:
            spans = merge_intervals(Interval(r.start_offset, r.end_offset) for r in rules)
            self._recurring_cache[key] = [(s.start, s.end) for s in spans]
        return self._recurring_cache[key]

    def candidate_windows(self, day: date) -> List[Interval]:
        """Recurring plus one-time windows for the day, clipped to it and merged"""
        bounds = self.day_bounds(day)
        windows = [Interval(self.local_offset(day, start), self.local_offset(day, end))
                   for start, end in self._recurring_pattern(day)]

        # one-time windows are sorted by start; stop once they start after the day
        for window in self.one_time:
            if window.start >= bounds.end:
                break
            clipped = clip(window, bounds)
            if clipped:
                windows.append(clipped)
        return merge_intervals(windows)

    def blackouts_for(self, bounds: Interval) -> List[Interval]:
        return [b for b in self.blackouts if overlaps(b.start, b.end, bounds.start, bounds.end)]

    def open_windows(self, day: date) -> List[Interval]:
        """Candidate windows minus blackouts"""
        if day not in self._window_cache:
            self._window_cache[day] = subtract_intervals(
                self.candidate_windows(day),
                self.blackouts_for(self.day_bounds(day)),
            )
        return self._window_cache[day]


@dataclass
class BlockedTimeline:
    """Buffered ranges of blocking appointments, merged for bisect lookups"""
    spans: List[Interval]
    starts: List[datetime]

    @classmethod
    def build(cls, appointments: Sequence[Appointment], buffers: BufferPolicy) -> "BlockedTimeline":
        before = timedelta(minutes=buffers.before_minutes)
        after = timedelta(minutes=buffers.after_minutes)
        spans = merge_intervals(
            Interval(a.scheduled_start - before, a.scheduled_end + after) for a in appointments
        )
        return cls(spans=spans, starts=[s.start for s in spans])

    def conflicts(self, start: datetime, end: datetime) -> bool:
        # slot.start < existing.end + after AND slot.end > existing.start - before
        return overlaps_any(self.spans, start, end, self.starts)


class SlotGenerator:
    """Computes bookable slots and checks single intervals for booking"""

    @staticmethod
    def list_slots(
            db: Session,
            provider_id: IdLike,
            day: date,
            duration_minutes: Optional[int] = None,
            interval_minutes: Optional[int] = None,
            now: Optional[datetime] = None,
            min_lead_minutes: Optional[int] = None
    ) -> List[TimeSlot]:
        """Ordered slots for one provider-local date"""
        days = SlotGenerator.list_slots_range(
            db, provider_id, day, day,
            duration_minutes=duration_minutes,
            interval_minutes=interval_minutes,
            now=now,
            min_lead_minutes=min_lead_minutes,
        )
        return days[0].slots

    @staticmethod
    def list_slots_range(
            db: Session,
            provider_id: IdLike,
            start_date: date,
            end_date: date,
            duration_minutes: Optional[int] = None,
            interval_minutes: Optional[int] = None,
            now: Optional[datetime] = None,
            min_lead_minutes: Optional[int] = None
    ) -> List[DaySlots]:
        """
        Slots for every provider-local date in [start_date, end_date].

        Rules and appointments are read once for the whole range.
        """
        if duration_minutes is None:
            duration_minutes = settings.DEFAULT_SLOT_DURATION_MINUTES
        if interval_minutes is None:
            interval_minutes = settings.DEFAULT_SLOT_INTERVAL_MINUTES
        if min_lead_minutes is None:
            min_lead_minutes = settings.MIN_BOOKING_LEAD_MINUTES
        now = now or datetime.now(timezone.utc)
        SlotGenerator._validate_query(start_date, end_date, duration_minutes, interval_minutes,
                                      now, min_lead_minutes)

        provider = DirectoryService.get_provider(db, provider_id)
        days = [start_date + timedelta(days=n) for n in range((end_date - start_date).days + 1)]

        calendar, timeline = SlotGenerator._load_calendar(db, provider, days)

        duration = timedelta(minutes=duration_minutes)
        step = timedelta(minutes=interval_minutes)
        earliest = now + timedelta(minutes=min_lead_minutes)
        horizon_end = now + timedelta(days=settings.MAX_BOOKING_HORIZON_DAYS)

        result = []
        for day in days:
            slots: List[TimeSlot] = []
            for window in calendar.open_windows(day):
                for slot in discretize(window, duration, step):
                    if slot.start < earliest or slot.start > horizon_end:
                        continue
                    slots.append(TimeSlot(
                        start=slot.start.astimezone(calendar.tz),
                        end=slot.end.astimezone(calendar.tz),
                        available=not timeline.conflicts(slot.start, slot.end),
                    ))
            result.append(DaySlots(date=day, slots=slots))

        logger.debug(
            f"Computed slots for provider {provider.id} {start_date}..{end_date}: "
            f"{sum(len(d.slots) for d in result)} slots"
        )
        return result

    @staticmethod
    def check_interval(
            db: Session,
            provider: Provider,
            start: datetime,
            end: datetime,
            exclude_appointment_id: Optional[UUID] = None
    ) -> Optional[ConflictReason]:
        """
        Availability of one requested interval against freshly read rules and
        appointments. Call inside the provider lock when about to write.
        """
        calendar = ProviderCalendar.build(
            RuleStore.load_rules_for_range(db, provider, start, end,
                                           days_of_week=None),
            provider.timezone,
        )
        timeline = BlockedTimeline.build(
            SlotGenerator._blocking_appointments(
                db, provider, Interval(start, end), exclude_appointment_id
            ),
            RuleStore.get_buffer_policy(provider),
        )
        return SlotGenerator.evaluate_interval(calendar, timeline, start, end)

    @staticmethod
    def evaluate_interval(
            calendar: ProviderCalendar,
            timeline: BlockedTimeline,
            start: datetime,
            end: datetime
    ) -> Optional[ConflictReason]:
        """None when [start, end) is bookable, otherwise why not"""
        start = start.astimezone(timezone.utc)
        end = end.astimezone(timezone.utc)

        if any(overlaps(b.start, b.end, start, end) for b in calendar.blackouts):
            return ConflictReason.BLACKOUT

        day = calendar.local_date(start)
        if not covers(calendar.candidate_windows(day), start, end):
            return ConflictReason.OUTSIDE_WINDOW

        if timeline.conflicts(start, end):
            return ConflictReason.OVERLAPS_EXISTING_APPOINTMENT
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_query(start_date, end_date, duration_minutes, interval_minutes, now, min_lead_minutes):
        issues = []
        if duration_minutes <= 0 or duration_minutes > settings.MAX_APPOINTMENT_MINUTES:
            issues.append(FieldIssue("duration_minutes",
                                     f"must be between 1 and {settings.MAX_APPOINTMENT_MINUTES}"))
        if interval_minutes <= 0:
            issues.append(FieldIssue("interval_minutes", "must be positive"))
        if min_lead_minutes < 0:
            issues.append(FieldIssue("min_lead_minutes", "must not be negative"))
        if now.tzinfo is None:
            issues.append(FieldIssue("now", "must include a timezone"))
        if end_date < start_date:
            issues.append(FieldIssue("end_date", "must be on or after start_date"))
        elif (end_date - start_date).days > settings.MAX_BOOKING_HORIZON_DAYS:
            issues.append(FieldIssue("end_date",
                                     f"range may span at most {settings.MAX_BOOKING_HORIZON_DAYS} days"))
        if issues:
            raise ValidationError(issues)

    @staticmethod
    def _load_calendar(db: Session, provider: Provider, days: List[date]):
        tz = ZoneInfo(provider.timezone)
        range_start = datetime.combine(days[0], time.min, tzinfo=tz).astimezone(timezone.utc)
        range_end = datetime.combine(days[-1] + timedelta(days=1), time.min, tzinfo=tz).astimezone(timezone.utc)

        ruleset = RuleStore.load_rules_for_range(
            db, provider, range_start, range_end,
            days_of_week={day_of_week(d) for d in days},
        )
        calendar = ProviderCalendar.build(ruleset, provider.timezone)
        timeline = BlockedTimeline.build(
            SlotGenerator._blocking_appointments(db, provider, Interval(range_start, range_end)),
            RuleStore.get_buffer_policy(provider),
        )
        return calendar, timeline

    @staticmethod
    def _blocking_appointments(
            db: Session,
            provider: Provider,
            span: Interval,
            exclude_appointment_id: Optional[UUID] = None
    ) -> List[Appointment]:
        """Blocking appointments whose buffered range can touch the span"""
        before = timedelta(minutes=provider.buffer_before_minutes)
        after = timedelta(minutes=provider.buffer_after_minutes)

        query = db.query(Appointment).filter(
            Appointment.provider_id == provider.id,
            Appointment.status.in_([s.value for s in BLOCKING_STATUSES]),
            Appointment.scheduled_start < span.end + before,
            Appointment.scheduled_end > span.start - after,
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)
        return query.order_by(Appointment.scheduled_start.asc()).all()
