# tourbook/schemas/availability.py
"""
Availability rules as a closed tagged union.

Each variant carries only its own fields. Models are frozen so a ruleset can
be compared as a set (rule ids are not stable across replacements).
Value checks such as start < end live in RuleStore.validate_ruleset so every
problem in a ruleset is reported at once.
"""
from __future__ import annotations
from datetime import date, datetime, time, timedelta
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_serializer, field_validator

END_OF_DAY = "24:00:00"


def _since_midnight(t: time) -> timedelta:
    return datetime.combine(date.min, t.replace(tzinfo=None)) - datetime.min


class _Rule(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = Field("", max_length=255)
    notes: Optional[str] = Field(None, max_length=2000)
    active: bool = Field(True, description="Inactive rules are kept but ignored")


class RecurringWindow(_Rule):
    """Weekly hours, e.g. every Monday 09:00-17:00 in the provider's timezone"""
    kind: Literal["recurring"] = "recurring"
    day_of_week: int = Field(..., description="0=Sunday ... 6=Saturday")
    start_time: time
    end_time: time
    effective_from: Optional[date] = Field(None, description="First date the window applies (inclusive)")
    effective_until: Optional[date] = Field(None, description="Last date the window applies (inclusive)")

    @field_validator("end_time", mode="before")
    @classmethod
    def midnight_end(cls, v):
        # "24:00" closes the window at the end of the day; stored as 00:00
        if v in ("24:00", END_OF_DAY):
            return time(0)
        return v

    @field_serializer("end_time", when_used="json")
    def serialize_end_time(self, v: time) -> str:
        return END_OF_DAY if v == time(0) else v.isoformat()

    @property
    def start_offset(self) -> timedelta:
        return _since_midnight(self.start_time)

    @property
    def end_offset(self) -> timedelta:
        """Offset from local midnight; an end of 00:00 means the following midnight"""
        if self.end_time == time(0):
            return timedelta(days=1)
        return _since_midnight(self.end_time)

    def applies_on(self, day: date) -> bool:
        if self.effective_from and day < self.effective_from:
            return False
        if self.effective_until and day > self.effective_until:
            return False
        return True


class OneTimeWindow(_Rule):
    """Extra availability for a specific range"""
    kind: Literal["one_time"] = "one_time"
    start_datetime: datetime
    end_datetime: datetime


class Blackout(_Rule):
    """Exclusion range that overrides any window"""
    kind: Literal["blackout"] = "blackout"
    start_datetime: datetime
    end_datetime: datetime


AvailabilityRuleSpec = Annotated[
    Union[RecurringWindow, OneTimeWindow, Blackout],
    Field(discriminator="kind"),
]

rule_adapter: TypeAdapter = TypeAdapter(AvailabilityRuleSpec)


class RuleSet(BaseModel):
    """A provider's rules partitioned by kind"""
    recurring: List[RecurringWindow] = Field(default_factory=list)
    one_time: List[OneTimeWindow] = Field(default_factory=list)
    blackouts: List[Blackout] = Field(default_factory=list)

    @classmethod
    def from_rules(cls, rules) -> "RuleSet":
        ruleset = cls()
        for rule in rules:
            if isinstance(rule, RecurringWindow):
                ruleset.recurring.append(rule)
            elif isinstance(rule, OneTimeWindow):
                ruleset.one_time.append(rule)
            else:
                ruleset.blackouts.append(rule)
        return ruleset

    def all_rules(self) -> list:
        return [*self.recurring, *self.one_time, *self.blackouts]

    def as_set(self) -> set:
        return set(self.all_rules())


class BufferPolicy(BaseModel):
    before_minutes: int = 15
    after_minutes: int = 15


class ReplaceRulesRequest(BaseModel):
    """Full replacement of a provider's ruleset"""
    rules: List[AvailabilityRuleSpec] = Field(default_factory=list)
    buffer_before_minutes: int = Field(15, description="0-60")
    buffer_after_minutes: int = Field(15, description="0-60")


class RulesResponse(BaseModel):
    provider_id: str
    timezone: str
    buffers: BufferPolicy
    rules: RuleSet
