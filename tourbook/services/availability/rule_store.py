# ============================================================================
# tourbook/services/availability/rule_store.py
# Owns each provider's availability rules and buffer configuration
# ============================================================================
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple, Union
import logging

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from tourbook.core.exceptions import FieldIssue, ValidationError
from tourbook.models.availability import AvailabilityRule
from tourbook.models.provider import Provider
from tourbook.schemas.availability import (
    Blackout,
    BufferPolicy,
    OneTimeWindow,
    RecurringWindow,
    RuleSet,
    rule_adapter,
)
from tourbook.services.availability.provider_lock import lock_provider, write_transaction
from tourbook.services.directory.directory_service import DirectoryService, IdLike

logger = logging.getLogger(__name__)

MIN_BUFFER_MINUTES = 0
MAX_BUFFER_MINUTES = 60

RuleLike = Union[RecurringWindow, OneTimeWindow, Blackout, dict]


class RuleStore:
    """Validates, replaces and loads provider rulesets"""

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def coerce_rules(rules: Iterable[RuleLike]) -> Tuple[list, List[FieldIssue]]:
        """
        Parse raw dicts into rule variants, reporting shape errors per rule.

        The parsed list stays aligned with the input; unparseable entries are None.
        """
        parsed = []
        issues: List[FieldIssue] = []
        for index, rule in enumerate(rules):
            if isinstance(rule, (RecurringWindow, OneTimeWindow, Blackout)):
                parsed.append(rule)
                continue
            try:
                parsed.append(rule_adapter.validate_python(rule))
            except PydanticValidationError as exc:
                parsed.append(None)
                for error in exc.errors():
                    field = ".".join(str(part) for part in error["loc"]) or "rule"
                    issues.append(FieldIssue(field=field, message=error["msg"], rule_index=index))
        return parsed, issues

    @staticmethod
    def validate_buffers(buffer_before: int, buffer_after: int) -> List[FieldIssue]:
        issues = []
        for field, value in (("buffer_before_minutes", buffer_before),
                             ("buffer_after_minutes", buffer_after)):
            if not isinstance(value, int) or not MIN_BUFFER_MINUTES <= value <= MAX_BUFFER_MINUTES:
                issues.append(FieldIssue(
                    field=field,
                    message=f"must be between {MIN_BUFFER_MINUTES} and {MAX_BUFFER_MINUTES} minutes",
                ))
        return issues

    @staticmethod
    def validate_rule(index: int, rule) -> List[FieldIssue]:
        """Every value problem with one rule"""
        issues = []

        def issue(field: str, message: str):
            issues.append(FieldIssue(field=field, message=message, rule_index=index))

        if isinstance(rule, RecurringWindow):
            if not 0 <= rule.day_of_week <= 6:
                issue("day_of_week", "must be between 0 (Sunday) and 6 (Saturday)")
            if rule.start_time.tzinfo or rule.end_time.tzinfo:
                issue("start_time", "recurring times are wall-clock times in the provider's timezone")
            if rule.start_offset >= rule.end_offset:
                issue("end_time", "must be after start_time")
            if rule.effective_from and rule.effective_until and rule.effective_from > rule.effective_until:
                issue("effective_until", "must be on or after effective_from")
        else:
            naive = False
            for field in ("start_datetime", "end_datetime"):
                if getattr(rule, field).tzinfo is None:
                    issue(field, "must include a timezone offset")
                    naive = True
            if not naive and rule.start_datetime >= rule.end_datetime:
                issue("end_datetime", "must be after start_datetime")
        return issues

    @staticmethod
    def validate_ruleset(rules: Sequence, buffer_before: int, buffer_after: int) -> List[FieldIssue]:
        issues = RuleStore.validate_buffers(buffer_before, buffer_after)
        for index, rule in enumerate(rules):
            if rule is None:
                continue
            issues.extend(RuleStore.validate_rule(index, rule))
        return issues

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    def replace_rules(
            db: Session,
            provider_id: IdLike,
            ruleset: Union[RuleSet, Iterable[RuleLike]],
            buffer_before: int,
            buffer_after: int
    ) -> RuleSet:
        """
        Atomically replace a provider's whole ruleset and buffer configuration.

        All rules are validated first and every problem is reported together.
        The replacement is applied as a diff (delete removed rules, insert new
        ones, keep unchanged ones) in one transaction under the provider lock,
        so a failure at any point leaves the previous ruleset in place.
        """
        raw = ruleset.all_rules() if isinstance(ruleset, RuleSet) else list(ruleset)
        rules, issues = RuleStore.coerce_rules(raw)
        issues.extend(RuleStore.validate_ruleset(rules, buffer_before, buffer_after))
        if issues:
            logger.info(f"Rejected ruleset for provider {provider_id}: {len(issues)} issue(s)")
            raise ValidationError(issues)

        desired = list(dict.fromkeys(rules))  # drop exact duplicates, keep order
        wanted = set(desired)

        with write_transaction(db):
            provider = lock_provider(db, provider_id)

            kept = set()
            removed = 0
            for row in db.query(AvailabilityRule).filter(AvailabilityRule.provider_id == provider.id).all():
                spec = RuleStore._row_to_rule(row)
                if spec in wanted and spec not in kept:
                    kept.add(spec)
                else:
                    db.delete(row)
                    removed += 1

            added = 0
            for spec in desired:
                if spec not in kept:
                    db.add(RuleStore._rule_to_row(provider.id, spec))
                    added += 1

            provider.buffer_before_minutes = buffer_before
            provider.buffer_after_minutes = buffer_after
            db.flush()

        logger.info(
            f"Replaced ruleset for provider {provider_id}: "
            f"{added} added, {removed} removed, {len(kept)} unchanged"
        )
        return RuleStore.load_rules(db, provider_id, include_inactive=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def load_rules(db: Session, provider_id: IdLike, include_inactive: bool = False) -> RuleSet:
        """Return the provider's ruleset partitioned by kind"""
        provider = DirectoryService.get_provider(db, provider_id)
        query = db.query(AvailabilityRule).filter(AvailabilityRule.provider_id == provider.id)
        if not include_inactive:
            query = query.filter(AvailabilityRule.is_active.is_(True))
        return RuleStore._to_ruleset(query.all())

    @staticmethod
    def load_rules_for_range(
            db: Session,
            provider: Provider,
            start: datetime,
            end: datetime,
            days_of_week: Optional[Iterable[int]] = None
    ) -> RuleSet:
        """
        Active rules that can affect [start, end): recurring rules for the
        given weekdays plus one-time/blackout rules overlapping the range.
        """
        recurring_filter = AvailabilityRule.kind == "recurring"
        if days_of_week is not None:
            recurring_filter = and_(recurring_filter, AvailabilityRule.day_of_week.in_(sorted(set(days_of_week))))

        rows = db.query(AvailabilityRule).filter(
            AvailabilityRule.provider_id == provider.id,
            AvailabilityRule.is_active.is_(True),
            or_(
                recurring_filter,
                and_(
                    AvailabilityRule.kind != "recurring",
                    AvailabilityRule.range_start < end,
                    AvailabilityRule.range_end > start,
                ),
            ),
        ).all()
        return RuleStore._to_ruleset(rows)

    @staticmethod
    def get_buffer_policy(provider: Provider) -> BufferPolicy:
        return BufferPolicy(
            before_minutes=provider.buffer_before_minutes,
            after_minutes=provider.buffer_after_minutes,
        )

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _rule_to_row(provider_id, rule) -> AvailabilityRule:
        row = AvailabilityRule(
            provider_id=provider_id,
            kind=rule.kind,
            payload=rule.model_dump(mode="json"),
            is_active=rule.active,
        )
        if isinstance(rule, RecurringWindow):
            row.day_of_week = rule.day_of_week
        else:
            row.range_start = rule.start_datetime
            row.range_end = rule.end_datetime
        return row

    @staticmethod
    def _row_to_rule(row: AvailabilityRule):
        return rule_adapter.validate_python(row.payload)

    @staticmethod
    def _to_ruleset(rows) -> RuleSet:
        ruleset = RuleSet.from_rules(RuleStore._row_to_rule(row) for row in rows)
        ruleset.recurring.sort(key=lambda r: (r.day_of_week, r.start_offset, r.end_offset, r.title))
        ruleset.one_time.sort(key=lambda r: (r.start_datetime, r.end_datetime, r.title))
        ruleset.blackouts.sort(key=lambda r: (r.start_datetime, r.end_datetime, r.title))
        return ruleset
