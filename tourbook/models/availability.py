# tourbook/models/availability.py
from sqlalchemy import Column, String, Integer, Boolean, JSON, ForeignKey, Uuid, Index, CheckConstraint
from sqlalchemy.orm import relationship
import uuid

from tourbook.models.base import Base
from tourbook.models.types import UTCDateTime


class AvailabilityRule(Base):
    """
    One rule of a provider's ruleset.

    payload holds the full tagged variant (recurring / one_time / blackout).
    day_of_week and range_start/range_end are copied out of it so the store
    can fetch only the rules that can affect a given date.
    """
    __tablename__ = "availability_rules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id = Column(Uuid, ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)

    kind = Column(String(20), nullable=False)  # recurring, one_time, blackout
    payload = Column(JSON, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # Index columns
    day_of_week = Column(Integer, nullable=True)  # 0=Sunday, 6=Saturday (recurring only)
    range_start = Column(UTCDateTime, nullable=True)  # one_time / blackout
    range_end = Column(UTCDateTime, nullable=True)

    provider = relationship("Provider", back_populates="rules")

    __table_args__ = (
        CheckConstraint("kind IN ('recurring', 'one_time', 'blackout')", name="ck_rule_kind"),
        CheckConstraint("day_of_week IS NULL OR day_of_week BETWEEN 0 AND 6", name="ck_rule_day_of_week"),
        Index("idx_availability_rules_provider_kind", "provider_id", "kind"),
        Index("idx_availability_rules_day", "provider_id", "day_of_week"),
        Index("idx_availability_rules_range", "provider_id", "range_start", "range_end"),
    )

    def __repr__(self):
        return f"<AvailabilityRule(id={self.id}, kind={self.kind})>"
