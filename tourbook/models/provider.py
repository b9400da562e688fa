# tourbook/models/provider.py
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Uuid, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from tourbook.config.settings import get_settings
from tourbook.models.base import Base

settings = get_settings()


class Provider(Base):
    """An agent whose calendar is scheduled. Shares its id with the agent's profile."""
    __tablename__ = "providers"

    id = Column(Uuid, ForeignKey("profiles.id"), primary_key=True)
    timezone = Column(String(64), nullable=False, default=settings.DEFAULT_TIMEZONE)

    # Applied uniformly to all of this provider's appointments
    buffer_before_minutes = Column(Integer, nullable=False, default=settings.DEFAULT_BUFFER_MINUTES)
    buffer_after_minutes = Column(Integer, nullable=False, default=settings.DEFAULT_BUFFER_MINUTES)

    # Bumped by every serialized calendar write; doubles as the provider lock row
    calendar_version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    profile = relationship("Profile", lazy="joined")
    rules = relationship("AvailabilityRule", back_populates="provider", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("buffer_before_minutes BETWEEN 0 AND 60", name="ck_provider_buffer_before"),
        CheckConstraint("buffer_after_minutes BETWEEN 0 AND 60", name="ck_provider_buffer_after"),
    )

    def __repr__(self):
        return f"<Provider(id={self.id}, tz={self.timezone})>"
