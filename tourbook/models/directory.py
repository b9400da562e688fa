# tourbook/models/directory.py
"""
Lookup records owned by the identity and listing services.

The scheduling engine only reads these to validate bookings and to build
notification payloads.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Uuid
from sqlalchemy.sql import func
import uuid

from tourbook.models.base import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    role = Column(String(20), nullable=False, default="buyer")  # buyer, agent, admin
    full_name = Column(String(200), nullable=False)
    email = Column(String(320), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Profile(id={self.id}, role={self.role})>"


class Property(Base):
    __tablename__ = "properties"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    listing_agent_id = Column(Uuid, ForeignKey("profiles.id"), nullable=True)

    address = Column(String(300), nullable=False)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    zip_code = Column(String(20), nullable=True)

    @property
    def display_address(self) -> str:
        locality = ", ".join(part for part in (self.city, self.state) if part)
        if self.zip_code:
            locality = f"{locality} {self.zip_code}".strip()
        return f"{self.address}, {locality}" if locality else self.address
