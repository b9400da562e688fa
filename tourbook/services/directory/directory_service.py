# tourbook/services/directory/directory_service.py
"""Identity/profile and property lookups used for validation and notification payloads"""
from typing import Union
from uuid import UUID

from sqlalchemy.orm import Session

from tourbook.core.exceptions import NotFoundError
from tourbook.models.directory import Profile, Property
from tourbook.models.provider import Provider

IdLike = Union[UUID, str]


def as_uuid(value: IdLike, entity: str) -> UUID:
    """Coerce an id, treating a malformed id the same as an unknown one"""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise NotFoundError(entity, value) from None


class DirectoryService:
    """Read-only lookups against the identity and listing records"""

    @staticmethod
    def get_profile(db: Session, profile_id: IdLike) -> Profile:
        profile = db.get(Profile, as_uuid(profile_id, "profile"))
        if not profile:
            raise NotFoundError("profile", profile_id)
        return profile

    @staticmethod
    def get_property(db: Session, property_id: IdLike) -> Property:
        prop = db.get(Property, as_uuid(property_id, "property"))
        if not prop:
            raise NotFoundError("property", property_id)
        return prop

    @staticmethod
    def get_provider(db: Session, provider_id: IdLike) -> Provider:
        provider = db.get(Provider, as_uuid(provider_id, "provider"))
        if not provider:
            raise NotFoundError("provider", provider_id)
        return provider
