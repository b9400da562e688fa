# tourbook/services/availability/provider_lock.py
"""
Provider-scoped write lock.

Every calendar write (booking, reschedule, rule replacement) starts its
transaction by bumping providers.calendar_version. On PostgreSQL the UPDATE
takes a row lock held until commit/rollback; on SQLite it takes the database
write lock. Either way a second writer for the same provider blocks until the
first finishes, then re-reads committed state. The lock lives in the database,
so it holds across processes.
"""
import logging
from contextlib import contextmanager

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tourbook.core.exceptions import NotFoundError, translate_store_error
from tourbook.models.provider import Provider
from tourbook.services.directory.directory_service import IdLike, as_uuid

logger = logging.getLogger(__name__)


def lock_provider(db: Session, provider_id: IdLike) -> Provider:
    """Acquire the provider's calendar lock for the current transaction and return the provider"""
    pid = as_uuid(provider_id, "provider")
    result = db.execute(
        update(Provider)
        .where(Provider.id == pid)
        .values(calendar_version=Provider.calendar_version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError("provider", provider_id)

    provider = db.get(Provider, pid, populate_existing=True)
    logger.debug(f"Acquired calendar lock for provider {pid} (version {provider.calendar_version})")
    return provider


@contextmanager
def write_transaction(db: Session):
    """
    Commit on success, roll back on any failure.

    Store errors are translated into ConcurrencyError / TransientStoreError so
    callers can retry the whole operation; nothing from a failed attempt is
    left behind.
    """
    try:
        yield
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        translated = translate_store_error(exc)
        if translated is exc:
            raise
        logger.warning(f"Calendar write failed with retryable store error: {translated}")
        raise translated from exc
    except BaseException:
        db.rollback()
        raise
