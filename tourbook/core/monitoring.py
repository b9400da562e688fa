"""Health checks and monitoring endpoints"""
from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tourbook.config.database import get_db
from tourbook.config.settings import get_settings
from tourbook.models.provider import Provider

health_router = APIRouter()


@health_router.get("")
def health_check():
    """Liveness only; does not touch the calendar store"""
    return {"status": "healthy", "service": get_settings().APP_NAME}


@health_router.get("/detailed")
def detailed_health_check(db: Session = Depends(get_db)):
    """Calendar store reachability plus how notifications are delivered"""
    settings = get_settings()
    checks = {
        "api": "healthy",
        "database": "unknown",
        "providers": None,
        "notifications": "webhook" if settings.NOTIFICATION_WEBHOOK_URL else "log-only",
        "overall": "unknown",
    }

    try:
        checks["providers"] = db.execute(select(func.count()).select_from(Provider)).scalar_one()
        checks["database"] = "healthy"
    except SQLAlchemyError as e:
        checks["database"] = f"unhealthy: {str(e)}"

    checks["overall"] = "healthy" if checks["database"] == "healthy" else "degraded"
    return checks
