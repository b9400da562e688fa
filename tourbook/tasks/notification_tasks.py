# ===== tourbook/tasks/notification_tasks.py =====
"""
Notification delivery.

Tasks are attempted once: no retries, no late acks. A failed delivery is
logged and dropped.
"""
from datetime import datetime, timezone
import hashlib
import hmac
import json
import logging

import httpx

from tourbook.config.celery_config import celery_app
from tourbook.config.database import get_db
from tourbook.config.settings import get_settings
from tourbook.schemas.notifications import ChangeEventType
from tourbook.services.appointment.reminder_service import ReminderService
from tourbook.services.notification.notification_service import NotificationService

logger = logging.getLogger(__name__)

settings = get_settings()


def sign_payload(payload_json: str, secret: str) -> str:
    """HMAC-SHA256 signature receivers use to verify the body came from us"""
    signature = hmac.new(
        secret.encode(),
        payload_json.encode(),
        hashlib.sha256
    ).hexdigest()

    return f"sha256={signature}"


def post_event(event_type: str, data: dict) -> dict:
    """POST a signed event to the configured webhook, or just log it when none is set"""
    body = {
        "event": event_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }

    if not settings.NOTIFICATION_WEBHOOK_URL:
        logger.info(f"No notification webhook configured; {event_type}: {json.dumps(data)}")
        return {"status": "logged", "event": event_type}

    payload_json = json.dumps(body, sort_keys=True)
    headers = {
        "Content-Type": "application/json",
        "X-Webhook-Signature": sign_payload(payload_json, settings.NOTIFICATION_WEBHOOK_SECRET),
        "X-Webhook-Event": event_type,
        "User-Agent": "Tourbook-Notifications/1.0",
    }

    try:
        response = httpx.post(
            settings.NOTIFICATION_WEBHOOK_URL,
            content=payload_json,
            headers=headers,
            timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
        )
    except httpx.TimeoutException:
        logger.error(f"Delivery of {event_type} timed out after {settings.NOTIFICATION_TIMEOUT_SECONDS}s")
        return {"status": "failed", "event": event_type, "reason": "timeout"}
    except httpx.RequestError as e:
        logger.error(f"Delivery of {event_type} failed: {str(e)[:200]}")
        return {"status": "failed", "event": event_type, "reason": "request_error"}

    if not 200 <= response.status_code < 300:
        logger.error(f"Delivery of {event_type} rejected: HTTP {response.status_code}: {response.text[:200]}")
        return {"status": "failed", "event": event_type, "reason": f"http_{response.status_code}"}

    logger.info(f"Delivered {event_type}")
    return {"status": "delivered", "event": event_type}


@celery_app.task(bind=True, max_retries=0)
def deliver_booking_notification(self, notification: dict):
    """Tell the provider a tour was booked"""
    return post_event("booking.created", notification)


@celery_app.task(bind=True, max_retries=0)
def publish_change_event(self, event: dict):
    """Relay an appointment change to whatever pub/sub layer listens on the webhook"""
    return post_event(event["event"], event)


@celery_app.task(bind=True, max_retries=0)
def dispatch_due_reminders(self, kind: str):
    """Publish a reminder_due event for every appointment in the reminder window and mark it sent"""
    db = next(get_db())
    try:
        due = ReminderService.find_due(db, kind)
        sent = 0
        for appointment in due:
            event = NotificationService.build_change_event(
                appointment, ChangeEventType.REMINDER_DUE, {"kind": kind}
            )
            result = post_event(event.event.value, event.model_dump(mode="json"))
            if result["status"] != "failed":
                ReminderService.mark_sent(db, appointment.id, kind)
                sent += 1

        logger.info(f"Dispatched {sent}/{len(due)} {kind} reminders")
        return {"status": "success", "kind": kind, "due": len(due), "sent": sent}
    finally:
        db.close()
