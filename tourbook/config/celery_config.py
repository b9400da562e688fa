"""Celery application factory"""
from celery import Celery
from celery.schedules import crontab
from kombu import Queue

from tourbook.config.settings import get_settings

settings = get_settings()


def create_celery_app() -> Celery:
    """Create and configure the Celery app used for notification delivery"""
    app = Celery(
        "tourbook",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
        include=["tourbook.tasks.notification_tasks"],
    )

    app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
        # Notifications are at-most-once: ack on receipt, never redeliver
        task_acks_late=False,
        task_ignore_result=True,
        task_routes={
            "tourbook.tasks.notification_tasks.*": {"queue": "notifications"},
        },
        task_queues=(
            Queue("notifications", routing_key="notifications"),
        ),
        broker_connection_retry_on_startup=True,
        beat_schedule={
            "dispatch-24h-reminders": {
                "task": "tourbook.tasks.notification_tasks.dispatch_due_reminders",
                "schedule": crontab(minute="*/15"),
                "args": ("24h",),
            },
            "dispatch-1h-reminders": {
                "task": "tourbook.tasks.notification_tasks.dispatch_due_reminders",
                "schedule": crontab(minute="*/5"),
                "args": ("1h",),
            },
        },
    )
    return app


celery_app = create_celery_app()
