# ===== app/config/celery_config.py =====
"""Celery configuration and task routing"""
from celery import Celery
from celery.schedules import crontab
from kombu import Queue

from app.config.settings import get_settings

settings = get_settings()


def create_celery_app() -> Celery:
    """Create and configure Celery application"""

    celery_app = Celery(
        "scheduling_engine",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
        include=[
            "app.tasks.calendar_tasks",
            "app.tasks.email_tasks",
            "app.tasks.reminder_tasks",
        ],
    )

    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        accept_content=["json"],
        result_serializer="json",
        timezone=settings.BUSINESS_TIMEZONE,
        enable_utc=True,

        # Task routing
        task_routes={
            "app.tasks.calendar_tasks.*": {"queue": "calendar"},
            "app.tasks.email_tasks.*": {"queue": "notifications"},
            "app.tasks.reminder_tasks.*": {"queue": "notifications"},
        },

        # Queue definitions
        task_queues=(
            Queue("calendar", routing_key="calendar"),
            Queue("notifications", routing_key="notifications"),
        ),

        # Rolling horizon for recurring meeting occurrences
        beat_schedule={
            "extend-recurring-meeting-horizons": {
                "task": "app.tasks.calendar_tasks.extend_recurring_meeting_horizons",
                "schedule": crontab(hour=2, minute=0),
            },
            "send-due-reminders": {
                "task": "app.tasks.reminder_tasks.send_due_reminders",
                "schedule": crontab(minute="*/15"),
            },
        },

        # Worker settings
        worker_max_tasks_per_child=1000,
        worker_prefetch_multiplier=1,
        task_acks_late=True,

        # Retry settings
        task_retry_max_retries=3,
        task_retry_delay=60,  # 1 minute

        broker_connection_retry_on_startup=True,
    )

    return celery_app


# Create the Celery app instance
celery_app = create_celery_app()
