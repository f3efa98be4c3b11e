"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from ..config import get_settings

settings = get_settings()

QUEUES = {
    "NOTIFICATIONS": "notifications",
    "MATCHES": "matches",
    "EMAILS": "emails",
    "ANALYTICS": "analytics",
    "MODERATION": "moderation",
    "CLEANUP": "cleanup",
    "PUSH_NOTIFICATIONS": "push-notifications",
}

# job type -> queue it is routed to
JOB_TYPES = {
    "send-push-notification": QUEUES["PUSH_NOTIFICATIONS"],
    "send-batch-notifications": QUEUES["PUSH_NOTIFICATIONS"],
    "process-match": QUEUES["MATCHES"],
    "calculate-compatibility": QUEUES["MATCHES"],
    "update-recommendations": QUEUES["MATCHES"],
    "send-email": QUEUES["EMAILS"],
    "send-weekly-digest": QUEUES["EMAILS"],
    "track-event": QUEUES["ANALYTICS"],
    "update-user-stats": QUEUES["ANALYTICS"],
    "moderate-image": QUEUES["MODERATION"],
    "moderate-profile": QUEUES["MODERATION"],
    "cleanup-expired-tokens": QUEUES["CLEANUP"],
    "cleanup-old-messages": QUEUES["CLEANUP"],
    "cleanup-inactive-users": QUEUES["CLEANUP"],
}


def queue_name(queue: str) -> str:
    prefix = (settings.queue_prefix or "").strip()
    return f"{prefix}.{queue}" if prefix else queue


celery_app = Celery(
    "dating_service",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["dating_service.jobs.tasks"],
)

celery_app.conf.update(
    task_default_queue=queue_name(QUEUES["NOTIFICATIONS"]),
    task_routes={job_type: {"queue": queue_name(queue)} for job_type, queue in JOB_TYPES.items()},
    task_default_rate_limit="100/s",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    # Serialization
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    # Time settings
    timezone="UTC",
    enable_utc=True,
    # Result backend
    result_expires=86400,  # 24 hours
    task_track_started=True,
    task_send_sent_event=True,
    # Redis priorities: 0 is served first
    broker_transport_options={
        "queue_order_strategy": "priority",
        "priority_steps": list(range(10)),
        "global_keyprefix": f"{settings.queue_prefix}:" if settings.queue_prefix else "",
    },
)

RECURRING_JOBS = {
    "cleanup-expired-tokens-daily": {
        "task": "cleanup-expired-tokens",
        "schedule": crontab(minute=0, hour=3),
        "args": ({},),
    },
    "cleanup-old-messages-weekly": {
        "task": "cleanup-old-messages",
        "schedule": crontab(minute=0, hour=4, day_of_week=0),
        "args": ({},),
    },
    "cleanup-inactive-users-monthly": {
        "task": "cleanup-inactive-users",
        "schedule": crontab(minute=0, hour=5, day_of_month=1),
        "args": ({},),
    },
}

celery_app.conf.beat_schedule = dict(RECURRING_JOBS)
