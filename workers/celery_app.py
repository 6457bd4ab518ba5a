"""
Celery Application Configuration

Configures Celery with Redis broker and result backend.
Defines task queues, routing and the maintenance beat schedule.
"""

import os

from celery import Celery
from celery.schedules import crontab

# Broker and backend URLs
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", REDIS_URL)

app = Celery(
    "quillpress",
    broker=REDIS_URL,
    backend=RESULT_BACKEND,
    include=["workers.tasks.usage_tasks"],
)

app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task behavior
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,

    # Result expiry
    result_expires=86400,  # 24 hours

    # Routing
    task_routes={
        "workers.tasks.usage_tasks.*": {"queue": "maintenance"},
    },

    # Default queue
    task_default_queue="default",

    # Concurrency
    worker_concurrency=2,
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Usage event retention daily at 3 AM UTC
    "purge-usage-events": {
        "task": "workers.tasks.usage_tasks.purge_usage_events",
        "schedule": crontab(hour=3, minute=0),
        "options": {"queue": "maintenance"},
    },

    # Expired key sweep every hour
    "deactivate-expired-keys": {
        "task": "workers.tasks.usage_tasks.deactivate_expired_keys",
        "schedule": crontab(minute=0),
        "options": {"queue": "maintenance"},
    },
}

# Initialize Sentry for error monitoring in workers
_sentry_dsn = os.getenv("SENTRY_DSN", "")
if _sentry_dsn:
    import sentry_sdk
    from sentry_sdk.integrations.celery import CeleryIntegration

    sentry_sdk.init(
        dsn=_sentry_dsn,
        environment=os.getenv("ENVIRONMENT", "development"),
        release=f"quillpress-worker@{os.getenv('APP_VERSION', '0.1.0')}",
        traces_sample_rate=0.1,
        integrations=[CeleryIntegration()],
    )
