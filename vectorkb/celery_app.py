"""
Celery Application Configuration for the vectorkb preference engine.

Runs the periodic learning jobs the engine does not schedule itself:
- Global preference refresh
- Preference decay
- Stale object deprecation
- Retention cleanup

Architecture:
    Celery Beat -> Redis (Message Broker) -> Celery Workers

Usage:
    # Start Celery worker:
    celery -A vectorkb.celery_app worker --loglevel=info

    # Start the beat scheduler:
    celery -A vectorkb.celery_app beat --loglevel=info
"""

from celery import Celery
from celery.schedules import crontab

from vectorkb.config import settings

# =============================================================================
# Configuration
# =============================================================================

CELERY_BROKER_URL = settings.effective_celery_broker_url
CELERY_RESULT_BACKEND = settings.effective_celery_result_backend

# =============================================================================
# Celery App Instance
# =============================================================================

celery_app = Celery(
    "vectorkb",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=["vectorkb.tasks"]
)

# =============================================================================
# Celery Configuration
# =============================================================================

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],

    result_expires=3600,

    task_track_started=True,
    task_time_limit=900,
    task_soft_time_limit=840,

    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    task_acks_late=True,
    task_reject_on_worker_lost=True,

    timezone="UTC",
    enable_utc=True,

    # Periodic learning jobs
    beat_schedule={
        "refresh-global-preferences": {
            "task": "vectorkb.tasks.refresh_global_preferences",
            "schedule": crontab(minute=0),  # hourly; refreshes only when the snapshot is stale
        },
        "decay-user-preferences": {
            "task": "vectorkb.tasks.decay_user_preferences",
            "schedule": crontab(hour=3, minute=0),
        },
        "deprecate-stale-objects": {
            "task": "vectorkb.tasks.deprecate_stale_objects",
            "schedule": crontab(hour=4, minute=0),
        },
        "cleanup-old-learning-data": {
            "task": "vectorkb.tasks.cleanup_old_data",
            "schedule": crontab(hour=5, minute=0, day_of_week="sunday"),
        },
    },

    worker_send_task_events=True,
    task_send_sent_event=True,
)

# =============================================================================
# Task Routes
# =============================================================================

celery_app.conf.task_routes = {
    "vectorkb.tasks.*": {"queue": "learning"},
}

__all__ = ["celery_app"]
