"""Celery application with a periodic audit of contributor counters."""

from celery import Celery

from .config import settings


celery_app = Celery(
    "hymnbook",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["hymnbook.tasks"],
)

celery_app.conf.beat_schedule = {
    "audit-approved-counts": {
        "task": "hymnbook.tasks.audit_approved_counts",
        "schedule": settings.audit_frequency,
    }
}
celery_app.conf.timezone = "UTC"
