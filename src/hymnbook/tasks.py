"""Celery tasks for auditing contributor counters."""

import logging
from typing import Dict, List

from prometheus_client import Gauge
from sqlalchemy import func

from .database import HymnSubmission, SessionLocal, SubmissionStatus
from .models.user import User
from .worker import celery_app


logger = logging.getLogger(__name__)

APPROVED_COUNT_DRIFT = Gauge(
    "approved_count_drift_users",
    "Users whose approved_count differs from their approved submissions",
)


@celery_app.task(name="hymnbook.tasks.audit_approved_counts")
def audit_approved_counts() -> List[Dict[str, int]]:
    """Compare each user's approved_count with their approved submissions.

    Only the submission workflow writes ``approved_count``, so this task
    reports drift and never corrects it. Returns one entry per mismatched
    user.
    """
    logger.info("auditing approved counts")
    session = SessionLocal()
    try:
        approved = (
            session.query(
                HymnSubmission.submitted_by,
                func.count(HymnSubmission.id).label("approved"),
            )
            .filter(HymnSubmission.status == SubmissionStatus.APPROVED.value)
            .group_by(HymnSubmission.submitted_by)
            .subquery()
        )
        rows = (
            session.query(
                User.id,
                User.approved_count,
                func.coalesce(approved.c.approved, 0),
            )
            .outerjoin(approved, approved.c.submitted_by == User.id)
            .order_by(User.id)
            .all()
        )

        mismatches: List[Dict[str, int]] = []
        for user_id, stored, actual in rows:
            if stored != actual:
                logger.warning(
                    "approved count drift user=%s stored=%s actual=%s",
                    user_id,
                    stored,
                    actual,
                )
                mismatches.append(
                    {"user_id": user_id, "approved_count": stored, "approved_submissions": actual}
                )

        APPROVED_COUNT_DRIFT.set(len(mismatches))
        logger.info("audited %d users, %d mismatched", len(rows), len(mismatches))
        return mismatches
    finally:
        session.close()
