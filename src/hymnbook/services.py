"""Service layer for the hymn submission workflow.

This module is the only writer of ``HymnSubmission.status`` and
``User.approved_count``. Every public function opens its own session, runs in
a single transaction and rolls back on any error before re-raising.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from prometheus_client import Counter
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .catalog import Language, get_section, parse_language
from .database import HymnSubmission, SessionLocal, SubmissionStatus
from .errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DuplicateError,
    HymnbookError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from .models.user import User
from .permissions import is_admin, is_authenticated, is_trusted, load_user


logger = logging.getLogger(__name__)

SUBMISSION_COUNTER = Counter(
    "hymn_submissions_total", "Total hymn submissions created", ["status"]
)
REVIEW_COUNTER = Counter(
    "hymn_reviews_total", "Total hymn submission reviews", ["action"]
)

PUBLISHED_MESSAGE = "Your hymn has been published. Thank you for contributing!"
PENDING_MESSAGE = "Your hymn has been submitted and will be published once an admin reviews it."

# Statuses that prevent a new submission for the same hymn, most specific first.
BLOCKING_STATUSES = (SubmissionStatus.APPROVED, SubmissionStatus.PENDING)


class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


def _handle_service_error(session: Session, exc: Exception) -> None:
    """Rollback the transaction and re-raise ``exc`` as a workflow error."""
    session.rollback()
    if isinstance(exc, HymnbookError):
        logger.info("workflow request refused: %s (%s)", exc.message, exc.code)
        raise exc
    logger.exception("service layer error", exc_info=exc)
    if isinstance(exc, SQLAlchemyError):
        raise StoreError() from exc
    raise exc


def _require_positive_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return value


def _require_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def _optional_text(value) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Expected text")
    return value.strip() or None


def _require_language(value) -> Language:
    language = parse_language(value)
    if language is None:
        raise ValidationError("language must be one of: french, kreyol")
    return language


def _require_action(value) -> ReviewAction:
    if isinstance(value, ReviewAction):
        return value
    try:
        return ReviewAction(str(value).strip().lower())
    except ValueError:
        raise ValidationError("action must be 'approve' or 'reject'") from None


def _find_blocking_status(
    session: Session, section_id: int, language: str, hymn_number: int
) -> Optional[str]:
    """Return ``"approved"`` or ``"pending"`` if such a submission exists for the hymn."""

    rows = (
        session.query(HymnSubmission.status)
        .filter(
            HymnSubmission.section_id == section_id,
            HymnSubmission.language == language,
            HymnSubmission.hymn_number == hymn_number,
            HymnSubmission.status.in_([s.value for s in BLOCKING_STATUSES]),
        )
        .all()
    )
    statuses = {row[0] for row in rows}
    for status in BLOCKING_STATUSES:
        if status.value in statuses:
            return status.value
    return None


def _increment_approved_count(session: Session, user_id: int) -> None:
    # Single store-side increment; never read-modify-write in Python.
    session.execute(
        update(User)
        .where(User.id == user_id)
        .values(approved_count=User.approved_count + 1)
        .execution_options(synchronize_session=False)
    )


def _require_user(session: Session, user_id: Optional[int]) -> User:
    if not is_authenticated(session, user_id):
        raise AuthenticationError()
    return load_user(session, user_id)


def _require_admin(session: Session, user_id: Optional[int]) -> User:
    user = _require_user(session, user_id)
    if not is_admin(session, user_id):
        raise AuthorizationError()
    return user


def submit_hymn(
    caller_id: Optional[int],
    section_id: int,
    section_name: Optional[str],
    language,
    hymn_number: int,
    title: str,
    verses: str,
    chorus: Optional[str] = None,
) -> Dict[str, object]:
    """Create a hymn submission, publishing it directly for trusted callers.

    Parameters
    ----------
    caller_id: int
        Verified id of the submitting user.
    section_id, language, hymn_number:
        Identify the hymn. At most one submission that is pending or
        approved may exist for the combination.
    section_name: str
        Display label stored alongside the submission. Falls back to the
        catalog name when blank.
    title, verses, chorus:
        Plain-text lyrics. ``chorus`` is optional.

    Returns
    -------
    dict
        ``submission`` (the stored record), ``auto_approved`` and a
        human-readable ``message``.

    Raises
    ------
    AuthenticationError
        ``caller_id`` does not resolve to a user.
    ValidationError
        Malformed input or a section/language mismatch.
    DuplicateError
        The hymn is already published (``kind="approved"``) or already
        waiting for review (``kind="pending"``).
    """
    logger.info(
        "submit hymn user=%s section=%s language=%s number=%s",
        caller_id,
        section_id,
        language,
        hymn_number,
    )
    session: Session = SessionLocal()
    try:
        submitter = _require_user(session, caller_id)

        section_id = _require_positive_int(section_id, "sectionId")
        hymn_number = _require_positive_int(hymn_number, "hymnNumber")
        lang = _require_language(language)
        section = get_section(section_id)
        if section is None:
            raise ValidationError("Unknown hymn section")
        if section.language != lang:
            raise ValidationError("Language does not match the selected section")
        title = _require_text(title, "Title")
        verses = _require_text(verses, "Verses")
        chorus = _optional_text(chorus)
        section_name = _optional_text(section_name) or section.name

        blocking = _find_blocking_status(session, section_id, lang.value, hymn_number)
        if blocking is not None:
            raise DuplicateError(blocking)

        auto_approved = is_admin(session, submitter.id) or is_trusted(session, submitter.id)
        now = datetime.utcnow()
        submission = HymnSubmission(
            section_id=section_id,
            section_name=section_name,
            language=lang.value,
            hymn_number=hymn_number,
            title=title,
            verses=verses,
            chorus=chorus,
            submitted_by=submitter.id,
            status=(
                SubmissionStatus.APPROVED.value
                if auto_approved
                else SubmissionStatus.PENDING.value
            ),
            reviewed_by=submitter.id if auto_approved else None,
            reviewed_at=now if auto_approved else None,
            created_at=now,
        )
        session.add(submission)
        try:
            # Flush first so the unique index rejects a concurrent duplicate
            # before the counter moves.
            session.flush()
            if auto_approved:
                _increment_approved_count(session, submitter.id)
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            blocking = _find_blocking_status(session, section_id, lang.value, hymn_number)
            if blocking is None:
                raise
            logger.warning(
                "concurrent duplicate submission section=%s language=%s number=%s",
                section_id,
                lang.value,
                hymn_number,
            )
            raise DuplicateError(blocking) from exc

        session.refresh(submission)
        SUBMISSION_COUNTER.labels(status=submission.status).inc()
        logger.info(
            "created submission id=%s user=%s status=%s",
            submission.id,
            submitter.id,
            submission.status,
        )
        return {
            "submission": submission,
            "auto_approved": auto_approved,
            "message": PUBLISHED_MESSAGE if auto_approved else PENDING_MESSAGE,
        }
    except Exception as exc:
        _handle_service_error(session, exc)
    finally:
        session.close()


def review_submission(
    admin_id: Optional[int],
    submission_id: int,
    action,
    note: Optional[str] = None,
) -> HymnSubmission:
    """Approve or reject a pending submission.

    The status change is a compare-and-swap on ``status = 'pending'`` so a
    submission is reviewed at most once; approving increments the submitter's
    approved count in the same transaction.
    """
    logger.info(
        "review submission id=%s admin=%s action=%s", submission_id, admin_id, action
    )
    session: Session = SessionLocal()
    try:
        reviewer = _require_admin(session, admin_id)
        review_action = _require_action(action)
        submission_id = _require_positive_int(submission_id, "submissionId")
        note = _optional_text(note)
        new_status = (
            SubmissionStatus.APPROVED
            if review_action is ReviewAction.APPROVE
            else SubmissionStatus.REJECTED
        )

        result = session.execute(
            update(HymnSubmission)
            .where(
                HymnSubmission.id == submission_id,
                HymnSubmission.status == SubmissionStatus.PENDING.value,
            )
            .values(
                status=new_status.value,
                reviewed_by=reviewer.id,
                review_note=note,
                reviewed_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            if session.get(HymnSubmission, submission_id) is None:
                raise NotFoundError()
            raise ConflictError()

        if review_action is ReviewAction.APPROVE:
            submitter_id = session.scalar(
                select(HymnSubmission.submitted_by).where(
                    HymnSubmission.id == submission_id
                )
            )
            _increment_approved_count(session, submitter_id)

        session.commit()

        submission = session.get(HymnSubmission, submission_id)
        REVIEW_COUNTER.labels(action=review_action.value).inc()
        logger.info(
            "reviewed submission id=%s status=%s by=%s",
            submission_id,
            submission.status,
            reviewer.id,
        )
        return submission
    except Exception as exc:
        _handle_service_error(session, exc)
    finally:
        session.close()


def check_exists(section_id, language, hymn_number) -> Dict[str, object]:
    """Report whether a hymn is already published or pending review.

    Advisory only: ``submit_hymn`` re-checks under the store's unique
    indexes. Rejected submissions are not reported since they never block a
    new attempt.
    """
    if section_id is None or language is None or hymn_number is None:
        raise ValidationError("sectionId, language and hymnNumber are required")
    section_id = _require_positive_int(section_id, "sectionId")
    hymn_number = _require_positive_int(hymn_number, "hymnNumber")
    lang = _require_language(language)

    session: Session = SessionLocal()
    try:
        status = _find_blocking_status(session, section_id, lang.value, hymn_number)
        return {"exists": status is not None, "status": status}
    except Exception as exc:
        _handle_service_error(session, exc)
    finally:
        session.close()


def list_pending(admin_id: Optional[int]) -> List[Dict[str, object]]:
    """Return the review queue, oldest submission first, with submitter summaries."""

    session: Session = SessionLocal()
    try:
        _require_admin(session, admin_id)
        rows = (
            session.query(HymnSubmission, User)
            .join(User, User.id == HymnSubmission.submitted_by)
            .filter(HymnSubmission.status == SubmissionStatus.PENDING.value)
            .order_by(HymnSubmission.created_at, HymnSubmission.id)
            .all()
        )
        return [
            {
                "submission": submission,
                "submitter": {
                    "id": user.id,
                    "username": user.username,
                    "approved_count": user.approved_count,
                },
            }
            for submission, user in rows
        ]
    except Exception as exc:
        _handle_service_error(session, exc)
    finally:
        session.close()


def list_mine(caller_id: Optional[int]) -> List[HymnSubmission]:
    """Return the caller's submissions, newest first."""

    session: Session = SessionLocal()
    try:
        _require_user(session, caller_id)
        return (
            session.query(HymnSubmission)
            .filter(HymnSubmission.submitted_by == caller_id)
            .order_by(HymnSubmission.created_at.desc(), HymnSubmission.id.desc())
            .all()
        )
    except Exception as exc:
        _handle_service_error(session, exc)
    finally:
        session.close()


def list_published(section_id: Optional[int] = None) -> List[HymnSubmission]:
    """Return approved community hymns ordered by section and number."""

    session: Session = SessionLocal()
    try:
        query = session.query(HymnSubmission).filter(
            HymnSubmission.status == SubmissionStatus.APPROVED.value
        )
        if section_id is not None:
            query = query.filter(HymnSubmission.section_id == section_id)
        return query.order_by(
            HymnSubmission.section_id, HymnSubmission.hymn_number
        ).all()
    except Exception as exc:
        _handle_service_error(session, exc)
    finally:
        session.close()


def get_published(submission_id: int) -> HymnSubmission:
    session: Session = SessionLocal()
    try:
        submission = session.get(HymnSubmission, submission_id)
        if submission is None or submission.status != SubmissionStatus.APPROVED.value:
            raise NotFoundError("Hymn not found")
        return submission
    except Exception as exc:
        _handle_service_error(session, exc)
    finally:
        session.close()
