"""Authorization predicates derived from a verified user id.

All checks are read-only. An id that does not resolve to a user yields
``False`` for every predicate.
"""

from typing import Optional

from sqlalchemy.orm import Session

from .config import settings
from .models.user import User


def trusted_threshold() -> int:
    return settings.trusted_threshold


def user_is_trusted(user: Optional[User], threshold: Optional[int] = None) -> bool:
    """Return ``True`` when ``user`` has enough approved contributions."""

    if user is None:
        return False
    if threshold is None:
        threshold = trusted_threshold()
    return (user.approved_count or 0) >= threshold


def load_user(session: Session, user_id: Optional[int]) -> Optional[User]:
    if user_id is None:
        return None
    return session.get(User, user_id)


def is_authenticated(session: Session, user_id: Optional[int]) -> bool:
    return load_user(session, user_id) is not None


def is_admin(session: Session, user_id: Optional[int]) -> bool:
    user = load_user(session, user_id)
    return bool(user is not None and user.is_admin)


def is_trusted(
    session: Session, user_id: Optional[int], threshold: Optional[int] = None
) -> bool:
    return user_is_trusted(load_user(session, user_id), threshold)
