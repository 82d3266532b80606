"""Database setup for storing hymn submissions."""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    text,
)
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import settings

engine = create_engine(settings.database_url, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
Base = declarative_base()


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class HymnSubmission(Base):
    """A community-contributed hymn and its review state.

    One partial unique index covers both blocking statuses, so a (section,
    language, number) has at most one submission that is pending or approved.
    Rejected rows are not covered, so they may accumulate.
    """

    __tablename__ = "hymn_submissions"
    __table_args__ = (
        CheckConstraint("hymn_number > 0", name="ck_hymn_submissions_hymn_number_positive"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_hymn_submissions_status",
        ),
        Index(
            "uq_hymn_submissions_active",
            "section_id",
            "language",
            "hymn_number",
            unique=True,
            sqlite_where=text("status IN ('pending', 'approved')"),
            postgresql_where=text("status IN ('pending', 'approved')"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    section_id = Column(Integer, nullable=False)
    section_name = Column(String, nullable=False)
    language = Column(String, nullable=False)
    hymn_number = Column(Integer, nullable=False)
    title = Column(String, nullable=False)
    verses = Column(Text, nullable=False)
    chorus = Column(Text)
    submitted_by = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    status = Column(String, default=SubmissionStatus.PENDING.value, nullable=False)
    reviewed_by = Column(Integer, ForeignKey("users.id"))
    review_note = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    reviewed_at = Column(DateTime)


def init_db() -> None:
    """Create database tables if they do not exist."""
    from .models import user  # noqa: F401

    Base.metadata.create_all(bind=engine)
