"""FastAPI application exposing the hymn submission workflow."""

from datetime import datetime
from typing import List

import logging
from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .auth import (
    create_access_token,
    create_refresh_token,
    get_current_user,
    get_db,
    hash_password,
    verify_password,
)
from .catalog import Language
from .config import settings
from .database import init_db
from .errors import AuthenticationError, HymnbookError, ValidationError
from .models.user import User
from .permissions import user_is_trusted
from .services import (
    ReviewAction,
    check_exists,
    get_published,
    list_mine,
    list_pending,
    list_published,
    review_submission,
    submit_hymn,
)


limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
app = FastAPI(title=settings.api_title)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
init_db()

logger = logging.getLogger(__name__)

SENSITIVE_RATE_LIMIT = "5/minute"
SUBMISSION_RATE_LIMIT = "30/hour"

# Prometheus counter to track API requests by method, endpoint and status code
REQUEST_COUNTER = Counter(
    "api_requests_total",
    "Total API requests",
    ["method", "endpoint", "status"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log incoming requests and their outcomes while updating metrics."""
    logger.info("request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        REQUEST_COUNTER.labels(
            method=request.method,
            endpoint=request.url.path,
            status=str(response.status_code),
        ).inc()
        logger.info(
            "response %s %s status %s",
            request.method,
            request.url.path,
            response.status_code,
        )
        return response
    except Exception:
        REQUEST_COUNTER.labels(
            method=request.method,
            endpoint=request.url.path,
            status="500",
        ).inc()
        logger.exception(
            "error handling %s %s", request.method, request.url.path
        )
        raise


@app.exception_handler(HymnbookError)
async def handle_hymnbook_error(request: Request, exc: HymnbookError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    """Report the first schema violation with the same shape as domain errors."""
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = first.get("loc", ())[-1] if first.get("loc") else None
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", message)
    return JSONResponse(status_code=400, content=ValidationError(message).to_dict())


class CamelModel(BaseModel):
    """Base schema using the client's camelCase keys on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class SubmissionRequest(CamelModel):
    """Request body for submitting a hymn."""

    section_id: int = Field(..., gt=0)
    section_name: str | None = None
    language: Language
    hymn_number: int = Field(..., gt=0, description="Hymn number within the section")
    title: str
    verses: str = Field(..., description="Plain text, verses separated by blank lines")
    chorus: str | None = None

    @field_validator("title", "verses")
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("must not be blank")
        return normalized


class ReviewRequest(CamelModel):
    """Request body for reviewing a pending submission."""

    action: ReviewAction
    note: str | None = None


class SubmissionResponse(CamelModel):
    """Serialized hymn submission."""

    id: int
    section_id: int
    section_name: str
    language: str
    hymn_number: int
    title: str
    verses: str
    chorus: str | None = None
    submitted_by: int
    status: str
    reviewed_by: int | None = None
    review_note: str | None = None
    created_at: datetime
    reviewed_at: datetime | None = None


class SubmitResponse(CamelModel):
    submission: SubmissionResponse
    auto_approved: bool
    message: str


class SubmitterSummary(CamelModel):
    id: int
    username: str
    approved_count: int


class PendingSubmissionResponse(CamelModel):
    submission: SubmissionResponse
    submitter: SubmitterSummary


class ExistsResponse(CamelModel):
    exists: bool
    status: str | None = None


class UserResponse(CamelModel):
    id: int
    username: str
    is_admin: bool
    approved_count: int
    is_trusted: bool


class UserCreate(BaseModel):
    """Request body for registering a new user."""

    username: str = Field(..., min_length=3, max_length=32)
    password: str = Field(..., min_length=6)

    @field_validator("username")
    @classmethod
    def normalize_username(cls, value: str) -> str:
        normalized = value.strip()
        if len(normalized) < 3:
            raise ValueError("must be at least 3 characters")
        return normalized


class UserLogin(BaseModel):
    """Request body for user login."""

    username: str
    password: str


class TokenResponse(CamelModel):
    """JWT access and refresh tokens with the authenticated user."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse


def serialize_user(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        is_admin=bool(user.is_admin),
        approved_count=user.approved_count or 0,
        is_trusted=user_is_trusted(user),
    )


def _token_response(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user),
        refresh_token=create_refresh_token(user),
        user=serialize_user(user),
    )


@app.get("/api/health")
def health():
    return {"status": "ok"}


@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.post("/api/auth/register", response_model=TokenResponse)
@limiter.limit(SENSITIVE_RATE_LIMIT)
def register(request: Request, user: UserCreate, db: Session = Depends(get_db)):
    if db.query(User).filter(User.username == user.username).first():
        raise ValidationError("Username already registered")
    db_user = User(
        username=user.username,
        password_hash=hash_password(user.password),
    )
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError("Username already registered") from exc
    db.refresh(db_user)
    logger.info("registered user id=%s", db_user.id)
    return _token_response(db_user)


@app.post("/api/auth/login", response_model=TokenResponse)
@limiter.limit(SENSITIVE_RATE_LIMIT)
def login(request: Request, user: UserLogin, db: Session = Depends(get_db)):
    db_user = db.query(User).filter(User.username == user.username.strip()).first()
    if not db_user or not verify_password(user.password, db_user.password_hash):
        raise AuthenticationError("Invalid credentials")
    return _token_response(db_user)


@app.get("/api/auth/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    """Return the caller with their derived trust level."""

    return serialize_user(current_user)


@app.post("/api/auth/logout")
def logout(current_user: User = Depends(get_current_user)):
    """Tokens are stateless; the client discards them."""

    logger.info("logout user id=%s", current_user.id)
    return {"success": True}


@app.post("/api/submissions", response_model=SubmitResponse)
@limiter.limit(SUBMISSION_RATE_LIMIT)
def post_submission(
    request: Request,
    payload: SubmissionRequest,
    current_user: User = Depends(get_current_user),
):
    """Submit a hymn; trusted contributors and admins are published immediately."""

    return submit_hymn(
        caller_id=current_user.id,
        section_id=payload.section_id,
        section_name=payload.section_name,
        language=payload.language,
        hymn_number=payload.hymn_number,
        title=payload.title,
        verses=payload.verses,
        chorus=payload.chorus,
    )


@app.get("/api/submissions/pending", response_model=List[PendingSubmissionResponse])
def get_pending_submissions(current_user: User = Depends(get_current_user)):
    """Return the review queue for admins."""

    return list_pending(current_user.id)


@app.get("/api/submissions/mine", response_model=List[SubmissionResponse])
def get_my_submissions(current_user: User = Depends(get_current_user)):
    """Return the caller's submissions, newest first."""

    return list_mine(current_user.id)


@app.post("/api/submissions/{submission_id}/review", response_model=SubmissionResponse)
def post_review(
    submission_id: int,
    payload: ReviewRequest,
    current_user: User = Depends(get_current_user),
):
    """Approve or reject a pending submission."""

    return review_submission(
        admin_id=current_user.id,
        submission_id=submission_id,
        action=payload.action,
        note=payload.note,
    )


@app.get("/api/hymns/check-exists", response_model=ExistsResponse)
def get_check_exists(
    section_id: int | None = Query(None, alias="sectionId"),
    language: str | None = None,
    hymn_number: int | None = Query(None, alias="hymnNumber"),
):
    """Advisory duplicate check used by the client before submitting."""

    return check_exists(section_id, language, hymn_number)


@app.get("/api/hymns/community", response_model=List[SubmissionResponse])
def get_community_hymns(section_id: int | None = Query(None, alias="sectionId")):
    """Return published community hymns, optionally for one section."""

    return list_published(section_id)


@app.get("/api/hymns/community/{submission_id}", response_model=SubmissionResponse)
def get_community_hymn(submission_id: int):
    return get_published(submission_id)
