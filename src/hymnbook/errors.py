"""Error taxonomy shared by the workflow engine and the HTTP layer."""


class HymnbookError(Exception):
    """Base class for errors that carry a stable code and an HTTP status."""

    code = "error"
    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(HymnbookError):
    code = "validation"
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(HymnbookError):
    code = "authentication"
    status_code = 401
    default_message = "Authentication required"


class AuthorizationError(HymnbookError):
    code = "authorization"
    status_code = 403
    default_message = "Admin access required"


class NotFoundError(HymnbookError):
    code = "not_found"
    status_code = 404
    default_message = "Submission not found"


class ConflictError(HymnbookError):
    code = "conflict"
    status_code = 409
    default_message = "Submission has already been reviewed"


class DuplicateError(HymnbookError):
    """A hymn with the same section, language and number already blocks a new one.

    ``kind`` is ``"approved"`` when the hymn is already published and
    ``"pending"`` when another submission is waiting for review.
    """

    code = "duplicate"
    status_code = 409

    MESSAGES = {
        "approved": "This hymn already exists in the database.",
        "pending": "This hymn is already pending review.",
    }

    def __init__(self, kind: str):
        if kind not in self.MESSAGES:
            raise ValueError(f"unknown duplicate kind: {kind}")
        self.kind = kind
        super().__init__(self.MESSAGES[kind])

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["kind"] = self.kind
        return data


class StoreError(HymnbookError):
    code = "store"
    status_code = 500
    default_message = "Database error"
