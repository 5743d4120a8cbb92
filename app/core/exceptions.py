"""
Domain error kinds for Crime Alert Hub.

Every error carries the HTTP status code and a stable machine-readable code.
The route layer does not translate them one by one; a single exception
handler in app.main renders them.
"""

from typing import Optional


class CrimeAlertError(Exception):
    """Base class for all expected domain failures."""

    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str, *, detail: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class NotFoundError(CrimeAlertError):
    """Report (or other target) does not exist."""
    status_code = 404
    code = "not_found"


class ValidationFailedError(CrimeAlertError):
    """Required content or location is missing."""
    status_code = 422
    code = "validation_failed"


class PermissionDeniedError(CrimeAlertError):
    """Caller does not own the report it tries to change."""
    status_code = 403
    code = "permission_denied"


class SelfVoteRejectedError(CrimeAlertError):
    status_code = 400
    code = "self_vote_rejected"


class DuplicateVoteError(CrimeAlertError):
    status_code = 409
    code = "duplicate_vote"


class VoteQuotaExceededError(CrimeAlertError):
    status_code = 429
    code = "vote_quota_exceeded"


class UpstreamStorageError(CrimeAlertError):
    """Blob store I/O failed."""
    status_code = 502
    code = "upstream_storage_failure"
