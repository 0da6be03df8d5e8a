"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    error = "Internal Server Error"

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)

    def payload(self) -> dict[str, Any]:
        """Extra envelope fields rendered alongside the message."""
        return {}

    def headers(self) -> dict[str, str] | None:
        """Extra response headers."""
        return None


class NotFoundException(AppException):
    """Resource not found exception."""

    error = "Not Found"

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    error = "Unauthorized"

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)

    def headers(self) -> dict[str, str] | None:
        """Advertise the bearer scheme."""
        return {"WWW-Authenticate": "Bearer"}


class ForbiddenException(AppException):
    """Forbidden access exception."""

    error = "Forbidden"

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class BadRequestException(AppException):
    """Bad request exception."""

    error = "Bad Request"

    def __init__(self, message: str = "Bad request"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class RateLimitException(AppException):
    """Rate limit exceeded exception."""

    error = "Rate Limited"

    def __init__(
        self,
        message: str = "Too many requests. Please wait and try again.",
        retry_after: int = 60,
        limit: int | None = None,
    ):
        """Initialize with 429 status code and a retry hint in seconds."""
        self.retry_after = retry_after
        self.limit = limit
        super().__init__(message, status_code=429)

    def payload(self) -> dict[str, Any]:
        """Expose the retry hint in the body as well."""
        return {"retryAfter": self.retry_after}

    def headers(self) -> dict[str, str] | None:
        """Retry-After plus the standard rate limit headers."""
        headers = {"Retry-After": str(self.retry_after), "X-RateLimit-Remaining": "0"}
        if self.limit is not None:
            headers["X-RateLimit-Limit"] = str(self.limit)
        return headers


class InternalException(AppException):
    """Unexpected failure in an external dependency."""

    def __init__(self, message: str = "An unexpected error occurred"):
        """Initialize with 500 status code."""
        super().__init__(message, status_code=500)


class PartialWriteException(InternalException):
    """
    A two-step write where only some steps landed.

    The identity provider and the profile store are written independently,
    so the outcome of each phase travels with the error.
    """

    def __init__(self, message: str, outcome: Any):
        """Initialize with the per-phase outcome."""
        self.outcome = outcome
        super().__init__(message)

    def payload(self) -> dict[str, Any]:
        """Report which phases completed."""
        payload = {
            "identityWriteOk": self.outcome.identity_write_ok,
            "profileWriteOk": self.outcome.profile_write_ok,
        }
        if self.outcome.created_uid:
            payload["createdUid"] = self.outcome.created_uid
        return payload
