from typing import Any


class PerfHubError(Exception):
    """Base class for errors raised outside the HTTP layer (services, scheduler)."""

    status_code = 400
    error_code = "BUSINESS_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class NotFoundError(PerfHubError):
    status_code = 404
    error_code = "NOT_FOUND"


class ConflictError(PerfHubError):
    status_code = 409
    error_code = "CONFLICT"


class ValidationFailed(PerfHubError):
    status_code = 422
    error_code = "VALIDATION_FAILED"
