"""
Application exception hierarchy.

Every error carries an HTTP status and serializes to a problem-details body.
"""

from typing import Any

BASE_ERROR_URL = "https://contractguard.app/errors"


class AppError(Exception):
    """Base exception for application errors."""

    status_code: int = 500
    error_type: str = "internal-error"
    title: str = "Internal Server Error"

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def to_response(self, instance: str | None = None) -> dict[str, Any]:
        """Serialize to a problem-details response body."""
        body: dict[str, Any] = {
            "type": f"{BASE_ERROR_URL}/{self.error_type}",
            "title": self.title,
            "status": self.status_code,
            "detail": self.message,
        }
        if instance:
            body["instance"] = instance
        return {"error": body}


class ValidationError(AppError):
    """Raised when input validation fails."""

    status_code = 400
    error_type = "validation-error"
    title = "Validation Error"


class NotFoundError(AppError):
    """Raised when a resource does not exist."""

    status_code = 404
    error_type = "not-found"
    title = "Not Found"

    def __init__(self, resource: str = "Resource", identifier: str | None = None):
        detail = (
            f"{resource} with id '{identifier}' not found"
            if identifier
            else f"{resource} not found"
        )
        super().__init__(detail)
        self.resource = resource
        self.identifier = identifier


class ConflictError(AppError):
    """Raised when an operation conflicts with the current resource state."""

    status_code = 409
    error_type = "conflict"
    title = "Conflict"


class AnalysisFailedError(AppError):
    """Raised when the analysis pipeline cannot complete."""

    status_code = 422
    error_type = "analysis-failed"
    title = "Analysis Failed"

    def __init__(
        self,
        message: str = "Contract analysis pipeline failed",
        contract_id: str | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message, original_error)
        self.contract_id = contract_id


class ExtractionError(AppError):
    """Raised when no usable text can be extracted from a document."""

    status_code = 422
    error_type = "extraction-failed"
    title = "Extraction Failed"


class ProviderError(AppError):
    """Raised when an external completion or embedding call is exhausted."""

    status_code = 502
    error_type = "provider-error"
    title = "Provider Error"

    def __init__(
        self,
        message: str,
        provider: str,
        model: str | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message, original_error)
        self.provider = provider
        self.model = model


class ResponseParseError(AppError):
    """Raised when a completion response does not match the expected shape."""

    status_code = 502
    error_type = "invalid-response"
    title = "Invalid Provider Response"


class ServiceUnavailableError(AppError):
    """Raised when an infrastructure dependency is unavailable."""

    status_code = 503
    error_type = "service-unavailable"
    title = "Service Unavailable"

    def __init__(self, dependency: str, message: str | None = None):
        super().__init__(
            message or f"Service dependency '{dependency}' is currently unavailable"
        )
        self.dependency = dependency
