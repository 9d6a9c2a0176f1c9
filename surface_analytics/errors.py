"""Exception classes for the ingestion service."""


class SurfaceError(Exception):
    """Base exception for request-level collector errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int = 500,
        details: dict | list | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "INTERNAL_ERROR"
        self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API response."""
        result = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result


class AuthenticationError(SurfaceError):
    """Raised when an api_key does not resolve to a known project."""

    def __init__(self, message: str = "Invalid API key"):
        super().__init__(message, error_code="INVALID_API_KEY", status_code=401)


class ValidationError(SurfaceError):
    """Raised when a request is malformed. Nothing is persisted."""

    def __init__(self, message: str = "Invalid request body", errors: list[dict] | None = None):
        self.errors = errors or []
        super().__init__(
            message,
            error_code="VALIDATION_ERROR",
            status_code=400,
            details=self.errors,
        )


class EventProcessingError(Exception):
    """A single event could not be recorded.

    Aggregated into the batch audit row; never returned over HTTP.
    """
