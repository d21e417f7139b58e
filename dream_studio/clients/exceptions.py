"""Custom exceptions for the Replicate API client."""

from __future__ import annotations


class APIError(Exception):
    """Base exception for API-related errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class APIConnectionError(APIError):
    """Raised when connection to the API server fails."""

    def __init__(self, message: str = "Failed to connect to API server") -> None:
        super().__init__(message)


class APITimeoutError(APIError):
    """Raised when API request times out."""

    def __init__(self, message: str = "API request timed out") -> None:
        super().__init__(message)


class APIAuthenticationError(APIError):
    """Raised when the API token is missing or rejected (401/403)."""

    def __init__(self, message: str = "Authentication failed", status_code: int = 401) -> None:
        super().__init__(message, status_code=status_code)


class APINotFoundError(APIError):
    """Raised when requested resource is not found (404)."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, status_code=404)


class APIValidationError(APIError):
    """Raised when request validation fails (400/422)."""

    def __init__(self, message: str = "Request validation failed", status_code: int = 422) -> None:
        super().__init__(message, status_code=status_code)


class APIServerError(APIError):
    """Raised when server returns 5xx error."""

    def __init__(self, message: str = "API server error", status_code: int = 500) -> None:
        super().__init__(message, status_code=status_code)
