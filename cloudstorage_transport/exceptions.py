"""
Custom exceptions for the CloudStorage transport layer.

This module defines the exception classes raised while building requests,
talking to the transport and reading responses.
"""

from typing import Dict, List, Optional


class CloudStorageError(Exception):
    """Base exception for all CloudStorage transport errors."""

    def __init__(self, message: str, error_code: str = None, details: dict = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self):
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class UnsupportedOperationError(CloudStorageError):
    """Raised when an operation is not supported by a request type."""

    def __init__(self, message: str = "Operation not supported for this request", **kwargs):
        super().__init__(message, error_code="UNSUPPORTED_OPERATION", **kwargs)


class ConfigurationError(CloudStorageError):
    """Raised when session configuration is invalid."""

    def __init__(self, message: str = "Invalid configuration", config_key: str = None, **kwargs):
        super().__init__(message, error_code="CONFIG_ERROR", **kwargs)
        self.config_key = config_key


class TransportError(CloudStorageError):
    """Raised when network or stream I/O fails."""

    def __init__(self, message: str = "Network operation failed", cause: Exception = None, **kwargs):
        super().__init__(message, error_code="NETWORK_ERROR", **kwargs)
        self.cause = cause


class ResponseParseError(CloudStorageError):
    """Raised when a successful JSON response cannot be parsed."""

    def __init__(self, message: str = "Error parsing JSON", text: str = None, **kwargs):
        super().__init__(message, error_code="PARSE_ERROR", **kwargs)
        self.text = text


class ApiError(CloudStorageError):
    """
    Raised when the API returns an error status code.

    Attributes:
        status_code: HTTP status code returned by the API
        body: Response body text, empty if the API sent none
        headers: Response headers as a name -> list of values mapping
    """

    default_message = "The API returned an error code"

    def __init__(
        self,
        message: str = None,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        headers: Optional[Dict[str, List[str]]] = None,
        error_code: str = "API_ERROR",
        **kwargs,
    ):
        super().__init__(message or self.default_message, error_code=error_code, **kwargs)
        self.status_code = status_code
        self.body = body
        self.headers = headers if headers is not None else {}

    def __str__(self):
        text = super().__str__()
        if self.status_code is not None:
            text = f"{text} (status {self.status_code})"
        if self.body:
            text = f"{text}\n{self.body}"
        return text

    @classmethod
    def from_status(
        cls,
        status_code: int,
        body: Optional[str] = None,
        headers: Optional[Dict[str, List[str]]] = None,
        message: str = None,
    ) -> "ApiError":
        """Build the most specific ApiError subclass for a status code."""
        if status_code == 401:
            error_cls = AuthenticationError
        elif status_code == 403:
            error_cls = PermissionDeniedError
        elif status_code == 404:
            error_cls = NotFoundError
        elif status_code in (402, 507):
            error_cls = QuotaExceededError
        elif status_code == 429:
            return RateLimitError(
                message,
                status_code=status_code,
                body=body,
                headers=headers,
                retry_after=_retry_after(headers),
            )
        elif status_code >= 500:
            error_cls = ServerError
        else:
            error_cls = ApiError
        return error_cls(message, status_code=status_code, body=body, headers=headers)


class AuthenticationError(ApiError):
    """Raised when authentication fails or credentials are missing."""

    default_message = "Authentication failed"

    def __init__(self, message: str = None, **kwargs):
        super().__init__(message, error_code="AUTH_ERROR", **kwargs)


class PermissionDeniedError(ApiError):
    """Raised when the credentials lack permission for an operation."""

    default_message = "Operation not authorized"

    def __init__(self, message: str = None, **kwargs):
        super().__init__(message, error_code="AUTHZ_ERROR", **kwargs)


class NotFoundError(ApiError):
    """Raised when the requested resource does not exist."""

    default_message = "Resource not found"

    def __init__(self, message: str = None, **kwargs):
        super().__init__(message, error_code="NOT_FOUND", **kwargs)


class QuotaExceededError(ApiError):
    """Raised when storage quota is exceeded."""

    default_message = "Storage quota exceeded"

    def __init__(self, message: str = None, **kwargs):
        super().__init__(message, error_code="QUOTA_EXCEEDED", **kwargs)


class RateLimitError(ApiError):
    """Raised when API rate limit is exceeded."""

    default_message = "Rate limit exceeded"

    def __init__(self, message: str = None, retry_after: int = None, **kwargs):
        super().__init__(message, error_code="RATE_LIMIT", **kwargs)
        self.retry_after = retry_after


class ServerError(ApiError):
    """Raised when the server returns a 5xx status."""

    default_message = "Server error"

    def __init__(self, message: str = None, **kwargs):
        super().__init__(message, error_code="SERVER_ERROR", **kwargs)


def _retry_after(headers: Optional[Dict[str, List[str]]]) -> Optional[int]:
    if not headers:
        return None
    values = headers.get("Retry-After") or headers.get("retry-after")
    if not values:
        return None
    try:
        return int(values[0])
    except (TypeError, ValueError):
        return None
