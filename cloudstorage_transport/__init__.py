"""
CloudStorage Transport - HTTP request/response plumbing for the CloudStorage API.

This package provides the layer that resource clients are built on:
- Authenticated requests with text, JSON or streamed bodies
- Streaming multipart/form-data file uploads
- Progress reporting for uploads and downloads
- Response reading with JSON parsing and transparent gzip
- Error status to exception translation
- CLI tools for raw API access
"""

__version__ = "1.0.0"
__author__ = "CloudStorage Team"
__email__ = "support@cloudstorage.com"

from .session import ApiSession
from .request import ApiRequest
from .multipart import BOUNDARY, MultipartRequest
from .uploads import FileUploadRequest, ImageUploadRequest
from .response import ApiResponse, JsonResponse, read_response
from .progress import ProgressListener, ProgressReportingStream
from .exceptions import (
    CloudStorageError,
    UnsupportedOperationError,
    ConfigurationError,
    TransportError,
    ResponseParseError,
    ApiError,
    AuthenticationError,
    PermissionDeniedError,
    NotFoundError,
    QuotaExceededError,
    RateLimitError,
    ServerError,
)

__all__ = [
    # Session and requests
    "ApiSession",
    "ApiRequest",
    "MultipartRequest",
    "FileUploadRequest",
    "ImageUploadRequest",
    "BOUNDARY",

    # Responses
    "ApiResponse",
    "JsonResponse",
    "read_response",

    # Progress
    "ProgressListener",
    "ProgressReportingStream",

    # Exceptions
    "CloudStorageError",
    "UnsupportedOperationError",
    "ConfigurationError",
    "TransportError",
    "ResponseParseError",
    "ApiError",
    "AuthenticationError",
    "PermissionDeniedError",
    "NotFoundError",
    "QuotaExceededError",
    "RateLimitError",
    "ServerError",
]
