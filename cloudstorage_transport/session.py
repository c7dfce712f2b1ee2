"""
Session for sending requests to the CloudStorage API.

This module provides ApiSession, the connection that knows the endpoint and
credentials, owns the ``requests`` transport, and turns ApiRequest objects
into ApiResponse objects.
"""

import logging
import os
import time
from typing import Optional, Type

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from . import __version__
from .auth import AuthManager
from .exceptions import AuthenticationError, TransportError
from .multipart import MultipartRequest
from .progress import ProgressListener
from .request import ApiRequest
from .response import ApiResponse, read_response
from .uploads import FileUploadRequest
from .utils import backoff_delay

DEFAULT_ENDPOINT = "https://api.cloudstorage.com"
RETRY_STATUS_CODES = (429, 500, 502, 503, 504)
MAX_RETRY_DELAY = 60.0
USER_AGENT = f"CloudStorage-Python-Transport/{__version__}"


class ApiSession:
    """
    Authenticated connection to the CloudStorage API.

    Connection failures are retried by the transport before any body is
    sent. Responses with a retryable status (429 and 5xx gateway errors)
    are retried here: the request body is reset, the session backs off,
    and the request is sent again.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout: int = 30,
        max_retries: int = 3,
        backoff_factor: float = 1.0,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the session.

        Args:
            api_key: API key for authentication (can also use CLOUDSTORAGE_API_KEY env var)
            api_secret: API secret for request signing (can also use CLOUDSTORAGE_API_SECRET env var)
            endpoint: API endpoint URL (can also use CLOUDSTORAGE_ENDPOINT env var)
            timeout: Transport timeout in seconds
            max_retries: Maximum number of retry attempts
            backoff_factor: Base delay in seconds for exponential backoff
            logger: Logger to use instead of this module's logger
        """
        self.api_key = api_key or os.getenv("CLOUDSTORAGE_API_KEY")
        self.api_secret = api_secret or os.getenv("CLOUDSTORAGE_API_SECRET")
        self.endpoint = (endpoint or os.getenv("CLOUDSTORAGE_ENDPOINT") or DEFAULT_ENDPOINT).rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.logger = logger or logging.getLogger(__name__)

        if not self.api_key:
            raise AuthenticationError("API key is required. Provide it as parameter or CLOUDSTORAGE_API_KEY env var.")

        self.auth = AuthManager(self.api_key, self.api_secret)

        # Only connection errors are retried by the adapter, nothing has been sent yet.
        self.http = requests.Session()
        retry_strategy = Retry(
            total=max_retries,
            connect=max_retries,
            read=0,
            status=0,
            other=0,
            backoff_factor=backoff_factor,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.http.mount("http://", adapter)
        self.http.mount("https://", adapter)
        self.http.headers.update({"User-Agent": USER_AGENT})

    def build_url(self, path: str) -> str:
        """Absolute URL for an API path. Absolute URLs are returned as is."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.endpoint}/{path.lstrip('/')}"

    def request(self, method: str, path: str) -> ApiRequest:
        """Create a request bound to this session."""
        return ApiRequest(self, self.build_url(path), method)

    def upload_request(
        self,
        path: str,
        request_cls: Type[MultipartRequest] = FileUploadRequest,
    ) -> MultipartRequest:
        """Create a multipart upload request bound to this session."""
        return request_cls(self, self.build_url(path))

    def send(self, request: ApiRequest, listener: Optional[ProgressListener] = None) -> ApiResponse:
        """
        Send a request and read its response.

        Args:
            request: Request to send
            listener: Upload progress listener passed to the request body

        Returns:
            ApiResponse for a successful response

        Raises:
            ApiError: If the API returned an error status after all retries
            TransportError: On network failure or when the body cannot be reset
        """
        attempt = 0
        while True:
            raw = self._dispatch(request, listener)
            if raw.status_code not in RETRY_STATUS_CODES or attempt >= self.max_retries:
                return read_response(raw, logger=self.logger)

            delay = self._retry_delay(raw, attempt)
            attempt += 1
            self.logger.warning(
                "%s %s returned %d, retrying in %.1fs (attempt %d of %d)",
                request.method, request.url, raw.status_code, delay, attempt, self.max_retries,
            )
            raw.close()
            request.reset_body()
            time.sleep(delay)

    def _dispatch(self, request: ApiRequest, listener: Optional[ProgressListener]) -> requests.Response:
        prepared = self.http.prepare_request(request.build(listener))
        prepared.headers.update(self.auth.get_auth_headers(prepared.method, prepared.path_url))

        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug("%s", request)

        try:
            return self.http.send(prepared, stream=True, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise TransportError(f"Request timeout: {e}", cause=e) from e
        except requests.exceptions.ConnectionError as e:
            raise TransportError(f"Connection error: {e}", cause=e) from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request failed: {e}", cause=e) from e

    def _retry_delay(self, raw: requests.Response, attempt: int) -> float:
        if raw.status_code == 429:
            try:
                return min(float(raw.headers.get("Retry-After", "")), MAX_RETRY_DELAY)
            except ValueError:
                pass
        return backoff_delay(attempt, self.backoff_factor, MAX_RETRY_DELAY)

    def close(self) -> None:
        """Release pooled connections."""
        self.http.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
