"""
Response handling for the CloudStorage API.

Every response returned to callers represents a success: ``read_response``
raises an ApiError for error status codes before any ApiResponse exists.
Bodies are either parsed eagerly (JSON) or exposed as a stream that is
opened on first access and must be released with ``disconnect()``.
"""

import gzip
import io
import json
import logging
from typing import Any, BinaryIO, List, Optional

import requests
from requests.structures import CaseInsensitiveDict

from .exceptions import ApiError, ResponseParseError, TransportError
from .progress import ProgressListener, ProgressReportingStream

BODY_UNAVAILABLE = "Body was null"


def is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def log_response(log: logging.Logger, status_code: int, description: str) -> None:
    """Log a response at a level chosen from its status code alone."""
    if is_success(status_code):
        log.debug("%s", description)
    elif status_code < 500:
        log.warning("%s", description)
    else:
        log.error("%s", description)


class ApiResponse:
    """
    A successful response from the CloudStorage API.

    Constructing an ApiResponse with an error status raises ApiError, so
    every instance represents a 2xx response or a passed-through redirect.
    The body stream is opened lazily by ``get_body`` and the underlying
    connection is held until ``disconnect`` is called or the response is
    used as a context manager.
    """

    def __init__(
        self,
        status_code: int,
        request_method: Optional[str] = None,
        request_url: Optional[str] = None,
        headers: Optional[CaseInsensitiveDict] = None,
        body: Optional[BinaryIO] = None,
        content_type: Optional[str] = None,
        content_length: int = 0,
        redirect: bool = False,
        transport: Optional[requests.Response] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.status_code = status_code
        self.request_method = request_method
        self.request_url = request_url
        self.headers = headers if headers is not None else CaseInsensitiveDict()
        self.content_type = content_type
        self.content_length = content_length
        self._raw_stream = body
        self._stream: Optional[BinaryIO] = None
        self._transport = transport
        self._disconnected = False
        self._logger = logger or logging.getLogger(__name__)

        if is_success(status_code) or redirect:
            log_response(self._logger, status_code, str(self))
        else:
            self._raise_for_status()

    def _raise_for_status(self) -> None:
        body = _read_stream_text(self._raw_stream)
        log_response(
            self._logger,
            self.status_code,
            describe_response(self.request_method, self.request_url, self.status_code, self.headers, body),
        )
        error = ApiError.from_status(self.status_code, body, self.headers)
        try:
            self.disconnect()
        except TransportError as e:
            raise error from e
        raise error

    def get_header(self, name: str) -> str:
        """First value of a header, or an empty string when absent."""
        values = self.headers.get(name)
        if not values:
            return ""
        return values[0]

    def get_body(self, listener: Optional[ProgressListener] = None) -> BinaryIO:
        """
        Get a stream for reading the response body.

        The stream is built on the first call: the raw stream is wrapped
        to report progress to ``listener`` (if given), then to decompress
        gzip content when the Content-Encoding header says so. Later calls
        return the same stream and ignore ``listener``.

        Args:
            listener: Called with (bytes read, content length) while reading

        Returns:
            A binary stream, empty if the response has no body
        """
        if self._stream is None:
            stream = self._raw_stream if self._raw_stream is not None else io.BytesIO()
            if listener is not None:
                stream = ProgressReportingStream(stream, listener, self.content_length)
            if self._is_gzipped():
                stream = gzip.GzipFile(fileobj=stream, mode="rb")
            self._stream = stream
        return self._stream

    def _is_gzipped(self) -> bool:
        return self.get_header("Content-Encoding").lower() == "gzip"

    def body_text(self, encoding: str = "utf-8") -> str:
        """Read the remaining body and decode it as text."""
        return self.get_body().read().decode(encoding, errors="replace")

    def disconnect(self) -> None:
        """
        Release the body stream and the connection behind it.

        The body can no longer be read afterwards. Calling this more than
        once, or before the body was ever read, does nothing extra.

        Raises:
            TransportError: If closing the stream fails
        """
        if self._disconnected:
            return
        self._disconnected = True
        error: Optional[OSError] = None
        for closeable in (self._stream, self._raw_stream, self._transport):
            if closeable is None:
                continue
            try:
                closeable.close()
            except OSError as e:
                error = error or e
        if error is not None:
            raise TransportError(
                "Couldn't finish closing the connection to the API due to a network error", cause=error
            ) from error

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()

    def __str__(self):
        return describe_response(self.request_method, self.request_url, self.status_code, self.headers)


class JsonResponse(ApiResponse):
    """A successful response whose JSON body has already been parsed."""

    def __init__(self, status_code: int, payload: Any, text: str = "", **kwargs):
        self._payload = payload
        self._text = text
        super().__init__(status_code, body=io.BytesIO(text.encode("utf-8")), **kwargs)

    def json(self) -> Any:
        """The parsed JSON body."""
        return self._payload

    def _is_gzipped(self) -> bool:
        # Already decoded by the transport when the text was read.
        return False

    def body_text(self, encoding: str = "utf-8") -> str:
        return self._text


def read_response(raw: requests.Response, logger: Optional[logging.Logger] = None) -> ApiResponse:
    """
    Turn a transport response into an ApiResponse.

    Args:
        raw: Response from ``requests`` sent with ``stream=True``
        logger: Logger to use instead of this module's logger

    Returns:
        ApiResponse for a body streamed on demand, JsonResponse for JSON
        content, or an empty ApiResponse when there is no content

    Raises:
        ApiError: For non-2xx responses that are not redirects
        ResponseParseError: If a JSON body cannot be parsed
        TransportError: If a JSON body cannot be read
    """
    log = logger or logging.getLogger(__name__)
    headers = header_multimap(raw)
    method = raw.request.method if raw.request is not None else None
    url = raw.url or (raw.request.url if raw.request is not None else None)
    status_code = raw.status_code

    if not is_success(status_code) and not raw.is_redirect:
        body = _read_error_body(raw)
        log_response(log, status_code, describe_response(method, url, status_code, headers, body))
        raise ApiError.from_status(status_code, body, headers)

    common = dict(
        request_method=method,
        request_url=url,
        headers=headers,
        redirect=raw.is_redirect,
        logger=log,
    )
    content_type = raw.headers.get("Content-Type")
    content_length = _content_length(raw)

    if content_length == 0 or not content_type:
        raw.close()
        return ApiResponse(status_code, **common)

    if "application/json" in content_type.lower():
        try:
            text = raw.content.decode(raw.encoding or "utf-8", errors="replace")
        except requests.RequestException as e:
            raise TransportError("Error getting response to string", cause=e) from e
        finally:
            raw.close()
        try:
            payload = json.loads(text)
        except ValueError as e:
            raise ResponseParseError(f"Error parsing JSON:\n{text}", text=text) from e
        return JsonResponse(
            status_code,
            payload,
            text,
            content_type=content_type,
            content_length=content_length,
            **common,
        )

    return ApiResponse(
        status_code,
        body=raw.raw,
        content_type=content_type,
        content_length=content_length,
        transport=raw,
        **common,
    )


def header_multimap(raw: requests.Response) -> CaseInsensitiveDict:
    """Response headers as a case-insensitive name -> list of values mapping."""
    original = getattr(raw.raw, "headers", None)
    getlist = getattr(original, "getlist", None)
    headers = CaseInsensitiveDict()
    for name, value in raw.headers.items():
        values: List[str] = list(getlist(name)) if getlist is not None else []
        headers[name] = values or [value]
    return headers


def _content_length(raw: requests.Response) -> int:
    try:
        return int(raw.headers.get("Content-Length", -1))
    except (TypeError, ValueError):
        return -1


def _read_error_body(raw: requests.Response) -> str:
    try:
        content = raw.content
    except (requests.RequestException, OSError, RuntimeError):
        return BODY_UNAVAILABLE
    finally:
        raw.close()
    if content is None:
        return BODY_UNAVAILABLE
    return content.decode(raw.encoding or "utf-8", errors="replace")


def _read_stream_text(stream: Optional[BinaryIO]) -> str:
    if stream is None:
        return BODY_UNAVAILABLE
    try:
        content = stream.read()
    except (OSError, ValueError):
        return BODY_UNAVAILABLE
    if content is None:
        return BODY_UNAVAILABLE
    return content.decode("utf-8", errors="replace")


def describe_response(method, url, status_code, headers, body: Optional[str] = None) -> str:
    """Render a response for logging: request line, lowercased headers, optional body."""
    lines = ["Response", f"{method} {url} {status_code}"]
    for name, values in headers.items():
        lines.append(f"{name.lower()}: {values}")
    if body:
        lines.append("")
        lines.append(body)
    return "\n".join(lines)
