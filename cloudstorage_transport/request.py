"""
Request building for the CloudStorage API.

An ApiRequest collects the method, URL, headers and body of a single call
and turns them into a ``requests.Request`` for the session to send.
"""

import io
import json
from typing import TYPE_CHECKING, Any, BinaryIO, Iterator, List, Optional, Tuple, Union

import requests
from requests.structures import CaseInsensitiveDict

from .exceptions import ConfigurationError, TransportError, UnsupportedOperationError
from .progress import ProgressListener
from .utils import BUFFER_SIZE, chunk_stream, remaining_length, stream_length

if TYPE_CHECKING:
    from .response import ApiResponse
    from .session import ApiSession

SENSITIVE_HEADERS = ("authorization", "x-cloudstorage-signature")

Body = Union[str, bytes, BinaryIO]


def mask_header(name: str, value: str) -> str:
    """Hide credentials when a header is rendered for logging."""
    if name.lower() in SENSITIVE_HEADERS:
        return "***"
    return value


class ApiRequest:
    """
    A single HTTP request to the CloudStorage API.

    The body can be set once, either as text, bytes, a binary stream or a
    JSON payload. Stream bodies are sent without being read into memory
    and must be seekable if the request may be retried.
    """

    def __init__(self, session: Optional["ApiSession"], url: str, method: str = "GET"):
        self.session = session
        self.url = url
        self.method = method.upper()
        self.headers: List[Tuple[str, str]] = []
        self._body: Optional[Body] = None
        self._body_set = False
        self._body_length: Optional[int] = None
        self._body_start: Optional[int] = None
        self._body_sent = False

    def add_header(self, name: str, value: str) -> None:
        """Append a header. Repeated names are kept and sent comma-joined."""
        self.headers.append((name, value))

    def get_headers(self) -> CaseInsensitiveDict:
        """Headers in the form handed to the transport."""
        merged = CaseInsensitiveDict()
        for name, value in self.headers:
            if name in merged:
                merged[name] = f"{merged[name]}, {value}"
            else:
                merged[name] = value
        return merged

    def set_body(self, body: Body, length: Optional[int] = None) -> None:
        """
        Set the request body.

        Args:
            body: Text (sent as UTF-8), bytes, or a readable binary stream
            length: Size of a stream body, used for progress reporting

        Raises:
            UnsupportedOperationError: If the body was already set
        """
        if self._body_set:
            raise UnsupportedOperationError("The request body has already been set")

        if isinstance(body, (str, bytes, bytearray)):
            self._body_length = len(body.encode("utf-8") if isinstance(body, str) else body)
        else:
            self._body_length = length
            self._body_start = stream_position(body)

        self._body = body
        self._body_set = True

    def set_json(self, payload: Any) -> None:
        """Serialize ``payload`` as the JSON body of this request."""
        self.set_body(json.dumps(payload))
        self.add_header("Content-Type", "application/json")

    def reset_body(self) -> None:
        """
        Prepare the body to be sent again.

        Text and byte bodies need nothing. Stream bodies are rewound to the
        position they had when they were set.

        Raises:
            TransportError: If the stream body cannot be rewound
        """
        if self._streams_body():
            rewind_stream(self._body, self._body_start)
        self._body_sent = False

    def body_to_string(self) -> str:
        """Loggable form of the body. Binary bodies are never rendered."""
        if isinstance(self._body, str):
            return self._body
        return ""

    def build(self, listener: Optional[ProgressListener] = None) -> requests.Request:
        """
        Assemble the transport request.

        Args:
            listener: Optional upload progress listener for stream bodies

        Returns:
            A ``requests.Request`` ready to be prepared by a session

        Raises:
            UnsupportedOperationError: If a stream body was already handed
                out and ``reset_body`` has not been called since
        """
        if self._body_sent:
            raise UnsupportedOperationError(
                "The request body stream was already sent; call reset_body() before sending again"
            )
        data = self._body_data(listener)
        self._body_sent = self._streams_body()
        return requests.Request(
            method=self.method,
            url=self.url,
            headers=self.get_headers(),
            data=data,
        )

    def send(self, listener: Optional[ProgressListener] = None) -> "ApiResponse":
        """Send this request through its session."""
        if self.session is None:
            raise ConfigurationError("Request is not bound to a session", config_key="session")
        return self.session.send(self, listener=listener)

    def _body_data(self, listener: Optional[ProgressListener]):
        body = self._body
        if body is None:
            return None
        if isinstance(body, str):
            return body.encode("utf-8")
        if isinstance(body, (bytes, bytearray)):
            return bytes(body)
        length = stream_length(body, self._body_length)
        if listener is None:
            if remaining_length(body) < 0 and length > 0:
                return SizedBody(chunk_stream(body, BUFFER_SIZE), length)
            return body
        chunks = self._iter_stream(body, listener)
        if length > 0:
            return SizedBody(chunks, length)
        return chunks

    def _streams_body(self) -> bool:
        return self._body is not None and not isinstance(self._body, (str, bytes, bytearray))

    def _iter_stream(self, stream: BinaryIO, listener: ProgressListener) -> Iterator[bytes]:
        total = self._body_length if self._body_length is not None else remaining_length(stream)
        sent = 0
        for chunk in chunk_stream(stream, BUFFER_SIZE):
            yield chunk
            sent += len(chunk)
            listener(sent, total)

    def __str__(self):
        lines = ["Request", f"{self.method} {self.url}"]
        for name, value in self.headers:
            lines.append(f"{name}: {mask_header(name, value)}")
        body = self.body_to_string()
        if body:
            lines.append("")
            lines.append(body)
        return "\n".join(lines)


class SizedBody:
    """
    An iterable request body whose length is known up front.

    ``requests`` sends a plain iterator with chunked transfer encoding. It
    takes the length of anything that has ``__len__`` and sends a
    Content-Length header instead.
    """

    def __init__(self, chunks: Iterator[bytes], length: int):
        self._chunks = chunks
        self.length = length

    def __iter__(self) -> Iterator[bytes]:
        return self._chunks

    def __len__(self) -> int:
        return self.length


def stream_position(stream: BinaryIO) -> Optional[int]:
    try:
        if stream.seekable():
            return stream.tell()
    except (AttributeError, OSError, ValueError):
        pass
    return None


def rewind_stream(stream: BinaryIO, position: Optional[int]) -> None:
    if position is None:
        raise TransportError("The request body stream cannot be reset for a retried request")
    try:
        stream.seek(position, io.SEEK_SET)
    except (OSError, ValueError) as e:
        raise TransportError("Could not reset the request body stream", cause=e) from e
