"""
Multipart/form-data requests for file uploads.

The body of a multipart request cannot be set directly. It is built from
named fields and a single file, and is streamed to the transport in
fixed-size chunks so file contents are never held in memory. Multipart
bodies are never logged since they are likely to contain binary data.
"""

import tempfile
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, BinaryIO, Callable, Dict, Iterator, Optional, Union

from .exceptions import UnsupportedOperationError
from .models import CRLF, FieldPart, FilePart
from .progress import ProgressListener
from .request import ApiRequest, SizedBody, rewind_stream, stream_position
from .utils import BUFFER_SIZE, chunk_stream, format_api_date, remaining_length, stream_length

if TYPE_CHECKING:
    from .session import ApiSession

BOUNDARY = "da39a3ee5e6b4b0d3255bfef95601890afd80709"
DELIMITER = b"--" + BOUNDARY.encode("ascii") + CRLF
CLOSE_DELIMITER = b"--" + BOUNDARY.encode("ascii") + b"--" + CRLF

# Callback mode output is kept in memory up to this size, then spilled to disk.
SPOOL_MAX_SIZE = 8 * 1024 * 1024

UploadCallback = Callable[[BinaryIO], None]


class MultipartRequest(ApiRequest, ABC):
    """
    Base class for multipart uploads.

    Subclasses decide the name of the file part and its content type.
    File content comes either from a stream given to ``set_file`` or from a
    callback given to ``set_upload_callback`` that writes into a sink.
    """

    def __init__(self, session: Optional["ApiSession"], url: str):
        super().__init__(session, url, "POST")
        self.add_header("Content-Type", f"multipart/form-data; boundary={BOUNDARY}")
        self.fields: Dict[str, str] = {}
        self._stream: Optional[BinaryIO] = None
        self._stream_start: Optional[int] = None
        self._callback: Optional[UploadCallback] = None
        self._filename: Optional[str] = None
        self._file_size: Optional[int] = None
        self._file_content_type: Optional[str] = None

    @abstractmethod
    def get_part_name(self) -> str:
        """Form field name of the file part."""

    @abstractmethod
    def get_part_content_type(self, filename: str) -> str:
        """Content type of the file part for a given filename."""

    def set_file(self, stream: BinaryIO, filename: str, size: Optional[int] = None) -> None:
        """
        Set the file contents of this request.

        The stream is read once per send. To survive a retried send it must
        be seekable; it is rewound to its current position before re-sending.

        Args:
            stream: Binary stream with the file contents
            filename: Name of the file
            size: Size of the file in bytes, used for progress totals
        """
        self._file_content_type = self.get_part_content_type(filename)
        self._stream = stream
        self._stream_start = stream_position(stream)
        self._callback = None
        self._filename = filename
        self._file_size = size
        self._body_sent = False

    def set_upload_callback(self, callback: UploadCallback, filename: str, size: Optional[int] = None) -> None:
        """
        Produce the file contents by writing into a sink.

        Args:
            callback: Called with a writable binary sink on every send
            filename: Name of the file
            size: Expected size in bytes, used for progress totals
        """
        self._file_content_type = self.get_part_content_type(filename)
        self._callback = callback
        self._stream = None
        self._stream_start = None
        self._filename = filename
        self._file_size = size
        self._body_sent = False

    def put_field(self, key: str, value: Union[str, datetime]) -> None:
        """
        Add or replace a form field. Datetimes use the API date format.

        Raises:
            TypeError: If the value is neither a string nor a datetime
        """
        if isinstance(value, datetime):
            value = format_api_date(value)
        elif not isinstance(value, str):
            raise TypeError(f"Field {key!r} must be a string or a datetime, not {type(value).__name__}")
        self.fields[key] = value

    def set_content_checksum(self, sha1: str) -> None:
        """
        Send the SHA1 of the file contents so the server can detect
        corruption in transit. Nothing is verified locally.
        """
        self.add_header("Content-MD5", sha1)

    def set_body(self, body, length: Optional[int] = None) -> None:
        raise UnsupportedOperationError(
            "Multipart request bodies are built with put_field() and set_file()"
        )

    def set_json(self, payload) -> None:
        raise UnsupportedOperationError(
            "Multipart request bodies are built with put_field() and set_file()"
        )

    def reset_body(self) -> None:
        if self._stream is not None:
            rewind_stream(self._stream, self._stream_start)
        self._body_sent = False

    def body_to_string(self) -> str:
        return ""

    def write_to(self, sink: BinaryIO, listener: Optional[ProgressListener] = None) -> None:
        """Encode the whole multipart body into ``sink``."""
        for chunk in self.iter_body(listener):
            sink.write(chunk)

    def iter_body(self, listener: Optional[ProgressListener] = None) -> Iterator[bytes]:
        """
        Yield the encoded multipart body.

        The file part comes first, followed by one part per field. File
        content is yielded in chunks of at most 8 KiB, and ``listener`` is
        called after each chunk with the file bytes so far and the expected
        file size (-1 when it cannot be estimated).
        """
        part = self._file_part()

        yield DELIMITER + part.header_bytes()
        if part.stream is not None:
            yield from self._iter_file(part.stream, self._progress_total(part), listener)
        else:
            yield from self._iter_callback(part, listener)
        yield CRLF

        for name, value in self.fields.items():
            field = FieldPart(name, value)
            yield DELIMITER + field.header_bytes() + field.content_bytes() + CRLF

        yield CLOSE_DELIMITER

    def content_length(self) -> int:
        """
        Size of the encoded body in bytes, or -1 when it cannot be known
        before sending.

        The file size is measured from the stream where possible and taken
        from the size hint otherwise. Callback content only exists once the
        callback has run, so callback requests report -1.
        """
        part = self._file_part()
        if part.stream is None:
            return -1
        file_size = stream_length(part.stream, part.size)
        if file_size < 0:
            return -1

        length = len(DELIMITER) + len(part.header_bytes()) + file_size + len(CRLF)
        for name, value in self.fields.items():
            field = FieldPart(name, value)
            length += len(DELIMITER) + len(field.header_bytes()) + len(field.content_bytes()) + len(CRLF)
        return length + len(CLOSE_DELIMITER)

    def _body_data(self, listener: Optional[ProgressListener]):
        length = self.content_length()
        chunks = self.iter_body(listener)
        if length < 0:
            return chunks
        return SizedBody(chunks, length)

    def _streams_body(self) -> bool:
        return self._stream is not None

    def _file_part(self) -> FilePart:
        if self._stream is None and self._callback is None:
            raise UnsupportedOperationError("A multipart request needs a file or an upload callback")
        return FilePart(
            name=self.get_part_name(),
            filename=self._filename,
            content_type=self._file_content_type,
            stream=self._stream,
            callback=self._callback,
            size=self._file_size,
        )

    @staticmethod
    def _progress_total(part: FilePart) -> int:
        if part.size is not None:
            return part.size
        return remaining_length(part.stream)

    @staticmethod
    def _iter_file(stream: BinaryIO, total: int, listener: Optional[ProgressListener]) -> Iterator[bytes]:
        written = 0
        for chunk in chunk_stream(stream, BUFFER_SIZE):
            yield chunk
            written += len(chunk)
            if listener is not None:
                listener(written, total)

    def _iter_callback(self, part: FilePart, listener: Optional[ProgressListener]) -> Iterator[bytes]:
        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE) as spool:
            part.callback(spool)
            total = part.size if part.size is not None else spool.tell()
            spool.seek(0)
            yield from self._iter_file(spool, total, listener)
