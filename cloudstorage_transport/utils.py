"""
Utility functions for the CloudStorage transport layer.

This module provides helpers for streaming, checksums, date formatting
and retry timing shared by the request and response code.
"""

import hashlib
import io
import math
import mimetypes
from datetime import datetime, timezone
from typing import BinaryIO, Iterator, Optional, Union

BUFFER_SIZE = 8192


def chunk_stream(stream: BinaryIO, chunk_size: int = BUFFER_SIZE) -> Iterator[bytes]:
    """
    Read a stream in chunks.

    Args:
        stream: Binary stream to read from
        chunk_size: Size of each chunk in bytes

    Yields:
        Chunks as bytes, never empty
    """
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        yield chunk


def calculate_sha1(data: Union[bytes, BinaryIO]) -> str:
    """
    Calculate the SHA1 hex digest of bytes or a stream.

    A stream is read to the end and rewound to where it started, so it can
    still be handed to a request afterwards.

    Args:
        data: Bytes or a seekable binary stream

    Returns:
        Hex digest string
    """
    hasher = hashlib.sha1()
    if isinstance(data, (bytes, bytearray)):
        hasher.update(data)
        return hasher.hexdigest()

    start = data.tell()
    for chunk in chunk_stream(data):
        hasher.update(chunk)
    data.seek(start)
    return hasher.hexdigest()


def remaining_length(stream: BinaryIO) -> int:
    """
    Estimate how many bytes are left to read from a stream.

    This is best-effort: sockets and pipes report -1.
    """
    if isinstance(stream, io.BytesIO):
        return len(stream.getbuffer()) - stream.tell()
    try:
        if stream.seekable():
            position = stream.tell()
            end = stream.seek(0, io.SEEK_END)
            stream.seek(position)
            return end - position
    except (AttributeError, OSError, ValueError):
        pass
    return -1


def stream_length(stream: BinaryIO, size_hint: Optional[int] = None) -> int:
    """
    Number of bytes a stream will deliver when read to the end.

    Measured from the stream when it can be, otherwise the caller's size
    hint, otherwise -1.
    """
    length = remaining_length(stream)
    if length < 0 and size_hint is not None:
        return size_hint
    return length


def format_api_date(value: datetime) -> str:
    """
    Format a datetime the way the API expects it.

    Naive datetimes are treated as UTC.

    Args:
        value: Datetime to format

    Returns:
        ISO 8601 string with seconds precision and offset, e.g.
        "2024-05-01T12:30:00+00:00"
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def guess_mime_type(filename: str) -> str:
    """
    Guess MIME type from filename.

    Args:
        filename: Name of the file

    Returns:
        MIME type string
    """
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type or "application/octet-stream"


def backoff_delay(attempt: int, backoff_factor: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Delay before retry number ``attempt`` (0-based) with exponential backoff.

    Args:
        attempt: Retry attempt, starting at 0
        backoff_factor: Base delay in seconds
        max_delay: Upper bound in seconds

    Returns:
        Delay in seconds
    """
    return min(backoff_factor * (2 ** attempt), max_delay)


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB")
    """
    if size_bytes <= 0:
        return "0 B"

    size_names = ["B", "KB", "MB", "GB", "TB", "PB"]
    i = int(math.floor(math.log(size_bytes, 1024)))

    if i >= len(size_names):
        i = len(size_names) - 1

    p = math.pow(1024, i)
    size = round(size_bytes / p, 2)

    return f"{size} {size_names[i]}"
