"""
Data models for multipart request bodies.

This module defines the parts that make up a multipart/form-data body:
named text fields and the single file part.
"""

from dataclasses import dataclass
from typing import BinaryIO, Callable, Optional

CRLF = b"\r\n"


def _quote(value: str) -> str:
    """Escape a value for use inside a quoted Content-Disposition parameter."""
    return value.replace("\n", "%0A").replace("\r", "%0D").replace('"', "%22")


@dataclass
class FieldPart:
    """A named text field of a multipart body."""

    name: str
    value: str

    def header_bytes(self) -> bytes:
        """Part headers followed by the blank line that starts the content."""
        return (
            f'Content-Disposition: form-data; name="{_quote(self.name)}"'.encode("utf-8")
            + CRLF
            + CRLF
        )

    def content_bytes(self) -> bytes:
        return self.value.encode("utf-8")


@dataclass
class FilePart:
    """
    The file section of a multipart body.

    Exactly one of ``stream`` and ``callback`` is set. ``stream`` is pulled
    from; ``callback`` is called with a writable sink and pushes the content.
    """

    name: str
    filename: str
    content_type: str
    stream: Optional[BinaryIO] = None
    callback: Optional[Callable[[BinaryIO], None]] = None
    size: Optional[int] = None

    def header_bytes(self) -> bytes:
        disposition = (
            f'Content-Disposition: form-data; name="{_quote(self.name)}"; '
            f'filename="{_quote(self.filename)}"'
        )
        return (
            disposition.encode("utf-8")
            + CRLF
            + f"Content-Type: {self.content_type}".encode("utf-8")
            + CRLF
            + CRLF
        )
