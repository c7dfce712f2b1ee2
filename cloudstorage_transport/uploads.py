"""
Concrete multipart upload requests.
"""

import os

from .multipart import MultipartRequest
from .utils import guess_mime_type


class FileUploadRequest(MultipartRequest):
    """Uploads a file as the ``file`` part, typed from its extension."""

    def get_part_name(self) -> str:
        return "file"

    def get_part_content_type(self, filename: str) -> str:
        return guess_mime_type(filename)


class ImageUploadRequest(MultipartRequest):
    """
    Uploads a PNG or JPEG image as the ``pic`` part.

    Raises:
        ValueError: When the filename is not a PNG or JPEG image
    """

    IMAGE_TYPES = {
        ".png": "image/png",
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
    }

    def get_part_name(self) -> str:
        return "pic"

    def get_part_content_type(self, filename: str) -> str:
        extension = os.path.splitext(filename)[1].lower()
        try:
            return self.IMAGE_TYPES[extension]
        except KeyError:
            raise ValueError(f"Unsupported image type for {filename!r}, expected PNG or JPEG") from None
