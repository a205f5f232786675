"""Upload constraints applied before an image is handed to the Media Store."""

from __future__ import annotations

import os

from werkzeug.datastructures import FileStorage

from .errors import InvalidInput

ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "webp"}
ALLOWED_IMAGE_MIMETYPES = {"image/jpeg", "image/png", "image/webp"}
MAX_IMAGE_BYTES = 5 * 1024 * 1024


def has_upload(image: FileStorage | None) -> bool:
    return bool(image and image.filename)


def check_image(image: FileStorage) -> None:
    """Raise :class:`InvalidInput` unless ``image`` is an accepted upload."""

    if not _allowed_image(image.filename):
        raise InvalidInput("Invalid image format. Allowed formats: JPG, JPEG, PNG, WEBP.")
    if image.mimetype and image.mimetype not in ALLOWED_IMAGE_MIMETYPES:
        raise InvalidInput("Invalid image format. Allowed formats: JPG, JPEG, PNG, WEBP.")
    if _size_of(image) > MAX_IMAGE_BYTES:
        raise InvalidInput("File size too large. Maximum 5MB allowed.")


def _allowed_image(filename: str | None) -> bool:
    if not filename or "." not in filename:
        return False
    ext = filename.rsplit(".", 1)[1].lower()
    return ext in ALLOWED_IMAGE_EXTENSIONS


def _size_of(image: FileStorage) -> int:
    stream = image.stream
    position = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(position)
    return size


__all__ = ["ALLOWED_IMAGE_EXTENSIONS", "MAX_IMAGE_BYTES", "check_image", "has_upload"]
