from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from .errors import PayloadTooLarge, ValidationError

RECIPE_PHOTO_FOLDER = "recipe-app/recipes"
PROFILE_PHOTO_FOLDER = "recipe-app/profiles"

DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024
DEFAULT_UPLOAD_TIMEOUT = 30.0

ALLOWED_IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}


@dataclass(frozen=True)
class PhotoUpload:
    """An image received from a client, read fully into memory."""

    data: bytes
    filename: Optional[str] = None
    content_type: Optional[str] = None

    @classmethod
    def from_file_storage(cls, file: Optional[FileStorage]) -> Optional["PhotoUpload"]:
        if file is None or not file.filename:
            return None
        file.stream.seek(0)
        return cls(data=file.stream.read(), filename=file.filename, content_type=file.mimetype)

    def validate(self) -> None:
        if not allowed_image(self.filename):
            raise ValidationError("Unsupported image format. Allowed formats: PNG, JPG, JPEG, GIF, WEBP.")


def ensure_within_limit(data: bytes, max_bytes: int) -> None:
    if len(data) > max_bytes:
        limit_mb = max_bytes / (1024 * 1024)
        raise PayloadTooLarge(f"File too large, the limit is {limit_mb:g} MB")


def build_asset_name(folder: str, filename: Optional[str]) -> str:
    unique = uuid.uuid4().hex
    safe = secure_filename(filename or "")
    if not safe:
        return f"{folder}/{unique}"
    return f"{folder}/{unique}_{safe}"


def allowed_image(filename: Optional[str]) -> bool:
    if not filename or "." not in filename:
        return False
    ext = filename.rsplit(".", 1)[1].lower()
    return ext in ALLOWED_IMAGE_EXTENSIONS


__all__ = [
    "ALLOWED_IMAGE_EXTENSIONS",
    "DEFAULT_MAX_UPLOAD_BYTES",
    "DEFAULT_UPLOAD_TIMEOUT",
    "PROFILE_PHOTO_FOLDER",
    "PhotoUpload",
    "RECIPE_PHOTO_FOLDER",
    "allowed_image",
    "build_asset_name",
    "ensure_within_limit",
]
