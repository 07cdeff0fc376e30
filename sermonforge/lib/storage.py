"""
Supabase Storage uploads: sermon media, church logos, profile photos.
Type and size are checked before anything is written.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from ..db import get_admin_client
from .errors import UpstreamError, ValidationError


logger = logging.getLogger(__name__)

MB = 1024 * 1024

SERMON_BUCKET = "sermons"
LOGO_BUCKET = "church-logos"
AVATAR_BUCKET = "avatars"

SERMON_MAX_BYTES = 500 * MB
LOGO_MAX_BYTES = 5 * MB
AVATAR_MAX_BYTES = 2 * MB

AUDIO_EXTENSIONS = ("mp3", "m4a", "wav", "aac", "ogg")
VIDEO_EXTENSIONS = ("mp4", "mov", "avi", "mkv", "webm")
PDF_EXTENSIONS = ("pdf",)

LOGO_TYPES = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/svg+xml": "svg",
}

AVATAR_TYPES = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


@dataclass
class StoredFile:
    path: str
    public_url: str


def file_extension(filename: Optional[str]) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def media_kind(filename: str) -> str:
    """'audio', 'video' or 'pdf' for an upload name; ValidationError otherwise."""
    ext = file_extension(filename)
    if ext in AUDIO_EXTENSIONS:
        return "audio"
    if ext in VIDEO_EXTENSIONS:
        return "video"
    if ext in PDF_EXTENSIONS:
        return "pdf"
    raise ValidationError(
        "Unsupported file type. Allowed: "
        + ", ".join(AUDIO_EXTENSIONS + VIDEO_EXTENSIONS + PDF_EXTENSIONS)
    )


class StorageService:
    """Wraps client.storage with our bucket layout."""

    def __init__(self, client=None):
        self.client = client or get_admin_client()

    def _upload(self, bucket: str, path: str, data: bytes, content_type: str, upsert: bool = False) -> StoredFile:
        try:
            self.client.storage.from_(bucket).upload(
                path,
                data,
                {"content-type": content_type, "upsert": "true" if upsert else "false"},
            )
        except Exception as e:
            raise UpstreamError("Failed to upload file", details=str(e))
        public_url = self.client.storage.from_(bucket).get_public_url(path)
        logger.info("Uploaded %s/%s (%d bytes)", bucket, path, len(data))
        return StoredFile(path=path, public_url=public_url)

    def upload_sermon_media(
        self, user_id: str, sermon_id: str, filename: str, data: bytes, content_type: str
    ) -> tuple:
        """Store sermon media under {uid}/{sermonId}/{ts}.{ext}; returns (kind, StoredFile)."""
        kind = media_kind(filename)
        if len(data) > SERMON_MAX_BYTES:
            raise ValidationError("File too large. Maximum size is 500MB")
        path = f"{user_id}/{sermon_id}/{int(time.time() * 1000)}.{file_extension(filename)}"
        return kind, self._upload(SERMON_BUCKET, path, data, content_type or "application/octet-stream")

    def remove_sermon_media(self, user_id: str, sermon_id: str) -> None:
        folder = f"{user_id}/{sermon_id}"
        bucket = self.client.storage.from_(SERMON_BUCKET)
        files = bucket.list(folder) or []
        if files:
            bucket.remove([f"{folder}/{f['name']}" for f in files])

    def upload_logo(self, user_id: str, data: bytes, content_type: str) -> StoredFile:
        """Replace the church logo. Old logos in the user's folder are removed first."""
        if content_type not in LOGO_TYPES:
            raise ValidationError("Invalid file type. Please upload PNG, JPG, WebP, GIF or SVG")
        if len(data) > LOGO_MAX_BYTES:
            raise ValidationError("File too large. Maximum size is 5MB")

        self.remove_logos(user_id)
        path = f"{user_id}/logo-{int(time.time() * 1000)}.{LOGO_TYPES[content_type]}"
        return self._upload(LOGO_BUCKET, path, data, content_type)

    def remove_logos(self, user_id: str) -> None:
        bucket = self.client.storage.from_(LOGO_BUCKET)
        files = bucket.list(user_id) or []
        if files:
            bucket.remove([f"{user_id}/{f['name']}" for f in files])

    def upload_avatar(self, user_id: str, data: bytes, content_type: str) -> StoredFile:
        if content_type not in AVATAR_TYPES:
            raise ValidationError("Invalid file type. Please upload PNG, JPG, WebP or GIF")
        if len(data) > AVATAR_MAX_BYTES:
            raise ValidationError("File too large. Maximum size is 2MB")

        path = f"{user_id}/profile.{AVATAR_TYPES[content_type]}"
        return self._upload(AVATAR_BUCKET, path, data, content_type, upsert=True)
