"""
Generated-content store.
One row per (sermon_id, content_type), enforced by a unique key in the
schema and written with a single upsert on that key.
"""

from datetime import datetime, timezone
from typing import Optional

from ..db import get_admin_client
from ..models import ContentType
from .errors import NotFoundError, ValidationError


VALID_CONTENT_TYPES = [c.value for c in ContentType]


def parse_content_type(value: Optional[str]) -> ContentType:
    if value not in VALID_CONTENT_TYPES:
        raise ValidationError(f"Invalid content type: {value}")
    return ContentType(value)


class GeneratedContentStore:
    """Reads and writes generated_content rows."""

    def __init__(self, client=None):
        self.client = client or get_admin_client()

    def save(self, sermon_id: str, content_type, content) -> dict:
        """
        Insert or replace the content for (sermon, type).
        The existing row keeps its id and created_at.
        """
        result = (
            self.client.table("generated_content")
            .upsert(
                {
                    "sermon_id": sermon_id,
                    "content_type": ContentType(content_type).value,
                    "content": content,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                },
                on_conflict="sermon_id,content_type",
            )
            .execute()
        )
        return result.data[0] if result.data else {}

    def get(self, sermon_id: str, content_type) -> Optional[dict]:
        result = (
            self.client.table("generated_content")
            .select("*")
            .eq("sermon_id", sermon_id)
            .eq("content_type", ContentType(content_type).value)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def require(self, sermon_id: str, content_type, message: str) -> dict:
        """Like get(), but a missing row is a NotFoundError with `message`."""
        row = self.get(sermon_id, content_type)
        if not row:
            raise NotFoundError(message)
        return row

    def list_for_sermon(self, sermon_id: str) -> list:
        result = (
            self.client.table("generated_content")
            .select("*")
            .eq("sermon_id", sermon_id)
            .order("created_at")
            .execute()
        )
        return result.data or []

    def update_content(self, sermon_id: str, content_type, content) -> dict:
        """Edit existing content in place. Missing content is a 404."""
        self.require(sermon_id, content_type, "Content not found. Generate it first.")
        return self.save(sermon_id, content_type, content)
