"""
Document export routes.

Endpoints:
- GET /{id}/export/pdf - Sermon notes as PDF
- GET /{id}/export/docx - Sermon notes as Word
- GET /{id}/export/pptx - Sermon notes as PowerPoint
- GET /{id}/export/discussion-guide/pdf - Discussion guide as PDF
- GET /{id}/export/discussion-guide/docx - Discussion guide as Word

Exports read stored content and the caller's branding; nothing is written
except the content_exported analytics event.
"""

import logging
from datetime import date
from typing import Optional

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import Response

from ...exporters import (
    BrandingOptions,
    generate_discussion_guide_docx,
    generate_discussion_guide_pdf,
    generate_sermon_notes_docx,
    generate_sermon_notes_pdf,
    generate_sermon_notes_pptx,
    safe_filename,
)
from ...lib import GeneratedContentStore, SermonService, SettingsService, get_current_user
from ...lib.analytics import track_content_exported
from ...models import ContentType


logger = logging.getLogger(__name__)

router = APIRouter()

NOTES_MISSING = "Sermon notes not found. Please generate sermon notes first."
GUIDE_MISSING = "Discussion guide not found"

MEDIA_TYPES = {
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
}


def fetch_logo(url: Optional[str]) -> Optional[bytes]:
    """Download the church logo for embedding. A missing logo never blocks an export."""
    if not url:
        return None
    try:
        response = httpx.get(url, timeout=10.0, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("Could not fetch logo %s: %s", url, e)
        return None
    return response.content


def format_sermon_date(value) -> str:
    """'2025-03-09' -> 'March 9, 2025'."""
    if not value:
        return ""
    try:
        parsed = date.fromisoformat(str(value)[:10])
    except ValueError:
        return str(value)
    return f"{parsed.strftime('%B')} {parsed.day}, {parsed.year}"


def _load(user_id: str, sermon_id: str, content_type: ContentType, missing: str):
    sermons = SermonService()
    sermon = sermons.get(user_id, sermon_id)
    row = GeneratedContentStore(sermons.client).require(sermon_id, content_type, missing)
    branding = SettingsService(sermons.client).get_branding(user_id)
    options = BrandingOptions.from_settings(branding, fetch_logo(branding.get("church_logo_url")))
    return sermons, sermon, row["content"], options


def _download(data: bytes, filename: str, fmt: str) -> Response:
    return Response(
        content=data,
        media_type=MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _export_notes(user: dict, sermon_id: str, fmt: str, render) -> Response:
    sermons, sermon, content, branding = _load(user["id"], sermon_id, ContentType.SERMON_NOTES, NOTES_MISSING)
    data = render(sermon["title"], format_sermon_date(sermon.get("sermon_date")), content, branding)
    track_content_exported(user["id"], sermon_id, ContentType.SERMON_NOTES.value, fmt, client=sermons.client)
    return _download(data, safe_filename(sermon["title"], f"_Sermon_Notes.{fmt}"), fmt)


def _export_guide(user: dict, sermon_id: str, fmt: str, render) -> Response:
    sermons, sermon, content, branding = _load(user["id"], sermon_id, ContentType.DISCUSSION_GUIDE, GUIDE_MISSING)
    data = render(content, format_sermon_date(sermon.get("sermon_date")), branding)
    track_content_exported(user["id"], sermon_id, ContentType.DISCUSSION_GUIDE.value, fmt, client=sermons.client)
    return _download(data, safe_filename(sermon["title"], f"_Discussion_Guide.{fmt}"), fmt)


@router.get("/{sermon_id}/export/pdf")
def export_notes_pdf(sermon_id: str, user: dict = Depends(get_current_user)):
    """Sermon notes PDF with church branding."""
    return _export_notes(user, sermon_id, "pdf", generate_sermon_notes_pdf)


@router.get("/{sermon_id}/export/docx")
def export_notes_docx(sermon_id: str, user: dict = Depends(get_current_user)):
    return _export_notes(user, sermon_id, "docx", generate_sermon_notes_docx)


@router.get("/{sermon_id}/export/pptx")
def export_notes_pptx(sermon_id: str, user: dict = Depends(get_current_user)):
    """Slide deck: title slide, one slide per section, questions and application slides."""
    return _export_notes(user, sermon_id, "pptx", generate_sermon_notes_pptx)


@router.get("/{sermon_id}/export/discussion-guide/pdf")
def export_guide_pdf(sermon_id: str, user: dict = Depends(get_current_user)):
    return _export_guide(user, sermon_id, "pdf", generate_discussion_guide_pdf)


@router.get("/{sermon_id}/export/discussion-guide/docx")
def export_guide_docx(sermon_id: str, user: dict = Depends(get_current_user)):
    return _export_guide(user, sermon_id, "docx", generate_discussion_guide_docx)
