"""
Generated content routes.

Endpoints:
- GET /{id}/content - All generated content for a sermon
- GET /{id}/content/{type} - One content type
- PUT /{id}/content/{type} - Save edits to existing content

Ownership is checked through the sermon before any content is read.
"""

from fastapi import APIRouter, Depends, HTTPException

from ...lib import GeneratedContentStore, SermonService, get_current_user
from ...lib.analytics import track_devotional_viewed
from ...lib.content import parse_content_type
from ...models import ContentType, ContentUpdateRequest


router = APIRouter()


@router.get("/{sermon_id}/content")
async def list_content(
    sermon_id: str,
    user: dict = Depends(get_current_user)
):
    """
    Get every generated content row for a sermon.

    Returns:
    - content: List of {id, sermon_id, content_type, content, created_at, updated_at}
    """
    sermons = SermonService()
    sermons.get(user["id"], sermon_id)
    store = GeneratedContentStore(sermons.client)
    return {"content": store.list_for_sermon(sermon_id)}


@router.get("/{sermon_id}/content/{content_type}")
async def get_content(
    sermon_id: str,
    content_type: str,
    user: dict = Depends(get_current_user)
):
    """One content type. Viewing a devotional is recorded in analytics."""
    kind = parse_content_type(content_type)
    sermons = SermonService()
    sermons.get(user["id"], sermon_id)
    store = GeneratedContentStore(sermons.client)
    row = store.require(sermon_id, kind, "Content not found. Generate it first.")

    if kind == ContentType.DEVOTIONAL:
        track_devotional_viewed(user["id"], sermon_id, client=sermons.client)

    return {"content": row}


@router.put("/{sermon_id}/content/{content_type}")
async def update_content(
    sermon_id: str,
    content_type: str,
    body: ContentUpdateRequest,
    user: dict = Depends(get_current_user)
):
    """
    Replace the stored content with the user's edited version.

    Body:
    - content: The full content object for this type
    """
    kind = parse_content_type(content_type)
    if body.content is None:
        raise HTTPException(status_code=400, detail="content is required in request body")

    sermons = SermonService()
    sermons.get(user["id"], sermon_id)
    store = GeneratedContentStore(sermons.client)
    return {"content": store.update_content(sermon_id, kind, body.content)}
