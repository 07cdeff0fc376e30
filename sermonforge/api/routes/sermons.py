"""
Sermon routes.

Endpoints:
- GET / - List the caller's sermons
- POST / - Create a sermon (usage gated)
- GET /{id} - One sermon
- PATCH /{id} - Update title, date, sources or transcript
- DELETE /{id} - Delete a sermon and its media
- POST /{id}/upload - Upload audio/video/pdf media
- POST /{id}/process - Start the processing job
- POST /{id}/retry - Move an errored sermon back to draft
- POST /{id}/transcribe - Transcribe now (blocking)
- POST /{id}/generate - Queue content generation
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile

from ...lib import SermonService, get_current_user
from ...lib.rate_limit import RateLimitResult, rate_limit_headers, rate_limited
from ...models import GenerateRequest, ProcessRequest, SermonCreateRequest, SermonUpdateRequest


router = APIRouter()


@router.get("")
async def list_sermons(
    status: Optional[str] = None,
    user: dict = Depends(get_current_user)
):
    """List sermons, newest first. Optional ?status= filter."""
    service = SermonService()
    try:
        sermons = service.list(user["id"], status)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid status: {status}")
    return {"sermons": sermons}


@router.post("", status_code=201)
async def create_sermon(
    body: SermonCreateRequest,
    user: dict = Depends(get_current_user)
):
    """
    Create a sermon in draft.

    Returns:
    - sermon: The created row

    Fails with 402 and the usage report when the plan limit is reached.
    """
    service = SermonService()
    return {"sermon": service.create(user["id"], body)}


@router.get("/{sermon_id}")
async def get_sermon(
    sermon_id: str,
    user: dict = Depends(get_current_user)
):
    service = SermonService()
    return {"sermon": service.get(user["id"], sermon_id)}


@router.patch("/{sermon_id}")
async def update_sermon(
    sermon_id: str,
    body: SermonUpdateRequest,
    user: dict = Depends(get_current_user)
):
    service = SermonService()
    return {"sermon": service.update(user["id"], sermon_id, body)}


@router.delete("/{sermon_id}")
async def delete_sermon(
    sermon_id: str,
    user: dict = Depends(get_current_user)
):
    service = SermonService()
    service.delete(user["id"], sermon_id)
    return {"success": True}


@router.post("/{sermon_id}/upload")
async def upload_media(
    sermon_id: str,
    file: UploadFile = File(...),
    user: dict = Depends(get_current_user)
):
    """
    Upload sermon media to storage.

    The file extension decides which column is set (audio_url, video_url
    or pdf_url). Only drafts accept new media.
    """
    data = await file.read()
    service = SermonService()
    sermon = service.attach_media(
        user["id"], sermon_id, file.filename, data, file.content_type
    )
    return {"sermon": sermon}


@router.post("/{sermon_id}/process")
async def process_sermon(
    sermon_id: str,
    response: Response,
    body: Optional[ProcessRequest] = None,
    user: dict = Depends(get_current_user),
    limit: RateLimitResult = Depends(rate_limited("process")),
):
    """
    Start background processing: transcribe if needed, then generate all content.

    Body (optional):
    - skipTranscription: Use the stored transcript even when audio is attached

    Returns:
    - success, message, sermonId
    - willTranscribe: Whether the job will transcribe first
    - alreadyProcessing: Present when the sermon was already running
    """
    response.headers.update(rate_limit_headers(limit))
    service = SermonService()
    skip = bool(body and body.skipTranscription)
    return service.start_processing(user["id"], sermon_id, skip_transcription=skip)


@router.post("/{sermon_id}/retry")
async def retry_sermon(
    sermon_id: str,
    user: dict = Depends(get_current_user)
):
    """error -> draft, so processing can be started again."""
    service = SermonService()
    return service.retry(user["id"], sermon_id)


@router.post("/{sermon_id}/transcribe")
def transcribe_sermon(
    sermon_id: str,
    response: Response,
    user: dict = Depends(get_current_user),
    limit: RateLimitResult = Depends(rate_limited("transcribe")),
):
    """
    Transcribe the sermon's audio or video and store the transcript.

    Blocks until the provider finishes. On failure the sermon moves to
    error and the response is 500 {"error": "Transcription failed", "details"}.
    """
    response.headers.update(rate_limit_headers(limit))
    service = SermonService()
    return service.transcribe_now(user["id"], sermon_id)


@router.post("/{sermon_id}/generate", status_code=202)
async def generate_content(
    sermon_id: str,
    body: GenerateRequest,
    response: Response,
    user: dict = Depends(get_current_user),
    limit: RateLimitResult = Depends(rate_limited("generate")),
):
    """
    Queue generation of one content type, or "all".

    Body:
    - content_type: sermon_notes | devotional | discussion_guide | social_media | kids_version | all
    """
    response.headers.update(rate_limit_headers(limit))
    service = SermonService()
    return service.request_generation(user["id"], sermon_id, body.content_type)
