"""
Sermon service.
CRUD for sermons plus the user-facing lifecycle triggers: start processing,
retry after an error, transcribe now, and request content generation.

Every read is scoped to the caller's user id; a sermon owned by someone
else is reported as not found.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from ..db import get_admin_client
from ..models import InputType, SermonCreateRequest, SermonStatus, SermonUpdateRequest
from .analytics import track_sermon_created
from .content import VALID_CONTENT_TYPES, parse_content_type
from .errors import (
    InvalidTransitionError,
    NotFoundError,
    TranscriptionError,
    UsageLimitError,
    ValidationError,
)
from .jobs import GENERATE_CONTENT, PROCESS_SERMON, JobDispatcher
from .lifecycle import SermonLifecycle
from .storage import StorageService
from .usage import UsageEvaluator
from .validation import (
    extract_youtube_id,
    has_sufficient_transcript,
    validate_optional_url,
    validate_title,
)


logger = logging.getLogger(__name__)

URL_FIELDS = ("audio_url", "video_url", "pdf_url", "youtube_url")


def has_media_source(sermon: dict) -> bool:
    return bool(sermon.get("audio_url") or sermon.get("video_url") or sermon.get("youtube_url"))


class SermonService:
    """Handles sermon records and lifecycle triggers."""

    def __init__(
        self,
        client=None,
        dispatcher: Optional[JobDispatcher] = None,
        transcriber=None,
        usage: Optional[UsageEvaluator] = None,
        storage: Optional[StorageService] = None,
    ):
        self.client = client or get_admin_client()
        self.lifecycle = SermonLifecycle(self.client)
        self.usage = usage or UsageEvaluator(self.client)
        self._dispatcher = dispatcher
        self._transcriber = transcriber
        self._storage = storage

    @property
    def dispatcher(self) -> JobDispatcher:
        if self._dispatcher is None:
            self._dispatcher = JobDispatcher()
        return self._dispatcher

    @property
    def transcriber(self):
        if self._transcriber is None:
            from .transcription import TranscriptionService
            self._transcriber = TranscriptionService()
        return self._transcriber

    @property
    def storage(self) -> StorageService:
        if self._storage is None:
            self._storage = StorageService(self.client)
        return self._storage

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def list(self, user_id: str, status: Optional[str] = None) -> list:
        query = (
            self.client.table("sermons")
            .select("*")
            .eq("user_id", user_id)
        )
        if status:
            query = query.eq("status", SermonStatus(status).value)
        result = query.order("created_at", desc=True).execute()
        return result.data or []

    def get(self, user_id: str, sermon_id: str) -> dict:
        result = (
            self.client.table("sermons")
            .select("*")
            .eq("id", sermon_id)
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            raise NotFoundError("Sermon not found")
        return result.data[0]

    def create(self, user_id: str, body: SermonCreateRequest) -> dict:
        """
        Create a sermon in draft.

        The usage gate runs first; a user over their limit gets a
        UsageLimitError carrying the full usage report.
        """
        record = {
            "user_id": user_id,
            "title": validate_title(body.title),
            "sermon_date": body.sermon_date.isoformat(),
            "input_type": body.input_type.value,
            "status": SermonStatus.DRAFT.value,
        }
        for field in URL_FIELDS:
            record[field] = validate_optional_url(field, getattr(body, field))

        if body.input_type == InputType.YOUTUBE:
            if not extract_youtube_id(record["youtube_url"]):
                raise ValidationError("Please enter a valid YouTube URL")
        if body.input_type == InputType.TEXT_PASTE:
            if not (body.transcript or "").strip():
                raise ValidationError("Please paste the sermon text")
        if body.transcript:
            record["transcript"] = body.transcript.strip()

        report = self.usage.check(user_id)
        if not report.allowed:
            raise UsageLimitError(
                report.message or "Sermon limit reached",
                extra={"usage": report.to_dict()},
            )

        result = self.client.table("sermons").insert(record).execute()
        sermon = result.data[0]
        logger.info("Created sermon %s for user %s", sermon["id"], user_id)

        self._increment_usage_counter(user_id)
        track_sermon_created(user_id, sermon["id"], record["input_type"], client=self.client)
        return sermon

    def update(self, user_id: str, sermon_id: str, body: SermonUpdateRequest) -> dict:
        self.get(user_id, sermon_id)
        changes = body.model_dump(exclude_unset=True)
        update = {}

        if "title" in changes:
            update["title"] = validate_title(changes["title"])
        if changes.get("sermon_date"):
            update["sermon_date"] = changes["sermon_date"].isoformat()
        for field in URL_FIELDS:
            if field in changes:
                update[field] = validate_optional_url(field, changes[field])
        if "transcript" in changes:
            update["transcript"] = (changes["transcript"] or "").strip() or None

        if not update:
            raise ValidationError("No fields to update")

        update["updated_at"] = datetime.now(timezone.utc).isoformat()
        result = (
            self.client.table("sermons")
            .update(update)
            .eq("id", sermon_id)
            .eq("user_id", user_id)
            .execute()
        )
        return result.data[0]

    def delete(self, user_id: str, sermon_id: str) -> None:
        self.get(user_id, sermon_id)
        self.storage.remove_sermon_media(user_id, sermon_id)
        self.client.table("sermons").delete().eq("id", sermon_id).eq("user_id", user_id).execute()
        logger.info("Deleted sermon %s", sermon_id)

    def attach_media(
        self, user_id: str, sermon_id: str, filename: str, data: bytes, content_type: str
    ) -> dict:
        """Upload a media file and point the matching *_url column at it."""
        sermon = self.get(user_id, sermon_id)
        if SermonStatus(sermon["status"]) != SermonStatus.DRAFT:
            raise InvalidTransitionError("Media can only be changed while the sermon is a draft")

        kind, stored = self.storage.upload_sermon_media(user_id, sermon_id, filename, data, content_type)
        result = (
            self.client.table("sermons")
            .update({f"{kind}_url": stored.public_url})
            .eq("id", sermon_id)
            .eq("user_id", user_id)
            .execute()
        )
        return result.data[0]

    def _increment_usage_counter(self, user_id: str) -> None:
        subscription = self.usage.get_subscription(user_id)
        if not subscription:
            return
        self.client.table("subscriptions").update({
            "sermon_count": (subscription.get("sermon_count") or 0) + 1,
        }).eq("user_id", user_id).execute()

    # -------------------------------------------------------------------------
    # Lifecycle triggers
    # -------------------------------------------------------------------------

    def start_processing(self, user_id: str, sermon_id: str, skip_transcription: bool = False) -> dict:
        """
        draft -> processing, then dispatch the processing job.

        A sermon left in processing without a job (transcribed through
        /transcribe) gets its job here. Calling this on a sermon whose job
        is already queued or running returns the current state without
        dispatching again.

        skip_transcription asks the job to use the stored transcript even
        when audio is attached; it needs a sufficient transcript.
        """
        sermon = self.get(user_id, sermon_id)
        status = SermonStatus(sermon["status"])
        has_audio = has_media_source(sermon)
        has_transcript = has_sufficient_transcript(sermon.get("transcript"))

        if not has_audio and not has_transcript:
            raise ValidationError("Sermon has no audio source and no transcript")
        if skip_transcription and not has_transcript:
            raise ValidationError("skipTranscription requires a transcript of at least 100 characters")

        if status == SermonStatus.ERROR:
            raise InvalidTransitionError(
                "Sermon processing failed. Retry the sermon before processing it again."
            )
        if status == SermonStatus.COMPLETE:
            raise InvalidTransitionError("Sermon has already been processed")

        started_at = datetime.now(timezone.utc).isoformat()
        event_id = f"process-{sermon_id}-{started_at}"

        if status == SermonStatus.DRAFT:
            claimed = self.lifecycle.transition(
                sermon_id, SermonStatus.DRAFT, SermonStatus.PROCESSING,
                extra={"updated_at": started_at, "job_event_id": event_id},
            )
        elif status == SermonStatus.PROCESSING and not sermon.get("job_event_id"):
            claimed = self._claim_job(sermon_id, event_id)
        else:
            claimed = False

        if not claimed:
            current = SermonStatus.PROCESSING if status == SermonStatus.DRAFT else status
            return self._already_processing(sermon_id, current)

        will_transcribe = has_audio and not has_transcript and not skip_transcription
        self.dispatcher.send(
            PROCESS_SERMON,
            {"sermonId": sermon_id, "userId": user_id, "skipTranscription": not will_transcribe},
            event_id=event_id,
        )

        return {
            "success": True,
            "message": "Sermon processing started",
            "sermonId": sermon_id,
            "willTranscribe": will_transcribe,
        }

    def _claim_job(self, sermon_id: str, event_id: str) -> bool:
        """Attach a job to a processing sermon that has none. False if another request won."""
        result = (
            self.client.table("sermons")
            .update({"job_event_id": event_id})
            .eq("id", sermon_id)
            .eq("status", SermonStatus.PROCESSING.value)
            .is_("job_event_id", "null")
            .execute()
        )
        return bool(result.data)

    def _already_processing(self, sermon_id: str, status: SermonStatus) -> dict:
        return {
            "success": True,
            "message": "Sermon is already being processed",
            "sermonId": sermon_id,
            "status": status.value,
            "alreadyProcessing": True,
        }

    def retry(self, user_id: str, sermon_id: str) -> dict:
        """error -> draft. The user then starts processing again."""
        sermon = self.get(user_id, sermon_id)
        status = SermonStatus(sermon["status"])
        if status != SermonStatus.ERROR:
            raise InvalidTransitionError("Only sermons in error can be retried")

        self.lifecycle.transition(
            sermon_id, SermonStatus.ERROR, SermonStatus.DRAFT, extra={"job_event_id": None},
        )
        return {"success": True, "sermonId": sermon_id, "status": SermonStatus.DRAFT.value}

    def transcribe_now(self, user_id: str, sermon_id: str) -> dict:
        """
        Transcribe synchronously.
        Success stores the transcript and leaves the sermon in processing;
        failure moves it to error and raises TranscriptionError.
        """
        sermon = self.get(user_id, sermon_id)
        source = sermon.get("audio_url") or sermon.get("video_url")
        if not source:
            raise ValidationError("No audio or video to transcribe")

        status = SermonStatus(sermon["status"])
        if status == SermonStatus.DRAFT:
            self.lifecycle.transition(sermon_id, SermonStatus.DRAFT, SermonStatus.PROCESSING)
        elif status != SermonStatus.PROCESSING:
            raise InvalidTransitionError(f"Cannot transcribe a sermon that is {status.value}")

        self.lifecycle.transition(sermon_id, SermonStatus.PROCESSING, SermonStatus.TRANSCRIBING)

        try:
            result = self.transcriber.transcribe(source)
        except Exception as e:
            logger.error("Transcription failed for sermon %s: %s", sermon_id, e)
            self.lifecycle.transition(sermon_id, SermonStatus.TRANSCRIBING, SermonStatus.ERROR)
            details = e.details if isinstance(e, TranscriptionError) and e.details else str(e)
            raise TranscriptionError("Transcription failed", details=details)

        self.lifecycle.transition(
            sermon_id, SermonStatus.TRANSCRIBING, SermonStatus.PROCESSING,
            extra={"transcript": result.text},
        )
        return {"success": True, "transcript": result.text, "confidence": result.confidence}

    def request_generation(self, user_id: str, sermon_id: str, content_type: Optional[str]) -> dict:
        """Queue generation of one content type, or all of them."""
        if not content_type:
            raise ValidationError("content_type is required")
        if content_type == "all":
            content_types = list(VALID_CONTENT_TYPES)
        else:
            content_types = [parse_content_type(content_type).value]

        sermon = self.get(user_id, sermon_id)
        if not has_sufficient_transcript(sermon.get("transcript")):
            raise ValidationError(
                "Sermon transcript is required for content generation. "
                "Please transcribe the sermon first."
            )

        status = SermonStatus(sermon["status"])
        if status == SermonStatus.ERROR:
            raise InvalidTransitionError(
                "Sermon processing failed. Retry the sermon before generating content."
            )
        if status in (SermonStatus.TRANSCRIBING, SermonStatus.GENERATING):
            return {
                "success": True,
                "message": "Sermon is already being processed",
                "sermonId": sermon_id,
                "status": status.value,
                "alreadyProcessing": True,
            }

        requested_at = datetime.now(timezone.utc).isoformat()
        self.dispatcher.send(
            GENERATE_CONTENT,
            {"sermonId": sermon_id, "userId": user_id, "contentTypes": content_types},
            event_id=f"generate-{sermon_id}-{'-'.join(content_types)}-{requested_at}",
        )
        return {
            "success": True,
            "message": "Content generation started",
            "sermonId": sermon_id,
            "contentTypes": content_types,
        }
