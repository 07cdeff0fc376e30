"""
Background jobs.

Dispatch: named events are POSTed to the Inngest event API.
Execution: the runner calls back POST /api/jobs (HMAC-signed) and
JobHandlers.handle() runs the matching function.

Delivery is at-least-once, so every handler resumes from whatever status
the sermon is in instead of assuming a fresh start. A failed attempt is
re-raised for the runner to retry; the sermon only moves to error once
the final attempt fails.
"""

import hashlib
import hmac
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import httpx

from ..db import get_admin_client
from ..models import ContentType, SermonStatus
from .analytics import track_content_generated
from .content import GeneratedContentStore
from .errors import GenerationError, NotFoundError, UpstreamError, ValidationError
from .lifecycle import SermonLifecycle
from .notifications import EmailService
from .validation import has_sufficient_transcript


logger = logging.getLogger(__name__)

DEFAULT_EVENT_URL = "https://inn.gs/e/"

PROCESS_SERMON = "sermon/process"
TRANSCRIBE_SERMON = "sermon/transcribe"
GENERATE_CONTENT = "sermon/generate-content"
SEND_COMPLETION_EMAIL = "sermon/send-completion-email"

# event name -> (handler method, retries the runner is configured with)
JOB_FUNCTIONS = {
    PROCESS_SERMON: ("process_sermon", 3),
    TRANSCRIBE_SERMON: ("transcribe_sermon", 2),
    GENERATE_CONTENT: ("generate_content", 2),
    SEND_COMPLETION_EMAIL: ("send_completion_email", 2),
}

ALL_CONTENT_TYPES = [c.value for c in ContentType]


def sign_payload(body: bytes, key: Optional[str] = None) -> str:
    key = key if key is not None else os.environ.get("JOB_SIGNING_KEY", "")
    digest = hmac.new(key.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(body: bytes, signature: Optional[str], key: Optional[str] = None) -> bool:
    key = key if key is not None else os.environ.get("JOB_SIGNING_KEY")
    if not key or not signature:
        return False
    return hmac.compare_digest(sign_payload(body, key), signature)


class JobDispatcher:
    """Sends events to the job runner."""

    def __init__(self, event_key: Optional[str] = None, http: Optional[httpx.Client] = None):
        self.event_key = event_key or os.environ.get("INNGEST_EVENT_KEY")
        self.event_url = os.environ.get("INNGEST_EVENT_URL", DEFAULT_EVENT_URL)
        self.http = http or httpx.Client(timeout=10.0)

    def send(self, name: str, data: dict, event_id: Optional[str] = None) -> dict:
        """
        Emit one event. `event_id` lets the runner drop duplicates of the
        same logical event.
        """
        if not self.event_key:
            raise UpstreamError("Job dispatch failed", details="INNGEST_EVENT_KEY must be set")

        payload = {"name": name, "data": data}
        if event_id:
            payload["id"] = event_id

        try:
            response = self.http.post(f"{self.event_url.rstrip('/')}/{self.event_key}", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamError("Job dispatch failed", details=str(e))

        logger.info("Dispatched %s %s", name, event_id or "")
        return response.json() if response.content else {}


class JobHandlers:
    """The job functions. Collaborators are created lazily so tests can inject fakes."""

    def __init__(
        self,
        client=None,
        generator=None,
        transcriber=None,
        dispatcher: Optional[JobDispatcher] = None,
        mailer: Optional[EmailService] = None,
    ):
        self.client = client or get_admin_client()
        self.lifecycle = SermonLifecycle(self.client)
        self.store = GeneratedContentStore(self.client)
        self._generator = generator
        self._transcriber = transcriber
        self._dispatcher = dispatcher
        self._mailer = mailer

    @property
    def generator(self):
        if self._generator is None:
            from .generators import ContentGenerator
            self._generator = ContentGenerator()
        return self._generator

    @property
    def transcriber(self):
        if self._transcriber is None:
            from .transcription import TranscriptionService
            self._transcriber = TranscriptionService()
        return self._transcriber

    @property
    def dispatcher(self) -> JobDispatcher:
        if self._dispatcher is None:
            self._dispatcher = JobDispatcher()
        return self._dispatcher

    @property
    def mailer(self) -> EmailService:
        if self._mailer is None:
            self._mailer = EmailService()
        return self._mailer

    def handle(self, name: str, data: dict, attempt: int = 0) -> dict:
        """Run the function registered for `name`."""
        if name not in JOB_FUNCTIONS:
            raise ValidationError(f"Unknown job: {name}")

        method_name, retries = JOB_FUNCTIONS[name]
        try:
            return getattr(self, method_name)(data)
        except Exception as e:
            sermon_id = data.get("sermonId")
            final_attempt = attempt >= retries
            logger.exception("Job %s failed (attempt %d/%d)", name, attempt + 1, retries + 1)
            if final_attempt and sermon_id and name != SEND_COMPLETION_EMAIL:
                self.lifecycle.fail(sermon_id, str(e))
            raise

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _get_sermon(self, sermon_id: str) -> dict:
        result = (
            self.client.table("sermons")
            .select("*")
            .eq("id", sermon_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            raise NotFoundError(f"Sermon not found: {sermon_id}")
        return result.data[0]

    def _transcribe(self, sermon: dict, status: SermonStatus) -> str:
        """Run transcription from PROCESSING or a resumed TRANSCRIBING; ends in PROCESSING."""
        source = sermon.get("audio_url") or sermon.get("video_url") or sermon.get("youtube_url")
        if not source:
            raise ValidationError("No audio source found for transcription")

        if status == SermonStatus.PROCESSING:
            self.lifecycle.transition(sermon["id"], SermonStatus.PROCESSING, SermonStatus.TRANSCRIBING)

        result = self.transcriber.transcribe(source)
        self.lifecycle.transition(
            sermon["id"],
            SermonStatus.TRANSCRIBING,
            SermonStatus.PROCESSING,
            extra={"transcript": result.text},
        )
        return result.text

    def _generate_one(self, sermon: dict, user_id: str, transcript: str, content_type: str) -> dict:
        try:
            content = self.generator.generate(content_type, transcript, sermon.get("title"))
            self.store.save(sermon["id"], content_type, content)
            track_content_generated(user_id, sermon["id"], content_type, client=self.client)
            return {"success": True}
        except Exception as e:
            logger.warning("Generation of %s for sermon %s failed: %s", content_type, sermon["id"], e)
            return {"success": False, "error": str(e)}

    def generate_many(self, sermon: dict, user_id: str, transcript: str, content_types: list) -> dict:
        """Generate content types in parallel. A failed type does not stop the others."""
        with ThreadPoolExecutor(max_workers=max(1, len(content_types))) as pool:
            futures = {
                content_type: pool.submit(self._generate_one, sermon, user_id, transcript, content_type)
                for content_type in content_types
            }
            return {content_type: future.result() for content_type, future in futures.items()}

    def _increment_processed_count(self, user_id: str) -> None:
        result = (
            self.client.table("users_metadata")
            .select("sermons_processed_count")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        current = (result.data[0].get("sermons_processed_count") or 0) if result.data else 0
        self.client.table("users_metadata").upsert({
            "user_id": user_id,
            "sermons_processed_count": current + 1,
        }, on_conflict="user_id").execute()

    # -------------------------------------------------------------------------
    # Job functions
    # -------------------------------------------------------------------------

    def process_sermon(self, data: dict) -> dict:
        """Full pipeline: transcribe if needed, generate every content type, complete."""
        sermon_id = data["sermonId"]
        user_id = data["userId"]
        sermon = self._get_sermon(sermon_id)
        status = SermonStatus(sermon["status"])

        if status in (SermonStatus.COMPLETE, SermonStatus.ERROR, SermonStatus.DRAFT):
            logger.info("Skipping process for sermon %s in state %s", sermon_id, status.value)
            return {"success": True, "skipped": True, "status": status.value}

        transcript = sermon.get("transcript")
        needs_transcript = not data.get("skipTranscription") and not has_sufficient_transcript(transcript)

        if status == SermonStatus.TRANSCRIBING or (status == SermonStatus.PROCESSING and needs_transcript):
            transcript = self._transcribe(sermon, status)
            status = SermonStatus.PROCESSING

        if not has_sufficient_transcript(transcript):
            raise ValidationError("Transcript is too short for content generation")

        if status == SermonStatus.PROCESSING:
            self.lifecycle.transition(sermon_id, SermonStatus.PROCESSING, SermonStatus.GENERATING)

        results = self.generate_many(sermon, user_id, transcript, ALL_CONTENT_TYPES)

        if not results[ContentType.SERMON_NOTES.value]["success"]:
            raise GenerationError(
                "Sermon notes generation failed",
                details=results[ContentType.SERMON_NOTES.value].get("error"),
            )

        self.lifecycle.transition(sermon_id, SermonStatus.GENERATING, SermonStatus.COMPLETE)
        self._increment_processed_count(user_id)

        try:
            self.dispatcher.send(
                SEND_COMPLETION_EMAIL,
                {"sermonId": sermon_id, "userId": user_id, "sermonTitle": sermon.get("title")},
                event_id=f"completion-email-{sermon_id}",
            )
        except UpstreamError as e:
            logger.warning("Could not queue completion email for %s: %s", sermon_id, e.details)

        return {
            "success": True,
            "sermonId": sermon_id,
            "results": {k: v["success"] for k, v in results.items()},
        }

    def transcribe_sermon(self, data: dict) -> dict:
        """Transcription only; leaves the sermon in processing."""
        sermon = self._get_sermon(data["sermonId"])
        status = SermonStatus(sermon["status"])
        if status not in (SermonStatus.PROCESSING, SermonStatus.TRANSCRIBING):
            return {"success": True, "skipped": True, "status": status.value}

        transcript = self._transcribe(sermon, status)
        return {"success": True, "sermonId": sermon["id"], "transcriptLength": len(transcript)}

    def generate_content(self, data: dict) -> dict:
        """
        Generate the requested content types.
        A complete sermon is regenerated in place without a status change.
        """
        sermon_id = data["sermonId"]
        user_id = data["userId"]
        content_types = data.get("contentTypes") or ALL_CONTENT_TYPES
        sermon = self._get_sermon(sermon_id)
        status = SermonStatus(sermon["status"])
        transcript = sermon.get("transcript")

        if not has_sufficient_transcript(transcript):
            raise ValidationError("Sermon has no transcript")

        if status in (SermonStatus.DRAFT, SermonStatus.PROCESSING):
            self.lifecycle.transition(sermon_id, status, SermonStatus.GENERATING)
            status = SermonStatus.GENERATING
        elif status not in (SermonStatus.GENERATING, SermonStatus.COMPLETE):
            return {"success": True, "skipped": True, "status": status.value}

        results = self.generate_many(sermon, user_id, transcript, content_types)

        primary = (
            ContentType.SERMON_NOTES.value
            if ContentType.SERMON_NOTES.value in content_types
            else None
        )
        succeeded = results[primary]["success"] if primary else any(r["success"] for r in results.values())
        if not succeeded:
            raise GenerationError("Content generation failed")

        if status == SermonStatus.GENERATING:
            self.lifecycle.transition(sermon_id, SermonStatus.GENERATING, SermonStatus.COMPLETE)

        return {"success": True, "sermonId": sermon_id, "results": results}

    def send_completion_email(self, data: dict) -> dict:
        user_id = data["userId"]

        prefs = (
            self.client.table("users_metadata")
            .select("notify_processing_complete")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if prefs.data and prefs.data[0].get("notify_processing_complete") is False:
            return {"success": False, "reason": "Notifications disabled"}

        user = self.client.auth.admin.get_user_by_id(user_id)
        email = user.user.email if user and user.user else None
        if not email:
            logger.info("No email for user %s, skipping completion email", user_id)
            return {"success": False, "reason": "No email found"}

        generated = {
            row["content_type"]: True
            for row in self.store.list_for_sermon(data["sermonId"])
        }
        sent = self.mailer.send_sermon_complete(
            email, data["sermonId"], data.get("sermonTitle") or "Your sermon", generated
        )
        return {"success": sent, "email": email}


