"""
Speech-to-text via the AssemblyAI REST API.

Flow:
1. POST /v2/transcript with the public media URL
2. Poll GET /v2/transcript/{id} until completed or error
3. Return text, confidence and word timings
"""

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Optional

import httpx

from .errors import TranscriptionError


logger = logging.getLogger(__name__)

ASSEMBLYAI_BASE_URL = "https://api.assemblyai.com/v2"


@dataclass
class TranscriptionResult:
    text: str
    confidence: float
    words: list = field(default_factory=list)


class TranscriptionService:
    """Thin AssemblyAI client. Pass `http` to reuse or fake the transport."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        http: Optional[httpx.Client] = None,
        poll_interval: float = 3.0,
        timeout_seconds: float = 60 * 60,
    ):
        self.api_key = api_key or os.environ.get("ASSEMBLYAI_API_KEY")
        if not self.api_key:
            raise ValueError("ASSEMBLYAI_API_KEY must be set")
        self.http = http or httpx.Client(base_url=ASSEMBLYAI_BASE_URL, timeout=30.0)
        self.poll_interval = poll_interval
        self.timeout_seconds = timeout_seconds

    @property
    def headers(self) -> dict:
        return {"authorization": self.api_key}

    def submit(self, audio_url: str) -> str:
        payload = {
            "audio_url": audio_url,
            "speaker_labels": True,
            "punctuate": True,
            "format_text": True,
            "language_detection": True,
        }
        response = self._request("POST", "/transcript", json=payload)
        logger.info("Submitted transcription %s for %s", response.get("id"), audio_url)
        return response["id"]

    def get_status(self, transcript_id: str) -> dict:
        """The transcript resource as AssemblyAI returns it."""
        return self._request("GET", f"/transcript/{transcript_id}")

    def transcribe(self, audio_url: str) -> TranscriptionResult:
        """Submit and block until AssemblyAI finishes."""
        transcript_id = self.submit(audio_url)
        deadline = time.monotonic() + self.timeout_seconds

        while True:
            transcript = self.get_status(transcript_id)
            status = transcript.get("status")

            if status == "completed":
                break
            if status == "error":
                raise TranscriptionError(
                    "Transcription failed",
                    details=transcript.get("error") or "Unknown transcription error",
                )
            if time.monotonic() > deadline:
                raise TranscriptionError(
                    "Transcription failed", details=f"Timed out waiting for {transcript_id}"
                )
            time.sleep(self.poll_interval)

        if not transcript.get("text"):
            raise TranscriptionError("Transcription failed", details="No transcription text returned")

        logger.info("Transcription %s completed", transcript_id)
        return TranscriptionResult(
            text=transcript["text"],
            confidence=transcript.get("confidence") or 0,
            words=[
                {
                    "text": w.get("text"),
                    "start": w.get("start"),
                    "end": w.get("end"),
                    "confidence": w.get("confidence"),
                }
                for w in transcript.get("words") or []
            ],
        )

    def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = self.http.request(method, path, headers=self.headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TranscriptionError("Transcription failed", details=str(e))
        return response.json()
