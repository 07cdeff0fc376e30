"""
Service-layer exceptions.
Each maps to one HTTP status in api/main.py; services never build HTTP
responses themselves.
"""

from typing import Optional


class SermonForgeError(Exception):
    """Base class. `status_code` is what the API layer returns."""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None, extra: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.extra = extra or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        body.update(self.extra)
        return body


class ValidationError(SermonForgeError):
    status_code = 400


class InvalidTransitionError(ValidationError):
    """Requested sermon status change is not in the transition table."""


class NotFoundError(SermonForgeError):
    status_code = 404


class UsageLimitError(SermonForgeError):
    """Usage evaluator reported allowed=false."""
    status_code = 402


class UpstreamError(SermonForgeError):
    """A third-party service (Stripe, AssemblyAI, Anthropic, storage) failed."""
    status_code = 500


class GenerationError(UpstreamError):
    """The AI provider returned nothing usable."""


class TranscriptionError(UpstreamError):
    pass


class ExportError(SermonForgeError):
    """A document exporter could not produce output."""
    status_code = 500
