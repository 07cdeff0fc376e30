"""
Data models for SermonForge.
Enums mirror the CHECK constraints in db/schema.py; request bodies are
validated by FastAPI before they reach the service layer.
"""

from datetime import date
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


class InputType(str, Enum):
    """How a sermon was supplied."""
    AUDIO = "audio"
    VIDEO = "video"
    PDF = "pdf"
    YOUTUBE = "youtube"
    TEXT_PASTE = "text_paste"


class SermonStatus(str, Enum):
    """Sermon lifecycle states. Transitions live in lib/lifecycle.py."""
    DRAFT = "draft"
    PROCESSING = "processing"
    TRANSCRIBING = "transcribing"
    GENERATING = "generating"
    COMPLETE = "complete"
    ERROR = "error"


class ContentType(str, Enum):
    """Derivative content generated from a transcript."""
    SERMON_NOTES = "sermon_notes"
    DEVOTIONAL = "devotional"
    DISCUSSION_GUIDE = "discussion_guide"
    SOCIAL_MEDIA = "social_media"
    KIDS_VERSION = "kids_version"


class SubscriptionStatus(str, Enum):
    """Stripe subscription states we store."""
    INCOMPLETE = "incomplete"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"


class EventType(str, Enum):
    """Analytics event types."""
    SERMON_CREATED = "sermon_created"
    CONTENT_GENERATED = "content_generated"
    CONTENT_EXPORTED = "content_exported"
    DEVOTIONAL_VIEWED = "devotional_viewed"


class FontPreference(str, Enum):
    """Fonts offered in branding settings."""
    INTER = "inter"
    ROBOTO = "roboto"
    OPEN_SANS = "open-sans"
    LATO = "lato"
    MONTSERRAT = "montserrat"
    POPPINS = "poppins"


# =============================================================================
# Sermons
# =============================================================================

class SermonCreateRequest(BaseModel):
    """New sermon. Field rules are checked in lib/validation.py."""
    title: str
    sermon_date: date
    input_type: InputType
    audio_url: Optional[str] = None
    video_url: Optional[str] = None
    pdf_url: Optional[str] = None
    youtube_url: Optional[str] = None
    transcript: Optional[str] = None


class SermonUpdateRequest(BaseModel):
    """Partial sermon update."""
    title: Optional[str] = None
    sermon_date: Optional[date] = None
    audio_url: Optional[str] = None
    video_url: Optional[str] = None
    pdf_url: Optional[str] = None
    youtube_url: Optional[str] = None
    transcript: Optional[str] = None


class ProcessRequest(BaseModel):
    skipTranscription: bool = False


class GenerateRequest(BaseModel):
    """A single content type, or "all"."""
    content_type: Optional[str] = None


class ContentUpdateRequest(BaseModel):
    content: Optional[Any] = None


# =============================================================================
# Billing
# =============================================================================

class CheckoutRequest(BaseModel):
    """Start a Stripe Checkout session for a plan."""
    planId: str
    skipTrial: bool = False


class ProrationRequest(BaseModel):
    targetPlanId: str


# =============================================================================
# Settings
# =============================================================================

class BrandingUpdateRequest(BaseModel):
    """Branding is validated in lib/settings.py so errors carry our messages."""
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    font_preference: Optional[str] = None


class ChurchUpdateRequest(BaseModel):
    church_name: Optional[str] = Field(default=None, max_length=200)
    church_website: Optional[str] = None
    church_logo_url: Optional[str] = None
    church_size: Optional[str] = None
    denomination: Optional[str] = None


class NotificationPreferences(BaseModel):
    """Five notification switches."""
    processing_complete: bool = True
    payment_issues: bool = True
    usage_warnings: bool = True
    weekly_digest: bool = False
    product_updates: bool = True


class ProfileUpdateRequest(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=100)
    church_name: Optional[str] = Field(default=None, max_length=200)
    timezone: Optional[str] = None


class PasswordUpdateRequest(BaseModel):
    password: str = ""


class OnboardingProgressRequest(BaseModel):
    step: int


# =============================================================================
# Jobs
# =============================================================================

class JobRequest(BaseModel):
    """Callback from the job runner."""
    name: str
    data: dict = Field(default_factory=dict)
    attempt: int = 0
