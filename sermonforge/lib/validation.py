"""
Input validation helpers shared by sermons and settings.
All failures raise ValidationError with a message fit for the client.
"""

import re
from typing import Optional
from urllib.parse import urlparse

import pytz

from ..models import FontPreference
from .errors import ValidationError


# Branding defaults, shared by the settings API and the exporters
DEFAULT_PRIMARY_COLOR = "#1E3A8A"
DEFAULT_SECONDARY_COLOR = "#3B82F6"
DEFAULT_FONT = FontPreference.INTER.value

HEX_COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")

YOUTUBE_ID_PATTERN = re.compile(
    r"(?:youtu\.be/|v/|u/\w/|embed/|shorts/|watch\?v=|[?&]v=)([^#&?/]{11})"
)

TITLE_MAX_LENGTH = 200
MIN_TRANSCRIPT_LENGTH = 100
MIN_PASSWORD_LENGTH = 8


def is_valid_hex_color(value: Optional[str]) -> bool:
    return bool(value) and bool(HEX_COLOR_PATTERN.match(value))


def is_valid_url(value: Optional[str]) -> bool:
    if not value:
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def extract_youtube_id(url: Optional[str]) -> Optional[str]:
    """Video id from any common YouTube URL shape, or None."""
    if not url:
        return None
    match = YOUTUBE_ID_PATTERN.search(url)
    if match and len(match.group(1)) == 11:
        return match.group(1)
    return None


def has_sufficient_transcript(transcript: Optional[str]) -> bool:
    return len((transcript or "").strip()) >= MIN_TRANSCRIPT_LENGTH


def validate_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required")
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Title must be {TITLE_MAX_LENGTH} characters or less")
    return title


def validate_optional_url(field_name: str, value: Optional[str]) -> Optional[str]:
    """Empty strings become None; anything else must be an http(s) URL."""
    if value is None or value.strip() == "":
        return None
    value = value.strip()
    if not is_valid_url(value):
        raise ValidationError(f"Invalid {field_name.replace('_', ' ')}")
    return value


def validate_timezone(value: str) -> str:
    try:
        pytz.timezone(value)
    except pytz.UnknownTimeZoneError:
        raise ValidationError("Invalid timezone")
    return value


def validate_password(password: Optional[str]) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    return password
