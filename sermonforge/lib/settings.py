"""
Per-user settings and onboarding state, stored in users_metadata.

The row is created lazily: reads fall back to defaults and every write is an
upsert keyed on user_id.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from ..db import get_admin_client
from ..models import (
    BrandingUpdateRequest,
    ChurchUpdateRequest,
    FontPreference,
    NotificationPreferences,
    ProfileUpdateRequest,
)
from .errors import ValidationError
from .storage import StorageService
from .validation import (
    DEFAULT_FONT,
    DEFAULT_PRIMARY_COLOR,
    DEFAULT_SECONDARY_COLOR,
    is_valid_hex_color,
    validate_optional_url,
    validate_password,
    validate_timezone,
)


logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/New_York"

ONBOARDING_STEPS = 4

NOTIFICATION_COLUMNS = {
    "processing_complete": "notify_processing_complete",
    "payment_issues": "notify_payment_issues",
    "usage_warnings": "notify_usage_warnings",
    "weekly_digest": "notify_weekly_digest",
    "product_updates": "notify_product_updates",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def validate_branding(body: BrandingUpdateRequest) -> dict:
    """Check branding fields; returns only the fields that were supplied."""
    update = {}
    if body.primary_color is not None:
        if not is_valid_hex_color(body.primary_color):
            raise ValidationError("Invalid primary color format. Use hex format (e.g., #1E3A8A)")
        update["primary_color"] = body.primary_color
    if body.secondary_color is not None:
        if not is_valid_hex_color(body.secondary_color):
            raise ValidationError("Invalid secondary color format. Use hex format (e.g., #3B82F6)")
        update["secondary_color"] = body.secondary_color
    if body.font_preference is not None:
        if body.font_preference not in {f.value for f in FontPreference}:
            raise ValidationError("Invalid font preference")
        update["font_preference"] = body.font_preference
    return update


class SettingsService:
    """Reads and writes users_metadata for one user at a time."""

    def __init__(self, client=None, storage: Optional[StorageService] = None):
        self.client = client or get_admin_client()
        self.storage = storage or StorageService(self.client)

    def get_metadata(self, user_id: str) -> dict:
        result = (
            self.client.table("users_metadata")
            .select("*")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else {}

    def _save(self, user_id: str, fields: dict) -> dict:
        record = {"user_id": user_id, **fields, "updated_at": _now()}
        result = self.client.table("users_metadata").upsert(record, on_conflict="user_id").execute()
        return result.data[0] if result.data else record

    # Branding

    def get_branding(self, user_id: str) -> dict:
        meta = self.get_metadata(user_id)
        return {
            "church_name": meta.get("church_name"),
            "church_logo_url": meta.get("church_logo_url"),
            "primary_color": meta.get("primary_color") or DEFAULT_PRIMARY_COLOR,
            "secondary_color": meta.get("secondary_color") or DEFAULT_SECONDARY_COLOR,
            "font_preference": meta.get("font_preference") or DEFAULT_FONT,
        }

    def update_branding(self, user_id: str, body: BrandingUpdateRequest) -> dict:
        update = validate_branding(body)
        if update:
            self._save(user_id, update)
        return self.get_branding(user_id)

    def upload_logo(self, user_id: str, data: bytes, content_type: str) -> dict:
        stored = self.storage.upload_logo(user_id, data, content_type)
        self._save(user_id, {"church_logo_url": stored.public_url})
        return {"success": True, "url": stored.public_url}

    def remove_logo(self, user_id: str) -> dict:
        self.storage.remove_logos(user_id)
        self._save(user_id, {"church_logo_url": None})
        return {"success": True}

    # Church

    def get_church(self, user_id: str) -> dict:
        meta = self.get_metadata(user_id)
        return {
            "church_name": meta.get("church_name"),
            "church_website": meta.get("church_website"),
            "church_logo_url": meta.get("church_logo_url"),
            "church_size": meta.get("church_size"),
            "denomination": meta.get("denomination"),
        }

    def update_church(self, user_id: str, body: ChurchUpdateRequest) -> dict:
        update = body.model_dump(exclude_unset=True)
        if "church_website" in update:
            update["church_website"] = validate_optional_url("church_website", update["church_website"])
        if "church_logo_url" in update:
            update["church_logo_url"] = validate_optional_url("church_logo_url", update["church_logo_url"])
        if "church_name" in update and update["church_name"] is not None:
            update["church_name"] = update["church_name"].strip() or None
        if update:
            self._save(user_id, update)
        return self.get_church(user_id)

    # Notifications

    def get_notifications(self, user_id: str) -> dict:
        meta = self.get_metadata(user_id)
        defaults = NotificationPreferences()
        prefs = {}
        for key, column in NOTIFICATION_COLUMNS.items():
            value = meta.get(column)
            prefs[key] = getattr(defaults, key) if value is None else value
        return prefs

    def update_notifications(self, user_id: str, prefs: NotificationPreferences) -> dict:
        self._save(user_id, {
            column: getattr(prefs, key) for key, column in NOTIFICATION_COLUMNS.items()
        })
        return self.get_notifications(user_id)

    # Profile

    def get_profile(self, user_id: str, email: Optional[str] = None) -> dict:
        meta = self.get_metadata(user_id)
        return {
            "email": email,
            "display_name": meta.get("display_name"),
            "church_name": meta.get("church_name"),
            "profile_picture_url": meta.get("profile_picture_url"),
            "timezone": meta.get("timezone") or DEFAULT_TIMEZONE,
        }

    def update_profile(self, user_id: str, body: ProfileUpdateRequest, email: Optional[str] = None) -> dict:
        update = body.model_dump(exclude_unset=True)
        if update.get("timezone") is not None:
            update["timezone"] = validate_timezone(update["timezone"])
        if update:
            self._save(user_id, update)
        return self.get_profile(user_id, email)

    def upload_photo(self, user_id: str, data: bytes, content_type: str) -> dict:
        stored = self.storage.upload_avatar(user_id, data, content_type)
        self._save(user_id, {"profile_picture_url": stored.public_url})
        return {"success": True, "url": stored.public_url}

    # Account

    def update_password(self, user_id: str, password: Optional[str]) -> dict:
        password = validate_password(password)
        self.client.auth.admin.update_user_by_id(user_id, {"password": password})
        logger.info("Password updated for user %s", user_id)
        return {"success": True}

    def request_account_deletion(self, user_id: str, token: Optional[str] = None) -> dict:
        """Soft marker only; an operator completes the deletion."""
        self._save(user_id, {"account_deletion_requested_at": _now()})
        if token:
            self.client.auth.admin.sign_out(token)
        logger.info("Account deletion requested by user %s", user_id)
        return {"success": True, "message": "Account deletion requested. You have been signed out."}

    def request_data_export(self, user_id: str) -> dict:
        self._save(user_id, {"data_export_requested_at": _now()})
        logger.info("Data export requested by user %s", user_id)
        return {
            "success": True,
            "message": "Data export requested. You will receive an email when it is ready.",
        }

    # Onboarding

    def get_onboarding(self, user_id: str) -> dict:
        meta = self.get_metadata(user_id)
        return {
            "step": meta.get("onboarding_step") or 0,
            "completed": bool(meta.get("onboarding_completed")),
            "completed_at": meta.get("onboarding_completed_at"),
            "product_tour_completed": bool(meta.get("product_tour_completed")),
        }

    def set_onboarding_step(self, user_id: str, step: int) -> dict:
        if not isinstance(step, int) or step < 0 or step > ONBOARDING_STEPS:
            raise ValidationError(f"Invalid step. Must be between 0 and {ONBOARDING_STEPS}")
        self._save(user_id, {"onboarding_step": step})
        return {"success": True, "step": step}

    def complete_onboarding(self, user_id: str) -> dict:
        completed_at = _now()
        self._save(user_id, {
            "onboarding_step": ONBOARDING_STEPS,
            "onboarding_completed": True,
            "onboarding_completed_at": completed_at,
        })
        return {"success": True, "completed_at": completed_at}

    def skip_welcome(self, user_id: str) -> dict:
        return self.set_onboarding_step(user_id, 1)

    def complete_tour(self, user_id: str) -> dict:
        self._save(user_id, {"product_tour_completed": True})
        return {"success": True}
