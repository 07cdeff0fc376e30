"""
Settings routes.
All self-serve.

Endpoints:
- GET/PUT /branding - Colours and font
- POST/DELETE /branding/logo - Church logo
- GET/PUT /church - Church details
- GET/PUT /notifications - Email preferences
- GET/PUT /profile - Display name, church name, timezone
- POST /profile/photo - Profile picture
- PUT /account/password - Change password
- POST /account/export - Request a data export
- DELETE /account - Request account deletion
"""

from fastapi import APIRouter, Depends, File, UploadFile

from ...lib import SettingsService, get_current_user
from ...models import (
    BrandingUpdateRequest,
    ChurchUpdateRequest,
    NotificationPreferences,
    PasswordUpdateRequest,
    ProfileUpdateRequest,
)


router = APIRouter()


@router.get("/branding")
async def get_branding(user: dict = Depends(get_current_user)):
    service = SettingsService()
    return {"branding": service.get_branding(user["id"])}


@router.put("/branding")
async def update_branding(
    body: BrandingUpdateRequest,
    user: dict = Depends(get_current_user)
):
    """
    Update branding colours and font.

    Colours must be #RRGGBB; nothing is written if any field is invalid.
    """
    service = SettingsService()
    return {"success": True, "branding": service.update_branding(user["id"], body)}


@router.post("/branding/logo")
async def upload_logo(
    file: UploadFile = File(...),
    user: dict = Depends(get_current_user)
):
    """PNG, JPG, WebP, GIF or SVG up to 5MB. Replaces any previous logo."""
    data = await file.read()
    service = SettingsService()
    return service.upload_logo(user["id"], data, file.content_type)


@router.delete("/branding/logo")
async def delete_logo(user: dict = Depends(get_current_user)):
    service = SettingsService()
    return service.remove_logo(user["id"])


@router.get("/church")
async def get_church(user: dict = Depends(get_current_user)):
    service = SettingsService()
    return {"church": service.get_church(user["id"])}


@router.put("/church")
async def update_church(
    body: ChurchUpdateRequest,
    user: dict = Depends(get_current_user)
):
    service = SettingsService()
    return {"success": True, "church": service.update_church(user["id"], body)}


@router.get("/notifications")
async def get_notifications(user: dict = Depends(get_current_user)):
    service = SettingsService()
    return {"notifications": service.get_notifications(user["id"])}


@router.put("/notifications")
async def update_notifications(
    body: NotificationPreferences,
    user: dict = Depends(get_current_user)
):
    service = SettingsService()
    return {"success": True, "notifications": service.update_notifications(user["id"], body)}


@router.get("/profile")
async def get_profile(user: dict = Depends(get_current_user)):
    service = SettingsService()
    return {"profile": service.get_profile(user["id"], user.get("email"))}


@router.put("/profile")
async def update_profile(
    body: ProfileUpdateRequest,
    user: dict = Depends(get_current_user)
):
    service = SettingsService()
    return {"success": True, "profile": service.update_profile(user["id"], body, user.get("email"))}


@router.post("/profile/photo")
async def upload_profile_photo(
    file: UploadFile = File(...),
    user: dict = Depends(get_current_user)
):
    """PNG, JPG, WebP or GIF up to 2MB."""
    data = await file.read()
    service = SettingsService()
    return service.upload_photo(user["id"], data, file.content_type)


@router.put("/account/password")
async def update_password(
    body: PasswordUpdateRequest,
    user: dict = Depends(get_current_user)
):
    service = SettingsService()
    return service.update_password(user["id"], body.password)


@router.post("/account/export")
async def request_data_export(user: dict = Depends(get_current_user)):
    service = SettingsService()
    return service.request_data_export(user["id"])


@router.delete("/account")
async def delete_account(user: dict = Depends(get_current_user)):
    """
    Request account deletion.
    Marks the account and signs the user out; data is removed by an operator.
    """
    service = SettingsService()
    return service.request_account_deletion(user["id"], user.get("token"))
