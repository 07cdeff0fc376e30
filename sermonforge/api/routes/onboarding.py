"""
Onboarding routes.

Endpoints:
- GET / - Current onboarding state
- POST /progress - Save the current step (0-4)
- POST /complete - Finish onboarding
- POST /skip-welcome - Jump past the welcome step
- POST /tour-complete - Mark the product tour as seen
"""

from fastapi import APIRouter, Depends

from ...lib import SettingsService, get_current_user
from ...models import OnboardingProgressRequest


router = APIRouter()


@router.get("")
async def get_onboarding(user: dict = Depends(get_current_user)):
    service = SettingsService()
    return service.get_onboarding(user["id"])


@router.post("/progress")
async def save_progress(
    body: OnboardingProgressRequest,
    user: dict = Depends(get_current_user)
):
    service = SettingsService()
    return service.set_onboarding_step(user["id"], body.step)


@router.post("/complete")
async def complete_onboarding(user: dict = Depends(get_current_user)):
    service = SettingsService()
    return service.complete_onboarding(user["id"])


@router.post("/skip-welcome")
async def skip_welcome(user: dict = Depends(get_current_user)):
    service = SettingsService()
    return service.skip_welcome(user["id"])


@router.post("/tour-complete")
async def tour_complete(user: dict = Depends(get_current_user)):
    service = SettingsService()
    return service.complete_tour(user["id"])
