from .schemas import (
    InputType,
    SermonStatus,
    ContentType,
    SubscriptionStatus,
    EventType,
    FontPreference,
    SermonCreateRequest,
    SermonUpdateRequest,
    ProcessRequest,
    GenerateRequest,
    ContentUpdateRequest,
    CheckoutRequest,
    ProrationRequest,
    BrandingUpdateRequest,
    ChurchUpdateRequest,
    NotificationPreferences,
    ProfileUpdateRequest,
    PasswordUpdateRequest,
    OnboardingProgressRequest,
    JobRequest,
)

__all__ = [
    "InputType",
    "SermonStatus",
    "ContentType",
    "SubscriptionStatus",
    "EventType",
    "FontPreference",
    "SermonCreateRequest",
    "SermonUpdateRequest",
    "ProcessRequest",
    "GenerateRequest",
    "ContentUpdateRequest",
    "CheckoutRequest",
    "ProrationRequest",
    "BrandingUpdateRequest",
    "ChurchUpdateRequest",
    "NotificationPreferences",
    "ProfileUpdateRequest",
    "PasswordUpdateRequest",
    "OnboardingProgressRequest",
    "JobRequest",
]
