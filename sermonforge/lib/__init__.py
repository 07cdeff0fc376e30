from .auth import get_current_user
from .content import GeneratedContentStore
from .errors import SermonForgeError
from .sermons import SermonService
from .settings import SettingsService
from .subscriptions import SubscriptionService
from .usage import UsageEvaluator

__all__ = [
    "GeneratedContentStore",
    "SermonForgeError",
    "SermonService",
    "SettingsService",
    "SubscriptionService",
    "UsageEvaluator",
    "get_current_user",
]
