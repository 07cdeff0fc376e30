"""
Fixed-window rate limiter.

State lives in this process only. Behind several workers each one counts
separately, so the effective limit is limit * workers.
"""

import os
import threading
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException

from .auth import get_current_user


DEFAULT_LIMIT = 10
DEFAULT_WINDOW_SECONDS = 60 * 60

_store: dict = {}
_lock = threading.Lock()


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float


def check(
    identifier: str,
    limit: int = DEFAULT_LIMIT,
    window_seconds: int = DEFAULT_WINDOW_SECONDS,
    now: Optional[float] = None,
) -> RateLimitResult:
    """Count one request for `identifier` and say whether it is allowed."""
    now = time.time() if now is None else now
    with _lock:
        entry = _store.get(identifier)
        if entry is None or entry["reset_at"] <= now:
            entry = {"count": 0, "reset_at": now + window_seconds}
            _store[identifier] = entry

        if entry["count"] >= limit:
            return RateLimitResult(False, limit, 0, entry["reset_at"])

        entry["count"] += 1
        return RateLimitResult(True, limit, limit - entry["count"], entry["reset_at"])


def cleanup_expired(now: Optional[float] = None) -> int:
    """Drop finished windows. Returns how many entries were removed."""
    now = time.time() if now is None else now
    with _lock:
        expired = [key for key, entry in _store.items() if entry["reset_at"] <= now]
        for key in expired:
            del _store[key]
    return len(expired)


def reset() -> None:
    with _lock:
        _store.clear()


def rate_limit_headers(result: RateLimitResult) -> dict:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(int(result.reset_at)),
    }


def configured_limits() -> tuple:
    """(max requests, window seconds) from RATE_LIMIT_MAX_REQUESTS / RATE_LIMIT_WINDOW_SECONDS."""
    return (
        int(os.environ.get("RATE_LIMIT_MAX_REQUESTS", DEFAULT_LIMIT)),
        int(os.environ.get("RATE_LIMIT_WINDOW_SECONDS", DEFAULT_WINDOW_SECONDS)),
    )


def rate_limited(scope: str):
    """
    FastAPI dependency limiting a route per user.
    Over the limit raises 429 "Rate limit exceeded" with the X-RateLimit headers.
    """
    async def dependency(user: dict = Depends(get_current_user)) -> RateLimitResult:
        limit, window_seconds = configured_limits()
        result = check(f"{scope}:{user['id']}", limit, window_seconds)
        if not result.allowed:
            raise HTTPException(
                status_code=429,
                detail="Rate limit exceeded",
                headers=rate_limit_headers(result),
            )
        return result

    return dependency
