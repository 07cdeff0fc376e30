"""
Authentication utilities.
Uses Supabase Auth - bearer token in, {"id", "email"} out.
"""

import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..db import get_supabase_client


logger = logging.getLogger(__name__)

# auto_error=False so a missing header gets our 401 envelope, not FastAPI's 403
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> dict:
    """
    Validate JWT and return current user.
    Every failure is a 401 "Unauthorized".
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )

    client = get_supabase_client()

    try:
        user = client.auth.get_user(credentials.credentials)
    except Exception as e:
        logger.info("Token verification failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )

    if not user or not user.user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )

    return {
        "id": user.user.id,
        "email": user.user.email,
        "token": credentials.credentials,
    }
