"""
Auth utilities for the tutor API.

Issues and validates HS256 access tokens and extracts the caller's user_id
from request context. Falls back to the X-User-Id header for backward
compatibility (tests, legacy clients); that header is never trusted
when ENV is production.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Header, Request

from tutor.core.config import settings
from tutor.core.errors import AuthError
import logging

logger = logging.getLogger(__name__)


def _secret() -> str:
    if not settings.JWT_SECRET:
        raise AuthError("Sign-in is not configured. Please contact admin.")
    return settings.JWT_SECRET


def create_access_token(user_id: str, role: str, expires_minutes: Optional[int] = None) -> str:
    minutes = expires_minutes if expires_minutes is not None else settings.JWT_EXPIRES_MINUTES
    payload = {
        "sub": user_id,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, _secret(), algorithm=settings.JWT_ALG)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Verify an access token and return its claims.

    Raises:
        AuthError: expired, malformed or wrongly signed token
    """
    try:
        payload = jwt.decode(token, _secret(), algorithms=[settings.JWT_ALG])
    except jwt.ExpiredSignatureError:
        raise AuthError("Session expired. Please log in again.")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise AuthError("Invalid session. Please log in again.")

    if not payload.get("sub"):
        raise AuthError("Invalid session. Please log in again.")
    return payload


def user_id_header_allowed() -> bool:
    return settings.ALLOW_USER_ID_HEADER and settings.ENV.lower() != "production"

async def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Backward compat: test user ID"),
) -> str:
    """
    Extract current user ID from request context.

    Priority:
    1. Bearer token from Authorization header
    2. X-User-Id header, outside production only
    3. Raise AuthError
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return decode_access_token(auth_header[7:])["sub"]

    if x_user_id and user_id_header_allowed():
        return x_user_id

    raise AuthError("Missing Authorization (Bearer token)")
