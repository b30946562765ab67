# leap_api/middleware/auth.py
import uuid
import logging
from typing import Optional

from fastapi import Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from leap_api.auth.jwt import decode_and_validate, TokenError
from leap_api.auth.schemas import AuthenticatedUser

_log = logging.getLogger(__name__)

# auto_error=False means it returns None if no header, instead of raising HTTPException
bearer_scheme = HTTPBearer(auto_error=False, description="Access token issued after magic-link sign-in.")


def resolve_identity(token: Optional[str]) -> Optional[AuthenticatedUser]:
    """
    Maps a bearer token to the caller's identity.

    A missing, expired or otherwise invalid token yields None: callers are then
    handled exactly like anonymous requests, never rejected outright.
    """
    if not token:
        return None
    try:
        payload = decode_and_validate(token)
    except TokenError as e:
        _log.warning(f"Bearer token ignored. Code: {e.code}, Msg: {e.message}")
        return None
    return AuthenticatedUser(id=uuid.UUID(payload["sub"]), email=payload.get("email"))


async def get_optional_user(request: Request) -> Optional[AuthenticatedUser]:
    """FastAPI dependency: the authenticated caller, or None for anonymous requests."""
    credentials: HTTPAuthorizationCredentials | None = await bearer_scheme(request)
    user = resolve_identity(credentials.credentials if credentials else None)
    if user:
        _log.debug(f"Caller {user.id} authenticated for {request.url.path}")
    return user
