# leap_api/auth/jwt.py
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from leap_api.core.config import get_settings


# --- Custom Exceptions ---
class TokenError(Exception):
    """Base class for token-related errors."""
    def __init__(self, message="Token error occurred", code="TOKEN_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)

class TokenExpired(TokenError):
    """Raised when a token's expiration time has passed."""
    def __init__(self, message="Token has expired", code="TOKEN_EXPIRED"):
        super().__init__(message, code)

class TokenInvalid(TokenError):
    """Raised when a token is invalid (bad signature, wrong format, claims etc.)."""
    def __init__(self, message="Token is invalid", code="TOKEN_INVALID"):
        super().__init__(message, code)


def _signing_secret() -> str:
    secret = get_settings().jwt_secret
    if not secret:
        raise TokenInvalid("Token verification is not configured.", code="TOKEN_NOT_CONFIGURED")
    return secret


# --- Token Creation ---
def create_access_token(*, user_id: uuid.UUID, email: Optional[str] = None, expires_in: int = 3600) -> str:
    """
    Creates an access token in the shape the auth provider issues after a
    magic-link sign-in. Used by tooling and tests; sign-in itself happens
    outside this service.
    """
    if not isinstance(user_id, uuid.UUID):
        raise TypeError("user_id must be a UUID.")
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
        "role": "authenticated",
    }
    if email:
        payload["email"] = email
    if settings.jwt_issuer:
        payload["iss"] = settings.jwt_issuer
    return jwt.encode(payload, _signing_secret(), algorithm=settings.jwt_algorithm)


# --- Token Decoding and Validation ---
def decode_and_validate(token: str) -> Dict[str, Any]:
    """
    Decodes and validates a bearer access token.

    Args:
        token: The JWT token string.

    Returns:
        The decoded payload dictionary; `sub` is guaranteed to be a UUID string.

    Raises:
        TokenExpired: If the token has expired.
        TokenInvalid: If the token is invalid (bad signature, format, claims).
    """
    if not token:
        raise TokenInvalid("Token cannot be empty.")

    settings = get_settings()
    secret = _signing_secret()
    options = {"require": ["exp", "sub"]}
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options=options,
            # Leeway accounts for clock skew between servers
            leeway=timedelta(seconds=30),
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired()
    except jwt.InvalidAudienceError:
        raise TokenInvalid("Invalid audience.", code="TOKEN_INVALID_AUDIENCE")
    except jwt.InvalidIssuerError:
        raise TokenInvalid("Invalid issuer.", code="TOKEN_INVALID_ISSUER")
    except jwt.MissingRequiredClaimError as e:
        raise TokenInvalid(f"Missing required claim: {e}", code="TOKEN_MISSING_CLAIM")
    except jwt.InvalidSignatureError as e:
        raise TokenInvalid(f"Token signature verification failed: {e}", code="TOKEN_SIGNATURE_INVALID")
    except jwt.DecodeError as e:
        raise TokenInvalid(f"Token decoding failed: {e}", code="TOKEN_DECODE_ERROR")
    except jwt.InvalidTokenError as e: # Catches various other JWT errors
        raise TokenInvalid(f"Token is invalid: {e}", code="TOKEN_GENERIC_INVALID")

    sub = payload.get("sub")
    try:
        uuid.UUID(str(sub))
    except ValueError:
        raise TokenInvalid("Invalid 'sub' format in token.", code="TOKEN_INVALID_SUB")

    return payload
