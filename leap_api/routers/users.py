# leap_api/routers/users.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leap_api.auth.schemas import AuthenticatedUser, ErrorResponse
from leap_api.db.repositories import UserRepository
from leap_api.db.session import db_session
from leap_api.errors import InvalidSubmissionError, ResponseNotFound, TransientStoreError, Unauthorized
from leap_api.middleware.auth import get_optional_user
from leap_api.middleware.rate_limit import rate_limit_by_ip
from leap_api.routers.common import http_error
from leap_api.schemas.assessment import ProfileOut, UserExistsRequest, UserExistsResponse
from leap_api.validation import validate_email

_log = logging.getLogger(__name__)
router = APIRouter(prefix="/users", tags=["Users"])


@router.post(
    "/exists",
    response_model=UserExistsResponse,
    summary="Check whether an email address already has an account",
    dependencies=[Depends(rate_limit_by_ip("user_exists", "user_exists_rate_limit"))],
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse, "description": "Missing or invalid email"},
        status.HTTP_429_TOO_MANY_REQUESTS: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    },
)
async def user_exists(body: UserExistsRequest, session: AsyncSession = Depends(db_session)):
    email_error = validate_email(body.email)
    if email_error:
        raise http_error(
            status.HTTP_400_BAD_REQUEST,
            InvalidSubmissionError(email_error, code="EMAIL_INVALID"),
            fields={"email": email_error},
        )
    try:
        user = await UserRepository(session).get_by_email(body.email)
    except SQLAlchemyError as e:
        _log.error(f"Store error during user lookup: {e}", exc_info=True)
        raise http_error(status.HTTP_500_INTERNAL_SERVER_ERROR, TransientStoreError("User lookup failed."))
    return UserExistsResponse(exists=user is not None, user_id=user.id if user else None)


@router.get(
    "/me",
    response_model=ProfileOut,
    summary="The signed-in user's profile",
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse, "description": "Not signed in"},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse, "description": "Account no longer exists"},
    },
)
async def current_profile(
    user: Optional[AuthenticatedUser] = Depends(get_optional_user),
    session: AsyncSession = Depends(db_session),
):
    if user is None:
        raise http_error(status.HTTP_401_UNAUTHORIZED, Unauthorized("Authentication required.", code="AUTH_REQUIRED"))
    profile = await UserRepository(session).get_by_id(user.id)
    if profile is None:
        raise http_error(status.HTTP_404_NOT_FOUND, ResponseNotFound("Account not found.", code="USER_NOT_FOUND"))
    return profile
