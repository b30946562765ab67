# leap_api/routers/assessments.py
import logging
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leap_api.assessment.access import ResultAccessGate
from leap_api.assessment.submission import SubmissionCoordinator
from leap_api.auth.schemas import AuthenticatedUser, ErrorResponse
from leap_api.core.config import get_settings
from leap_api.db.repositories import AssessmentResponseRepository, UserRepository
from leap_api.db.session import db_session
from leap_api.errors import (
    InvalidSubmissionError,
    ResponseNotFound,
    TransientStoreError,
    Unauthorized,
    VerificationFailed,
    VerificationUnavailable,
)
from leap_api.middleware.auth import get_optional_user
from leap_api.middleware.rate_limit import client_address, rate_limit_by_ip
from leap_api.routers.common import http_error
from leap_api.schemas.assessment import AssessmentResponseOut, AssessmentSubmission, LeadOut, ResultRequest
from leap_api.verification.hcaptcha import HCaptchaVerifier, get_verifier

_log = logging.getLogger(__name__)
router = APIRouter(prefix="/assessments", tags=["Assessments"])


def _effective_caller(submission: AssessmentSubmission, user: Optional[AuthenticatedUser]) -> Optional[AuthenticatedUser]:
    """The bearer identity, unless the body names a different user."""
    if user is None:
        if submission.user_id:
            _log.info("Ignoring userId in submission body: request carries no valid credential.")
        return None
    if submission.user_id and submission.user_id != user.id:
        _log.warning(f"Submission userId {submission.user_id} does not match caller {user.id}; treating as anonymous.")
        return None
    return user


@router.post(
    "",
    response_model=AssessmentResponseOut,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a completed assessment",
    dependencies=[Depends(rate_limit_by_ip("submit", "submit_rate_limit"))],
    responses={
        status.HTTP_200_OK: {"model": AssessmentResponseOut, "description": "Idempotent replay of an earlier submission"},
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse, "description": "Invalid data or captcha rejected"},
        status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse, "description": "Replay outside the anonymous viewing window"},
        status.HTTP_429_TOO_MANY_REQUESTS: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse, "description": "The submission could not be saved"},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse, "description": "Captcha provider unavailable"},
    },
)
async def submit_assessment(
    submission: AssessmentSubmission,
    request: Request,
    response: Response,
    user: Optional[AuthenticatedUser] = Depends(get_optional_user),
    session: AsyncSession = Depends(db_session),
    verifier: HCaptchaVerifier = Depends(get_verifier),
):
    """
    Stores one completed assessment and links it to a user.

    - Anonymous respondents are matched to an existing user by email, or a
      pre-confirmed user is provisioned.
    - Resubmitting the same payload with the same `idempotencyKey` returns the
      first record with status 200. The replay is subject to the same access
      rule as `/results`; a key reused for a different submission is a 400.
    """
    caller = _effective_caller(submission, user)
    if caller is None and get_settings().require_captcha_for_anonymous and not submission.has_captcha_token():
        raise http_error(
            status.HTTP_400_BAD_REQUEST,
            VerificationFailed("Captcha verification is required.", code="CAPTCHA_REQUIRED"),
            fields={"captchaToken": "Required for anonymous submissions."},
        )

    window = timedelta(seconds=get_settings().anonymous_view_window_seconds)
    coordinator = SubmissionCoordinator(session, verifier, window=window)
    try:
        result = await coordinator.submit(submission, caller=caller, remote_ip=client_address(request))
    except InvalidSubmissionError as e:
        _log.info(f"Submission rejected ({e.code}): {e.field_errors}")
        raise http_error(status.HTTP_400_BAD_REQUEST, e, fields=e.field_errors or None)
    except VerificationFailed as e:
        raise http_error(status.HTTP_400_BAD_REQUEST, e, fields={"error-codes": e.error_codes})
    except VerificationUnavailable as e:
        raise http_error(status.HTTP_503_SERVICE_UNAVAILABLE, e)
    except Unauthorized as e:
        raise http_error(status.HTTP_401_UNAUTHORIZED, e)
    except TransientStoreError as e:
        raise http_error(status.HTTP_500_INTERNAL_SERVER_ERROR, e)

    if not result.created:
        response.status_code = status.HTTP_200_OK
    return result.response


@router.post(
    "/results",
    response_model=AssessmentResponseOut,
    summary="Fetch one assessment result",
    dependencies=[Depends(rate_limit_by_ip("results", "results_rate_limit"))],
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse, "description": "Missing responseId"},
        status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse, "description": "Caller may not view this result"},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse, "description": "No such result"},
        status.HTTP_429_TOO_MANY_REQUESTS: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    },
)
async def fetch_result(
    body: ResultRequest,
    user: Optional[AuthenticatedUser] = Depends(get_optional_user),
    session: AsyncSession = Depends(db_session),
):
    """
    Owners and admins may always read a result; anyone else only within the
    anonymous viewing window after it was created.
    """
    response_id = body.response_id.strip()
    if not response_id:
        raise http_error(
            status.HTTP_400_BAD_REQUEST,
            InvalidSubmissionError("Response ID is required.", code="RESULT_ID_REQUIRED"),
            fields={"responseId": "Required."},
        )

    gate = ResultAccessGate(session, window=timedelta(seconds=get_settings().anonymous_view_window_seconds))
    try:
        return await gate.fetch(response_id, caller=user)
    except ResponseNotFound as e:
        raise http_error(status.HTTP_404_NOT_FOUND, e)
    except Unauthorized as e:
        raise http_error(status.HTTP_401_UNAUTHORIZED, e)
    except TransientStoreError as e:
        raise http_error(status.HTTP_500_INTERNAL_SERVER_ERROR, e)


@router.get(
    "/latest",
    response_model=AssessmentResponseOut,
    summary="The caller's most recent assessment",
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse, "description": "Not signed in"},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse, "description": "No assessment yet"},
    },
)
async def latest_assessment(
    user: Optional[AuthenticatedUser] = Depends(get_optional_user),
    session: AsyncSession = Depends(db_session),
):
    if user is None:
        raise http_error(status.HTTP_401_UNAUTHORIZED, Unauthorized("Authentication required.", code="AUTH_REQUIRED"))
    try:
        record = await AssessmentResponseRepository(session).latest_for_user(user.id)
    except SQLAlchemyError as e:
        _log.error(f"Store error while loading latest assessment for {user.id}: {e}", exc_info=True)
        raise http_error(status.HTTP_500_INTERNAL_SERVER_ERROR, TransientStoreError("The assessment could not be loaded."))
    if record is None:
        raise http_error(status.HTTP_404_NOT_FOUND, ResponseNotFound("No assessment found for this account."))
    return record


@router.get(
    "",
    response_model=List[LeadOut],
    summary="List submitted assessments with contact details (admin only)",
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse, "description": "Not signed in"},
        status.HTTP_403_FORBIDDEN: {"model": ErrorResponse, "description": "Caller is not an admin"},
    },
)
async def list_assessments(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: Optional[AuthenticatedUser] = Depends(get_optional_user),
    session: AsyncSession = Depends(db_session),
):
    if user is None:
        raise http_error(status.HTTP_401_UNAUTHORIZED, Unauthorized("Authentication required.", code="AUTH_REQUIRED"))
    try:
        if not await UserRepository(session).is_admin(user.id):
            _log.info(f"Non-admin {user.id} requested the assessment listing")
            raise http_error(status.HTTP_403_FORBIDDEN, Unauthorized("Admin access required.", code="ADMIN_REQUIRED"))
        records = await AssessmentResponseRepository(session).list_recent(limit=limit, offset=offset)
    except SQLAlchemyError as e:
        _log.error(f"Store error while listing assessments: {e}", exc_info=True)
        raise http_error(status.HTTP_500_INTERNAL_SERVER_ERROR, TransientStoreError("Assessments could not be loaded."))
    return [LeadOut.from_response(record) for record in records]
