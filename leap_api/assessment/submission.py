"""
Submission Coordinator

Turns one completed assessment into exactly one persisted
`AssessmentResponse`: validate, verify the captcha token (if any), resolve or
provision the owning user, insert the response. User resolution and the insert
share one transaction and are committed together.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Protocol

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leap_api.assessment.access import DEFAULT_ANONYMOUS_WINDOW, CallerContext, decide_access
from leap_api.assessment.rules import validate_scores
from leap_api.auth.schemas import AuthenticatedUser
from leap_api.db.models import AssessmentResponse, User
from leap_api.db.repositories import AssessmentResponseRepository, UserRepository, normalize_email
from leap_api.errors import InvalidSubmissionError, TransientStoreError, Unauthorized
from leap_api.schemas.assessment import AssessmentSubmission
from leap_api.validation import validate_contact

logger = logging.getLogger(__name__)


class CaptchaVerifier(Protocol):
    async def verify(self, token: str, remote_ip: Optional[str] = None) -> None: ...


@dataclass(frozen=True)
class SubmissionResult:
    response: AssessmentResponse
    # False when an earlier submission with the same idempotency key was returned
    created: bool


class SubmissionCoordinator:
    def __init__(
        self,
        session: AsyncSession,
        verifier: CaptchaVerifier,
        window: timedelta = DEFAULT_ANONYMOUS_WINDOW,
    ):
        self.session = session
        self.verifier = verifier
        self.window = window
        self.users = UserRepository(session)
        self.responses = AssessmentResponseRepository(session)

    async def submit(
        self,
        submission: AssessmentSubmission,
        caller: Optional[AuthenticatedUser] = None,
        remote_ip: Optional[str] = None,
    ) -> SubmissionResult:
        """
        Persists one assessment submission.

        Args:
            submission: Contact data, scores and answer trace.
            caller: The authenticated identity, if the request carried a valid
                credential. Never inferred from ambient state.
            remote_ip: Forwarded to the captcha provider.

        Raises:
            InvalidSubmissionError: contact or score data is invalid, or the
                caller's account no longer exists, or the idempotency key
                belongs to a different submission.
            VerificationFailed: the captcha token was rejected.
            VerificationUnavailable: the captcha provider could not be used.
            Unauthorized: an anonymous replay arrived after the viewing window.
            TransientStoreError: the data store failed; nothing was committed.
        """
        contact = submission.contact_data
        validate_contact(contact.full_name, contact.email, contact.phone)
        validate_scores(
            submission.assessment_type,
            submission.category_scores(),
            submission.leap_scores(),
            submission.answer_trace(),
        )

        # Verification happens before anything touches the store
        if submission.has_captcha_token():
            await self.verifier.verify(submission.captcha_token.strip(), remote_ip=remote_ip)
        else:
            logger.debug("No captcha token supplied; verification skipped.")

        try:
            result = await self._persist(submission, caller)
        except IntegrityError as e:
            # A concurrent request won a unique constraint: the same idempotency
            # key was inserted first, or a user with this email was provisioned
            # in between. The retry re-reads the winner.
            await self.session.rollback()
            logger.warning(f"Unique constraint conflict during submission, reconciling: {e.orig}")
            try:
                result = await self._persist(submission, caller)
            except SQLAlchemyError as retry_error:
                await self.session.rollback()
                logger.error(f"Store error while reconciling submission: {retry_error}", exc_info=True)
                raise TransientStoreError() from retry_error
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Store error while saving assessment submission: {e}", exc_info=True)
            raise TransientStoreError() from e

        if result.created:
            logger.info(f"Assessment response {result.response.id} created for user {result.response.user_id} ({submission.assessment_type})")
        return result

    async def _persist(self, submission: AssessmentSubmission, caller: Optional[AuthenticatedUser]) -> SubmissionResult:
        if submission.idempotency_key:
            existing = await self.responses.get_by_idempotency_key(submission.idempotency_key)
            if existing:
                await self._check_replay(existing, submission, caller)
                logger.info(f"Idempotent replay of submission {existing.id}")
                return SubmissionResult(response=existing, created=False)

        user = await self._resolve_user(submission, caller)
        response = await self.responses.create(
            user_id=user.id,
            assessment_type=submission.assessment_type,
            scores=submission.leap_scores().as_dict(),
            category_scores=submission.category_scores().as_dict(),
            answers=submission.answer_trace(),
            idempotency_key=submission.idempotency_key,
            source=submission.contact_data.source,
        )
        await self.session.commit()
        return SubmissionResult(response=response, created=True)

    async def _check_replay(
        self,
        existing: AssessmentResponse,
        submission: AssessmentSubmission,
        caller: Optional[AuthenticatedUser],
    ) -> None:
        """
        A replay only returns the stored record to the submitter who created it,
        and an anonymous replay only while the record is inside the viewing
        window.
        """
        if caller is not None:
            same_owner = existing.user_id is not None and caller.id == existing.user_id
        else:
            owner = await self.users.get_by_id(existing.user_id) if existing.user_id else None
            same_owner = owner is not None and owner.email == normalize_email(submission.contact_data.email)

        same_payload = (
            existing.assessment_type == submission.assessment_type
            and existing.scores == submission.leap_scores().as_dict()
            and existing.answers == submission.answer_trace()
        )
        if not (same_owner and same_payload):
            logger.warning(f"Idempotency key of submission {existing.id} reused by a different submission")
            raise InvalidSubmissionError(
                "This idempotency key was already used for a different submission.",
                code="IDEMPOTENCY_KEY_REUSED",
                field_errors={"idempotencyKey": "Already used."},
            )

        decision = decide_access(existing.user_id, existing.created_at, CallerContext(user=caller), window=self.window)
        if not decision.allowed:
            logger.info(f"Anonymous replay of submission {existing.id} is outside the viewing window")
            raise Unauthorized()

    async def _resolve_user(self, submission: AssessmentSubmission, caller: Optional[AuthenticatedUser]) -> User:
        contact = submission.contact_data
        profile = contact.profile_fields()

        if caller:
            user = await self.users.get_by_id(caller.id)
            if not user:
                raise InvalidSubmissionError(
                    "The signed-in account could not be found.",
                    code="USER_NOT_FOUND",
                    field_errors={"userId": "Unknown user."},
                )
            return await self.users.update_contact(user, profile)

        user = await self.users.get_by_email(contact.email)
        if user:
            logger.debug(f"Returning respondent matched by email: {user.id}")
            return await self.users.update_contact(user, profile)

        return await self.users.create(contact.email, profile, confirmed=True)
