"""
Result Access Gate

Decides, per request, whether the caller may read one assessment response.
Authenticated callers are judged on ownership and role alone; anonymous
callers (including those whose token failed validation) may read a response
only during the recency window after it was created.
"""
import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leap_api.auth.schemas import AuthenticatedUser
from leap_api.db.models import AssessmentResponse
from leap_api.db.repositories import AssessmentResponseRepository, UserRepository
from leap_api.errors import ResponseNotFound, TransientStoreError, Unauthorized

logger = logging.getLogger(__name__)

DEFAULT_ANONYMOUS_WINDOW = timedelta(minutes=10)


class AccessDecision(str, enum.Enum):
    ALLOW_OWNER = "allow_owner"
    ALLOW_ADMIN = "allow_admin"
    ALLOW_RECENT = "allow_recent"
    DENY = "deny"

    @property
    def allowed(self) -> bool:
        return self is not AccessDecision.DENY


@dataclass(frozen=True)
class CallerContext:
    """Who is asking. `user` is None for anonymous or invalid-token requests."""
    user: Optional[AuthenticatedUser] = None
    is_admin: bool = False


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def decide_access(
    owner_id: Optional[uuid.UUID],
    created_at: datetime,
    caller: CallerContext,
    now: Optional[datetime] = None,
    window: timedelta = DEFAULT_ANONYMOUS_WINDOW,
) -> AccessDecision:
    """
    Pure decision over one request.

    | caller        | owner? | admin? | age       | decision |
    |---------------|--------|--------|-----------|----------|
    | authenticated | yes    | -      | any       | ALLOW    |
    | authenticated | no     | yes    | any       | ALLOW    |
    | authenticated | no     | no     | any       | DENY     |
    | anonymous     | -      | -      | <= window | ALLOW    |
    | anonymous     | -      | -      | > window  | DENY     |
    """
    if caller.user is not None:
        if owner_id is not None and caller.user.id == owner_id:
            return AccessDecision.ALLOW_OWNER
        if caller.is_admin:
            return AccessDecision.ALLOW_ADMIN
        return AccessDecision.DENY

    now = _as_utc(now or datetime.now(timezone.utc))
    age = now - _as_utc(created_at)
    if age <= window:
        return AccessDecision.ALLOW_RECENT
    return AccessDecision.DENY


class ResultAccessGate:
    def __init__(self, session: AsyncSession, window: timedelta = DEFAULT_ANONYMOUS_WINDOW):
        self.responses = AssessmentResponseRepository(session)
        self.users = UserRepository(session)
        self.window = window

    async def fetch(
        self,
        response_id: str,
        caller: Optional[AuthenticatedUser] = None,
        now: Optional[datetime] = None,
    ) -> AssessmentResponse:
        """
        Loads a response and applies `decide_access`.

        Raises:
            ResponseNotFound: unknown or malformed identifier. Checked before
                authorisation.
            Unauthorized: the caller may not read this response.
            TransientStoreError: the data store failed.
        """
        try:
            parsed_id = uuid.UUID(str(response_id))
        except ValueError:
            logger.info(f"Malformed assessment id requested: {response_id!r}")
            raise ResponseNotFound()

        try:
            record = await self.responses.get_by_id(parsed_id)
            if record is None:
                raise ResponseNotFound()
            is_admin = False
            if caller is not None and caller.id != record.user_id:
                is_admin = await self.users.is_admin(caller.id)
        except SQLAlchemyError as e:
            logger.error(f"Store error while loading assessment {parsed_id}: {e}", exc_info=True)
            raise TransientStoreError("The assessment could not be loaded. Please try again.") from e

        decision = decide_access(
            record.user_id,
            record.created_at,
            CallerContext(user=caller, is_admin=is_admin),
            now=now,
            window=self.window,
        )
        if not decision.allowed:
            logger.info(f"Access to assessment {parsed_id} denied (caller: {caller.id if caller else 'anonymous'})")
            raise Unauthorized()
        logger.debug(f"Access to assessment {parsed_id} granted: {decision.value}")
        return record
