import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leap_api.db.models import AssessmentResponse, User

logger = logging.getLogger(__name__)

CONTACT_FIELDS = ("full_name", "company", "role", "phone")


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserRepository:
    """Reads and writes `users` rows within the caller's session and transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        return await self.session.get(User, user_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive lookup."""
        stmt = select(User).where(func.lower(User.email) == normalize_email(email)).limit(1)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def create(self, email: str, contact: Dict[str, Any], confirmed: bool = True) -> User:
        """
        Adds a new user and flushes so the id is available.

        The row is pre-confirmed by default: first-time respondents can view
        their results without an email round-trip.
        """
        now = datetime.now(timezone.utc)
        user = User(
            email=normalize_email(email),
            user_role="user",
            email_confirmed_at=now if confirmed else None,
            **{field: contact.get(field) for field in CONTACT_FIELDS},
        )
        self.session.add(user)
        await self.session.flush()
        logger.info(f"Provisioned user {user.id}")
        return user

    async def update_contact(self, user: User, contact: Dict[str, Any]) -> User:
        """Refreshes the stored contact fields; None values leave a field unchanged."""
        changed = False
        for field in CONTACT_FIELDS:
            value = contact.get(field)
            if value is not None and getattr(user, field) != value:
                setattr(user, field, value)
                changed = True
        if changed:
            user.updated_at = datetime.now(timezone.utc)
            await self.session.flush()
        return user

    async def is_admin(self, user_id: uuid.UUID) -> bool:
        user = await self.get_by_id(user_id)
        return bool(user and user.user_role == "admin")


class AssessmentResponseRepository:
    """Reads and inserts `assessment_responses` rows. Rows are never updated."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, response_id: uuid.UUID) -> Optional[AssessmentResponse]:
        return await self.session.get(AssessmentResponse, response_id)

    async def get_by_idempotency_key(self, key: str) -> Optional[AssessmentResponse]:
        stmt = select(AssessmentResponse).where(AssessmentResponse.idempotency_key == key).limit(1)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def latest_for_user(self, user_id: uuid.UUID) -> Optional[AssessmentResponse]:
        stmt = (
            select(AssessmentResponse)
            .where(AssessmentResponse.user_id == user_id)
            .order_by(AssessmentResponse.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_recent(self, limit: int = 50, offset: int = 0) -> List[AssessmentResponse]:
        """Newest first, with the owning user loaded."""
        stmt = (
            select(AssessmentResponse)
            .options(selectinload(AssessmentResponse.user))
            .order_by(AssessmentResponse.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create(
        self,
        *,
        user_id: Optional[uuid.UUID],
        assessment_type: str,
        scores: Dict[str, int],
        category_scores: Dict[str, int],
        answers: List[Dict[str, Any]],
        idempotency_key: Optional[str] = None,
        source: Optional[str] = None,
    ) -> AssessmentResponse:
        response = AssessmentResponse(
            user_id=user_id,
            assessment_type=assessment_type,
            scores=scores,
            habit_score=category_scores["habit"],
            ability_score=category_scores["ability"],
            talent_score=category_scores["talent"],
            skill_score=category_scores["skill"],
            answers=answers,
            idempotency_key=idempotency_key,
            source=source,
            created_at=datetime.now(timezone.utc),
        )
        self.session.add(response)
        await self.session.flush()
        return response
