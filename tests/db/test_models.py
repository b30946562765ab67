import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leap_api.db.models import AssessmentResponse, User
from leap_api.db.repositories import AssessmentResponseRepository, UserRepository

CATEGORY_SCORES = {"habit": 5, "ability": 5, "talent": 5, "skill": 5}
LEAP_SCORES = {"leadership": 10, "effectiveness": 10, "accountability": 10, "productivity": 10}


async def _create_response(session: AsyncSession, user_id, key=None, created_at=None) -> AssessmentResponse:
    response = await AssessmentResponseRepository(session).create(
        user_id=user_id,
        assessment_type="individual",
        scores=LEAP_SCORES,
        category_scores=CATEGORY_SCORES,
        answers=[{"question_id": "q1", "category": "habit", "score": 3}],
        idempotency_key=key,
    )
    if created_at:
        response.created_at = created_at
        await session.flush()
    return response


async def test_user_is_stored_lower_cased_and_found_case_insensitively(session: AsyncSession):
    users = UserRepository(session)
    created = await users.create("  Ada@Example.COM ", {"full_name": "Ada"})
    await session.commit()

    assert created.email == "ada@example.com"
    assert created.email_confirmed_at is not None
    found = await users.get_by_email("ADA@example.com")
    assert found is not None and found.id == created.id


async def test_unconfirmed_user(session: AsyncSession):
    user = await UserRepository(session).create("new@example.com", {}, confirmed=False)
    assert user.email_confirmed_at is None
    assert user.user_role == "user"


async def test_update_contact_keeps_fields_when_value_is_none(session: AsyncSession):
    users = UserRepository(session)
    user = await users.create("ada@example.com", {"full_name": "Ada", "company": "Engines", "phone": "555 0100"})
    await users.update_contact(user, {"full_name": "Ada King", "company": None, "role": "Countess"})

    assert user.full_name == "Ada King"
    assert user.company == "Engines"
    assert user.role == "Countess"
    assert user.phone == "555 0100"


async def test_email_unique_constraint(session: AsyncSession):
    session.add(User(email="dup@example.com", user_role="user"))
    await session.flush()
    session.add(User(email="dup@example.com", user_role="user"))
    with pytest.raises(IntegrityError):
        await session.flush()
    await session.rollback()


async def test_idempotency_key_unique_constraint(session: AsyncSession):
    user = await UserRepository(session).create("ada@example.com", {})
    await _create_response(session, user.id, key="key-1")
    with pytest.raises(IntegrityError):
        await _create_response(session, user.id, key="key-1")
    await session.rollback()


async def test_responses_without_key_may_repeat(session: AsyncSession):
    user = await UserRepository(session).create("ada@example.com", {})
    first = await _create_response(session, user.id)
    second = await _create_response(session, user.id)
    assert first.id != second.id


async def test_response_roundtrip(session_factory):
    async with session_factory() as session:
        user = await UserRepository(session).create("ada@example.com", {})
        response = await _create_response(session, user.id, key="abc")
        await session.commit()
        response_id = response.id

    async with session_factory() as session:
        loaded = await AssessmentResponseRepository(session).get_by_id(response_id)
        assert loaded.scores == LEAP_SCORES
        assert loaded.habit_score == 5
        assert loaded.answers[0]["question_id"] == "q1"
        assert (await AssessmentResponseRepository(session).get_by_idempotency_key("abc")).id == response_id


async def test_latest_for_user(session: AsyncSession):
    user = await UserRepository(session).create("ada@example.com", {})
    now = datetime.now(timezone.utc)
    await _create_response(session, user.id, created_at=now - timedelta(days=2))
    newest = await _create_response(session, user.id, created_at=now)
    await _create_response(session, user.id, created_at=now - timedelta(days=1))

    latest = await AssessmentResponseRepository(session).latest_for_user(user.id)
    assert latest.id == newest.id
    assert await AssessmentResponseRepository(session).latest_for_user(uuid.uuid4()) is None


async def test_is_admin(session: AsyncSession):
    users = UserRepository(session)
    admin = await users.create("admin@example.com", {})
    admin.user_role = "admin"
    member = await users.create("member@example.com", {})
    await session.flush()

    assert await users.is_admin(admin.id) is True
    assert await users.is_admin(member.id) is False
    assert await users.is_admin(uuid.uuid4()) is False


def test_response_repository_has_no_update_path():
    assert not any(name.startswith("update") for name in dir(AssessmentResponseRepository))
