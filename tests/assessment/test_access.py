import uuid
from datetime import datetime, timedelta, timezone

import pytest

from leap_api.assessment.access import AccessDecision, CallerContext, ResultAccessGate, decide_access
from leap_api.auth.schemas import AuthenticatedUser
from leap_api.db.repositories import AssessmentResponseRepository, UserRepository
from leap_api.errors import ResponseNotFound, Unauthorized

CREATED_AT = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
OWNER = AuthenticatedUser(id=uuid.uuid4(), email="owner@example.com")
STRANGER = AuthenticatedUser(id=uuid.uuid4(), email="stranger@example.com")


def _at(minutes):
    return CREATED_AT + timedelta(minutes=minutes)


@pytest.mark.parametrize(
    "caller, age_minutes, expected",
    [
        (CallerContext(user=OWNER), 0, AccessDecision.ALLOW_OWNER),
        (CallerContext(user=OWNER), 60 * 24 * 365, AccessDecision.ALLOW_OWNER),
        (CallerContext(user=STRANGER, is_admin=True), 60 * 24, AccessDecision.ALLOW_ADMIN),
        (CallerContext(user=STRANGER), 1, AccessDecision.DENY),
        (CallerContext(user=STRANGER), 60, AccessDecision.DENY),
        (CallerContext(), 5, AccessDecision.ALLOW_RECENT),
        (CallerContext(), 10, AccessDecision.ALLOW_RECENT),
        (CallerContext(), 15, AccessDecision.DENY),
    ],
)
def test_decision_table(caller, age_minutes, expected):
    assert decide_access(OWNER.id, CREATED_AT, caller, now=_at(age_minutes)) is expected


def test_anonymous_owner_record_is_only_readable_while_recent():
    assert decide_access(None, CREATED_AT, CallerContext(user=STRANGER), now=_at(1)) is AccessDecision.DENY
    assert decide_access(None, CREATED_AT, CallerContext(), now=_at(1)) is AccessDecision.ALLOW_RECENT


def test_naive_timestamps_are_treated_as_utc():
    naive = CREATED_AT.replace(tzinfo=None)
    assert decide_access(OWNER.id, naive, CallerContext(), now=_at(5)) is AccessDecision.ALLOW_RECENT


def test_custom_window():
    decision = decide_access(OWNER.id, CREATED_AT, CallerContext(), now=_at(3), window=timedelta(minutes=2))
    assert decision is AccessDecision.DENY


async def _stored_response(session, owner_email="owner@example.com", role="user"):
    owner = await UserRepository(session).create(owner_email, {})
    owner.user_role = role
    response = await AssessmentResponseRepository(session).create(
        user_id=owner.id,
        assessment_type="individual",
        scores={"leadership": 10, "effectiveness": 10, "accountability": 10, "productivity": 10},
        category_scores={"habit": 5, "ability": 5, "talent": 5, "skill": 5},
        answers=[],
    )
    await session.commit()
    return owner, response


async def test_gate_allows_anonymous_at_five_minutes_and_denies_at_fifteen(session):
    _, response = await _stored_response(session)
    gate = ResultAccessGate(session)

    record = await gate.fetch(str(response.id), now=response.created_at + timedelta(minutes=5))
    assert record.id == response.id

    with pytest.raises(Unauthorized) as exc_info:
        await gate.fetch(str(response.id), now=response.created_at + timedelta(minutes=15))
    assert exc_info.value.code == "RESULT_UNAUTHORIZED"


async def test_gate_owner_and_admin_at_any_age(session):
    owner, response = await _stored_response(session)
    admin, _ = await _stored_response(session, owner_email="admin@example.com", role="admin")
    later = response.created_at + timedelta(days=30)
    gate = ResultAccessGate(session)

    assert (await gate.fetch(str(response.id), caller=AuthenticatedUser(id=owner.id), now=later)).id == response.id
    assert (await gate.fetch(str(response.id), caller=AuthenticatedUser(id=admin.id), now=later)).id == response.id


async def test_gate_denies_authenticated_stranger_even_when_recent(session):
    _, response = await _stored_response(session)
    stranger, _ = await _stored_response(session, owner_email="stranger@example.com")

    with pytest.raises(Unauthorized):
        await ResultAccessGate(session).fetch(
            str(response.id),
            caller=AuthenticatedUser(id=stranger.id),
            now=response.created_at + timedelta(minutes=1),
        )


@pytest.mark.parametrize("response_id", ["not-a-uuid", str(uuid.uuid4())])
async def test_gate_unknown_or_malformed_id_is_not_found(session, response_id):
    with pytest.raises(ResponseNotFound):
        await ResultAccessGate(session).fetch(response_id, caller=OWNER)
