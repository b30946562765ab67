import os

# Settings are read once and cached; configure the test environment before any
# leap_api module is imported.
os.environ["LEAP_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LEAP_REDIS_URL"] = "redis://localhost:6399/15"
os.environ["LEAP_JWT_SECRET"] = "test-jwt-secret-with-enough-length-1234"
os.environ["LEAP_HCAPTCHA_SECRET_KEY"] = "0x-test-secret"
os.environ["LEAP_LOG_LEVEL"] = "DEBUG"

import uuid
from typing import List, Optional, Tuple
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from leap_api.core.config import get_settings
from leap_api.db.models import Base
from leap_api.db.session import db_session, get_session_factory
from leap_api.verification.hcaptcha import get_verifier

get_settings.cache_clear()


class StubVerifier:
    """Records verification calls; raises `error` when set."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: List[Tuple[str, Optional[str]]] = []

    async def verify(self, token: str, remote_ip: Optional[str] = None) -> None:
        self.calls.append((token, remote_ip))
        if self.error:
            raise self.error


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def no_redis():
    """Rate limiting fails open unless a test installs its own Redis double."""
    with patch("leap_api.middleware.rate_limit.get_redis", new=AsyncMock(return_value=None)) as mock_get_redis:
        yield mock_get_redis


@pytest_asyncio.fixture
async def engine():
    # One shared connection so every session sees the same in-memory database
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as db:
        yield db


@pytest.fixture
def verifier() -> StubVerifier:
    return StubVerifier()


@pytest_asyncio.fixture
async def app_client(session_factory, verifier):
    """HTTPX client bound to the ASGI app with the test database and verifier."""
    from main import app

    async def _test_session():
        async with session_factory() as db:
            try:
                yield db
            except Exception:
                await db.rollback()
                raise

    app.dependency_overrides[db_session] = _test_session
    app.dependency_overrides[get_verifier] = lambda: verifier
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def make_answers(points_by_category, assessment_type="individual"):
    """Answer trace items (`score` key) for the given per-category points."""
    answers = []
    for category, points in points_by_category.items():
        for index, value in enumerate(points, start=1):
            answers.append({
                "question_id": f"{assessment_type[0]}-{category}-{index}",
                "category": category,
                "score": value,
                "question_text": f"How often do you rely on your {category}?",
                "response_label": str(value),
            })
    return answers


SCENARIO_POINTS = {
    "habit": [3, 2],
    "ability": [3, 2],
    "talent": [4, 1],
    "skill": [3, 2],
}


def submission_payload(
    email: str = "ada@example.com",
    full_name: str = "Ada Lovelace",
    user_id: Optional[uuid.UUID] = None,
    captcha_token: Optional[str] = "captcha-ok",
    idempotency_key: Optional[str] = None,
    points=None,
):
    """A camelCase submission body whose scores add up to its answers."""
    points = points or SCENARIO_POINTS
    totals = {category: sum(values) for category, values in points.items()}
    body = {
        "contactData": {
            "full_name": full_name,
            "email": email,
            "company": "Analytical Engines Ltd",
            "role": "Engineer",
            "phone": "+44 20 7946 0018",
            "source": "assessment",
        },
        "assessmentType": "individual",
        "scores": {
            "leadership": totals["habit"] + totals["talent"],
            "effectiveness": totals["habit"] + totals["ability"],
            "accountability": totals["ability"] + totals["skill"],
            "productivity": totals["habit"] + totals["skill"],
        },
        "habitScore": totals["habit"],
        "abilityScore": totals["ability"],
        "talentScore": totals["talent"],
        "skillScore": totals["skill"],
        "answers": make_answers(points),
    }
    if user_id:
        body["userId"] = str(user_id)
    if captcha_token:
        body["captchaToken"] = captcha_token
    if idempotency_key:
        body["idempotencyKey"] = idempotency_key
    return body


@pytest.fixture
def make_submission():
    return submission_payload


@pytest.fixture
def make_answer_trace():
    return make_answers
