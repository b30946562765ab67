# tests/auth/test_tokens.py

import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from leap_api.auth.jwt import TokenExpired, TokenInvalid, create_access_token, decode_and_validate
from leap_api.core.config import get_settings
from leap_api.middleware.auth import resolve_identity

SECRET = "test-jwt-secret-with-enough-length-1234"


def _encode(claims, secret=SECRET):
    return jwt.encode(claims, secret, algorithm="HS256")


def _claims(**overrides):
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(uuid.uuid4()),
        "aud": "authenticated",
        "iat": now,
        "exp": now + timedelta(minutes=5),
    }
    claims.update(overrides)
    return {key: value for key, value in claims.items() if value is not None}


def test_create_and_decode_roundtrip():
    user_id = uuid.uuid4()
    token = create_access_token(user_id=user_id, email="ada@example.com")
    payload = decode_and_validate(token)
    assert payload["sub"] == str(user_id)
    assert payload["email"] == "ada@example.com"
    assert payload["aud"] == "authenticated"


def test_create_requires_uuid():
    with pytest.raises(TypeError):
        create_access_token(user_id="not-a-uuid")


def test_expired_token():
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    token = _encode(_claims(iat=past, exp=past + timedelta(minutes=5)))
    with pytest.raises(TokenExpired):
        decode_and_validate(token)


def test_expiry_within_leeway_is_accepted():
    token = _encode(_claims(exp=datetime.now(timezone.utc) - timedelta(seconds=10)))
    assert decode_and_validate(token)["aud"] == "authenticated"


def test_wrong_signature():
    token = _encode(_claims(), secret="another-secret-of-sufficient-length!!")
    with pytest.raises(TokenInvalid) as exc_info:
        decode_and_validate(token)
    assert exc_info.value.code == "TOKEN_SIGNATURE_INVALID"


def test_wrong_audience():
    with pytest.raises(TokenInvalid) as exc_info:
        decode_and_validate(_encode(_claims(aud="service_role")))
    assert exc_info.value.code == "TOKEN_INVALID_AUDIENCE"


def test_missing_subject():
    with pytest.raises(TokenInvalid) as exc_info:
        decode_and_validate(_encode(_claims(sub=None)))
    assert exc_info.value.code == "TOKEN_MISSING_CLAIM"


def test_subject_must_be_uuid():
    with pytest.raises(TokenInvalid) as exc_info:
        decode_and_validate(_encode(_claims(sub="user-42")))
    assert exc_info.value.code == "TOKEN_INVALID_SUB"


def test_garbage_token():
    with pytest.raises(TokenInvalid):
        decode_and_validate("not.a.jwt")


def test_unconfigured_secret_rejects_tokens(monkeypatch):
    monkeypatch.delenv("LEAP_JWT_SECRET")
    get_settings.cache_clear()
    with pytest.raises(TokenInvalid) as exc_info:
        decode_and_validate(_encode(_claims()))
    assert exc_info.value.code == "TOKEN_NOT_CONFIGURED"


def test_issuer_is_checked_when_configured(monkeypatch):
    monkeypatch.setenv("LEAP_JWT_ISSUER", "https://auth.example.com")
    get_settings.cache_clear()
    assert decode_and_validate(_encode(_claims(iss="https://auth.example.com")))
    with pytest.raises(TokenInvalid) as exc_info:
        decode_and_validate(_encode(_claims(iss="https://evil.example.com")))
    assert exc_info.value.code == "TOKEN_INVALID_ISSUER"


def test_invalid_token_resolves_to_anonymous():
    assert resolve_identity(None) is None
    assert resolve_identity("not.a.jwt") is None
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    assert resolve_identity(_encode(_claims(iat=past, exp=past))) is None


def test_valid_token_resolves_identity():
    user_id = uuid.uuid4()
    identity = resolve_identity(create_access_token(user_id=user_id, email="ada@example.com"))
    assert identity.id == user_id
    assert identity.email == "ada@example.com"
