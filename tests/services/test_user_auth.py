from __future__ import annotations

import time
from types import SimpleNamespace

import jwt

from paywall.services import user_auth

SECRET = "test-jwt-secret-with-enough-length-for-hs256"


def _token(**claims: object) -> str:
    payload = {"sub": "user-1", "aud": "authenticated", "exp": int(time.time()) + 300}
    payload.update(claims)
    return jwt.encode(payload, SECRET, algorithm="HS256")


def test_extract_bearer_token() -> None:
    assert user_auth.extract_bearer_token("Bearer abc") == "abc"
    assert user_auth.extract_bearer_token("bearer  abc ") == "abc"
    assert user_auth.extract_bearer_token("Basic abc") is None
    assert user_auth.extract_bearer_token(None) is None


def test_decode_user_token_returns_user_and_email() -> None:
    user = user_auth.decode_user_token(
        _token(email="luna.fan@example.com"),
        secret=SECRET,
        audience="authenticated",
    )
    assert user is not None
    assert user.user_id == "user-1"
    assert user.email == "luna.fan@example.com"


def test_decode_user_token_rejects_expired_token() -> None:
    token = _token(exp=int(time.time()) - 10)
    assert user_auth.decode_user_token(token, secret=SECRET, audience="authenticated") is None


def test_decode_user_token_rejects_wrong_audience() -> None:
    assert user_auth.decode_user_token(_token(aud="anon"), secret=SECRET, audience="authenticated") is None


def test_decode_user_token_rejects_foreign_signature() -> None:
    other_secret = "another-secret-that-is-long-enough"
    assert user_auth.decode_user_token(_token(), secret=other_secret, audience="authenticated") is None


def test_get_authenticated_user_is_anonymous_without_secret(monkeypatch) -> None:
    monkeypatch.setattr(
        user_auth,
        "get_settings",
        lambda: SimpleNamespace(auth_jwt_secret="", auth_jwt_audience="authenticated"),
    )
    assert user_auth.get_authenticated_user(f"Bearer {_token()}") is None


def test_get_authenticated_user_resolves_bearer_token(monkeypatch) -> None:
    monkeypatch.setattr(
        user_auth,
        "get_settings",
        lambda: SimpleNamespace(auth_jwt_secret=SECRET, auth_jwt_audience="authenticated"),
    )
    user = user_auth.get_authenticated_user(f"Bearer {_token()}")
    assert user is not None
    assert user.user_id == "user-1"
