"""
Security Test Suite: JWT Authentication

Tests that the centralized JWT verification in dependencies.py correctly:
- Rejects missing Authorization headers
- Rejects malformed tokens
- Rejects expired tokens
- Rejects tokens with invalid signatures or audience
- Accepts properly signed tokens
"""

import time
from uuid import uuid4

import jwt
from fastapi import FastAPI, Depends
from fastapi.testclient import TestClient

from app.api.dependencies import get_current_user_id
from app.config.settings import get_settings


# ---------------------------------------------------------------------------
# Minimal app that uses the real dependency
# ---------------------------------------------------------------------------

test_app = FastAPI()


@test_app.get("/protected")
async def protected_endpoint(user_id=Depends(get_current_user_id)):
    return {"user_id": str(user_id)}


client = TestClient(test_app, raise_server_exceptions=False)


def _token(**overrides) -> str:
    settings = get_settings()
    payload = {
        "sub": str(uuid4()),
        "aud": settings.jwt_audience,
        "exp": int(time.time()) + 3600,
    }
    payload.update(overrides)
    payload = {k: v for k, v in payload.items() if v is not None}
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def _get(token: str):
    return client.get("/protected", headers={"Authorization": f"Bearer {token}"})


# ---------------------------------------------------------------------------
# Tests: rejection scenarios
# ---------------------------------------------------------------------------


class TestJWTRejection:
    """Verify that invalid/missing JWTs are rejected with 401."""

    def test_no_auth_header(self):
        resp = client.get("/protected")
        assert resp.status_code == 401

    def test_empty_bearer(self):
        resp = client.get("/protected", headers={"Authorization": "Bearer "})
        assert resp.status_code == 401

    def test_malformed_scheme(self):
        resp = client.get("/protected", headers={"Authorization": "Basic abc123"})
        assert resp.status_code == 401

    def test_garbage_token(self):
        assert _get("not.a.jwt").status_code == 401

    def test_wrong_signing_key(self):
        settings = get_settings()
        token = jwt.encode(
            {"sub": str(uuid4()), "aud": settings.jwt_audience, "exp": int(time.time()) + 60},
            "some-other-secret-of-sufficient-length",
            algorithm="HS256",
        )
        assert _get(token).status_code == 401

    def test_expired_token(self):
        resp = _get(_token(exp=int(time.time()) - 10))
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Token has expired"

    def test_wrong_audience(self):
        assert _get(_token(aud="someone-else")).status_code == 401

    def test_missing_exp(self):
        settings = get_settings()
        token = jwt.encode(
            {"sub": str(uuid4()), "aud": settings.jwt_audience},
            settings.jwt_secret,
            algorithm="HS256",
        )
        assert _get(token).status_code == 401

    def test_non_uuid_subject(self):
        resp = _get(_token(sub="not-a-uuid"))
        assert resp.status_code == 401
        assert "malformed" in resp.json()["detail"]


class TestJWTAcceptance:

    def test_valid_token_returns_subject(self):
        user_id = str(uuid4())
        resp = _get(_token(sub=user_id))

        assert resp.status_code == 200
        assert resp.json() == {"user_id": user_id}
