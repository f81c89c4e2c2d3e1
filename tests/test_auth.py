"""Tests for bearer token validation and role resolution."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException
from jose import jwt

from dashboard_service.auth import (
    INVESTOR,
    MANAGER,
    OWNER,
    STAFF,
    AuthContext,
    decode_token,
    is_allowed,
    resolve_effective_role,
    role_from_claims,
)

SECRET = "test-jwt-secret"


def make_token(secret: str = SECRET, expires_in: timedelta = timedelta(hours=1), **claims) -> str:
    payload = {
        "sub": "user-1",
        "aud": "authenticated",
        "exp": datetime.now(timezone.utc) + expires_in,
        **claims,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


class TestEffectiveRole:

    @pytest.mark.parametrize("actual,view_as,expected", [
        (OWNER, None, OWNER),
        (OWNER, MANAGER, MANAGER),
        (OWNER, STAFF, STAFF),
        (OWNER, "superuser", OWNER),
        (MANAGER, STAFF, MANAGER),
        (STAFF, OWNER, STAFF),
    ])
    def test_only_owner_can_view_as(self, actual, view_as, expected):
        assert resolve_effective_role(actual, view_as) == expected

    def test_context(self):
        ctx = AuthContext(user_id="u1", actual_role=OWNER, view_as=STAFF)
        assert ctx.effective_role == STAFF
        assert ctx.is_viewing_as is True
        assert AuthContext("u2", MANAGER, OWNER).is_viewing_as is False


class TestIsAllowed:

    def test_owner_always_passes_even_when_viewing_as_staff(self):
        ctx = AuthContext(user_id="u1", actual_role=OWNER, view_as=STAFF)
        assert is_allowed(ctx.actual_role, (MANAGER,))

    def test_investor_reads_owner_routes(self):
        assert is_allowed(INVESTOR, (OWNER,))
        assert not is_allowed(INVESTOR, (MANAGER, STAFF))

    def test_role_membership(self):
        assert is_allowed(MANAGER, (OWNER, MANAGER))
        assert not is_allowed(STAFF, (OWNER, MANAGER))


class TestTokens:

    def test_role_from_app_metadata(self):
        assert role_from_claims({"app_metadata": {"role": OWNER}, "user_metadata": {"role": STAFF}}) == OWNER
        assert role_from_claims({"user_metadata": {"role": MANAGER}}) == MANAGER
        assert role_from_claims({"app_metadata": {"role": "admin"}}) == STAFF
        assert role_from_claims({}) == STAFF

    def test_decode_valid(self):
        claims = decode_token(make_token(app_metadata={"role": MANAGER}), SECRET)
        assert claims["sub"] == "user-1"
        assert role_from_claims(claims) == MANAGER

    @pytest.mark.parametrize("token", [
        make_token(secret="other-secret"),
        make_token(expires_in=timedelta(hours=-1)),
        make_token(aud="anon"),
        "not-a-jwt",
    ])
    def test_decode_rejects(self, token):
        with pytest.raises(HTTPException) as exc_info:
            decode_token(token, SECRET)
        assert exc_info.value.status_code == 401

    def test_missing_secret_rejects(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_JWT_SECRET", raising=False)
        with pytest.raises(HTTPException) as exc_info:
            decode_token(make_token())
        assert exc_info.value.status_code == 401
