"""
Convo Backend — Authentication Service Tests
=============================================

What we test:
    ✅ login issues a token pair; unknown email and wrong password look alike
    ✅ a valid access token authenticates without renewal
    ✅ an expired access token is renewed from the refresh token
    ✅ malformed, missing and orphaned tokens are rejected
"""

import time

import jwt
import pytest

from convo.config import settings
from convo.core.security import tokens
from convo.exceptions import AuthenticationError
from convo.services.auth_service import AuthService, auth_service
from convo.services.resource_service import profile_service


def expired_access(profile_id):
    now = int(time.time())
    return jwt.encode(
        {
            "sub": profile_id,
            "aud": settings.server_domain,
            "iss": settings.server_domain,
            "iat": now - 120,
            "exp": now - 60,
        },
        settings.jwt_access_secret_key,
        algorithm=settings.jwt_algorithm,
    )


class TestReadTokens:
    def test_scheme_and_cookie(self):
        assert AuthService.read_tokens("JWT abc", "def") == ("abc", "def")

    @pytest.mark.parametrize(
        "authorization, refresh",
        [
            (None, "def"),
            ("Bearer abc", "def"),
            ("JWT", "def"),
            ("JWT abc extra", "def"),
            ("JWT abc", None),
            ("JWT abc", ""),
        ],
    )
    def test_rejected(self, authorization, refresh):
        with pytest.raises(AuthenticationError):
            AuthService.read_tokens(authorization, refresh)


class TestLogin:
    @pytest.mark.asyncio
    async def test_success(self, profile_factory):
        ann = await profile_factory(email="ann@example.com", password="secret1")
        result = await auth_service.login("ann@example.com", "secret1")

        assert result["profile"]["id"] == ann["id"]
        assert result["expires_in"] == tokens.expiration["access"]
        assert tokens.verify_access_token(result["access"])["sub"] == ann["id"]
        assert tokens.verify_refresh_token(result["refresh"])["sub"] == ann["id"]

    @pytest.mark.asyncio
    async def test_email_is_trimmed(self, profile_factory):
        await profile_factory(email="ann@example.com", password="secret1")
        result = await auth_service.login("  ann@example.com ", "secret1")
        assert result["profile"]["email"] == "ann@example.com"

    @pytest.mark.asyncio
    async def test_wrong_password_and_unknown_email_look_alike(self, profile_factory):
        await profile_factory(email="ann@example.com", password="secret1")

        with pytest.raises(AuthenticationError) as wrong_password:
            await auth_service.login("ann@example.com", "secret2")
        with pytest.raises(AuthenticationError) as unknown_email:
            await auth_service.login("bob@example.com", "secret1")

        assert wrong_password.value.message == unknown_email.value.message


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_valid_access_token(self, profile_factory):
        ann = await profile_factory()
        profile, new_access = await auth_service.authenticate(
            f"JWT {tokens.access_token(ann['id'])}", tokens.refresh_token(ann["id"])
        )
        assert profile["id"] == ann["id"]
        assert new_access is None

    @pytest.mark.asyncio
    async def test_expired_access_token_is_renewed(self, profile_factory):
        ann = await profile_factory()
        profile, new_access = await auth_service.authenticate(
            f"JWT {expired_access(ann['id'])}", tokens.refresh_token(ann["id"])
        )
        assert profile["id"] == ann["id"]
        assert tokens.verify_access_token(new_access)["sub"] == ann["id"]

    @pytest.mark.asyncio
    async def test_both_tokens_invalid(self, profile_factory):
        ann = await profile_factory()
        with pytest.raises(AuthenticationError):
            await auth_service.authenticate(f"JWT {expired_access(ann['id'])}", "garbage")

    @pytest.mark.asyncio
    async def test_tokens_of_deleted_profile(self, profile_factory):
        ann = await profile_factory()
        await profile_service.delete(ann["id"])
        with pytest.raises(AuthenticationError):
            await auth_service.authenticate(
                f"JWT {tokens.access_token(ann['id'])}", tokens.refresh_token(ann["id"])
            )

    @pytest.mark.asyncio
    async def test_refresh_requires_token(self, db):
        with pytest.raises(AuthenticationError):
            await auth_service.refresh(None)
