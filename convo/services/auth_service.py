"""
Convo Backend — Authentication Service
=======================================

What:  Login, access-token refresh and per-request authentication.
How:   Stateless JWTs (convo.core.security). A request is authenticated by
       both tokens together:

           Authorization: JWT <access>      header
           refresh=<refresh>                http-only cookie

       1. access token valid and its profile exists → that profile
       2. otherwise refresh token valid and its profile exists
          → that profile + a freshly issued access token, which the
            dependency returns in the `jwt-access-changed` response header
       3. otherwise → AuthenticationError (401)

Who:   Auth routes (login/refresh) and every protected route through the
       `get_current_profile` dependency.
"""

import logging
from typing import Any, Dict, Optional, Tuple

import jwt
from fastapi import Request, Response

from convo.config import settings
from convo.core.security import TokenGenerator, tokens, verify_password
from convo.exceptions import AuthenticationError, NotFoundError, PermissionDeniedError
from convo.services.resource_service import ProfileService, profile_service
from convo.store import users_table

logger = logging.getLogger(__name__)

ACCESS_CHANGED_HEADER = "jwt-access-changed"
AUTH_SCHEME = "JWT"


def _failed(reason: str) -> AuthenticationError:
    return AuthenticationError(message=f"Authentication failed. {reason}")


class AuthService:
    def __init__(self, generator: TokenGenerator, profiles: ProfileService):
        self.tokens = generator
        self.profiles = profiles

    @staticmethod
    def read_tokens(authorization: Optional[str], refresh: Optional[str]) -> Tuple[str, str]:
        """Splits `JWT <access>` and pairs it with the refresh cookie."""
        parts = (authorization or "").split()
        if len(parts) != 2 or parts[0] != AUTH_SCHEME or not refresh:
            raise _failed("Invalid tokens.")
        return parts[1], refresh

    async def _profile(self, profile_id: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(profile_id, str):
            return None
        try:
            return self.profiles.to_response(await self.profiles.mapper.get(profile_id))
        except NotFoundError:
            return None

    async def _profile_from_access(self, access: str) -> Optional[Dict[str, Any]]:
        try:
            claims = self.tokens.verify_access_token(access)
        except jwt.PyJWTError as e:
            logger.debug("Access token rejected: %s", e)
            return None
        return await self._profile(claims.get("sub"))

    async def refresh(self, refresh_token: Optional[str]) -> Tuple[Dict[str, Any], str]:
        """
        Issues a new access token from a refresh token.

        Returns:
            (profile, access token)
        """
        if not refresh_token:
            raise _failed("Missing refresh token.")
        try:
            claims = self.tokens.verify_refresh_token(refresh_token)
        except jwt.PyJWTError as e:
            raise _failed(str(e))
        profile = await self._profile(claims.get("sub"))
        if profile is None:
            raise _failed("Invalid tokens or database could not respond.")
        return profile, self.tokens.access_token(profile["id"])

    async def authenticate(
        self, authorization: Optional[str], refresh: Optional[str]
    ) -> Tuple[Dict[str, Any], Optional[str]]:
        """
        Resolves the calling profile from the request's tokens.

        Returns:
            (profile, new access token or None when the old one is still valid)

        Raises:
            AuthenticationError: tokens missing, malformed, expired or orphaned.
        """
        access, refresh_token = self.read_tokens(authorization, refresh)
        profile = await self._profile_from_access(access)
        if profile is not None:
            return profile, None
        profile, new_access = await self.refresh(refresh_token)
        logger.info("Access token renewed for profile %s", profile["id"])
        return profile, new_access

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """
        Verifies credentials and issues a token pair.

        The same error is raised for an unknown email and a wrong password.
        """
        user = await users_table.find_first(email=email.strip())
        if user is None or not await verify_password(password, user.get("password")):
            logger.warning("Failed login attempt")
            raise _failed("Invalid email or password.")

        profile_obj = await self.profiles.for_user(user["id"])
        if profile_obj is None:
            logger.error("User %s has no profile", user["id"])
            raise _failed("Invalid email or password.")

        profile = self.profiles.to_response(profile_obj)
        logger.info("Profile %s logged in", profile["id"])
        return {
            "access": self.tokens.access_token(profile["id"]),
            "refresh": self.tokens.refresh_token(profile["id"]),
            "expires_in": self.tokens.expiration["access"],
            "profile": profile,
        }


auth_service = AuthService(tokens, profile_service)


# ── FastAPI dependencies ──────────────────────────────────────────────────


async def get_current_profile(request: Request, response: Response) -> Dict[str, Any]:
    """
    Dependency for protected routes.

    Sets `jwt-access-changed` on the response when the access token had to be
    renewed from the refresh cookie.
    """
    profile, new_access = await auth_service.authenticate(
        request.headers.get("Authorization"),
        request.cookies.get(settings.refresh_cookie_name),
    )
    if new_access:
        response.headers[ACCESS_CHANGED_HEADER] = new_access
    request.state.profile_id = profile["id"]
    return profile


def ensure_owner(profile: Dict[str, Any], profile_id: str) -> None:
    """Only the profile itself may change or delete its own data."""
    if profile.get("id") != profile_id:
        raise PermissionDeniedError(message="You can only modify your own profile.")


def set_refresh_cookie(response: Response, refresh_token: str) -> None:
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=refresh_token,
        max_age=settings.refresh_token_expire_seconds,
        httponly=True,
        secure=settings.refresh_cookie_secure,
        samesite="strict",
        path="/",
    )


def clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.refresh_cookie_name,
        httponly=True,
        secure=settings.refresh_cookie_secure,
        samesite="strict",
        path="/",
    )
