"""
Convo Backend — Authentication Routes
======================================

    POST /api/auth/login     {email, password} → tokens + profile,
                             refresh token also set as http-only cookie
    POST /api/auth/refresh   refresh cookie → new access token
    POST /api/auth/logout    clears the refresh cookie

Tokens are stateless, so logout cannot revoke an already issued token; it
only removes the cookie from the browser.
"""

from typing import Any, Dict

from fastapi import APIRouter, Request, Response

from convo.config import settings
from convo.schemas import (
    AccessTokenResponse,
    ErrorResponse,
    LoginRequest,
    MessageResponse,
    TokenResponse,
)
from convo.services.auth_service import (
    auth_service,
    clear_refresh_cookie,
    set_refresh_cookie,
)

router = APIRouter(
    prefix=f"{settings.api_prefix}/auth",
    tags=["Auth"],
    responses={401: {"description": "Authentication failed", "model": ErrorResponse}},
)


@router.post("/login", response_model=TokenResponse, summary="Log in with email and password")
async def login(credentials: LoginRequest, response: Response) -> Dict[str, Any]:
    result = await auth_service.login(credentials.email, credentials.password)
    set_refresh_cookie(response, result["refresh"])
    return result


@router.post(
    "/refresh",
    response_model=AccessTokenResponse,
    summary="Exchange the refresh cookie for a new access token",
)
async def refresh(request: Request) -> Dict[str, Any]:
    _, access = await auth_service.refresh(request.cookies.get(settings.refresh_cookie_name))
    return {"access": access, "expires_in": settings.access_token_expire_seconds}


@router.post("/logout", response_model=MessageResponse, summary="Clear the refresh cookie")
async def logout(response: Response) -> Dict[str, Any]:
    clear_refresh_cookie(response)
    return {"message": "Logged out."}
