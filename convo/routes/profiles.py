"""
Convo Backend — Profile Routes
===============================

What:  Registration and user-profile CRUD.
Who:   POST /api/profiles is public (registration). Everything else needs an
       authenticated profile, and writes are allowed on one's own profile only.

Search (GET /api/profiles):
    ?search=ann                 username/first/last name contains "ann"
    ?search_precise=ann         username is exactly "ann"
    ?categories=rec_a,rec_b     holds any of these categories
    ?conversations=rec_c        takes part in this conversation
    ?page=2&size=10             pagination
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request, status

from convo.config import settings
from convo.routes.resources import ERRORS
from convo.schemas import ErrorResponse, ResultGroup
from convo.services.auth_service import ensure_owner, get_current_profile
from convo.services.resource_service import profile_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix=f"{settings.api_prefix}/profiles",
    tags=["Profiles"],
    responses={**ERRORS, 403: {"description": "Not your profile", "model": ErrorResponse}},
)


@router.get("", response_model=ResultGroup, summary="Search user profiles")
async def list_profiles(
    request: Request,
    _: Dict[str, Any] = Depends(get_current_profile),
) -> Dict[str, Any]:
    return await profile_service.query(str(request.url))


@router.post("", status_code=status.HTTP_201_CREATED, summary="Register a new user")
async def register(data: Any = Body(default=None)) -> Dict[str, Any]:
    profile = await profile_service.create(data)
    logger.info("Registered profile %s", profile["id"])
    return profile


@router.get("/{profile_id}", summary="Get a user profile")
async def get_profile(
    profile_id: str,
    _: Dict[str, Any] = Depends(get_current_profile),
) -> Dict[str, Any]:
    return await profile_service.get(profile_id)


@router.put("/{profile_id}", summary="Update your profile")
@router.patch("/{profile_id}", summary="Partially update your profile")
async def update_profile(
    profile_id: str,
    data: Any = Body(default=None),
    profile: Dict[str, Any] = Depends(get_current_profile),
) -> Dict[str, Any]:
    ensure_owner(profile, profile_id)
    return await profile_service.update(profile_id, data)


@router.delete("/{profile_id}", summary="Delete your profile and account")
async def delete_profile(
    profile_id: str,
    profile: Dict[str, Any] = Depends(get_current_profile),
) -> Dict[str, Any]:
    ensure_owner(profile, profile_id)
    return await profile_service.delete(profile_id)
