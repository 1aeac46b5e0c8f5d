"""
Convo Backend — Generic Collection Routes
==========================================

What:  Builds the standard collection/item routes for a ResourceService:

           GET    /{name}          one page (query-string search)
           POST   /{name}          create                       → 201
           GET    /{name}/{id}     read
           PUT    /{name}/{id}     partial update
           PATCH  /{name}/{id}     partial update
           DELETE /{name}/{id}     delete, returns the last state

       Every route requires an authenticated profile; writes pass it on as
       `caller_id` so the service can enforce ownership.
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request, status

from convo.config import settings
from convo.schemas import ErrorResponse, ResultGroup
from convo.services.auth_service import get_current_profile
from convo.services.resource_service import (
    ResourceService,
    category_service,
    message_service,
)

ERRORS = {
    400: {"description": "Invalid input", "model": ErrorResponse},
    401: {"description": "Not authenticated", "model": ErrorResponse},
    403: {"description": "Not allowed for this profile", "model": ErrorResponse},
    404: {"description": "Not found", "model": ErrorResponse},
    500: {"description": "Server error", "model": ErrorResponse},
}


def resource_router(name: str, service: ResourceService, tag: str) -> APIRouter:
    router = APIRouter(
        prefix=f"{settings.api_prefix}/{name}",
        tags=[tag],
        responses=ERRORS,
        dependencies=[Depends(get_current_profile)],
    )

    @router.get("", response_model=ResultGroup, summary=f"List {name}")
    async def list_objects(request: Request) -> Dict[str, Any]:
        return await service.query(str(request.url))

    @router.post("", status_code=status.HTTP_201_CREATED, summary=f"Create one of {name}")
    async def create_object(
        data: Any = Body(default=None),
        profile: Dict[str, Any] = Depends(get_current_profile),
    ) -> Dict[str, Any]:
        return await service.create(data, caller_id=profile["id"])

    @router.get("/{object_id}", summary=f"Get one of {name}")
    async def get_object(object_id: str) -> Dict[str, Any]:
        return await service.get(object_id)

    @router.put("/{object_id}", summary=f"Update one of {name}")
    @router.patch("/{object_id}", summary=f"Partially update one of {name}")
    async def update_object(
        object_id: str,
        data: Any = Body(default=None),
        profile: Dict[str, Any] = Depends(get_current_profile),
    ) -> Dict[str, Any]:
        return await service.update(object_id, data, caller_id=profile["id"])

    @router.delete("/{object_id}", summary=f"Delete one of {name}")
    async def delete_object(
        object_id: str,
        profile: Dict[str, Any] = Depends(get_current_profile),
    ) -> Dict[str, Any]:
        return await service.delete(object_id, caller_id=profile["id"])

    return router


categories_router = resource_router("categories", category_service, "Categories")
messages_router = resource_router("messages", message_service, "Messages")
