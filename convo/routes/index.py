"""Entry point of the API: where each collection lives."""

from typing import Dict

from fastapi import APIRouter

from convo.config import settings

COLLECTIONS = ("categories", "conversations", "messages", "profiles")

router = APIRouter(prefix=settings.api_prefix, tags=["Index"])


@router.get("", summary="List the API collections")
async def api_index() -> Dict[str, str]:
    return {name: f"{settings.api_prefix}/{name}" for name in COLLECTIONS}
