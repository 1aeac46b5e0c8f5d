"""
Convo Backend — Conversation Routes
====================================

The standard collection routes (convo.routes.resources) plus the message
thread of one conversation:

    GET  /api/conversations/{id}/messages   one page of messages, oldest first
    POST /api/conversations/{id}/messages   send as the authenticated profile

Only participants may read the thread, post into it, or change and delete
the conversation.
"""

from typing import Any, Dict

from fastapi import Body, Depends, Request, status

from convo.routes.resources import resource_router
from convo.schemas import ResultGroup
from convo.services.auth_service import get_current_profile
from convo.services.resource_service import conversation_service

router = resource_router("conversations", conversation_service, "Conversations")


@router.get(
    "/{conversation_id}/messages",
    response_model=ResultGroup,
    summary="List the messages of a conversation",
)
async def list_conversation_messages(
    conversation_id: str,
    request: Request,
    profile: Dict[str, Any] = Depends(get_current_profile),
) -> Dict[str, Any]:
    return await conversation_service.list_messages(
        conversation_id, str(request.url), caller_id=profile["id"]
    )


@router.post(
    "/{conversation_id}/messages",
    status_code=status.HTTP_201_CREATED,
    summary="Send a message into a conversation",
)
async def send_conversation_message(
    conversation_id: str,
    data: Any = Body(default=None),
    profile: Dict[str, Any] = Depends(get_current_profile),
) -> Dict[str, Any]:
    return await conversation_service.send_message(conversation_id, data, profile["id"])
