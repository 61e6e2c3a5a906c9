"""Chat streaming routes for a role."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sse_starlette.sse import EventSourceResponse

from ..schemas.roles import DeleteHistoryResult, SendMessagePayload
from ..services.chat_stream import ChatStreamService
from ..services.roles import RoleService
from .roles import get_chat_stream_service, get_role_service

router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.post("/{role_id}", response_model=None, status_code=200)
async def send_message(
    role_id: str,
    payload: SendMessagePayload,
    roles: RoleService = Depends(get_role_service),
    chat: ChatStreamService = Depends(get_chat_stream_service),
) -> EventSourceResponse:
    """Stream the role's reply through Server-Sent Events."""

    role = await roles.get_role(role_id)
    if role is None:
        raise HTTPException(status_code=404, detail="Role not found")
    if not role.get("agent_id"):
        raise HTTPException(status_code=404, detail="Role has no agent")

    return EventSourceResponse(chat.stream(role, payload.message))


@router.delete("/{role_id}", response_model=DeleteHistoryResult)
async def delete_history(
    role_id: str,
    roles: RoleService = Depends(get_role_service),
    chat: ChatStreamService = Depends(get_chat_stream_service),
) -> DeleteHistoryResult:
    if await roles.get_role(role_id) is None:
        raise HTTPException(status_code=404, detail="Role not found")
    deleted = await chat.delete_history(role_id)
    return DeleteHistoryResult(success=True, deleted=deleted)


__all__ = ["router"]
