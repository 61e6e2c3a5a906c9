"""API routes for roles and their chat history."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from ..letta import LettaError
from ..schemas.roles import (
    HistoryMessage,
    RoleCreatePayload,
    RoleRead,
    RoleUpdatePayload,
    SyncResult,
)
from ..services.chat_stream import ChatStreamService
from ..services.roles import RoleService

router = APIRouter(prefix="/api/roles", tags=["roles"])


def get_role_service(request: Request) -> RoleService:
    service = getattr(request.app.state, "role_service", None)
    if service is None:  # pragma: no cover
        raise RuntimeError("Role service is not configured")
    return service


def get_chat_stream_service(request: Request) -> ChatStreamService:
    service = getattr(request.app.state, "chat_stream_service", None)
    if service is None:  # pragma: no cover
        raise RuntimeError("Chat stream service is not configured")
    return service


def _upstream_error(exc: LettaError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)


@router.get("", response_model=List[RoleRead])
async def list_roles(
    service: RoleService = Depends(get_role_service),
) -> List[RoleRead]:
    records = await service.list_roles()
    return [RoleRead.from_record(record) for record in records]


@router.post("", response_model=RoleRead, status_code=status.HTTP_201_CREATED)
async def create_role(
    payload: RoleCreatePayload,
    service: RoleService = Depends(get_role_service),
) -> RoleRead:
    try:
        record = await service.create_role(**payload.model_dump())
    except LettaError as exc:
        raise _upstream_error(exc) from exc
    return RoleRead.from_record(record)


@router.post("/sync", response_model=SyncResult)
async def sync_roles(
    prune: bool = Query(default=True),
    service: RoleService = Depends(get_role_service),
) -> SyncResult:
    """Mirror Letta Cloud agents into the local role list."""

    try:
        result = await service.sync_from_cloud(prune_deleted=prune)
    except LettaError as exc:
        raise _upstream_error(exc) from exc
    return SyncResult.model_validate(result)


@router.put("/{role_id}", response_model=RoleRead)
async def update_role(
    role_id: str,
    payload: RoleUpdatePayload,
    service: RoleService = Depends(get_role_service),
) -> RoleRead:
    try:
        record = await service.update_role(role_id, **payload.model_dump())
    except LettaError as exc:
        raise _upstream_error(exc) from exc
    if record is None:
        raise HTTPException(status_code=404, detail="Role not found")
    return RoleRead.from_record(record)


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: str,
    service: RoleService = Depends(get_role_service),
) -> Response:
    deleted = await service.delete_role(role_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Role not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{role_id}/history", response_model=List[HistoryMessage])
async def read_history(
    role_id: str,
    service: ChatStreamService = Depends(get_chat_stream_service),
) -> List[HistoryMessage]:
    messages = await service.history(role_id)
    return [HistoryMessage.model_validate(message) for message in messages]


__all__ = ["router", "get_role_service", "get_chat_stream_service"]
