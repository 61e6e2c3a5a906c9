"""Schemas for roles (agent personas) and their chat history."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RoleVoiceFields(_CamelModel):
    voice: Optional[str] = Field(default=None, description="TTS voice name")
    speed: Optional[float] = Field(default=None, gt=0, description="Speech rate")
    pitch: Optional[str] = Field(default=None, description="Pitch, forwarded verbatim")
    style: Optional[str] = Field(default=None, description="Speaking style")


class RoleCreatePayload(RoleVoiceFields):
    name: str = Field(..., min_length=1)
    persona: str = ""
    human: str = ""


class RoleUpdatePayload(RoleVoiceFields):
    name: Optional[str] = Field(default=None, min_length=1)
    persona: Optional[str] = None
    human: Optional[str] = None


class RoleRead(_CamelModel):
    id: str
    name: str
    persona: str = ""
    human: str = ""
    agent_id: Optional[str] = None
    voice: Optional[str] = None
    speed: Optional[float] = None
    pitch: Optional[str] = None
    style: Optional[str] = None
    created_at: int

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "RoleRead":
        return cls.model_validate(
            {**record, "persona": record.get("persona") or "", "human": record.get("human") or ""}
        )


class SyncResult(_CamelModel):
    success: bool = True
    count: int
    pruned: bool
    deleted_count: int = 0


class HistoryMessage(BaseModel):
    id: str
    role: Literal["user", "assistant"]
    content: str
    timestamp: int


class SendMessagePayload(BaseModel):
    message: str = Field(..., min_length=1)


class DeleteHistoryResult(BaseModel):
    success: bool = True
    deleted: int


__all__ = [
    "DeleteHistoryResult",
    "HistoryMessage",
    "RoleCreatePayload",
    "RoleRead",
    "RoleUpdatePayload",
    "SendMessagePayload",
    "SyncResult",
]
