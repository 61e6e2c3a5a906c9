"""Schemas for the speech synthesis endpoints."""

from __future__ import annotations

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

AudioFormat = Literal["wav", "mp3", "opus", "aac", "flac"]


class TTSRequest(BaseModel):
    """Body of ``POST /api/tts``; voice fields are forwarded verbatim."""

    model_config = ConfigDict(extra="ignore")

    message: str = ""
    voice: Optional[str] = None
    speed: Optional[Union[float, str]] = None
    pitch: Optional[str] = None
    style: Optional[str] = None
    format: Optional[AudioFormat] = None

    @field_validator("speed", mode="after")
    @classmethod
    def _coerce_speed(cls, value: Optional[Union[float, str]]) -> Optional[float]:
        # Clients send either a number or a numeric string
        if value is None or value == "":
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @field_validator("pitch", "style", mode="before")
    @classmethod
    def _stringify(cls, value: object) -> Optional[str]:
        if value is None:
            return None
        return str(value)


class TTSResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(..., serialization_alias="fileName")


__all__ = ["AudioFormat", "TTSRequest", "TTSResponse"]
