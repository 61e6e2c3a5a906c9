"""Server-side speech synthesis: text in, an audio file in the store out."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx
from fastapi import status

from ..config import Settings
from .audio_store import AudioFileStore, format_to_content_type

logger = logging.getLogger(__name__)


class SpeechSynthesisError(Exception):
    """Raised when the configured TTS provider cannot produce audio."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


@dataclass(frozen=True)
class AudioFile:
    file_name: str
    path: Path
    content_type: str


class SpeechService:
    """
    Turn text into an audio file using OpenAI or a self-hosted worker.

    Voice fields arrive as the client sent them. The OpenAI provider has no
    pitch or style parameter, so both are folded into the instructions text;
    the worker receives them verbatim.
    """

    # Singleton HTTP client for connection pooling
    _http_client: Optional[httpx.AsyncClient] = None

    def __init__(
        self,
        settings: Settings,
        store: AudioFileStore,
        *,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._settings = settings
        self._store = store
        self._injected_client = http_client

        if settings.tts_provider == "openai" and settings.openai_api_key is None:
            logger.warning("OPENAI_API_KEY is not set; speech synthesis will fail")
        if settings.tts_provider == "worker" and settings.tts_worker_url is None:
            logger.warning("TTS_WORKER_URL is not set; speech synthesis will fail")

    @property
    def store(self) -> AudioFileStore:
        return self._store

    def _client(self) -> httpx.AsyncClient:
        if self._injected_client is not None:
            return self._injected_client
        cls = self.__class__
        if cls._http_client is None:
            cls._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._settings.tts_timeout, connect=10.0)
            )
            logger.info("Created singleton httpx.AsyncClient for TTS")
        return cls._http_client

    @classmethod
    async def close_http_client(cls) -> None:
        """Close the singleton HTTP client. Call on app shutdown."""
        if cls._http_client is not None:
            await cls._http_client.aclose()
            cls._http_client = None
            logger.info("Closed TTS HTTP client")

    async def synthesize_to_file(
        self,
        text: str,
        *,
        voice: Optional[str] = None,
        speed: Optional[float] = None,
        pitch: Optional[str] = None,
        style: Optional[str] = None,
        fmt: Optional[str] = None,
    ) -> AudioFile:
        if not text or not text.strip():
            raise ValueError("text is empty")

        audio_format = fmt or self._settings.tts_format
        if self._settings.tts_provider == "worker":
            audio = await self._synthesize_worker(
                text, voice=voice, speed=speed, pitch=pitch, style=style, fmt=audio_format
            )
        else:
            audio = await self._synthesize_openai(
                text, voice=voice, speed=speed, pitch=pitch, style=style, fmt=audio_format
            )

        if not audio:
            raise SpeechSynthesisError(
                status.HTTP_502_BAD_GATEWAY, "TTS provider returned no audio"
            )

        file_name, path = self._store.write(audio, audio_format)
        self._store.cleanup()
        logger.debug("Wrote %d bytes of speech to %s", len(audio), file_name)
        return AudioFile(
            file_name=file_name,
            path=path,
            content_type=format_to_content_type(audio_format),
        )

    def _instructions(self, pitch: Optional[str], style: Optional[str]) -> Optional[str]:
        parts = []
        if self._settings.tts_instructions:
            parts.append(self._settings.tts_instructions)
        if style:
            parts.append(f"Style: {style}.")
        if pitch:
            parts.append(f"Pitch: {pitch}.")
        return " ".join(parts) or None

    async def _synthesize_openai(
        self,
        text: str,
        *,
        voice: Optional[str],
        speed: Optional[float],
        pitch: Optional[str],
        style: Optional[str],
        fmt: str,
    ) -> bytes:
        if self._settings.openai_api_key is None:
            raise SpeechSynthesisError(
                status.HTTP_500_INTERNAL_SERVER_ERROR, "OpenAI API key not configured"
            )

        headers = {
            "Authorization": f"Bearer {self._settings.openai_api_key.get_secret_value()}",
            "Content-Type": "application/json",
        }
        payload: dict[str, object] = {
            "model": self._settings.tts_model,
            "input": text,
            "voice": voice or self._settings.tts_default_voice,
            "response_format": fmt,
            "speed": speed if speed is not None else self._settings.tts_default_speed,
        }
        instructions = self._instructions(pitch, style)
        if instructions:
            payload["instructions"] = instructions

        url = f"{str(self._settings.openai_base_url).rstrip('/')}/audio/speech"
        return await self._post_for_audio(url, headers=headers, payload=payload)

    async def _synthesize_worker(
        self,
        text: str,
        *,
        voice: Optional[str],
        speed: Optional[float],
        pitch: Optional[str],
        style: Optional[str],
        fmt: str,
    ) -> bytes:
        if self._settings.tts_worker_url is None:
            raise SpeechSynthesisError(
                status.HTTP_500_INTERNAL_SERVER_ERROR, "TTS worker URL not configured"
            )

        headers = {"Content-Type": "application/json"}
        if self._settings.tts_worker_token is not None:
            token = self._settings.tts_worker_token.get_secret_value()
            headers["Authorization"] = f"Bearer {token}"
        payload = {
            "text": text,
            "voice": voice,
            "speed": speed,
            "pitch": pitch,
            "style": style,
            "format": fmt,
        }
        return await self._post_for_audio(
            str(self._settings.tts_worker_url), headers=headers, payload=payload
        )

    async def _post_for_audio(
        self, url: str, *, headers: dict[str, str], payload: dict[str, object]
    ) -> bytes:
        try:
            response = await self._client().post(url, headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            raise SpeechSynthesisError(
                status.HTTP_504_GATEWAY_TIMEOUT, "TTS timeout"
            ) from exc
        except httpx.HTTPError as exc:
            raise SpeechSynthesisError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        if response.status_code >= 400:
            detail = response.text[:500] or f"TTS provider returned {response.status_code}"
            logger.error("TTS provider error %s: %s", response.status_code, detail)
            raise SpeechSynthesisError(response.status_code, detail)
        return response.content


__all__ = ["AudioFile", "SpeechService", "SpeechSynthesisError"]
