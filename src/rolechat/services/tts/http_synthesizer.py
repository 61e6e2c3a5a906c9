"""Synthesizer that asks a running rolechat backend to generate audio files."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from .synthesis_cache import SynthesisError, SynthesisTimeout, VoiceConfig

logger = logging.getLogger(__name__)


class HttpSynthesizer:
    """
    ``Synthesizer`` backed by ``POST /api/tts``.

    Returns the locator ``/api/tts/audio/<fileName>`` for the generated file.
    Uses a singleton httpx.AsyncClient for connection pooling across segments.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 60.0,
        audio_format: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.audio_format = audio_format
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __call__(self, text: str, voice: VoiceConfig) -> str:
        payload: dict[str, Any] = {
            "message": text,
            "voice": voice.voice,
            "speed": voice.speed,
            "pitch": voice.pitch,
            "style": voice.style,
        }
        if self.audio_format:
            payload["format"] = self.audio_format

        try:
            response = await self._get_client().post(
                f"{self.base_url}/api/tts", json=payload
            )
        except httpx.TimeoutException as exc:
            raise SynthesisTimeout(str(exc) or "TTS timeout") from exc
        except httpx.HTTPError as exc:
            raise SynthesisError(502, str(exc)) from exc

        if response.status_code >= 400:
            raise SynthesisError(response.status_code, _error_detail(response))

        try:
            file_name = response.json()["fileName"]
        except (ValueError, KeyError, TypeError) as exc:
            raise SynthesisError(502, "TTS response missing fileName") from exc

        logger.debug("Synthesized %d chars -> %s", len(text), file_name)
        return f"/api/tts/audio/{file_name}"


def _error_detail(response: httpx.Response) -> Any:
    try:
        payload = response.json()
    except json.JSONDecodeError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(payload, dict):
        return payload.get("error") or payload.get("detail") or payload
    return payload
