from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
from pydantic import AnyHttpUrl, SecretStr

from rolechat.config import Settings
from rolechat.services.audio_store import AudioFileStore
from rolechat.services.speech import SpeechService, SpeechSynthesisError


def make_service(tmp_path: Path, handler, **overrides) -> SpeechService:
    settings = Settings(
        openai_api_key=SecretStr("sk-test"),
        tts_instructions="Read warmly.",
        **overrides,
    )
    store = AudioFileStore(tmp_path, ttl_seconds=60, max_files=10)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SpeechService(settings, store, http_client=client)


@pytest.mark.anyio
async def test_openai_provider_writes_audio_file(tmp_path: Path) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, content=b"ID3audio")

    service = make_service(tmp_path, handler)

    audio = await service.synthesize_to_file(
        "Hello there.", voice="nova", speed=1.25, pitch="15", style="chat"
    )

    assert audio.path.read_bytes() == b"ID3audio"
    assert audio.file_name.endswith(".mp3")
    assert audio.content_type == "audio/mpeg"

    request = requests[0]
    assert str(request.url) == "https://api.openai.com/v1/audio/speech"
    assert request.headers["Authorization"] == "Bearer sk-test"
    body = json.loads(request.content)
    assert body["model"] == "gpt-4o-mini-tts"
    assert body["voice"] == "nova"
    assert body["speed"] == 1.25
    assert body["response_format"] == "mp3"
    assert body["instructions"] == "Read warmly. Style: chat. Pitch: 15."


@pytest.mark.anyio
async def test_openai_defaults_apply_when_fields_missing(tmp_path: Path) -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, content=b"RIFF")

    service = make_service(tmp_path, handler)
    audio = await service.synthesize_to_file("Hi", fmt="wav")

    assert bodies[0]["voice"] == "shimmer"
    assert bodies[0]["speed"] == 1.1
    assert bodies[0]["response_format"] == "wav"
    assert audio.content_type == "audio/wav"


@pytest.mark.anyio
async def test_worker_provider_forwards_fields_verbatim(tmp_path: Path) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, content=b"audio")

    service = make_service(
        tmp_path,
        handler,
        tts_provider="worker",
        tts_worker_url=AnyHttpUrl("https://tts.example.com/speak"),
        tts_worker_token=SecretStr("worker-secret"),
    )

    await service.synthesize_to_file(
        "こんにちは", voice="ja-JP-MayuNeural", speed=1.0, pitch="15", style="chat"
    )

    request = requests[0]
    assert str(request.url) == "https://tts.example.com/speak"
    assert request.headers["Authorization"] == "Bearer worker-secret"
    assert json.loads(request.content) == {
        "text": "こんにちは",
        "voice": "ja-JP-MayuNeural",
        "speed": 1.0,
        "pitch": "15",
        "style": "chat",
        "format": "mp3",
    }


@pytest.mark.anyio
async def test_empty_text_is_rejected(tmp_path: Path) -> None:
    service = make_service(tmp_path, lambda request: httpx.Response(200, content=b"x"))

    with pytest.raises(ValueError):
        await service.synthesize_to_file("   ")


@pytest.mark.anyio
async def test_provider_error_and_timeout(tmp_path: Path) -> None:
    def failing(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="rate limited")

    with pytest.raises(SpeechSynthesisError) as excinfo:
        await make_service(tmp_path, failing).synthesize_to_file("Hi")
    assert excinfo.value.status_code == 429
    assert excinfo.value.detail == "rate limited"

    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(SpeechSynthesisError) as excinfo:
        await make_service(tmp_path, slow).synthesize_to_file("Hi")
    assert excinfo.value.status_code == 504
    assert excinfo.value.detail == "TTS timeout"
    assert list(tmp_path.iterdir()) == []
