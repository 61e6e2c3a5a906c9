from __future__ import annotations

from pathlib import Path

import httpx
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import SecretStr

from rolechat.config import Settings
from rolechat.routers.tts import get_speech_service, router
from rolechat.services.audio_store import AudioFileStore
from rolechat.services.speech import SpeechService


def make_client(tmp_path: Path, handler) -> tuple[TestClient, AudioFileStore]:
    settings = Settings(openai_api_key=SecretStr("sk-test"))
    store = AudioFileStore(tmp_path, ttl_seconds=0, max_files=10)
    service = SpeechService(
        settings,
        store,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    app = FastAPI()
    app.dependency_overrides[get_speech_service] = lambda: service
    app.include_router(router)
    return TestClient(app), store


def test_synthesize_returns_file_name_then_serves_audio(tmp_path: Path) -> None:
    client, store = make_client(
        tmp_path, lambda request: httpx.Response(200, content=b"RIFFdata")
    )

    response = client.post(
        "/api/tts",
        json={"message": "Hello.", "voice": "nova", "speed": "1.2", "format": "wav"},
    )

    assert response.status_code == 200
    file_name = response.json()["fileName"]
    assert file_name.endswith(".wav")
    assert store.exists(file_name)

    audio = client.get(f"/api/tts/audio/{file_name}")
    assert audio.status_code == 200
    assert audio.content == b"RIFFdata"
    assert audio.headers["content-type"].startswith("audio/wav")


def test_synthesize_rejects_blank_text(tmp_path: Path) -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, content=b"x")

    client, _ = make_client(tmp_path, handler)

    response = client.post("/api/tts", json={"message": "   "})

    assert response.status_code == 400
    assert response.json() == {"error": "text is empty"}
    assert calls == []


def test_provider_failure_becomes_500_with_detail(tmp_path: Path) -> None:
    client, store = make_client(
        tmp_path, lambda request: httpx.Response(429, text="rate limited")
    )

    response = client.post("/api/tts", json={"message": "Hello."})

    assert response.status_code == 500
    assert response.json() == {"error": "rate limited"}
    assert list(tmp_path.iterdir()) == []


def test_missing_audio_is_404(tmp_path: Path) -> None:
    client, _ = make_client(tmp_path, lambda request: httpx.Response(200))

    assert client.get("/api/tts/audio/nothing.mp3").status_code == 404
    assert client.get("/api/tts/audio/.hidden").status_code == 404


def test_delete_audio(tmp_path: Path) -> None:
    client, store = make_client(tmp_path, lambda request: httpx.Response(200))
    file_name, path = store.write(b"abc", "mp3")

    response = client.delete(f"/api/tts/audio/{file_name}")

    assert response.status_code == 200
    assert response.json() == {"message": "Deleted"}
    assert not path.exists()
    assert client.delete(f"/api/tts/audio/{file_name}").status_code == 404
