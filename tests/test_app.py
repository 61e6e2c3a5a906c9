from __future__ import annotations

from pathlib import Path

from fastapi.testclient import TestClient

from rolechat.app import create_app
from rolechat.config import Settings


def make_settings(tmp_path: Path) -> Settings:
    return Settings(
        chat_database_path=tmp_path / "rolechat.db",
        tts_audio_dir=tmp_path / "audio",
        tts_provider="worker",
    )


def test_health_reports_providers(tmp_path: Path) -> None:
    app = create_app(make_settings(tmp_path))

    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "tts_provider": "worker",
        "letta_model": "openai/gpt-4o-mini",
    }


def test_lifespan_prepares_storage_and_wires_routes(tmp_path: Path) -> None:
    app = create_app(make_settings(tmp_path))

    with TestClient(app) as client:
        assert (tmp_path / "audio").is_dir()
        assert (tmp_path / "rolechat.db").exists()
        assert client.get("/api/roles").json() == []
        assert client.get("/api/tts/audio/missing.mp3").status_code == 404
        assert client.post("/api/tts", json={"message": ""}).status_code == 400
