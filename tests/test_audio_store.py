from __future__ import annotations

import os
from pathlib import Path

import pytest

from rolechat.services.audio_store import AudioFileStore, format_to_content_type


def _age(path: Path, mtime: float) -> None:
    os.utime(path, (mtime, mtime))


def test_write_uses_random_name_with_extension(tmp_path: Path) -> None:
    store = AudioFileStore(tmp_path / "audio", ttl_seconds=60, max_files=10)

    name, path = store.write(b"RIFF", "wav")

    assert name.endswith(".wav")
    assert len(name) == 32 + len(".wav")
    assert path.read_bytes() == b"RIFF"
    assert store.exists(name)


@pytest.mark.parametrize("name", ["../secret.mp3", "a/b.mp3", "", ".hidden", ".."])
def test_path_for_rejects_traversal(tmp_path: Path, name: str) -> None:
    store = AudioFileStore(tmp_path, ttl_seconds=60, max_files=10)

    with pytest.raises(ValueError):
        store.path_for(name)
    assert store.exists(name) is False
    assert store.delete(name) is False


def test_delete_reports_missing(tmp_path: Path) -> None:
    store = AudioFileStore(tmp_path, ttl_seconds=60, max_files=10)
    name, _ = store.write(b"x", "mp3")

    assert store.delete(name) is True
    assert store.delete(name) is False


def test_cleanup_removes_expired_then_oldest(tmp_path: Path) -> None:
    store = AudioFileStore(tmp_path, ttl_seconds=100, max_files=2)
    now = 10_000.0
    names = []
    for offset in (500, 50, 40, 30):
        name, path = store.write(b"x", "mp3")
        _age(path, now - offset)
        names.append(name)

    removed = store.cleanup(now=now)

    assert removed == 2
    remaining = sorted(p.name for p in tmp_path.iterdir())
    assert remaining == sorted(names[2:])


def test_cleanup_with_zero_ttl_only_caps_count(tmp_path: Path) -> None:
    store = AudioFileStore(tmp_path, ttl_seconds=0, max_files=5)
    _, path = store.write(b"x", "mp3")
    _age(path, 1.0)

    assert store.cleanup(now=1_000_000.0) == 0


def test_cleanup_missing_directory(tmp_path: Path) -> None:
    store = AudioFileStore(tmp_path / "nope", ttl_seconds=10, max_files=1)

    assert store.cleanup() == 0


def test_content_types() -> None:
    assert format_to_content_type("mp3") == "audio/mpeg"
    assert format_to_content_type("wav") == "audio/wav"
    assert format_to_content_type("xyz") == "application/octet-stream"
