"""Temporary storage for generated speech files with age and count limits."""

from __future__ import annotations

import logging
import time
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)

_CONTENT_TYPES = {
    "wav": "audio/wav",
    "mp3": "audio/mpeg",
    "opus": "audio/opus",
    "aac": "audio/aac",
    "flac": "audio/flac",
}


def format_to_content_type(fmt: str) -> str:
    return _CONTENT_TYPES.get(fmt, "application/octet-stream")


class AudioFileStore:
    """Write generated audio under one directory and evict old files.

    Files older than ``ttl_seconds`` are deleted, then the oldest files beyond
    ``max_files``. A TTL of 0 disables age-based deletion.
    """

    def __init__(self, directory: Path, *, ttl_seconds: int, max_files: int):
        self.directory = directory
        self.ttl_seconds = ttl_seconds
        self.max_files = max_files

    def ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, file_name: str) -> Path:
        """Resolve ``file_name`` inside the store, rejecting path traversal."""

        if not file_name or Path(file_name).name != file_name or file_name.startswith("."):
            raise ValueError(f"Invalid audio file name: {file_name!r}")
        return self.directory / file_name

    def write(self, data: bytes, fmt: str) -> tuple[str, Path]:
        self.ensure_directory()
        file_name = f"{uuid.uuid4().hex}.{fmt}"
        path = self.directory / file_name
        path.write_bytes(data)
        return file_name, path

    def exists(self, file_name: str) -> bool:
        try:
            return self.path_for(file_name).is_file()
        except ValueError:
            return False

    def delete(self, file_name: str) -> bool:
        try:
            path = self.path_for(file_name)
        except ValueError:
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("Failed to delete audio file %s: %s", file_name, exc)
            return False
        return True

    def cleanup(self, *, now: float | None = None) -> int:
        """Delete expired files, then the oldest beyond capacity."""

        if not self.directory.exists():
            return 0

        reference = time.time() if now is None else now
        files: list[tuple[float, Path]] = []
        for path in self.directory.iterdir():
            if not path.is_file():
                continue
            try:
                files.append((path.stat().st_mtime, path))
            except OSError:
                continue
        files.sort(key=lambda item: item[0])

        removed = 0
        survivors: list[Path] = []
        for mtime, path in files:
            if self.ttl_seconds > 0 and reference - mtime >= self.ttl_seconds:
                if self._unlink(path):
                    removed += 1
                continue
            survivors.append(path)

        overflow = len(survivors) - self.max_files
        for path in survivors[: max(overflow, 0)]:
            if self._unlink(path):
                removed += 1

        if removed:
            logger.info("Cleaned up %d expired audio file(s)", removed)
        return removed

    @staticmethod
    def _unlink(path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:  # pragma: no cover - best effort cleanup
            logger.warning("Failed to delete %s: %s", path, exc)
            return False
        return True


__all__ = ["AudioFileStore", "format_to_content_type"]
