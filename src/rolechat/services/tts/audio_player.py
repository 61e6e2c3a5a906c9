"""Play audio locators through an external command-line player."""

from __future__ import annotations

import asyncio
import logging
import shutil
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = ("ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet")


class PlaybackError(RuntimeError):
    pass


class SubprocessClip:
    """One locator played by one player process."""

    def __init__(self, command: Sequence[str], url: str):
        self.command = list(command)
        self.url = url
        self._process: Optional[asyncio.subprocess.Process] = None
        self._closed = False

    async def play(self) -> None:
        if self._closed:
            raise PlaybackError("clip already closed")
        self._process = await asyncio.create_subprocess_exec(
            *self.command,
            self.url,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        code = await self._process.wait()
        if code != 0 and not self._closed:
            raise PlaybackError(f"{self.command[0]} exited with {code}")

    def close(self) -> None:
        self._closed = True
        process = self._process
        if process is not None and process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass


class SubprocessAudioPlayer:
    """
    ``AudioPlayer`` that resolves locators against the backend URL and plays
    them with ffplay (or any command taking the URL as last argument).
    """

    def __init__(self, base_url: str, command: Sequence[str] = DEFAULT_COMMAND):
        self.base_url = base_url.rstrip("/")
        self.command = tuple(command)

    @property
    def available(self) -> bool:
        return shutil.which(self.command[0]) is not None

    def load(self, locator: str) -> SubprocessClip:
        url = locator if "://" in locator else f"{self.base_url}{locator}"
        return SubprocessClip(self.command, url)
