"""
Synthesis Cache for Streaming TTS Pipeline.

Maps (normalized text, voice configuration) to the locator of an already
synthesized audio file, and collapses concurrent identical requests into a
single call to the synthesis backend.

Architecture:
    segment → SynthesisCache.resolve() → Synthesizer (network) → locator

Lookup order:
1. A live, unexpired entry is returned immediately
2. An in-flight request for the same key is awaited and shared
3. Otherwise a new request is issued and its locator stored with a TTL

Entries are evicted when they expire, and in insertion order (FIFO, not LRU)
once ``max_entries`` is reached.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60
DEFAULT_MAX_ENTRIES = 200

_WHITESPACE_RUN = re.compile(r"\s+")


class SynthesisError(Exception):
    """A synthesis request failed; the segment cannot be spoken."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail


class SynthesisTimeout(SynthesisError):
    """The synthesis backend did not answer in time.

    Callers treat this like a cancellation rather than a failure.
    """

    def __init__(self, detail: Any = "TTS timeout"):
        super().__init__(504, detail)


@dataclass(frozen=True)
class VoiceConfig:
    """Voice settings forwarded verbatim to the synthesis backend."""

    voice: Optional[str] = None
    speed: Optional[float] = None
    pitch: Optional[str] = None
    style: Optional[str] = None

    def merged(self, override: "VoiceConfig | None") -> "VoiceConfig":
        """Return a copy where fields set on ``override`` win."""
        if override is None:
            return self
        changes = {
            name: value
            for name, value in (
                ("voice", override.voice),
                ("speed", override.speed),
                ("pitch", override.pitch),
                ("style", override.style),
            )
            if value is not None
        }
        return replace(self, **changes)


class Synthesizer(Protocol):
    def __call__(self, text: str, voice: VoiceConfig) -> Awaitable[str]: ...


@dataclass
class CacheEntry:
    locator: str
    expires_at: float


def normalize_text(text: str) -> str:
    return _WHITESPACE_RUN.sub(" ", text).strip()


def _field(value: Any) -> str:
    return "" if value is None else str(value)


def build_cache_key(text: str, voice: VoiceConfig) -> str:
    """Composite key of normalized text and every voice field."""
    return (
        f"{normalize_text(text)}"
        f"|v={_field(voice.voice)}"
        f"|s={_field(voice.speed)}"
        f"|p={_field(voice.pitch)}"
        f"|st={_field(voice.style)}"
    )


class SynthesisCache:
    """
    TTL + capacity bounded cache of synthesized audio locators.

    One instance is meant to live for a whole chat session and be shared by
    every segment and every turn in it.

    Attributes:
        ttl_seconds: Lifetime of a stored locator
        max_entries: Capacity; the oldest-inserted entries are evicted first
    """

    def __init__(
        self,
        synthesizer: Synthesizer,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._synthesizer = synthesizer
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._in_flight: dict[str, asyncio.Task[str]] = {}
        self._waiters: dict[asyncio.Task[str], int] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    async def resolve(self, text: str, voice: VoiceConfig | None = None) -> str:
        """
        Return the audio locator for ``text`` spoken with ``voice``.

        Each caller waits on the shared request through ``asyncio.shield``.
        Cancelling a caller raises ``asyncio.CancelledError`` in that caller
        only; the request itself is aborted and forgotten once its last
        waiter is gone, so a later identical call starts a fresh one.
        Backend failures raise ``SynthesisError``.
        """
        voice = voice or VoiceConfig()
        key = build_cache_key(text, voice)

        entry = self._entries.get(key)
        if entry is not None:
            if entry.expires_at > self._clock():
                self.hits += 1
                return entry.locator
            del self._entries[key]

        task = self._in_flight.get(key)
        if task is None:
            self.misses += 1
            task = asyncio.create_task(self._synthesize(key, text, voice))
            self._in_flight[key] = task
            task.add_done_callback(lambda done, key=key: self._settle(key, done))
        else:
            logger.debug("Joining in-flight synthesis for %r", key[:60])

        self._waiters[task] = self._waiters.get(task, 0) + 1
        cancelled = False
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            cancelled = True
            raise
        finally:
            remaining = self._leave(task)
            if cancelled and remaining == 0 and not task.done():
                self._abandon(key, task)

    def _leave(self, task: asyncio.Task[str]) -> int:
        remaining = self._waiters.get(task, 1) - 1
        if remaining > 0:
            self._waiters[task] = remaining
        else:
            self._waiters.pop(task, None)
        return remaining

    def _abandon(self, key: str, task: asyncio.Task[str]) -> None:
        logger.debug("Aborting unwanted synthesis for %r", key[:60])
        task.cancel()
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _synthesize(self, key: str, text: str, voice: VoiceConfig) -> str:
        locator = await self._synthesizer(text, voice)
        self._store(key, locator)
        return locator

    def _settle(self, key: str, task: asyncio.Task[str]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    def _store(self, key: str, locator: str) -> None:
        self.prune()
        self._entries.pop(key, None)
        while self._entries and len(self._entries) >= self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
        self._entries[key] = CacheEntry(
            locator=locator, expires_at=self._clock() + self.ttl_seconds
        )

    def prune(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        expired = [k for k, v in self._entries.items() if v.expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    async def aclose(self) -> None:
        """Cancel in-flight requests and drop all entries."""
        tasks = list(self._in_flight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._in_flight.clear()
        self._waiters.clear()
        self._entries.clear()
