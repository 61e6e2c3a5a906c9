"""
Playback Sequencer for Streaming TTS Pipeline.

Segments are synthesized concurrently and finish in any order, but must be
heard in the order they were written. Each segment gets a sequence number;
ready clips wait in a pending map until the cursor reaches them.

Architecture:
    SynthesisCache.resolve() ─┬─▶ enqueue(seq=2) ─┐
                              ├─▶ enqueue(seq=1) ─┼─▶ pending map ─▶ AudioPlayer
                              └─▶ mark_failed(3) ─┘     (in order)

Cancellation uses a generation counter: ``stop()`` bumps it, and any result
tagged with an older generation is discarded when it arrives.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class AudioClip(Protocol):
    async def play(self) -> None:
        """Play to the end; raise if playback fails."""

    def close(self) -> None:
        """Stop playback (if any) and release the clip."""


class AudioPlayer(Protocol):
    def load(self, locator: str) -> AudioClip: ...


class PlaybackSequencer:
    """
    Plays clips strictly in sequence-number order.

    Attributes:
        player: Audio device used to load and play locators
        first_sequence: Value the allocator and the play cursor start from
    """

    def __init__(self, player: AudioPlayer, *, first_sequence: int = 1):
        self.player = player
        self.first_sequence = first_sequence
        self._generation = 0
        self._last_allocated = first_sequence - 1
        self._next_expected = first_sequence
        self._pending: dict[int, AudioClip] = {}
        self._failed: set[int] = set()
        self._current: Optional[AudioClip] = None
        self._play_task: Optional[asyncio.Task[None]] = None
        self._tasks: set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def next_expected(self) -> int:
        return self._next_expected

    @property
    def is_playing(self) -> bool:
        return self._current is not None

    @property
    def is_idle(self) -> bool:
        return self._current is None and self._next_expected > self._last_allocated

    def next_sequence(self) -> int:
        """Allocate the sequence number for a newly written segment."""
        self._last_allocated += 1
        self._idle.clear()
        return self._last_allocated

    def track(self, task: asyncio.Task) -> None:
        """Register an in-flight synthesis task so ``stop()`` can cancel it."""
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def enqueue(self, sequence: int, locator: str, generation: int) -> bool:
        """
        Queue the audio for ``sequence``.

        Returns False (and loads nothing) when ``generation`` is stale.
        """
        if generation != self._generation:
            logger.debug("Discarding stale audio for seq %d", sequence)
            return False
        if sequence < self._next_expected:
            return False

        try:
            clip = self.player.load(locator)
        except Exception as exc:
            logger.warning("Failed to load audio %s: %s", locator, exc)
            self.mark_failed(sequence, generation)
            return False

        self._pending[sequence] = clip
        self._try_play_next()
        return True

    def mark_failed(self, sequence: int, generation: int) -> None:
        """Record that ``sequence`` will never produce audio, so it is skipped."""
        if generation != self._generation or sequence < self._next_expected:
            return
        self._failed.add(sequence)
        self._try_play_next()

    def _try_play_next(self) -> None:
        if self._current is not None:
            return

        while self._next_expected in self._failed:
            self._failed.discard(self._next_expected)
            self._next_expected += 1

        clip = self._pending.pop(self._next_expected, None)
        if clip is None:
            self._update_idle()
            return

        self._current = clip
        self._play_task = asyncio.create_task(
            self._play(self._next_expected, clip, self._generation)
        )

    async def _play(self, sequence: int, clip: AudioClip, generation: int) -> None:
        try:
            await clip.play()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Playback error for seq %d: %s", sequence, exc)
        finally:
            clip.close()

        if generation != self._generation:
            return
        self._current = None
        self._play_task = None
        self._next_expected += 1
        self._try_play_next()

    def _update_idle(self) -> None:
        if self.is_idle:
            self._idle.set()
        else:
            self._idle.clear()

    async def wait_idle(self) -> None:
        """Wait until every allocated sequence has played or been skipped."""
        await self._idle.wait()

    def stop(self) -> None:
        """
        Abort everything: in-flight synthesis, queued and playing audio.

        The generation is bumped first so results that arrive later are
        discarded on arrival.
        """
        self._generation += 1

        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        if self._play_task is not None:
            self._play_task.cancel()
            self._play_task = None
        if self._current is not None:
            self._current.close()
            self._current = None

        for clip in self._pending.values():
            clip.close()
        self._pending.clear()
        self._failed.clear()

        self._last_allocated = self.first_sequence - 1
        self._next_expected = self.first_sequence
        self._idle.set()
