"""
Stream Controller for Streaming TTS Pipeline.

Glues the per-chunk text stages to synthesis and ordered playback for one
chat turn at a time.

Architecture:
    chunk → MarkupFilter → OverlapDeduper → buffer → TextSegmenter.decide()
        send → extract → sanitize → SynthesisCache.resolve() → PlaybackSequencer
        wait → debounce timer → extract → ...

``append_stream`` never blocks: buffer mutation and the segmentation decision
happen synchronously, and synthesis is dispatched as a background task so
several segments can be in flight at once.

Usage:
    controller = StreamController(cache, sequencer, VoiceConfig(voice="shimmer"))

    async for chunk in reply:
        controller.append_stream(chunk)
    await controller.flush_stream()

    controller.stop()  # barge-in / turn abandoned
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional

from .markup_filter import MarkupFilter
from .overlap import OverlapDeduper
from .playback import PlaybackSequencer
from .sanitizer import sanitize_for_speech
from .synthesis_cache import SynthesisCache, SynthesisTimeout, VoiceConfig
from .text_segmenter import SegmenterConfig, TextSegmenter

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.5


class StreamState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    FLUSHING = "flushing"


class StreamController:
    """
    Turns an incrementally arriving reply into ordered speech.

    Attributes:
        voice: Default voice settings for every dispatched segment
        debounce_seconds: Quiet period after which a waiting buffer is flushed
        filter_code: Whether code spans are dropped before segmentation
        state: Current turn state
    """

    def __init__(
        self,
        cache: SynthesisCache,
        sequencer: PlaybackSequencer,
        voice: VoiceConfig | None = None,
        *,
        config: SegmenterConfig | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        filter_code: bool = True,
    ):
        self.cache = cache
        self.sequencer = sequencer
        self.voice = voice or VoiceConfig()
        self.segmenter = TextSegmenter(config)
        self.debounce_seconds = debounce_seconds
        self.filter_code = filter_code
        self.state = StreamState.IDLE

        self._filter = MarkupFilter()
        self._deduper = OverlapDeduper()
        self._buffer = ""
        self._debounce_token = 0
        self._debounce_handle: Optional[asyncio.TimerHandle] = None

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def tail(self) -> str:
        return self._deduper.tail

    def append_stream(self, chunk: str) -> None:
        """Feed one assistant-reply chunk. Must be called from the event loop."""
        self.state = StreamState.STREAMING

        filtered = self._filter.feed(chunk) if self.filter_code else chunk
        if not filtered:
            return

        deduped = self._deduper.push(filtered)
        if not deduped:
            return

        self._buffer += deduped
        decision = self.segmenter.decide(self._buffer)

        if decision.should_send:
            self._cancel_debounce()
            segment, self._buffer = self.segmenter.extract(self._buffer)
            self._dispatch_clean(segment, reason=decision.reason.value)
            if self._buffer.strip():
                self._arm_debounce()
        else:
            self._arm_debounce()

    async def flush_stream(self) -> Optional[asyncio.Task]:
        """
        Dispatch whatever is still buffered as one final segment.

        The remainder is sent even when it is shorter than ``min_length``.
        Returns once the dispatch has been issued, with the dispatch task (or
        None when nothing was left to say).
        """
        self.state = StreamState.FLUSHING
        self._cancel_debounce()

        if self.filter_code:
            self._buffer += self._deduper.push(self._filter.finish())

        remaining, self._buffer = self._buffer.strip(), ""
        task = self._dispatch_clean(remaining, reason="flush")
        self.state = StreamState.IDLE
        return task

    def speak(
        self,
        text: str,
        voice: VoiceConfig | None = None,
        *,
        sanitize: bool = True,
    ) -> Optional[asyncio.Task]:
        """Queue a complete text (not part of a stream) for playback."""
        if not text or not text.strip():
            return None
        final = sanitize_for_speech(text) if sanitize else text.strip()
        return self._dispatch(final, voice)

    def stop(self) -> None:
        """Cancel the turn: timers, buffers, filter state and all audio."""
        self._cancel_debounce()
        self._buffer = ""
        self._deduper.reset()
        self._filter.reset()
        self.sequencer.stop()
        self.state = StreamState.IDLE

    def _dispatch_clean(self, segment: str, *, reason: str) -> Optional[asyncio.Task]:
        clean = sanitize_for_speech(segment)
        if not clean:
            return None
        logger.debug("[TTS Stream] %s: %r", reason, clean[:60])
        return self._dispatch(clean)

    def _dispatch(
        self, text: str, voice: VoiceConfig | None = None
    ) -> Optional[asyncio.Task]:
        if not text:
            return None
        cfg = self.voice.merged(voice)
        sequence = self.sequencer.next_sequence()
        generation = self.sequencer.generation
        task = asyncio.create_task(self._synthesize(sequence, generation, text, cfg))
        self.sequencer.track(task)
        return task

    async def _synthesize(
        self, sequence: int, generation: int, text: str, voice: VoiceConfig
    ) -> None:
        try:
            locator = await self.cache.resolve(text, voice)
        except asyncio.CancelledError:
            logger.debug("Synthesis cancelled for seq %d", sequence)
            self.sequencer.mark_failed(sequence, generation)
            raise
        except SynthesisTimeout:
            logger.debug("Synthesis timed out for seq %d", sequence)
            self.sequencer.mark_failed(sequence, generation)
            return
        except Exception as exc:
            logger.warning("TTS synthesis failed for seq %d: %s", sequence, exc)
            self.sequencer.mark_failed(sequence, generation)
            return

        self.sequencer.enqueue(sequence, locator, generation)

    def _arm_debounce(self) -> None:
        self._cancel_debounce()
        token = self._debounce_token
        loop = asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(
            self.debounce_seconds, self._on_debounce, token
        )

    def _cancel_debounce(self) -> None:
        self._debounce_token += 1
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

    def _on_debounce(self, token: int) -> None:
        if token != self._debounce_token:
            return
        self._debounce_handle = None
        if not self._buffer.strip():
            return
        segment, self._buffer = self.segmenter.extract(self._buffer)
        self._dispatch_clean(segment, reason="timeout_flush")
        if self._buffer.strip():
            self._arm_debounce()
