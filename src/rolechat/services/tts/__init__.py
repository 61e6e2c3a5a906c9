"""
TTS (Text-to-Speech) Streaming Pipeline Package.

This package turns a streamed assistant reply into ordered speech:

- markup_filter: Drops code spans from the stream, across chunk boundaries
- overlap: Strips text that repeats the tail of what was already received
- text_segmenter: Decides when the buffer holds a speakable segment
- sanitizer: Reduces markdown to prose before synthesis
- synthesis_cache: TTL/FIFO cache with in-flight request deduplication
- playback: Plays concurrently fetched clips in sequence order
- stream_controller: Wires the stages together for one chat turn
- http_synthesizer / audio_player: Backend and audio-device collaborators

Architecture Overview:

    ┌─────────────┐   ┌──────────────┐   ┌────────────────┐   ┌───────────────┐
    │ Reply chunk │──▶│ MarkupFilter │──▶│ OverlapDeduper │──▶│ TextSegmenter │
    └─────────────┘   └──────────────┘   └────────────────┘   └───────────────┘
                                                                      │
                                                                      ▼
    ┌──────────────┐   ┌───────────────────┐   ┌────────────────┐   ┌─────────┐
    │ AudioPlayer  │◀──│ PlaybackSequencer │◀──│ SynthesisCache │◀──│Sanitizer│
    └──────────────┘   └───────────────────┘   └────────────────┘   └─────────┘

Cancellation is a single generation counter owned by PlaybackSequencer:
``StreamController.stop()`` bumps it, cancels in-flight synthesis and drops
queued audio; anything finishing later with an old generation is discarded.
"""

from .audio_player import SubprocessAudioPlayer
from .http_synthesizer import HttpSynthesizer
from .markup_filter import MarkupFilter
from .overlap import OverlapDeduper, dedupe_overlap
from .playback import AudioClip, AudioPlayer, PlaybackSequencer
from .sanitizer import sanitize_for_speech
from .stream_controller import StreamController, StreamState
from .synthesis_cache import (
    SynthesisCache,
    SynthesisError,
    SynthesisTimeout,
    VoiceConfig,
    build_cache_key,
)
from .text_segmenter import SegmenterConfig, TextSegmenter, effective_length

__all__ = [
    "AudioClip",
    "AudioPlayer",
    "HttpSynthesizer",
    "MarkupFilter",
    "OverlapDeduper",
    "PlaybackSequencer",
    "SegmenterConfig",
    "StreamController",
    "StreamState",
    "SubprocessAudioPlayer",
    "SynthesisCache",
    "SynthesisError",
    "SynthesisTimeout",
    "TextSegmenter",
    "VoiceConfig",
    "build_cache_key",
    "dedupe_overlap",
    "effective_length",
    "sanitize_for_speech",
]
