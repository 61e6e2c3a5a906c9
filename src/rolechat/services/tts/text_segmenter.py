"""
Text Segmenter for Streaming TTS Pipeline.

This module decides when an accumulating reply buffer holds enough text to
be spoken, and slices one speakable segment out of it. Lengths are measured
without whitespace so CJK text (which has no spaces) is not penalised.

Architecture:
    stream buffer → TextSegmenter.decide() → TextSegmenter.extract() → sanitizer

The segmenter favours natural boundaries (paragraph > sentence > clause
pause) but forces a split at ``max_length`` so a reply without punctuation
is never buffered forever.

Usage:
    segmenter = TextSegmenter(SegmenterConfig(min_length=20, sentence_length=30))

    decision = segmenter.decide(buffer)
    if decision.should_send:
        segment, buffer = segmenter.extract(buffer)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

SENTENCE_TERMINATORS = ".!?…。！？"
PAUSE_MARKS = ",;，、；"

# Clause pauses are only used as a split point once the buffer is this long
PAUSE_EXTRACT_MIN = 50

_WHITESPACE = re.compile(r"\s")
_PARAGRAPH = re.compile(r"\n[^\S\n]*\n")
_HAS_TERMINATOR = re.compile(f"[{re.escape(SENTENCE_TERMINATORS)}]")
_HAS_PAUSE = re.compile(f"[{re.escape(PAUSE_MARKS)}]")
_FIRST_SENTENCE = re.compile(f".*?[{re.escape(SENTENCE_TERMINATORS)}]+", re.DOTALL)
_FIRST_PAUSE = re.compile(f".*?[{re.escape(PAUSE_MARKS)}]+", re.DOTALL)


def effective_length(text: str) -> int:
    """Character count of ``text`` with all whitespace removed."""
    return len(_WHITESPACE.sub("", text))


class SegmentReason(str, Enum):
    TOO_SHORT = "too_short"
    MAX_LENGTH = "max_length"
    PARAGRAPH = "paragraph"
    SENTENCE_END = "sentence_end"
    PAUSE = "pause"
    WAITING = "waiting"


@dataclass(frozen=True)
class SegmentDecision:
    should_send: bool
    reason: SegmentReason


@dataclass(frozen=True)
class SegmenterConfig:
    """
    Thresholds, in effective characters.

    Attributes:
        min_length: Below this nothing is sent (except by an explicit flush)
        sentence_length: A sentence terminator triggers a send from here on
        max_length: Send unconditionally at or beyond this length
        pause_length: A clause pause (comma, semicolon) triggers from here on
    """

    min_length: int = 15
    sentence_length: int = 20
    max_length: int = 150
    pause_length: int = 50


class TextSegmenter:
    """
    Stateless segmentation policy over a caller-owned buffer.

    Attributes:
        config: Threshold configuration used by ``decide``
    """

    def __init__(self, config: SegmenterConfig | None = None):
        self.config = config or SegmenterConfig()

    def decide(self, buffer: str) -> SegmentDecision:
        """
        Decide whether ``buffer`` should be sent for synthesis now.

        Rules are evaluated top to bottom and the first match wins.
        """
        cfg = self.config
        trimmed = buffer.strip()
        length = effective_length(trimmed)

        if length < cfg.min_length:
            return SegmentDecision(False, SegmentReason.TOO_SHORT)
        if length >= cfg.max_length:
            return SegmentDecision(True, SegmentReason.MAX_LENGTH)
        if _PARAGRAPH.search(trimmed):
            return SegmentDecision(True, SegmentReason.PARAGRAPH)
        if _HAS_TERMINATOR.search(trimmed) and length >= cfg.sentence_length:
            return SegmentDecision(True, SegmentReason.SENTENCE_END)
        if _HAS_PAUSE.search(trimmed) and length >= cfg.pause_length:
            return SegmentDecision(True, SegmentReason.PAUSE)
        return SegmentDecision(False, SegmentReason.WAITING)

    def extract(self, buffer: str) -> tuple[str, str]:
        """
        Slice one segment off the front of ``buffer``.

        Returns:
            ``(segment, remainder)``. The segment is stripped; the remainder
            loses only its leading whitespace so the next chunk still joins
            with the right spacing.
        """
        text = buffer.lstrip()

        paragraph = _PARAGRAPH.search(text)
        if paragraph:
            return text[: paragraph.start()].strip(), text[paragraph.end():].lstrip()

        sentence = _FIRST_SENTENCE.match(text)
        if sentence:
            return sentence.group(0).strip(), text[sentence.end():].lstrip()

        if effective_length(text) >= PAUSE_EXTRACT_MIN:
            pause = _FIRST_PAUSE.match(text)
            if pause:
                return pause.group(0).strip(), text[pause.end():].lstrip()

        return text.strip(), ""
