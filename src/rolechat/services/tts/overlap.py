"""Overlap removal for upstream streams that are not pure deltas."""

from __future__ import annotations

DEFAULT_MAX_CHECK = 160
DEFAULT_TAIL_WINDOW = 240


def dedupe_overlap(
    previous_tail: str, next_chunk: str, max_check: int = DEFAULT_MAX_CHECK
) -> str:
    """
    Strip the prefix of ``next_chunk`` that repeats the end of ``previous_tail``.

    The largest overlap wins: ``k`` is scanned from ``max_check`` down to 1.

        >>> dedupe_overlap("hello world", "world peace")
        ' peace'
    """
    if not previous_tail or not next_chunk:
        return next_chunk

    tail = previous_tail[-max_check:]
    for k in range(min(len(tail), len(next_chunk)), 0, -1):
        if tail[-k:] == next_chunk[:k]:
            return next_chunk[k:]
    return next_chunk


class OverlapDeduper:
    """Owns the tail window of emitted text used for overlap comparison."""

    def __init__(
        self,
        window: int = DEFAULT_TAIL_WINDOW,
        max_check: int = DEFAULT_MAX_CHECK,
    ) -> None:
        self.window = window
        self.max_check = max_check
        self.tail = ""

    def push(self, chunk: str) -> str:
        """Dedupe ``chunk`` against the tail and record what was kept."""
        deduped = dedupe_overlap(self.tail, chunk, self.max_check)
        if deduped:
            self.tail = (self.tail + deduped)[-self.window:]
        return deduped

    def reset(self) -> None:
        self.tail = ""
