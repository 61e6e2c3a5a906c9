"""
Markup Filter for Streaming TTS Pipeline.

Removes fenced (```) and inline (`) code spans from a token stream that
arrives in arbitrary fragments. State is carried between calls so a fence
delimiter split across two chunks is still recognised.

Architecture:
    LLM Chunks → MarkupFilter.feed() → OverlapDeduper → stream buffer

Usage:
    code_filter = MarkupFilter()

    for chunk in llm_response:
        prose = code_filter.feed(chunk)

    # After streaming completes, release anything left unresolved:
    tail = code_filter.finish()
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

BACKTICK = "`"
FENCE_RUN = 3


class FilterMode(str, Enum):
    TEXT = "text"
    INLINE = "inline"
    FENCE = "fence"


@dataclass
class FilterState:
    """Scanner state persisted across ``feed`` calls."""

    mode: FilterMode = FilterMode.TEXT
    tick_run: int = 0
    fence_header: bool = False
    held: str = ""


class MarkupFilter:
    """
    Cross-chunk scanner that drops code spans from streamed markdown.

    Backticks are counted rather than classified immediately: a run of one
    toggles inline code, a run of three or more toggles a fence, and a run of
    two outside code is literal text. A run still open at the end of a chunk
    is resolved on the next call.
    """

    def __init__(self) -> None:
        self.state = FilterState()

    def reset(self) -> None:
        """Reset filter state for a new chat turn."""
        self.state = FilterState()

    def feed(self, chunk: str) -> str:
        """
        Filter one chunk and return the prose it contains.

        Args:
            chunk: Raw text chunk from the assistant stream

        Returns:
            The characters of ``chunk`` that are outside code spans
        """
        if not chunk:
            return ""

        st = self.state
        out: list[str] = []

        for ch in chunk:
            if ch == BACKTICK:
                st.tick_run += 1
                continue

            self._resolve_run(out)

            if st.mode is FilterMode.FENCE and st.fence_header:
                # ```lang header line is never spoken
                if ch == "\n":
                    st.fence_header = False
                continue

            if st.mode is FilterMode.TEXT:
                out.append(ch)
            else:
                st.held += ch

        return "".join(out)

    def finish(self) -> str:
        """
        Resolve end-of-stream state and reset.

        A pending backtick run is resolved as if the stream ended there. If
        an inline span or fence was never closed, the text held inside it is
        returned as plain prose so unbalanced upstream markup does not swallow
        the rest of a reply.
        """
        out: list[str] = []
        self._resolve_run(out)
        if self.state.mode is not FilterMode.TEXT:
            out.append(self.state.held)
        self.reset()
        return "".join(out)

    @property
    def in_code(self) -> bool:
        return self.state.mode is not FilterMode.TEXT

    def _resolve_run(self, out: list[str]) -> None:
        st = self.state
        run = st.tick_run
        if run <= 0:
            return
        st.tick_run = 0

        if st.mode is FilterMode.TEXT:
            if run >= FENCE_RUN:
                st.mode = FilterMode.FENCE
                st.fence_header = True
                st.held = ""
            elif run == 1:
                st.mode = FilterMode.INLINE
                st.held = ""
            else:
                out.append(BACKTICK * run)
        elif st.mode is FilterMode.INLINE:
            st.mode = FilterMode.TEXT
            st.held = ""
        elif run >= FENCE_RUN:
            st.mode = FilterMode.TEXT
            st.fence_header = False
            st.held = ""
