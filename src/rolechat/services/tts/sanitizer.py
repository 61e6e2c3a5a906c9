"""Reduce markdown to speakable prose before synthesis."""

from __future__ import annotations

import re

_MAX_PASSES = 8

_ENTITIES = (
    (re.compile(r"&nbsp;?"), " "),
    (re.compile(r"&lt;"), "<"),
    (re.compile(r"&gt;"), ">"),
    (re.compile(r"&quot;"), '"'),
    (re.compile(r"&#39;"), "'"),
    (re.compile(r"&amp;"), "&"),
)

# Ordered (pattern, replacement) steps of a single pass.
_STEPS: tuple[tuple[re.Pattern[str], str], ...] = (
    # code
    (re.compile(r"```[\s\S]*?```"), " "),
    (re.compile(r"`[^`]*`"), " "),
    # images and links keep their visible label
    (re.compile(r"!\[([^\]]*)\]\([^)]*\)"), r"\1"),
    (re.compile(r"\[([^\]]+)\]\([^)]*\)"), r"\1"),
    (re.compile(r"<((?:https?://|mailto:)[^>]+)>"), r"\1"),
    # headings, blockquotes, list markers
    (re.compile(r"^[^\S\n]{0,3}#{1,6}[^\S\n]+", re.MULTILINE), ""),
    (re.compile(r"^[^\S\n]{0,3}>[^\S\n]?", re.MULTILINE), ""),
    (re.compile(r"^[^\S\n]*[-*+][^\S\n]+", re.MULTILINE), ""),
    (re.compile(r"^[^\S\n]*\d+\.[^\S\n]+", re.MULTILINE), ""),
    # emphasis and strikethrough keep their text
    (re.compile(r"\*\*([^*]+)\*\*"), r"\1"),
    (re.compile(r"(?<!\w)__([^_]+)__(?!\w)"), r"\1"),
    (re.compile(r"\*([^*\n]+)\*"), r"\1"),
    (re.compile(r"(?<!\w)_([^_\n]+)_(?!\w)"), r"\1"),
    (re.compile(r"~~([^~]+)~~"), r"\1"),
    # tables and rules
    (
        re.compile(
            r"^[^\S\n]*\|?[^\S\n]*:?-{3,}:?[^\S\n]*(\|[^\S\n]*:?-{3,}:?[^\S\n]*)+\|?[^\S\n]*$",
            re.MULTILINE,
        ),
        " ",
    ),
    (re.compile(r"\|"), " "),
    (re.compile(r"^[^\S\n]*([-*_])\1{2,}[^\S\n]*$", re.MULTILINE), " "),
    # raw html
    (re.compile(r"</?[a-zA-Z][^>]*>"), " "),
)

# Markdown leftovers; CJK punctuation is kept.
_RESIDUE = re.compile(r"[()\[\]{}*#~`]")
_SPACES = re.compile(r"\s+")


def _single_pass(text: str) -> str:
    for pattern, replacement in _STEPS:
        text = pattern.sub(replacement, text)
    for pattern, replacement in _ENTITIES:
        text = pattern.sub(replacement, text)
    text = _RESIDUE.sub(" ", text)
    return _SPACES.sub(" ", text).strip()


def sanitize_for_speech(text: str) -> str:
    """
    Strip markdown, HTML and code from ``text``, leaving prose to be read.

    The pass is repeated until the output is stable, so the function is
    idempotent even when decoding an entity exposes new markup.
    """
    if not text:
        return ""

    current = text
    for _ in range(_MAX_PASSES):
        cleaned = _single_pass(current)
        if cleaned == current:
            break
        current = cleaned
    return current


__all__ = ["sanitize_for_speech"]
