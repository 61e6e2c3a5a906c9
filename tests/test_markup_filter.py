from __future__ import annotations

import pytest

from rolechat.services.tts.markup_filter import FilterMode, MarkupFilter

FENCED_REPLY = "Here you go:\n```python\nprint('hi')\n```\nThat prints hi."


def _feed_all(chunks: list[str]) -> str:
    code_filter = MarkupFilter()
    out = "".join(code_filter.feed(chunk) for chunk in chunks)
    return out + code_filter.finish()


def test_inline_code_is_dropped() -> None:
    assert _feed_all(["Call `run()` now."]) == "Call  now."


def test_fenced_block_and_header_are_dropped() -> None:
    assert _feed_all([FENCED_REPLY]) == "Here you go:\n\nThat prints hi."


def test_double_backtick_outside_code_is_literal() -> None:
    assert _feed_all(["a `", "` b"]) == "a `` b"


@pytest.mark.parametrize("split_at", range(1, len(FENCED_REPLY)))
def test_single_split_matches_whole_feed(split_at: int) -> None:
    whole = _feed_all([FENCED_REPLY])
    parts = [FENCED_REPLY[:split_at], FENCED_REPLY[split_at:]]

    assert _feed_all(parts) == whole


def test_character_by_character_matches_whole_feed() -> None:
    assert _feed_all(list(FENCED_REPLY)) == _feed_all([FENCED_REPLY])


def test_fence_delimiter_split_across_chunks() -> None:
    code_filter = MarkupFilter()

    assert code_filter.feed("Before ``") == "Before "
    assert code_filter.feed("`js\nlet x = 1;\n`") == ""
    assert code_filter.in_code
    assert code_filter.feed("``After") == "After"
    assert not code_filter.in_code


def test_inline_span_closes_on_any_run_length() -> None:
    code_filter = MarkupFilter()

    assert code_filter.feed("x `code``` y") == "x  y"
    assert code_filter.state.mode is FilterMode.TEXT


def test_finish_releases_unterminated_fence_as_text() -> None:
    code_filter = MarkupFilter()

    assert code_filter.feed("Start\n```\nnever closed") == "Start\n"
    assert code_filter.finish() == "never closed"
    assert code_filter.state.mode is FilterMode.TEXT


def test_finish_resolves_trailing_double_run() -> None:
    code_filter = MarkupFilter()

    assert code_filter.feed("ends with ``") == "ends with "
    assert code_filter.finish() == "``"


def test_reset_clears_code_mode() -> None:
    code_filter = MarkupFilter()
    code_filter.feed("`open")
    code_filter.reset()

    assert code_filter.feed("plain") == "plain"
