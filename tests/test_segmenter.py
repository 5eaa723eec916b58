"""Tests for word-boundary text segmentation."""
from __future__ import annotations

import random

import pytest

from speech_gateway.tts.segmenter import segment_text
from speech_gateway.utils.text import normalize_whitespace


def _random_text(seed: int, words: int, max_word: int = 12) -> str:
    rng = random.Random(seed)
    alphabet = "abcdefghijklmnopqrstuvwxyz"
    out = []
    for _ in range(words):
        n = rng.randint(1, max_word)
        out.append("".join(rng.choice(alphabet) for _ in range(n)))
        # Mixed separators exercise whitespace normalization
        out.append(rng.choice([" ", " ", "  ", "\n", "\t "]))
    return "".join(out)


def test_segment_basic():
    result = segment_text("Hello brave new world", max_segment_length=11, max_segments=5)
    assert result.contents == ["Hello brave", "new world"]
    assert result.truncated is False
    assert result.dropped_chars == 0
    assert [s.index for s in result.segments] == [0, 1]


def test_segment_cuts_at_last_space():
    result = segment_text("one two three four", max_segment_length=10, max_segments=5)
    assert result.contents == ["one two", "three four"]


def test_short_text_is_one_segment():
    result = segment_text("  Hello   world \n", max_segment_length=3000, max_segments=5)
    assert result.contents == ["Hello world"]


def test_text_of_exact_length_is_not_cut():
    text = "abcd efgh"
    result = segment_text(text, max_segment_length=len(text), max_segments=5)
    assert result.contents == [text]


@pytest.mark.parametrize("text", ["", "   ", "\n\t  \n"])
def test_empty_or_whitespace_yields_no_segments(text):
    result = segment_text(text, max_segment_length=10, max_segments=5)
    assert result.segments == []
    assert result.truncated is False


def test_word_longer_than_window_is_taken_whole():
    result = segment_text("abcdefghij", max_segment_length=4, max_segments=5)
    assert result.contents == ["abcd", "efgh", "ij"]


def test_invalid_bounds():
    with pytest.raises(ValueError):
        segment_text("text", max_segment_length=0, max_segments=5)
    with pytest.raises(ValueError):
        segment_text("text", max_segment_length=10, max_segments=0)


def test_20000_chars_truncated_to_five_segments():
    words = ("lorem ipsum dolor sit amet consectetur " * 600)[:20000]
    result = segment_text(words, max_segment_length=3000, max_segments=5)

    assert len(result.segments) == 5
    assert all(len(s.content) <= 3000 for s in result.segments)
    assert result.truncated is True
    assert result.dropped_chars > 0


class TestSegmentProperties:
    """Invariants over many generated inputs."""

    @pytest.mark.parametrize("seed", range(25))
    def test_length_bound(self, seed):
        text = _random_text(seed, words=400)
        for limit in (15, 40, 100):
            result = segment_text(text, max_segment_length=limit, max_segments=1000)
            assert all(0 < len(s.content) <= limit for s in result.segments)

    @pytest.mark.parametrize("seed", range(25))
    def test_segments_reconstruct_prefix(self, seed):
        text = _random_text(seed, words=400)
        normalized = normalize_whitespace(text)

        result = segment_text(text, max_segment_length=50, max_segments=4)
        joined = " ".join(result.contents)

        assert normalized.startswith(joined)
        assert len(normalized) - len(joined) == (result.dropped_chars + 1 if result.truncated else 0)

    @pytest.mark.parametrize("seed", range(25))
    def test_untruncated_covers_whole_text(self, seed):
        text = _random_text(seed, words=200)
        result = segment_text(text, max_segment_length=60, max_segments=1000)
        assert result.truncated is False
        assert " ".join(result.contents) == normalize_whitespace(text)

    @pytest.mark.parametrize("seed", range(25))
    def test_no_mid_word_split(self, seed):
        text = _random_text(seed, words=300, max_word=12)
        source_words = set(normalize_whitespace(text).split(" "))

        result = segment_text(text, max_segment_length=30, max_segments=1000)

        for segment in result.segments:
            for word in segment.content.split(" "):
                assert word in source_words

    @pytest.mark.parametrize("seed", range(10))
    def test_count_bound(self, seed):
        text = _random_text(seed, words=500)
        result = segment_text(text, max_segment_length=20, max_segments=3)
        assert len(result.segments) <= 3
