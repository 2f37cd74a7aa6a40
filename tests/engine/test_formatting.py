"""Tests for persona formatting and platform splitting."""

import re

import pytest

from engine.formatting import (
    ensure_persona_formatting,
    format_for_platform,
    split_sentences,
    strip_part_prefix,
)

PREFIX = re.compile(r"^\[(\d+)/(\d+)\] ")


def _long_text(sentences=20):
    return " ".join(
        f"this is sentence number {i} and it keeps going for quite a while." for i in range(sentences)
    )


class TestPersonaFormatting:
    def test_house_style(self):
        text = "However, BTC is UP — see https://Example.com/ABC [1] #crypto #throp"
        assert ensure_persona_formatting(text) == "but, btc is up ... see https://Example.com/ABC #throp"

    def test_connectors_swapped(self):
        assert ensure_persona_formatting("Furthermore it works. Therefore ship.") == "also it works. so ship."

    def test_figures_untouched(self):
        assert ensure_persona_formatting("BTC at $97,123.45 (+2.5%)") == "btc at $97,123.45 (+2.5%)"


class TestSplitSentences:
    def test_keeps_decimals_together(self):
        assert split_sentences("SOL is $150.25 today. Wild!  Right") == [
            "SOL is $150.25 today.", "Wild!", "Right",
        ]


class TestFormatForPlatform:
    def test_short_text_unchanged(self):
        text = "gm  bestie"
        assert format_for_platform(text) == [text]

    def test_exactly_max_length_single_part(self):
        text = "a" * 280
        assert format_for_platform(text) == [text]

    def test_long_text_numbered_parts_within_limit(self):
        text = _long_text()
        parts = format_for_platform(text)

        assert len(parts) > 1
        for i, part in enumerate(parts, 1):
            assert len(part) <= 280
            match = PREFIX.match(part)
            assert match is not None
            assert int(match.group(1)) == i
            assert int(match.group(2)) == len(parts)

    def test_parts_rejoin_to_original(self):
        text = _long_text()
        parts = format_for_platform(text)
        assert " ".join(strip_part_prefix(p) for p in parts) == text

    def test_split_on_sentence_boundaries(self):
        parts = [strip_part_prefix(p) for p in format_for_platform(_long_text())]
        for part in parts:
            assert part.endswith(".")

    def test_oversized_word_is_hard_split(self):
        parts = format_for_platform("x" * 600)
        assert len(parts) == 3
        assert all(len(p) <= 280 for p in parts)
        assert "".join(strip_part_prefix(p) for p in parts) == "x" * 600

    def test_oversized_sentence_split_on_words(self):
        sentence = " ".join(["word"] * 120) + "."
        parts = format_for_platform(sentence)
        assert len(parts) == 3
        assert all(len(p) <= 280 for p in parts)
        assert " ".join(strip_part_prefix(p) for p in parts) == sentence

    def test_many_parts_reserve_wider_prefix(self):
        text = _long_text(sentences=200)
        parts = format_for_platform(text)
        assert len(parts) >= 10
        assert all(len(p) <= 280 for p in parts)
        assert parts[-1].startswith(f"[{len(parts)}/{len(parts)}] ")

    def test_custom_limit(self):
        parts = format_for_platform("one two three four five six", max_length=15)
        assert all(len(p) <= 15 for p in parts)
        assert len(parts) > 1

    def test_limit_too_small(self):
        with pytest.raises(ValueError):
            format_for_platform("a long enough sentence", max_length=5)
