"""Tests for speaker-turn segmentation."""

from __future__ import annotations

import pytest
from conftest import make_words

from transcript_annotator.exceptions import MalformedInputError
from transcript_annotator.models import WordEvent
from transcript_annotator.turns import (
    TurnSegmenter,
    coerce_words,
    segment_words,
    words_from_deepgram,
)


class TestSegmentWords:
    def test_empty_input(self):
        assert segment_words([]) == []

    def test_splits_on_speaker_change(self):
        words = make_words([(0, "hello there"), (1, "hi"), (0, "how are you")])
        turns = segment_words(words)

        assert [(t.id, t.speaker, t.text) for t in turns] == [
            (0, 0, "hello there"),
            (1, 1, "hi"),
            (2, 0, "how are you"),
        ]
        assert [t.word_count for t in turns] == [2, 1, 3]

    def test_start_end_is_start_of_last_word(self):
        words = [
            {"text": "one", "speaker": 0, "start": 1.0},
            {"text": "two", "speaker": 0, "start": 1.7},
            {"text": "three", "speaker": 0, "start": 2.4},
        ]
        (turn,) = segment_words(words)

        assert turn.start_beginning == 1.0
        assert turn.start_end == 2.4

    def test_single_word_turn_has_equal_bounds(self):
        (turn,) = segment_words([{"text": "yes", "speaker": 2, "start": 5.5}])
        assert turn.start_beginning == turn.start_end == 5.5
        assert turn.duration == 0.0

    def test_missing_start_offsets_fall_back(self):
        words = [
            {"text": "a", "speaker": 0, "start": 3.0},
            {"text": "b", "speaker": 0},
        ]
        (turn,) = segment_words(words)
        assert turn.start_end == 3.0

        (turn,) = segment_words([{"text": "a", "speaker": 0}])
        assert turn.start_beginning == 0.0

    def test_blank_tokens_do_not_break_runs(self):
        words = [
            {"text": "left", "speaker": 0, "start": 0.0},
            {"text": "  ", "speaker": 1, "start": 0.5},
            {"text": "right", "speaker": 0, "start": 1.0},
        ]
        turns = segment_words(words)

        assert len(turns) == 1
        assert turns[0].text == "left right"

    def test_deepgram_word_keys(self):
        words = [
            {"punctuated_word": "Hello,", "word": "hello", "speaker": 0, "start": 0.0},
            {"word": "world", "speaker": 0, "start": 0.3},
        ]
        (turn,) = segment_words(words)
        assert turn.text == "Hello, world"

    def test_accepts_word_events(self):
        turns = segment_words([WordEvent("hi", 0, 0.0), WordEvent("yo", 1, 0.2)])
        assert [t.text for t in turns] == ["hi", "yo"]

    def test_deterministic(self):
        words = make_words([(0, "a b c"), (1, "d e"), (2, "f"), (0, "g h")])
        assert segment_words(words) == segment_words(list(words))


class TestMalformedInput:
    @pytest.mark.parametrize("words", ["hello", b"bytes", {"text": "x", "speaker": 0}, 42])
    def test_rejects_non_sequences(self, words):
        with pytest.raises(MalformedInputError):
            segment_words(words)

    @pytest.mark.parametrize(
        "word",
        [
            {"text": "x"},
            {"text": "x", "speaker": -1},
            {"text": "x", "speaker": "0"},
            {"text": "x", "speaker": True},
            ["x", 0],
        ],
    )
    def test_rejects_invalid_words(self, word):
        with pytest.raises(MalformedInputError):
            segment_words([{"text": "ok", "speaker": 0}, word])

    def test_error_reports_absolute_index(self):
        with pytest.raises(MalformedInputError, match="Word 5"):
            coerce_words([{"text": "x"}], offset=5)

    def test_invalid_batch_leaves_segmenter_untouched(self):
        segmenter = TurnSegmenter()
        segmenter.feed([{"text": "a", "speaker": 0}])

        with pytest.raises(MalformedInputError):
            segmenter.feed([{"text": "b", "speaker": 1}, {"text": "c"}])

        assert segmenter.pending_words == 1
        assert [t.text for t in segmenter.flush()] == ["a"]


class TestTurnSegmenter:
    def test_trailing_run_stays_open_until_flush(self):
        segmenter = TurnSegmenter()
        assert segmenter.feed(make_words([(0, "a b")])) == []
        assert segmenter.pending_words == 2

        closed = segmenter.feed(make_words([(1, "c")]))
        assert [t.text for t in closed] == ["a b"]

        flushed = segmenter.flush()
        assert [(t.id, t.text) for t in flushed] == [(1, "c")]
        assert segmenter.flush() == []

    @pytest.mark.parametrize("chunk_size", [1, 2, 3, 7])
    def test_incremental_matches_batch(self, chunk_size):
        words = make_words(
            [(0, "good morning everyone"), (1, "morning"), (0, "let us begin"), (2, "thanks")]
        )
        segmenter = TurnSegmenter()
        turns = []
        for i in range(0, len(words), chunk_size):
            turns.extend(segmenter.feed(words[i : i + chunk_size]))
        turns.extend(segmenter.flush())

        assert turns == segment_words(words)


class TestWordsFromDeepgram:
    def test_extracts_words(self):
        payload = {
            "results": {
                "channels": [
                    {
                        "alternatives": [
                            {
                                "words": [
                                    {
                                        "word": "hello",
                                        "punctuated_word": "Hello",
                                        "speaker": 1,
                                        "start": 0.1,
                                    },
                                    {"word": "there", "start": 0.4},
                                ]
                            }
                        ]
                    }
                ]
            }
        }
        assert words_from_deepgram(payload) == [
            {"text": "Hello", "speaker": 1, "start": 0.1},
            {"text": "there", "speaker": 0, "start": 0.4},
        ]

    def test_missing_words_gives_empty_list(self):
        assert words_from_deepgram({"results": {}}) == []

    def test_rejects_non_mapping(self):
        with pytest.raises(MalformedInputError):
            words_from_deepgram([])  # type: ignore[arg-type]
