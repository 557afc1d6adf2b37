"""Tests for core data models."""

from __future__ import annotations

from transcript_annotator.models import (
    UNDEFINED_ROLE,
    SpeakerMetadata,
    SpeakerStats,
    Turn,
)


def make(speaker=1):
    return Turn(
        id=2, speaker=speaker, text="mm hmm", start_beginning=1.0, start_end=1.4, word_count=2
    )


class TestTurn:
    def test_apply_correction_first_writer_wins(self):
        turn = make()
        assert turn.apply_correction(0) is True
        assert (turn.speaker, turn.original_speaker) == (0, 1)
        assert turn.corrected

        assert turn.apply_correction(3) is False
        assert (turn.speaker, turn.original_speaker) == (0, 1)

    def test_correction_to_same_speaker_is_noop(self):
        turn = make()
        assert turn.apply_correction(1) is False
        assert not turn.corrected

    def test_to_dict(self):
        turn = make()
        assert turn.to_dict() == {
            "id": 2,
            "speaker": 1,
            "text": "mm hmm",
            "startBeginning": 1.0,
            "startEnd": 1.4,
            "wordCount": 2,
        }
        turn.apply_correction(0)
        assert turn.to_dict()["originalSpeaker"] == 1


class TestSpeakerMetadata:
    def test_resized_pads_and_truncates(self):
        meta = SpeakerMetadata(["Ann"], ["Guest"], {0: SpeakerStats(1, 2, 3.0)})
        grown = meta.resized(3)
        assert grown.speaker_names == ["Ann", None, None]
        assert grown.speaker_roles == ["Guest", UNDEFINED_ROLE, UNDEFINED_ROLE]
        assert meta.resized(0).num_speakers == 0

    def test_copy_is_independent(self):
        meta = SpeakerMetadata(["Ann"], ["Guest"], {0: SpeakerStats(1, 2, 3.0)}, {4: 0})
        clone = meta.copy()
        clone.speaker_stats[0].turns = 9
        clone.speaker_corrections[5] = 1

        assert meta.speaker_stats[0].turns == 1
        assert meta.speaker_corrections == {4: 0}

    def test_lookups_outside_range(self):
        meta = SpeakerMetadata(["Ann"], ["Guest"])
        assert meta.name_for(3) is None
        assert meta.role_for(-1) == UNDEFINED_ROLE

    def test_to_dict(self):
        meta = SpeakerMetadata(
            ["Ann", None], ["Guest", UNDEFINED_ROLE], {1: SpeakerStats(1, 4, 2.0)}
        )
        assert meta.to_dict() == {
            "speakerName": ["Ann", None],
            "speakerRole": ["Guest", "Undefined"],
            "speakerStats": {"1": {"turns": 1, "words": 4, "duration": 2.0}},
            "speakerCorrections": {},
        }
