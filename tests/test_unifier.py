"""Tests for the result unifier."""

from __future__ import annotations

from conftest import make_turn

from transcript_annotator.events import (
    ErrorEvent,
    FollowupEvent,
    LookupEvent,
    ResponseEvent,
    SpeakerMetadataEvent,
)
from transcript_annotator.models import SpeakerMetadata
from transcript_annotator.unifier import MergedTurn, ResultUnifier


def sample_log():
    return [
        LookupEvent(turn_id=0, terms=("GDP",), types=("ECONOMIC_TERM",)),
        ErrorEvent(turn_id=0, matches=("The moon is cheese",)),
        FollowupEvent(turn_id=2, questions=("Why?",)),
        SpeakerMetadataEvent(metadata=SpeakerMetadata(["Ann"], ["Interviewer"])),
        LookupEvent(turn_id=0, terms=("CPI",), types=("ECONOMIC_TERM",)),
        ResponseEvent(turn_id=2, summation="Answered.", score=0.9),
    ]


class TestApply:
    def test_last_write_wins_per_field(self):
        unifier = ResultUnifier.replay(sample_log())
        fields = unifier.fields_for(0)

        assert fields["lookup"].terms == ("CPI",)
        assert fields["error"].matches == ("The moon is cheese",)

    def test_fields_do_not_overwrite_each_other(self):
        unifier = ResultUnifier.replay(sample_log())
        assert set(unifier.fields_for(2)) == {"followup", "response"}
        assert unifier.fields_for(99) == {}

    def test_global_events(self):
        unifier = ResultUnifier()
        assert unifier.speaker_metadata is None

        unifier.apply(SpeakerMetadataEvent(metadata=SpeakerMetadata(["A"], ["Guest"])))
        unifier.apply(SpeakerMetadataEvent(metadata=SpeakerMetadata(["B"], ["Guest"])))

        assert unifier.speaker_metadata.speaker_names == ["B"]
        assert unifier.state()["turns"] == {}

    def test_log_retains_every_event(self):
        log = sample_log()
        unifier = ResultUnifier.replay(log)
        assert len(unifier) == len(log)
        assert unifier.log == tuple(log)

    def test_reset(self):
        unifier = ResultUnifier.replay(sample_log())
        unifier.reset()
        assert len(unifier) == 0
        assert unifier.state() == {"global": {}, "turns": {}}


class TestReplay:
    def test_replay_matches_live_state(self):
        live = ResultUnifier()
        for event in sample_log():
            live.apply(event)

        assert ResultUnifier.replay(live.log).state() == live.state()

    def test_replay_prefix(self):
        log = sample_log()
        partial = ResultUnifier.replay(log[:3])
        assert partial.fields_for(0)["lookup"].terms == ("GDP",)
        assert partial.speaker_metadata is None


class TestProject:
    def test_only_annotated_turns_by_default(self):
        unifier = ResultUnifier.replay(sample_log())
        turns = [make_turn(0, 0), make_turn(1, 1), make_turn(2, 0)]

        projected = unifier.project(turns)
        assert [m.turn_id for m in projected] == [0, 2]
        assert projected[0].turn is turns[0]
        assert projected[1].has("response")

    def test_include_unannotated(self):
        unifier = ResultUnifier.replay(sample_log())
        turns = [make_turn(0, 0), make_turn(1, 1), make_turn(2, 0)]

        projected = unifier.project(turns, include_unannotated=True)
        assert [m.turn_id for m in projected] == [0, 1, 2]
        assert projected[1].annotations == {}

    def test_event_for_unknown_turn(self):
        unifier = ResultUnifier()
        unifier.apply(FollowupEvent(turn_id=7, questions=("How?",)))

        (merged,) = unifier.project([])
        assert merged.turn is None
        assert merged.to_dict() == {
            "id": 7,
            "followup": {"followupQuestion": ["How?"], "followupConfidence": []},
        }

    def test_to_dict(self):
        unifier = ResultUnifier.replay(sample_log())
        data = unifier.to_dict([make_turn(0, 0, "gdp grew")])

        assert data["speakerMetadata"]["speakerName"] == ["Ann"]
        first = data["turns"][0]
        assert first["text"] == "gdp grew"
        assert first["lookup"]["lookupTerm"] == ["CPI"]
        assert list(first)[-2:] == ["error", "lookup"]


def test_merged_turn_has():
    merged = MergedTurn(turn_id=1, annotations={"error": ErrorEvent(turn_id=1)})
    assert merged.has("error")
    assert not merged.has("lookup")
