"""Tests for annotation event normalisation."""

from __future__ import annotations

import pytest

from transcript_annotator.events import (
    ErrorEvent,
    FollowupEvent,
    LookupEvent,
    ResponseEvent,
    SpeakerMetadataEvent,
    TickerEvent,
    event_from_payload,
)
from transcript_annotator.models import SpeakerMetadata


class TestParallelArrays:
    def test_secondary_arrays_padded_and_truncated(self):
        event = event_from_payload(
            "lookup",
            3,
            {
                "lookupTerm": ["Fed", "QE"],
                "lookupType": ["ORGANIZATION"],
                "lookupLink": ["a", "b", "c"],
            },
        )
        assert isinstance(event, LookupEvent)
        assert event.terms == ("Fed", "QE")
        assert event.types == ("ORGANIZATION", None)
        assert event.links == ("a", "b")
        assert event.explanations == (None, None)

    def test_null_primary_gives_empty_event(self):
        event = event_from_payload("error", 1, {"errorMatch": None, "errorExplanation": None})
        assert event == ErrorEvent(turn_id=1)
        assert event.payload_dict() == {
            "errorMatch": [],
            "errorExplanation": [],
            "errorConfidence": [],
        }

    @pytest.mark.parametrize(
        "payload", ["text", ["list"], {"followupQuestion": "not a list"}, 3]
    )
    def test_malformed_body_gives_no_event(self, payload):
        assert event_from_payload("followup", 0, payload) is None

    def test_ticker_event(self):
        event = event_from_payload(
            "ticker", 2, {"companyName": ["Nvidia"], "ticker": ["NVDA"], "exchange": ["NASDAQ"]}
        )
        assert event == TickerEvent(
            turn_id=2, company_names=("Nvidia",), tickers=("NVDA",), exchanges=("NASDAQ",)
        )

    def test_unknown_field_key(self):
        with pytest.raises(ValueError):
            event_from_payload("sentiment", 0, {})


class TestResponseEvent:
    def test_score_clamped(self):
        high = event_from_payload("response", 1, {"responseSummation": "ok", "responseScore": 1.7})
        low = event_from_payload("response", 1, {"responseScore": -2})
        assert high.score == 1.0
        assert low.score == 0.0
        assert low.summation is None

    @pytest.mark.parametrize("score", [None, "0.5", True])
    def test_non_numeric_score_is_malformed(self, score):
        assert event_from_payload("response", 1, {"responseScore": score}) is None


class TestLookupCacheKeys:
    def test_namespaced_by_type(self):
        event = LookupEvent(
            turn_id=0,
            terms=("  Federal Reserve ", "basis point", ""),
            types=("ORGANIZATION", None, "JARGON"),
        )
        assert event.cache_keys() == ["ORGANIZATION:federal reserve", "basis point"]

    def test_type_namespace_is_case_insensitive(self):
        lower = LookupEvent(turn_id=0, terms=("Acme",), types=("company",))
        upper = LookupEvent(turn_id=1, terms=("ACME",), types=(" COMPANY ",))
        assert lower.cache_keys() == upper.cache_keys() == ["COMPANY:acme"]

    def test_blank_type_is_not_a_namespace(self):
        event = LookupEvent(turn_id=0, terms=("yield curve",), types=("  ",))
        assert event.cache_keys() == ["yield curve"]


class TestLookupFinancial:
    def test_financial_read_from_payload(self):
        financial = {"Barclays": {"ticker": "BARC.L", "price": 2.04}}
        event = event_from_payload(
            "lookup",
            2,
            {"lookupTerm": ["Barclays"], "lookupType": ["COMPANY"], "financial": financial},
        )
        assert event.financial == financial
        assert event.payload_dict()["financial"] == financial

    @pytest.mark.parametrize("financial", [None, {}, ["Barclays"]])
    def test_absent_or_empty_financial_is_omitted(self, financial):
        event = event_from_payload(
            "lookup", 2, {"lookupTerm": ["Barclays"], "financial": financial}
        )
        assert event.financial is None
        assert "financial" not in event.payload_dict()


def test_to_dict_includes_field_and_turn():
    event = FollowupEvent(turn_id=4, questions=("Why now?",), confidences=(0.7,))
    assert event.to_dict() == {
        "field": "followup",
        "turnId": 4,
        "followupQuestion": ["Why now?"],
        "followupConfidence": [0.7],
    }


def test_speaker_metadata_event_has_no_turn():
    event = SpeakerMetadataEvent(metadata=SpeakerMetadata(["Ann"], ["Guest"]))
    assert event.turn_id is None
    assert event.to_dict()["speakerName"] == ["Ann"]


def test_response_payload_dict():
    event = ResponseEvent(turn_id=1, summation="Dodged.", score=0.1)
    assert event.payload_dict() == {"responseSummation": "Dodged.", "responseScore": 0.1}
