"""Annotation events emitted by providers and reduced by the unifier.

Every provider response is normalised into exactly one of the variants below
before it leaves the orchestrator. Each variant is keyed by its field name
(``field_key``) and has a fixed parallel-array shape:

- ``lookup``:          lookupTerm[] / lookupType[] / lookupLink[] / lookupExplanation[]
                       (+ canonicalName[] / confidence[], + financial{})
- ``error``:           errorMatch[] / errorExplanation[] / errorConfidence[]
- ``followup``:        followupQuestion[] / followupConfidence[]
- ``ticker``:          companyName[] / ticker[] / exchange[]
- ``response``:        responseSummation / responseScore
- ``speakerMetadata``: a SpeakerMetadata snapshot (no turn id)

The first array of a variant is its primary array; the others are padded
with None or truncated to match it. A body that is not a mapping, or whose
primary array is not a list, is malformed and produces no event.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal

from .models import SpeakerMetadata

FieldKey = Literal["lookup", "error", "followup", "ticker", "speakerMetadata", "response"]

LOOKUP: FieldKey = "lookup"
ERROR: FieldKey = "error"
FOLLOWUP: FieldKey = "followup"
TICKER: FieldKey = "ticker"
SPEAKER_METADATA: FieldKey = "speakerMetadata"
RESPONSE: FieldKey = "response"


def _parallel_arrays(
    payload: Any, keys: tuple[str, ...]
) -> list[tuple[Any, ...]] | None:
    """Extract parallel arrays from a provider body, aligned to the first key."""
    if not isinstance(payload, Mapping):
        return None

    primary = payload.get(keys[0])
    if primary is None:
        primary = []
    elif not isinstance(primary, list):
        return None

    length = len(primary)
    columns: list[tuple[Any, ...]] = [tuple(primary)]
    for key in keys[1:]:
        column = payload.get(key)
        values = list(column[:length]) if isinstance(column, list) else []
        values.extend([None] * (length - len(values)))
        columns.append(tuple(values))
    return columns


@dataclass(frozen=True)
class AnnotationEvent:
    """Base class for all annotation events."""

    field_key: ClassVar[FieldKey]

    turn_id: int | None

    def payload_dict(self) -> dict[str, Any]:
        raise NotImplementedError

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field_key, "turnId": self.turn_id, **self.payload_dict()}


def _financial(payload: Mapping[str, Any]) -> dict[str, Any] | None:
    value = payload.get("financial")
    if isinstance(value, Mapping) and value:
        return dict(value)
    return None


@dataclass(frozen=True)
class LookupEvent(AnnotationEvent):
    field_key: ClassVar[FieldKey] = LOOKUP

    terms: tuple[str, ...] = ()
    types: tuple[str | None, ...] = ()
    links: tuple[str | None, ...] = ()
    explanations: tuple[str | None, ...] = ()
    canonical_names: tuple[str | None, ...] = ()
    confidences: tuple[float | None, ...] = ()
    financial: Mapping[str, Any] | None = None

    KEYS: ClassVar[tuple[str, ...]] = (
        "lookupTerm",
        "lookupType",
        "lookupLink",
        "lookupExplanation",
        "canonicalName",
        "confidence",
    )

    @classmethod
    def from_payload(cls, turn_id: int, payload: Any) -> LookupEvent | None:
        columns = _parallel_arrays(payload, cls.KEYS)
        if columns is None:
            return None
        terms, types, links, explanations, canonical_names, confidences = columns
        return cls(
            turn_id=turn_id,
            terms=terms,
            types=types,
            links=links,
            explanations=explanations,
            canonical_names=canonical_names,
            confidences=confidences,
            financial=_financial(payload),
        )

    def cache_keys(self) -> list[str]:
        """Keys for the session ignore list, namespaced by entity type when known."""
        keys = []
        for term, term_type in zip(self.terms, self.types):
            if not isinstance(term, str) or not term.strip():
                continue
            normalized = term.strip().lower()
            if isinstance(term_type, str) and term_type.strip():
                keys.append(f"{term_type.strip().upper()}:{normalized}")
            else:
                keys.append(normalized)
        return keys

    def payload_dict(self) -> dict[str, Any]:
        columns = (
            self.terms,
            self.types,
            self.links,
            self.explanations,
            self.canonical_names,
            self.confidences,
        )
        data: dict[str, Any] = dict(zip(self.KEYS, map(list, columns)))
        if self.financial is not None:
            data["financial"] = dict(self.financial)
        return data


@dataclass(frozen=True)
class ErrorEvent(AnnotationEvent):
    field_key: ClassVar[FieldKey] = ERROR

    matches: tuple[str, ...] = ()
    explanations: tuple[str | None, ...] = ()
    confidences: tuple[float | None, ...] = ()

    KEYS: ClassVar[tuple[str, ...]] = ("errorMatch", "errorExplanation", "errorConfidence")

    @classmethod
    def from_payload(cls, turn_id: int, payload: Any) -> ErrorEvent | None:
        columns = _parallel_arrays(payload, cls.KEYS)
        if columns is None:
            return None
        matches, explanations, confidences = columns
        return cls(
            turn_id=turn_id,
            matches=matches,
            explanations=explanations,
            confidences=confidences,
        )

    def payload_dict(self) -> dict[str, Any]:
        return dict(zip(self.KEYS, map(list, (self.matches, self.explanations, self.confidences))))


@dataclass(frozen=True)
class FollowupEvent(AnnotationEvent):
    field_key: ClassVar[FieldKey] = FOLLOWUP

    questions: tuple[str, ...] = ()
    confidences: tuple[float | None, ...] = ()

    KEYS: ClassVar[tuple[str, ...]] = ("followupQuestion", "followupConfidence")

    @classmethod
    def from_payload(cls, turn_id: int, payload: Any) -> FollowupEvent | None:
        columns = _parallel_arrays(payload, cls.KEYS)
        if columns is None:
            return None
        questions, confidences = columns
        return cls(turn_id=turn_id, questions=questions, confidences=confidences)

    def payload_dict(self) -> dict[str, Any]:
        return dict(zip(self.KEYS, map(list, (self.questions, self.confidences))))


@dataclass(frozen=True)
class TickerEvent(AnnotationEvent):
    field_key: ClassVar[FieldKey] = TICKER

    company_names: tuple[str, ...] = ()
    tickers: tuple[str | None, ...] = ()
    exchanges: tuple[str | None, ...] = ()

    KEYS: ClassVar[tuple[str, ...]] = ("companyName", "ticker", "exchange")

    @classmethod
    def from_payload(cls, turn_id: int, payload: Any) -> TickerEvent | None:
        columns = _parallel_arrays(payload, cls.KEYS)
        if columns is None:
            return None
        company_names, tickers, exchanges = columns
        return cls(
            turn_id=turn_id,
            company_names=company_names,
            tickers=tickers,
            exchanges=exchanges,
        )

    def payload_dict(self) -> dict[str, Any]:
        return dict(zip(self.KEYS, map(list, (self.company_names, self.tickers, self.exchanges))))


@dataclass(frozen=True)
class ResponseEvent(AnnotationEvent):
    field_key: ClassVar[FieldKey] = RESPONSE

    summation: str | None = None
    score: float = 0.0

    @classmethod
    def from_payload(cls, turn_id: int, payload: Any) -> ResponseEvent | None:
        if not isinstance(payload, Mapping):
            return None
        score = payload.get("responseScore")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            return None
        summation = payload.get("responseSummation")
        return cls(
            turn_id=turn_id,
            summation=summation if isinstance(summation, str) else None,
            score=min(1.0, max(0.0, float(score))),
        )

    def payload_dict(self) -> dict[str, Any]:
        return {"responseSummation": self.summation, "responseScore": self.score}


@dataclass(frozen=True)
class SpeakerMetadataEvent(AnnotationEvent):
    field_key: ClassVar[FieldKey] = SPEAKER_METADATA

    turn_id: int | None = None
    metadata: SpeakerMetadata = field(default_factory=SpeakerMetadata)

    def payload_dict(self) -> dict[str, Any]:
        return self.metadata.to_dict()


TURN_EVENT_TYPES: dict[str, type[AnnotationEvent]] = {
    LOOKUP: LookupEvent,
    ERROR: ErrorEvent,
    FOLLOWUP: FollowupEvent,
    TICKER: TickerEvent,
    RESPONSE: ResponseEvent,
}


def event_from_payload(field_key: str, turn_id: int, payload: Any) -> AnnotationEvent | None:
    """Build the event variant for ``field_key`` from a raw provider body.

    Returns None when the body is absent or malformed.
    """
    event_type = TURN_EVENT_TYPES.get(field_key)
    if event_type is None:
        raise ValueError(f"Unknown turn field key: {field_key!r}")
    return event_type.from_payload(turn_id, payload)  # type: ignore[attr-defined]
