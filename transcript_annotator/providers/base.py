"""Provider protocols for per-turn and per-window enrichment.

Every provider is an async callable that returns a JSON-like mapping, or
None when it has nothing to report. Providers may raise; the orchestrator
treats any exception or timeout as "no event" for that field.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from ..models import Turn

ProviderResult = Mapping[str, Any] | None


@runtime_checkable
class LookupProvider(Protocol):
    """Explains technical terms, organisations and people mentioned in a turn."""

    async def lookup(self, turn: Turn, ignore_list: Sequence[str]) -> ProviderResult:
        """
        Args:
            turn: The turn to analyse.
            ignore_list: Cache keys of terms already explained this session.

        Returns:
            ``{lookupTerm[], lookupType[], lookupLink[], lookupExplanation[]}``.
        """
        ...


@runtime_checkable
class ErrorProvider(Protocol):
    """Flags likely factual errors in a turn."""

    async def detect(
        self,
        turn: Turn,
        context: Sequence[Turn],
        market_context: Mapping[str, Any] | None = None,
    ) -> ProviderResult:
        """
        Args:
            turn: The turn to check.
            context: Turns immediately preceding ``turn``, oldest first.
            market_context: Session market snapshot, when one was supplied.

        Returns:
            ``{errorMatch[], errorExplanation[], errorConfidence[]}``.
        """
        ...


@runtime_checkable
class FollowupProvider(Protocol):
    """Suggests follow-up questions for a turn."""

    async def followup(self, turn: Turn) -> ProviderResult: ...


@runtime_checkable
class SpeakerIdentityProvider(Protocol):
    """Names speakers and assigns conversation roles over a window of turns."""

    async def identify(self, turns: Sequence[Turn]) -> ProviderResult:
        """Return ``{speakerName[], speakerRole[]}`` indexed by speaker ordinal."""
        ...


@runtime_checkable
class TickerProvider(Protocol):
    """Extracts publicly traded companies and their tickers from a turn."""

    async def extract(self, turn: Turn) -> ProviderResult: ...


@runtime_checkable
class ResponseProvider(Protocol):
    """Scores how directly a guest answered the preceding question."""

    async def assess(
        self,
        question_text: str,
        answer_text: str,
        interviewer_name: str,
        guest_name: str,
    ) -> ProviderResult:
        """Return ``{responseSummation, responseScore}`` with the score in [0, 1]."""
        ...


@runtime_checkable
class FinancialProvider(Protocol):
    """Resolves financial entities found by the lookup provider to market data."""

    async def enrich(self, entities: Sequence[Mapping[str, str]]) -> ProviderResult:
        """
        Args:
            entities: ``{"type", "term"}`` pairs of COMPANY, TICKER or
                COMMODITY lookups.

        Returns:
            Market data keyed by canonical name (or by term when unresolved).
        """
        ...


@dataclass(slots=True)
class EnrichmentProviders:
    """One provider per annotation field.

    ``followup``, ``ticker`` and ``response`` are optional; a None provider
    disables that field. ``financial`` is optional and extends lookup results.
    """

    lookup: LookupProvider
    error: ErrorProvider
    speaker_identity: SpeakerIdentityProvider
    followup: FollowupProvider | None = None
    ticker: TickerProvider | None = None
    response: ResponseProvider | None = None
    financial: FinancialProvider | None = None


__all__ = [
    "EnrichmentProviders",
    "ErrorProvider",
    "FinancialProvider",
    "FollowupProvider",
    "LookupProvider",
    "ProviderResult",
    "ResponseProvider",
    "SpeakerIdentityProvider",
    "TickerProvider",
]
