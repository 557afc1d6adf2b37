"""
Pytest configuration and fixtures for tests.

This module provides:
- FakeProvider, a scripted stand-in for every enrichment provider protocol
- Turn and word factories
- A provider bundle fixture wired to fresh fakes
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any

import pytest

# Ensure the project package is importable when running pytest as an installed script
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from transcript_annotator.models import Turn  # noqa: E402
from transcript_annotator.providers.base import EnrichmentProviders  # noqa: E402


class FakeProvider:
    """
    Scripted provider implementing every provider protocol method.

    Args:
        result: Value returned by each call, or a callable receiving the call
            arguments and returning the value.
        gate: Optional asyncio.Event every call waits on before answering.
        error: Optional exception raised instead of answering.
    """

    def __init__(
        self,
        result: Any = None,
        gate: asyncio.Event | None = None,
        error: Exception | None = None,
    ) -> None:
        self.result = result
        self.gate = gate
        self.error = error
        self.calls: list[tuple[Any, ...]] = []

    async def _respond(self, *args: Any) -> Any:
        self.calls.append(args)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if callable(self.result):
            return self.result(*args)
        return self.result

    async def lookup(self, turn, ignore_list):
        return await self._respond(turn, list(ignore_list))

    async def detect(self, turn, context, market_context=None):
        return await self._respond(turn, list(context), market_context)

    async def followup(self, turn):
        return await self._respond(turn)

    async def identify(self, turns):
        return await self._respond(list(turns))

    async def extract(self, turn):
        return await self._respond(turn)

    async def assess(self, question_text, answer_text, interviewer_name, guest_name):
        return await self._respond(question_text, answer_text, interviewer_name, guest_name)

    async def enrich(self, entities):
        return await self._respond([dict(e) for e in entities])

    @property
    def turn_ids(self) -> list[int]:
        """Turn ids of per-turn calls, in dispatch order."""
        return [args[0].id for args in self.calls]


def make_turn(
    turn_id: int,
    speaker: int,
    text: str = "this is a reasonably long sentence about markets",
    start: float | None = None,
) -> Turn:
    start = float(turn_id) if start is None else start
    return Turn(
        id=turn_id,
        speaker=speaker,
        text=text,
        start_beginning=start,
        start_end=start + 0.5,
        word_count=len(text.split()),
    )


def make_words(runs: list[tuple[int, str]], step: float = 0.5) -> list[dict[str, Any]]:
    """Expand (speaker, text) runs into word dicts with increasing start offsets."""
    words = []
    t = 0.0
    for speaker, text in runs:
        for token in text.split():
            words.append({"text": token, "speaker": speaker, "start": t})
            t += step
    return words


@pytest.fixture
def fakes() -> dict[str, FakeProvider]:
    """One FakeProvider per field, answering with empty-but-valid bodies."""
    return {
        "lookup": FakeProvider({"lookupTerm": [], "lookupType": []}),
        "error": FakeProvider({"errorMatch": None}),
        "speaker_identity": FakeProvider(None),
        "followup": FakeProvider({"followupQuestion": ["Why?"], "followupConfidence": [0.6]}),
        "ticker": FakeProvider({"companyName": []}),
        "response": FakeProvider({"responseSummation": "Answered.", "responseScore": 0.8}),
    }


@pytest.fixture
def providers(fakes: dict[str, FakeProvider]) -> EnrichmentProviders:
    return EnrichmentProviders(**fakes)
