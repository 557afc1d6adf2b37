"""
Annotation pipeline: segmenter, orchestrator and unifier wired together.

Words are retained for the lifetime of the pipeline. Starting a session
re-segments the retained words into fresh Turn objects, so speaker
corrections applied during one session never leak into the next.

Usage (streaming):
    >>> pipeline = AnnotationPipeline(providers)  # doctest: +SKIP
    >>> pipeline.start_session()  # doctest: +SKIP
    >>> for chunk in word_chunks:  # doctest: +SKIP
    ...     pipeline.ingest_words(chunk)
    >>> pipeline.finish()  # doctest: +SKIP
    >>> await pipeline.drain()  # doctest: +SKIP
    >>> result = pipeline.snapshot()  # doctest: +SKIP

Usage (batch):
    >>> result = await AnnotationPipeline(providers).run(words)  # doctest: +SKIP
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from .config import AnnotatorConfig
from .enrichment_orchestrator import EnrichmentOrchestrator
from .models import Turn, WordEvent
from .providers.base import EnrichmentProviders
from .session import SessionToken
from .turns import TurnSegmenter, coerce_words
from .unifier import MergedTurn, ResultUnifier

logger = logging.getLogger(__name__)


class AnnotationPipeline:
    """
    Incremental transcript annotation.

    Methods that dispatch provider calls (start_session, ingest_words,
    finish) must run inside an event loop while a session is active.
    Without an active session, words are segmented and retained but not
    enriched. ``market_context`` is handed to the error provider in every
    session.
    """

    def __init__(
        self,
        providers: EnrichmentProviders,
        config: AnnotatorConfig | None = None,
        market_context: Mapping[str, Any] | None = None,
    ) -> None:
        self.config = config or AnnotatorConfig()
        self.market_context = market_context
        self.unifier = ResultUnifier()
        self.orchestrator = EnrichmentOrchestrator(providers, self.config)
        self._words: list[WordEvent] = []
        self._segmenter = TurnSegmenter()
        self._turns: list[Turn] = []
        self._finished = False

    @property
    def turns(self) -> list[Turn]:
        """Closed turns of the current segmentation, in id order."""
        return list(self._turns)

    @property
    def words(self) -> list[WordEvent]:
        return list(self._words)

    @property
    def active(self) -> bool:
        return self.orchestrator.active

    def start_session(self) -> SessionToken:
        """
        Start a fresh annotation session over everything ingested so far.

        The previous session (if any) is invalidated, the unifier is cleared,
        and retained words are re-segmented and dispatched again.
        """
        self.unifier.reset()
        self._segmenter = TurnSegmenter()
        self._turns = self._segmenter.feed(self._words)
        if self._finished:
            self._turns.extend(self._segmenter.flush())

        token = self.orchestrator.start_session(self.unifier.apply, self.market_context)
        if self._turns:
            logger.info("Re-dispatching %d retained turns", len(self._turns))
            self.orchestrator.submit_turns(self._turns)
        return token

    def stop(self) -> None:
        """Stop the current session. Late provider results are discarded."""
        self.orchestrator.stop()

    def ingest_words(self, words: Iterable[Any]) -> list[Turn]:
        """
        Append words and dispatch enrichment for any turns they close.

        Returns:
            Turns closed by this batch.

        Raises:
            MalformedInputError: If the batch is structurally invalid. Nothing
                from an invalid batch is retained.
        """
        batch = coerce_words(words, offset=len(self._words))
        closed = self._segmenter.feed(batch)
        self._words.extend(batch)
        if batch:
            self._finished = False
        self._register(closed)
        return closed

    def finish(self) -> list[Turn]:
        """Mark the end of input and close the trailing turn."""
        closed = self._segmenter.flush()
        self._finished = True
        self._register(closed)
        return closed

    async def drain(self) -> None:
        """Wait until every dispatched provider call has settled."""
        await self.orchestrator.drain()

    def _register(self, turns: list[Turn]) -> None:
        if not turns:
            return
        self._turns.extend(turns)
        if self.orchestrator.active:
            self.orchestrator.submit_turns(turns)

    def merged_turns(self, include_unannotated: bool = False) -> list[MergedTurn]:
        return self.unifier.project(self._turns, include_unannotated=include_unannotated)

    def snapshot(self, include_unannotated: bool = True) -> dict[str, Any]:
        """JSON-ready view of the current merged state."""
        return self.unifier.to_dict(self._turns, include_unannotated=include_unannotated)

    async def run(self, words: Iterable[Any]) -> dict[str, Any]:
        """Annotate a complete word sequence in one session and return the snapshot."""
        self.start_session()
        self.ingest_words(words)
        self.finish()
        await self.drain()
        logger.info(
            "Annotated %d turns (%d events)", len(self._turns), len(self.unifier)
        )
        return self.snapshot()


__all__ = ["AnnotationPipeline"]
