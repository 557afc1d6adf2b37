"""
Enrichment orchestration for segmented turns.

The orchestrator fans every new turn out to the per-turn providers (lookup,
error, follow-up, ticker), runs the two speaker-identity passes at their
turn-count checkpoints, and dispatches response assessments for turns whose
speaker resolves to a Guest. Financial entities in a lookup result are sent
on to the financial provider, and the lookup is re-emitted with the market
data attached. Every provider call runs as its own asyncio
task with a timeout; nothing blocks the caller except drain().

Results are normalised into AnnotationEvents and handed to the session's
sink. A result that arrives after its session was stopped or replaced is
dropped before it touches any cache or reaches the sink.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable, Coroutine, Iterable, Mapping
from functools import partial
from typing import Any

from .config import AnnotatorConfig
from .events import (
    ERROR,
    FOLLOWUP,
    LOOKUP,
    RESPONSE,
    TICKER,
    AnnotationEvent,
    LookupEvent,
    SpeakerMetadataEvent,
    TickerEvent,
    event_from_payload,
)
from .models import Turn
from .providers.base import EnrichmentProviders
from .providers.financial import financial_entities
from .role_inference import GUEST
from .session import SessionState, SessionToken
from .speaker_resolver import SpeakerResolver, is_valid_name

logger = logging.getLogger(__name__)

EventSink = Callable[[AnnotationEvent], None]
ProviderCall = Callable[[], Awaitable[Any]]

INITIAL_PASS = "initial"
REFINEMENT_PASS = "refinement"

# Dispatch key for the financial follow-on of a lookup result
FINANCIAL = "financial"


class EnrichmentOrchestrator:
    """
    Dispatches provider calls for one session at a time.

    Must be used from inside a running event loop: submit_turns() schedules
    tasks with asyncio.create_task().

    Example:
        >>> orchestrator = EnrichmentOrchestrator(providers)  # doctest: +SKIP
        >>> orchestrator.start_session(unifier.apply)  # doctest: +SKIP
        >>> orchestrator.submit_turns(turns)  # doctest: +SKIP
        >>> await orchestrator.drain()  # doctest: +SKIP
    """

    def __init__(
        self,
        providers: EnrichmentProviders,
        config: AnnotatorConfig | None = None,
        resolver: SpeakerResolver | None = None,
    ) -> None:
        self.providers = providers
        self.config = config or AnnotatorConfig()
        self.resolver = resolver or SpeakerResolver(
            short_turn_words=self.config.short_turn_words,
            role_config=self.config.role_inference_config(),
        )
        self._state: SessionState | None = None
        self._sink: EventSink | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState | None:
        return self._state

    @property
    def token(self) -> SessionToken | None:
        return self._state.token if self._state is not None else None

    @property
    def active(self) -> bool:
        return self._state is not None

    @property
    def pending(self) -> int:
        """Number of provider calls that have not settled yet."""
        return len(self._tasks)

    def start_session(
        self, sink: EventSink, market_context: Mapping[str, Any] | None = None
    ) -> SessionToken:
        """Begin a new session, invalidating any previous one.

        Args:
            sink: Receives every event of the session.
            market_context: Optional market snapshot passed to the error provider.
        """
        if self._state is not None:
            logger.info(
                "Replacing session %d with a new session", self._state.token.generation
            )
        token = SessionToken.issue()
        self._state = SessionState(token=token, market_context=market_context)
        self._sink = sink
        logger.info("Started annotation session %d", token.generation)
        return token

    def stop(self) -> None:
        """Invalidate the current session. In-flight calls settle and are discarded."""
        if self._state is None:
            return
        logger.info(
            "Stopped annotation session %d (%d calls in flight)",
            self._state.token.generation,
            len(self._tasks),
        )
        self._state = None
        self._sink = None

    async def drain(self) -> None:
        """Wait for every outstanding provider call, including follow-on dispatches."""
        while self._tasks:
            results = await asyncio.gather(*list(self._tasks), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error("Annotation task failed: %s", result, exc_info=result)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def submit_turns(self, turns: Iterable[Turn]) -> None:
        """
        Register turns with the current session and dispatch their enrichment.

        Each (turn id, field) pair is dispatched at most once per session, so
        resubmitting a turn is a no-op for fields already sent.
        """
        state = self._state
        if state is None:
            logger.warning("submit_turns called without an active session; ignoring")
            return

        batch = list(turns)
        for turn in batch:
            state.turns.setdefault(turn.id, turn)

        for turn in batch:
            self._dispatch_turn(state, state.turns[turn.id])

        self._dispatch_responses(state)

    def _dispatch_turn(self, state: SessionState, turn: Turn) -> None:
        if not isinstance(turn.text, str) or not turn.text.strip():
            logger.warning("Rejecting turn %d with blank text", turn.id)
            return

        token = state.token
        providers = self.providers

        if state.claim(turn.id, LOOKUP):
            ignore_list = sorted(state.lookup_ignore)
            self._spawn(
                token, LOOKUP, turn.id, lambda: providers.lookup.lookup(turn, ignore_list)
            )

        if state.claim(turn.id, ERROR):
            context = self._error_context(state, turn)
            market_context = state.market_context
            self._spawn(
                token,
                ERROR,
                turn.id,
                lambda: providers.error.detect(turn, context, market_context),
            )

        if providers.followup is not None:
            if turn.word_count < self.config.followup_min_words:
                logger.debug(
                    "Skipping followup for turn %d (%d words)", turn.id, turn.word_count
                )
            elif state.claim(turn.id, FOLLOWUP):
                followup = providers.followup
                self._spawn(token, FOLLOWUP, turn.id, lambda: followup.followup(turn))

        ticker = providers.ticker
        if ticker is not None and turn.id not in state.ticker_processed:
            if state.claim(turn.id, TICKER):
                self._spawn(token, TICKER, turn.id, lambda: ticker.extract(turn))

        if turn.id not in state.fanned_out:
            state.fanned_out.add(turn.id)
            self._check_checkpoints(state)

    def _error_context(self, state: SessionState, turn: Turn) -> list[Turn]:
        n = self.config.error_context_turns
        if n == 0:
            return []
        preceding = [state.turns[i] for i in sorted(state.turns) if i < turn.id]
        return preceding[-n:]

    def _check_checkpoints(self, state: SessionState) -> None:
        count = len(state.fanned_out)
        cfg = self.config

        if count >= cfg.initial_checkpoint and INITIAL_PASS not in state.fired_checkpoints:
            state.fired_checkpoints.add(INITIAL_PASS)
            self._start_speaker_pass(state, INITIAL_PASS, cfg.initial_window)

        if count >= cfg.refinement_checkpoint and REFINEMENT_PASS not in state.fired_checkpoints:
            # Marked fired before the window check: a session that is too
            # short at this point never gets a refinement pass.
            state.fired_checkpoints.add(REFINEMENT_PASS)
            if len(state.turns) > cfg.refinement_min_turns:
                self._start_speaker_pass(state, REFINEMENT_PASS, cfg.refinement_window)
            else:
                logger.info(
                    "Skipping refinement pass: %d turns known, need more than %d",
                    len(state.turns),
                    cfg.refinement_min_turns,
                )

    def _start_speaker_pass(self, state: SessionState, name: str, window: int) -> None:
        turns = state.known_turns()[:window]
        logger.info("Running %s speaker pass over %d turns", name, len(turns))
        self._track(self._run_speaker_pass(state.token, name, turns))

    def _dispatch_responses(self, state: SessionState) -> None:
        provider = self.providers.response
        metadata = state.speaker_metadata
        if provider is None or metadata is None:
            return

        known = state.known_turns()
        for index, turn in enumerate(known):
            if index == 0:
                continue
            role = metadata.role_for(turn.speaker)
            if role.lower() != GUEST.lower():
                continue
            if not turn.text.strip():
                continue
            if not state.claim(turn.id, RESPONSE):
                continue

            question = known[index - 1]
            interviewer_name = metadata.name_for(question.speaker)
            guest_name = metadata.name_for(turn.speaker)
            args = (
                question.text,
                turn.text,
                interviewer_name if is_valid_name(interviewer_name) else "Interviewer",
                guest_name if is_valid_name(guest_name) else "Guest",
            )
            self._spawn(state.token, RESPONSE, turn.id, partial(provider.assess, *args))

    def _dispatch_financial(self, state: SessionState, lookup: LookupEvent) -> None:
        provider = self.providers.financial
        if provider is None or lookup.turn_id is None:
            return
        entities = financial_entities(lookup.terms, lookup.types)
        if not entities or not state.claim(lookup.turn_id, FINANCIAL):
            return
        logger.debug(
            "Dispatching financial enrichment for turn %d (%d entities)",
            lookup.turn_id,
            len(entities),
        )
        self._track(
            self._run_financial(state.token, lookup, partial(provider.enrich, entities))
        )

    # ------------------------------------------------------------------
    # Task handling
    # ------------------------------------------------------------------

    def _spawn(
        self, token: SessionToken, field_key: str, turn_id: int, call: ProviderCall
    ) -> None:
        logger.debug("Dispatching %s for turn %d", field_key, turn_id)
        self._track(self._run_field(token, field_key, turn_id, call))

    def _track(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _current(self, token: SessionToken) -> SessionState | None:
        """Return the live session state if ``token`` still owns it."""
        state = self._state
        if state is None or state.token != token:
            return None
        return state

    async def _call(self, label: str, target: str, call: ProviderCall) -> Any:
        """Run a provider call with the configured timeout. Failures yield None."""
        try:
            return await asyncio.wait_for(call(), timeout=self.config.provider_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "%s provider timed out for %s after %.1fs",
                label,
                target,
                self.config.provider_timeout,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("%s provider failed for %s: %s", label, target, exc, exc_info=True)
        return None

    def _emit(self, event: AnnotationEvent) -> None:
        if self._sink is not None:
            self._sink(event)

    async def _run_field(
        self, token: SessionToken, field_key: str, turn_id: int, call: ProviderCall
    ) -> None:
        payload = await self._call(field_key, f"turn {turn_id}", call)

        state = self._current(token)
        if state is None:
            logger.debug(
                "Discarding %s result for turn %d from stale session %d",
                field_key,
                turn_id,
                token.generation,
            )
            return
        if payload is None:
            return

        event = event_from_payload(field_key, turn_id, payload)
        if event is None:
            logger.warning("Malformed %s response for turn %d; dropping", field_key, turn_id)
            return

        if isinstance(event, LookupEvent):
            state.lookup_ignore.update(event.cache_keys())
        elif isinstance(event, TickerEvent) and any(
            isinstance(name, str) and name.strip() for name in event.company_names
        ):
            state.ticker_processed.add(turn_id)

        self._emit(event)

        if isinstance(event, LookupEvent):
            self._dispatch_financial(state, event)

    async def _run_financial(
        self, token: SessionToken, lookup: LookupEvent, call: ProviderCall
    ) -> None:
        payload = await self._call(FINANCIAL, f"turn {lookup.turn_id}", call)

        if self._current(token) is None:
            logger.debug(
                "Discarding financial result for turn %d from stale session %d",
                lookup.turn_id,
                token.generation,
            )
            return
        if not isinstance(payload, Mapping) or not payload:
            return

        self._emit(dataclasses.replace(lookup, financial=dict(payload)))

    async def _run_speaker_pass(
        self, token: SessionToken, name: str, turns: list[Turn]
    ) -> None:
        payload = await self._call(
            "speaker identity",
            f"{name} pass",
            partial(self.providers.speaker_identity.identify, turns),
        )

        state = self._current(token)
        if state is None:
            logger.debug(
                "Discarding %s speaker pass from stale session %d", name, token.generation
            )
            return

        incoming = self.resolver.resolve_pass(turns, payload)
        if incoming is None:
            return

        state.speaker_metadata = self.resolver.merge(state.speaker_metadata, incoming)
        self._apply_corrections(state)
        logger.info(
            "Merged %s speaker pass: names=%s roles=%s",
            name,
            state.speaker_metadata.speaker_names,
            state.speaker_metadata.speaker_roles,
        )
        self._emit(SpeakerMetadataEvent(metadata=state.speaker_metadata.copy()))
        self._dispatch_responses(state)

    def _apply_corrections(self, state: SessionState) -> None:
        assert state.speaker_metadata is not None
        for turn_id, speaker in state.speaker_metadata.speaker_corrections.items():
            turn = state.turns.get(turn_id)
            if turn is not None and turn.apply_correction(speaker):
                logger.debug(
                    "Corrected speaker of turn %d: %d -> %d",
                    turn_id,
                    turn.original_speaker,
                    speaker,
                )


__all__ = [
    "FINANCIAL",
    "INITIAL_PASS",
    "REFINEMENT_PASS",
    "EnrichmentOrchestrator",
    "EventSink",
]
