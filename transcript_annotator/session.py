"""Per-session state for the enrichment orchestrator.

A session is one annotation run. Starting a new session issues a new
SessionToken; results of provider calls dispatched under an older token are
discarded on arrival.
"""

from __future__ import annotations

import itertools
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .models import SpeakerMetadata, Turn

_generations = itertools.count(1)


@dataclass(frozen=True, slots=True)
class SessionToken:
    """Opaque cancellation token. Tokens compare equal only to themselves."""

    generation: int

    @classmethod
    def issue(cls) -> SessionToken:
        return cls(next(_generations))


@dataclass(slots=True)
class SessionState:
    """
    Caches and idempotency records for one session.

    Attributes:
        token: Token under which work for this session is dispatched.
        lookup_ignore: Lookup cache keys already explained in this session.
        ticker_processed: Turn ids whose ticker response named a company.
        dispatched: (turn_id, field_key) pairs already sent to a provider.
        fired_checkpoints: Speaker-identity checkpoints already triggered.
        fanned_out: Turn ids whose per-turn fan-out has run.
        turns: Known turns, indexed by turn id.
        speaker_metadata: Merged speaker record, None until the first pass.
        market_context: Market snapshot passed to the error provider, if any.
    """

    token: SessionToken
    lookup_ignore: set[str] = field(default_factory=set)
    ticker_processed: set[int] = field(default_factory=set)
    dispatched: set[tuple[int, str]] = field(default_factory=set)
    fired_checkpoints: set[str] = field(default_factory=set)
    fanned_out: set[int] = field(default_factory=set)
    turns: dict[int, Turn] = field(default_factory=dict)
    speaker_metadata: SpeakerMetadata | None = None
    market_context: Mapping[str, Any] | None = None

    def known_turns(self) -> list[Turn]:
        """Known turns in id order."""
        return [self.turns[i] for i in sorted(self.turns)]

    def claim(self, turn_id: int, field_key: str) -> bool:
        """Mark (turn_id, field_key) dispatched. False if it already was."""
        key = (turn_id, field_key)
        if key in self.dispatched:
            return False
        self.dispatched.add(key)
        return True

