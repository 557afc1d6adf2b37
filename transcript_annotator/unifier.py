"""
Result unification for annotation events.

The unifier is the single reducer for everything the orchestrator emits.
It keeps one slot per (turn id, field key) where the last applied event
wins, plus id-less global records such as the speaker metadata snapshot.
Fields for different keys never overwrite each other.

Every applied event is appended to a retained log, so the merged state can
be rebuilt at any time with ResultUnifier.replay(log).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from .events import SPEAKER_METADATA, AnnotationEvent, SpeakerMetadataEvent
from .models import SpeakerMetadata, Turn

logger = logging.getLogger(__name__)


@dataclass
class MergedTurn:
    """A turn joined with every annotation received for it so far."""

    turn_id: int
    turn: Turn | None = None
    annotations: dict[str, AnnotationEvent] = field(default_factory=dict)

    def has(self, field_key: str) -> bool:
        return field_key in self.annotations

    def to_dict(self) -> dict[str, Any]:
        if self.turn is not None:
            data = self.turn.to_dict()
        else:
            data = {"id": self.turn_id}
        for key in sorted(self.annotations):
            data[key] = self.annotations[key].payload_dict()
        return data


class ResultUnifier:
    """
    Reduces AnnotationEvents into per-turn records.

    Example:
        >>> unifier = ResultUnifier()
        >>> unifier.apply(FollowupEvent(turn_id=3, questions=("Why?",)))  # doctest: +SKIP
        >>> [m.turn_id for m in unifier.project([])]  # doctest: +SKIP
        [3]
    """

    def __init__(self) -> None:
        self._fields: dict[int, dict[str, AnnotationEvent]] = {}
        self._globals: dict[str, AnnotationEvent] = {}
        self._log: list[AnnotationEvent] = []

    def __len__(self) -> int:
        return len(self._log)

    @property
    def log(self) -> tuple[AnnotationEvent, ...]:
        """Every applied event in application order."""
        return tuple(self._log)

    @property
    def speaker_metadata(self) -> SpeakerMetadata | None:
        event = self._globals.get(SPEAKER_METADATA)
        if isinstance(event, SpeakerMetadataEvent):
            return event.metadata
        return None

    def apply(self, event: AnnotationEvent) -> None:
        """Record ``event``; the latest event for its (turn id, field key) wins."""
        if event.turn_id is None:
            self._globals[event.field_key] = event
        else:
            self._fields.setdefault(event.turn_id, {})[event.field_key] = event
        self._log.append(event)
        logger.debug("Applied %s event for turn %s", event.field_key, event.turn_id)

    @classmethod
    def replay(cls, log: Iterable[AnnotationEvent]) -> ResultUnifier:
        """Build a unifier by applying ``log`` in order."""
        unifier = cls()
        for event in log:
            unifier.apply(event)
        return unifier

    def reset(self) -> None:
        self._fields.clear()
        self._globals.clear()
        self._log.clear()

    def state(self) -> dict[str, Any]:
        """Comparable snapshot of the merged state (excluding the log)."""
        return {
            "global": dict(self._globals),
            "turns": {turn_id: dict(fields) for turn_id, fields in self._fields.items()},
        }

    def fields_for(self, turn_id: int) -> dict[str, AnnotationEvent]:
        return dict(self._fields.get(turn_id, {}))

    def project(
        self, turns: Iterable[Turn], include_unannotated: bool = False
    ) -> list[MergedTurn]:
        """
        Join received annotations with their turns.

        By default only turn ids with at least one event are returned, in id
        order. A turn id that has events but is missing from ``turns`` is
        returned with ``turn=None``.

        Args:
            turns: Known turns.
            include_unannotated: Also return turns that have no events yet.
        """
        by_id = {turn.id: turn for turn in turns}
        ids = set(self._fields)
        if include_unannotated:
            ids.update(by_id)
        return [
            MergedTurn(
                turn_id=turn_id,
                turn=by_id.get(turn_id),
                annotations=dict(self._fields.get(turn_id, {})),
            )
            for turn_id in sorted(ids)
        ]

    def to_dict(self, turns: Iterable[Turn], include_unannotated: bool = False) -> dict[str, Any]:
        """JSON-ready output: speaker metadata plus the projected turns."""
        metadata = self.speaker_metadata
        projected = self.project(turns, include_unannotated=include_unannotated)
        return {
            "speakerMetadata": metadata.to_dict() if metadata is not None else None,
            "turns": [merged.to_dict() for merged in projected],
        }


__all__ = ["MergedTurn", "ResultUnifier"]
