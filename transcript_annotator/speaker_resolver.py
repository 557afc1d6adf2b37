"""Speaker identity and role resolution across multiple provider passes.

The speaker identity provider is asked twice per session, over growing
windows of the conversation. Each answer is turned into a SpeakerMetadata
pass (provider names/roles, heuristic role fill-in, talk-time stats and
diarization corrections) and folded into the session record:

| Field          | Merge rule                                                     |
|----------------|----------------------------------------------------------------|
| role[i]        | replaced by any resolved (non-empty, non-"Undefined") role     |
| name[i]        | replaced by a valid name if the slot is invalid or it is longer|
| stats[i]       | summed                                                         |
| corrections[t] | first writer wins                                              |
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

from .models import UNDEFINED_ROLE, SpeakerMetadata, Turn
from .role_inference import RoleInferenceConfig, RoleInferrer
from .speaker_stats import (
    DEFAULT_SHORT_TURN_WORDS,
    build_speaker_stats,
    compute_speaker_corrections,
)

logger = logging.getLogger(__name__)

# Labels a provider uses when it could not identify a person
GENERIC_NAMES = frozenset(
    {
        "undefined",
        "unknown",
        "none",
        "null",
        "n/a",
        "guest",
        "host",
        "interviewer",
        "participant",
        "announcer",
        "narrator",
        "voiceover",
    }
)

_SPEAKER_PLACEHOLDER = re.compile(r"^sp\d+$")


def is_valid_name(name: Any) -> bool:
    """True for a real person's name, False for placeholders like "Speaker 1" or "sp0"."""
    if not isinstance(name, str):
        return False
    n = name.strip().lower()
    if not n:
        return False
    if n.startswith("speaker") or n.startswith("sp "):
        return False
    if _SPEAKER_PLACEHOLDER.match(n):
        return False
    return n not in GENERIC_NAMES


def is_resolved_role(role: Any) -> bool:
    return isinstance(role, str) and bool(role.strip()) and role.strip() != UNDEFINED_ROLE


def normalize_array(values: Any, length: int, fill: Any = None) -> list[Any]:
    """Pad with ``fill`` or truncate so the result has exactly ``length`` items."""
    out = list(values) if isinstance(values, list) else []
    out.extend([fill] * (length - len(out)))
    return out[:length]


def max_speaker_ordinal(turns: Sequence[Turn]) -> int:
    """Highest speaker ordinal among ``turns``, or -1 for an empty window."""
    return max((t.speaker for t in turns), default=-1)


def _coerce_name(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _coerce_role(value: Any) -> str:
    # Some model answers wrap a single role in a list
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, str) and value.strip():
        return value.strip()
    return UNDEFINED_ROLE


class SpeakerResolver:
    """Builds and merges SpeakerMetadata passes.

    The resolver holds no session state; the orchestrator keeps the merged
    record for the current session and passes it back into merge().
    """

    def __init__(
        self,
        short_turn_words: int = DEFAULT_SHORT_TURN_WORDS,
        role_config: RoleInferenceConfig | None = None,
    ) -> None:
        self.short_turn_words = short_turn_words
        self._role_inferrer = RoleInferrer(role_config)

    def resolve_pass(
        self, turns: Sequence[Turn], payload: Mapping[str, Any] | None
    ) -> SpeakerMetadata | None:
        """
        Build one pass of speaker metadata over a window of turns.

        Args:
            turns: The window the provider was asked about, in id order.
            payload: Provider body with ``speakerName[]``/``speakerRole[]``,
                or None when the provider call failed.

        Returns:
            SpeakerMetadata sized to the window's max speaker ordinal + 1,
            or None for an empty window.
        """
        max_ordinal = max_speaker_ordinal(turns)
        if max_ordinal < 0:
            return None
        length = max_ordinal + 1

        if not isinstance(payload, Mapping):
            payload = {}

        names = [_coerce_name(n) for n in normalize_array(payload.get("speakerName"), length)]
        roles = [
            _coerce_role(r)
            for r in normalize_array(payload.get("speakerRole"), length, UNDEFINED_ROLE)
        ]

        inferred = self._role_inferrer.infer_roles(turns, length)
        for i, role in enumerate(roles):
            if not is_resolved_role(role):
                roles[i] = inferred[i]

        corrections = compute_speaker_corrections(turns, self.short_turn_words)
        if corrections:
            logger.debug("Sandwich corrections in window of %d turns: %s", len(turns), corrections)

        return SpeakerMetadata(
            speaker_names=names,
            speaker_roles=roles,
            speaker_stats=build_speaker_stats(turns),
            speaker_corrections=corrections,
        )

    @staticmethod
    def merge(existing: SpeakerMetadata | None, incoming: SpeakerMetadata) -> SpeakerMetadata:
        """Fold ``incoming`` into ``existing`` and return a new record."""
        if existing is None:
            return incoming.copy()

        length = max(existing.num_speakers, incoming.num_speakers)
        merged = existing.resized(length)

        for i, role in enumerate(incoming.speaker_roles):
            if is_resolved_role(role):
                merged.speaker_roles[i] = role

        for i, name in enumerate(incoming.speaker_names):
            if not is_valid_name(name):
                continue
            current = merged.speaker_names[i]
            if not is_valid_name(current) or len(name) > len(current):
                merged.speaker_names[i] = name

        for speaker, stats in incoming.speaker_stats.items():
            merged.speaker_stats[speaker] = merged.speaker_stats.get(speaker, type(stats)()) + stats

        for turn_id, speaker in incoming.speaker_corrections.items():
            merged.speaker_corrections.setdefault(turn_id, speaker)

        return merged
