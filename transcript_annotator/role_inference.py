"""Heuristic role inference for interview-style conversations.

Fills role slots that the speaker identity provider left unresolved. The
heuristic is cheap and deterministic:

- Question rate: a speaker who asks questions in a large share of turns is
  leading the conversation (Interviewer).
- Turn length: a speaker whose turns are long on average is being
  interviewed (Guest).
- Dominant talker: once an Interviewer is found, the speaker with the most
  words overall is assumed to be the Guest.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from .models import Turn

RoleType = Literal["Interviewer", "Guest", "Participant"]

INTERVIEWER: RoleType = "Interviewer"
GUEST: RoleType = "Guest"
PARTICIPANT: RoleType = "Participant"


@dataclass(slots=True)
class RoleAssignment:
    """Assignment of a role to a speaker ordinal.

    Attributes:
        speaker: The speaker ordinal.
        role: The inferred role.
        evidence: Human-readable reasons for the assignment.
    """

    speaker: int
    role: RoleType
    evidence: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"speaker": self.speaker, "role": self.role, "evidence": list(self.evidence)}


@dataclass(slots=True)
class SpeakerProfile:
    """Accumulated turn counts for one speaker."""

    turns: int = 0
    words: int = 0
    questions: int = 0

    @property
    def question_rate(self) -> float:
        return self.questions / max(1, self.turns)

    @property
    def avg_words(self) -> float:
        return self.words / max(1, self.turns)


@dataclass(slots=True)
class RoleInferenceConfig:
    """Configuration for role inference.

    Attributes:
        question_rate_threshold: Minimum fraction of turns containing "?" for Interviewer.
        guest_avg_words: Minimum average words per turn for Guest.
        min_turns: Minimum turns a speaker needs before either rule applies.
        promote_dominant_guest: Promote the top-word Participant to Guest
            when at least one Interviewer was found.
    """

    question_rate_threshold: float = 0.3
    guest_avg_words: float = 45.0
    min_turns: int = 3
    promote_dominant_guest: bool = True


class RoleInferrer:
    """Speaker role inference engine.

    Example:
        >>> inferrer = RoleInferrer()
        >>> roles = inferrer.infer_roles(turns, num_speakers=2)  # doctest: +SKIP
        >>> roles
        ['Interviewer', 'Guest']
    """

    def __init__(self, config: RoleInferenceConfig | None = None):
        self.config = config or RoleInferenceConfig()

    def build_profiles(self, turns: Sequence[Turn], num_speakers: int) -> list[SpeakerProfile]:
        """Count turns, words and question-bearing turns per speaker ordinal."""
        profiles = [SpeakerProfile() for _ in range(num_speakers)]
        for turn in turns:
            if not 0 <= turn.speaker < num_speakers:
                continue
            profile = profiles[turn.speaker]
            profile.turns += 1
            profile.words += turn.word_count
            if "?" in turn.text:
                profile.questions += 1
        return profiles

    def assign_roles(self, turns: Sequence[Turn], num_speakers: int) -> list[RoleAssignment]:
        """Infer a role for every speaker ordinal in ``range(num_speakers)``."""
        profiles = self.build_profiles(turns, num_speakers)
        cfg = self.config

        assignments: list[RoleAssignment] = []
        for speaker, profile in enumerate(profiles):
            enough_turns = profile.turns >= cfg.min_turns
            if enough_turns and profile.question_rate >= cfg.question_rate_threshold:
                assignments.append(
                    RoleAssignment(
                        speaker,
                        INTERVIEWER,
                        [f"question_rate={profile.question_rate:.2f} over {profile.turns} turns"],
                    )
                )
            elif enough_turns and profile.avg_words >= cfg.guest_avg_words:
                assignments.append(
                    RoleAssignment(
                        speaker,
                        GUEST,
                        [f"avg_words={profile.avg_words:.1f} over {profile.turns} turns"],
                    )
                )
            else:
                assignments.append(RoleAssignment(speaker, PARTICIPANT))

        if cfg.promote_dominant_guest and assignments:
            dominant = _dominant_speaker(profiles)
            has_interviewer = any(a.role == INTERVIEWER for a in assignments)
            if has_interviewer and assignments[dominant].role == PARTICIPANT:
                assignments[dominant].role = GUEST
                assignments[dominant].evidence.append(
                    f"dominant talker ({profiles[dominant].words} words) opposite an interviewer"
                )

        return assignments

    def infer_roles(self, turns: Sequence[Turn], num_speakers: int) -> list[RoleType]:
        """Return the inferred role per speaker ordinal."""
        return [a.role for a in self.assign_roles(turns, num_speakers)]


def _dominant_speaker(profiles: list[SpeakerProfile]) -> int:
    """Index of the speaker with the most words; the first one wins ties."""
    dominant = 0
    max_words = -1
    for i, profile in enumerate(profiles):
        if profile.words > max_words:
            max_words = profile.words
            dominant = i
    return dominant


def infer_roles(turns: Sequence[Turn], num_speakers: int, **config_kwargs: Any) -> list[RoleType]:
    """Convenience function for role inference.

    Args:
        turns: Turns to analyse.
        num_speakers: Number of role slots to fill (max speaker ordinal + 1).
        **config_kwargs: Configuration options passed to RoleInferenceConfig.
    """
    config = RoleInferenceConfig(**config_kwargs)
    return RoleInferrer(config).infer_roles(turns, num_speakers)


__all__ = [
    "GUEST",
    "INTERVIEWER",
    "PARTICIPANT",
    "RoleAssignment",
    "RoleInferenceConfig",
    "RoleInferrer",
    "RoleType",
    "SpeakerProfile",
    "infer_roles",
]
