from dataclasses import dataclass, field
from typing import Any

# Role slot value meaning "not resolved yet".
UNDEFINED_ROLE: str = "Undefined"


@dataclass(frozen=True)
class WordEvent:
    """A single recognised word as delivered by the speech provider."""

    text: str
    speaker: int
    start: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "speaker": self.speaker, "start": self.start}


@dataclass
class Turn:
    """
    Maximal run of consecutive words attributed to one speaker.

    ``speaker`` may change exactly once after creation, through
    :meth:`apply_correction`. The value assigned by segmentation is kept in
    ``original_speaker`` once a correction has been applied.
    """

    id: int
    speaker: int
    text: str
    start_beginning: float
    start_end: float
    word_count: int
    original_speaker: int | None = None

    @property
    def corrected(self) -> bool:
        return self.original_speaker is not None

    def apply_correction(self, speaker: int) -> bool:
        """Reassign the speaker of this turn. First writer wins.

        Returns:
            True if the speaker changed, False if the turn was already
            corrected or already attributed to ``speaker``.
        """
        if self.corrected or speaker == self.speaker:
            return False
        self.original_speaker = self.speaker
        self.speaker = speaker
        return True

    @property
    def duration(self) -> float:
        return max(0.0, self.start_end - self.start_beginning)

    def to_dict(self) -> dict[str, Any]:
        """Serialize turn to the JSON shape sent to providers."""
        data: dict[str, Any] = {
            "id": self.id,
            "speaker": self.speaker,
            "text": self.text,
            "startBeginning": self.start_beginning,
            "startEnd": self.start_end,
            "wordCount": self.word_count,
        }
        if self.original_speaker is not None:
            data["originalSpeaker"] = self.original_speaker
        return data


@dataclass
class SpeakerStats:
    """Talk-time aggregates for one speaker ordinal."""

    turns: int = 0
    words: int = 0
    duration: float = 0.0

    def __add__(self, other: "SpeakerStats") -> "SpeakerStats":
        return SpeakerStats(
            turns=self.turns + other.turns,
            words=self.words + other.words,
            duration=self.duration + other.duration,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"turns": self.turns, "words": self.words, "duration": self.duration}


@dataclass
class SpeakerMetadata:
    """
    Session-wide identity record, indexed by speaker ordinal.

    ``speaker_names`` and ``speaker_roles`` always have the same length:
    the highest speaker ordinal observed so far plus one. Unknown names are
    None and unknown roles are ``UNDEFINED_ROLE``.
    """

    speaker_names: list[str | None] = field(default_factory=list)
    speaker_roles: list[str] = field(default_factory=list)
    speaker_stats: dict[int, SpeakerStats] = field(default_factory=dict)
    speaker_corrections: dict[int, int] = field(default_factory=dict)

    @property
    def num_speakers(self) -> int:
        return len(self.speaker_names)

    def resized(self, length: int) -> "SpeakerMetadata":
        """Return a copy whose name/role arrays have exactly ``length`` slots."""
        names = list(self.speaker_names[:length])
        names.extend([None] * (length - len(names)))
        roles = list(self.speaker_roles[:length])
        roles.extend([UNDEFINED_ROLE] * (length - len(roles)))
        return SpeakerMetadata(
            speaker_names=names,
            speaker_roles=roles,
            speaker_stats={k: SpeakerStats(**v.to_dict()) for k, v in self.speaker_stats.items()},
            speaker_corrections=dict(self.speaker_corrections),
        )

    def copy(self) -> "SpeakerMetadata":
        return self.resized(self.num_speakers)

    def name_for(self, speaker: int) -> str | None:
        if 0 <= speaker < len(self.speaker_names):
            return self.speaker_names[speaker]
        return None

    def role_for(self, speaker: int) -> str:
        if 0 <= speaker < len(self.speaker_roles):
            return self.speaker_roles[speaker]
        return UNDEFINED_ROLE

    def to_dict(self) -> dict[str, Any]:
        return {
            "speakerName": list(self.speaker_names),
            "speakerRole": list(self.speaker_roles),
            "speakerStats": {str(k): v.to_dict() for k, v in sorted(self.speaker_stats.items())},
            "speakerCorrections": {
                str(k): v for k, v in sorted(self.speaker_corrections.items())
            },
        }
