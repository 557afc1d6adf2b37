"""Per-speaker aggregates and diarization repair over a window of turns.

Both helpers are pure functions of the turns they are given; callers decide
which window of the conversation to pass in.
"""

from __future__ import annotations

from collections.abc import Sequence

from .models import SpeakerStats, Turn

DEFAULT_SHORT_TURN_WORDS = 4


def build_speaker_stats(turns: Sequence[Turn]) -> dict[int, SpeakerStats]:
    """Count turns, words and speaking time (start_end - start_beginning) per speaker."""
    stats: dict[int, SpeakerStats] = {}
    for turn in turns:
        entry = stats.setdefault(turn.speaker, SpeakerStats())
        entry.turns += 1
        entry.words += turn.word_count
        entry.duration += turn.duration
    return stats


def compute_speaker_corrections(
    turns: Sequence[Turn],
    short_turn_words: int = DEFAULT_SHORT_TURN_WORDS,
) -> dict[int, int]:
    """
    Find short turns that diarization most likely split off by mistake.

    A turn is corrected when it is not first or last in the window, has at
    most ``short_turn_words`` words, and both neighbours belong to the same
    speaker while this turn belongs to another one. The turn is reassigned
    to the neighbours' speaker.

    Args:
        turns: Consecutive turns in id order.
        short_turn_words: Maximum word count for a turn to be considered.

    Returns:
        Mapping of turn id to corrected speaker ordinal.

    Example:
        >>> # speakers A A B A A, B has 2 words -> B's turn becomes A
        >>> corrections = compute_speaker_corrections(turns)  # doctest: +SKIP
        >>> corrections
        {2: 0}
    """
    corrections: dict[int, int] = {}
    if len(turns) < 3:
        return corrections

    for i in range(1, len(turns) - 1):
        prev_turn, cur, next_turn = turns[i - 1], turns[i], turns[i + 1]
        if cur.word_count > short_turn_words:
            continue
        if prev_turn.speaker == next_turn.speaker and cur.speaker != prev_turn.speaker:
            corrections[cur.id] = prev_turn.speaker

    return corrections
