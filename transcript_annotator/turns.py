"""
Turn segmentation for transcript-annotator.

A turn is a maximal run of consecutive words attributed to the same speaker
ordinal. Turns are bounded only by speaker changes and the end of input.

**Turn fields**:
- id: sequential, 0-based, assigned in emission order
- text: non-blank word tokens joined by single spaces
- start_beginning: start offset of the first word
- start_end: start offset of the *last* word (not its end offset)
- word_count: whitespace token count of text

Segmentation is a pure function of the word sequence: feeding the same words
again, in any chunking, reproduces the same turns.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from .exceptions import MalformedInputError
from .models import Turn, WordEvent


def _coerce_word(word: Any, index: int) -> WordEvent:
    """Normalize a WordEvent or word mapping, rejecting structurally invalid entries."""
    if isinstance(word, WordEvent):
        speaker = word.speaker
        text = word.text
        start = word.start
    elif isinstance(word, Mapping):
        speaker = word.get("speaker")
        text = word.get("text")
        if text is None:
            text = word.get("punctuated_word", word.get("word"))
        start = word.get("start")
    else:
        raise MalformedInputError(
            f"Word {index} must be a WordEvent or mapping, got {type(word).__name__}"
        )

    if isinstance(speaker, bool) or not isinstance(speaker, int) or speaker < 0:
        raise MalformedInputError(
            f"Word {index} has invalid speaker ordinal {speaker!r}; expected a non-negative int"
        )
    if isinstance(start, bool) or not isinstance(start, (int, float)):
        start = None

    return WordEvent(text=text if isinstance(text, str) else "", speaker=speaker, start=start)


def coerce_words(words: Iterable[Any], offset: int = 0) -> list[WordEvent]:
    """
    Validate a batch of words and normalize each one to a WordEvent.

    The whole batch is checked before anything is returned.

    Raises:
        MalformedInputError: If ``words`` is not iterable or contains an entry
            without a valid speaker ordinal.
    """
    if isinstance(words, (str, bytes, Mapping)) or not isinstance(words, Iterable):
        raise MalformedInputError(
            f"Word sequence must be an iterable of words, got {type(words).__name__}"
        )
    return [_coerce_word(word, offset + i) for i, word in enumerate(words)]


class TurnSegmenter:
    """
    Incremental speaker-turn builder.

    Words are fed in arrival order. A turn is closed as soon as a word from a
    different speaker arrives; the trailing run stays open until flush().

    Example:
        >>> segmenter = TurnSegmenter()
        >>> segmenter.feed([{"text": "hi", "speaker": 0, "start": 0.0}])
        []
        >>> [t.text for t in segmenter.feed([{"text": "ok", "speaker": 1, "start": 1.0}])]
        ['hi']
        >>> [t.text for t in segmenter.flush()]
        ['ok']
    """

    def __init__(self) -> None:
        self._next_id = 0
        self._words_seen = 0
        self._current_speaker: int | None = None
        self._current_words: list[WordEvent] = []

    @property
    def pending_words(self) -> int:
        """Number of words in the open (not yet emitted) run."""
        return len(self._current_words)

    def feed(self, words: Iterable[Any]) -> list[Turn]:
        """Consume words and return the turns closed by speaker changes.

        Raises:
            MalformedInputError: If ``words`` is not iterable or contains an
                entry without a valid speaker ordinal.
        """
        batch = coerce_words(words, offset=self._words_seen)
        self._words_seen += len(batch)

        closed: list[Turn] = []
        for word in batch:
            # Blank tokens neither extend nor break a run
            if not word.text.strip():
                continue

            if word.speaker != self._current_speaker and self._current_words:
                closed.append(self._close_run())

            self._current_speaker = word.speaker
            self._current_words.append(word)

        return closed

    def flush(self) -> list[Turn]:
        """Close the open run, if any."""
        if not self._current_words:
            return []
        return [self._close_run()]

    def _close_run(self) -> Turn:
        assert self._current_speaker is not None
        turn = _finalize_turn(self._next_id, self._current_words, self._current_speaker)
        self._next_id += 1
        self._current_words = []
        return turn


def _finalize_turn(turn_id: int, words: list[WordEvent], speaker: int) -> Turn:
    """
    Build a Turn from one speaker's run of words.

    start_end deliberately uses the start offset of the last word; a missing
    offset falls back to start_beginning (and start_beginning to 0.0).
    """
    text = " ".join(w.text.strip() for w in words)
    start_beginning = float(words[0].start) if words[0].start is not None else 0.0
    last_start = words[-1].start
    start_end = float(last_start) if last_start is not None else start_beginning

    return Turn(
        id=turn_id,
        speaker=speaker,
        text=text,
        start_beginning=start_beginning,
        start_end=start_end,
        word_count=len(text.split()),
    )


def segment_words(words: Iterable[Any]) -> list[Turn]:
    """
    Segment a complete word sequence into speaker turns.

    Args:
        words: WordEvent objects or mappings with ``text`` (or Deepgram's
               ``punctuated_word``/``word``), ``speaker`` and ``start``.

    Returns:
        Turns in segmentation order with ids 0..n-1. Empty input gives [].

    Raises:
        MalformedInputError: If the sequence or any word is structurally invalid.

    Example:
        >>> turns = segment_words([
        ...     {"text": "hi", "speaker": 0, "start": 0.0},
        ...     {"text": "there", "speaker": 0, "start": 0.4},
        ...     {"text": "ok", "speaker": 1, "start": 1.2},
        ... ])
        >>> [(t.id, t.speaker, t.text) for t in turns]
        [(0, 0, 'hi there'), (1, 1, 'ok')]
    """
    segmenter = TurnSegmenter()
    turns = segmenter.feed(words)
    turns.extend(segmenter.flush())
    return turns


def words_from_deepgram(payload: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Extract the word list from a Deepgram pre-recorded response body.

    Returns [] when the response has no words.
    """
    if not isinstance(payload, Mapping):
        raise MalformedInputError(
            f"Deepgram response must be a JSON object, got {type(payload).__name__}"
        )
    try:
        words = payload["results"]["channels"][0]["alternatives"][0]["words"]
    except (KeyError, IndexError, TypeError):
        return []
    if not isinstance(words, list):
        raise MalformedInputError("Deepgram 'words' must be a list")

    extracted = []
    for w in words:
        if not isinstance(w, Mapping):
            continue
        extracted.append(
            {
                "text": w.get("punctuated_word", w.get("word")),
                # Responses without diarization carry no speaker field
                "speaker": w.get("speaker", 0),
                "start": w.get("start"),
            }
        )
    return extracted
