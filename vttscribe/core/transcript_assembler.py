"""
Assemble decoded cues from every segment of one video into prose.

Cues are sorted by start time, exact-text duplicates are dropped (segment
windows overlap, so the same cue arrives several times), and the remaining
text is joined into paragraphs with a punctuation/capitalisation heuristic.
"""

import logging

from vttscribe.core.constants import (
    SENTENCE_TERMINATORS, CLAUSE_TERMINATORS, CONTINUATION_WORDS,
)
from vttscribe.core.cue_decoder import decode_segment_bytes
from vttscribe.core.models import Cue

logger = logging.getLogger(__name__)

_CONTINUATION_PREFIXES = tuple(f"{word} " for word in CONTINUATION_WORDS)


def _last_char(text: str) -> str:
    return text.rstrip()[-1:]


def _starts_new_sentence(current: str, text: str) -> bool:
    """
    True when `text` should close `current` and open a new paragraph:
    capitalised start, no clause punctuation before it, not a conjunction.
    """
    if not text[0].isupper():
        return False
    if _last_char(current) in CLAUSE_TERMINATORS:
        return False
    return not text.startswith(_CONTINUATION_PREFIXES)


def join_paragraphs(cues: list[Cue]) -> list[str]:
    """Dedupe and paragraph-join cues that are already in playback order."""
    seen: set[str] = set()
    paragraphs: list[str] = []
    current = ""

    for cue in cues:
        text = cue.text.strip()
        if not text or text in seen:
            continue
        seen.add(text)

        if not current:
            current = text
        elif _starts_new_sentence(current, text):
            paragraphs.append(current)
            current = text
        else:
            current = f"{current} {text}"

        if _last_char(current) in SENTENCE_TERMINATORS:
            paragraphs.append(current)
            current = ""

    if current:
        paragraphs.append(current)

    return paragraphs


def assemble_transcript(cues: list[Cue]) -> str | None:
    """
    Merge cues from all segment files of one video into a transcript.
    Returns None when nothing survives filtering ("no transcript produced").
    """
    # sorted() is stable: equal start times keep encounter order
    ordered = sorted(cues, key=lambda c: c.start_ms)
    paragraphs = join_paragraphs(ordered)
    if not paragraphs:
        return None
    return '\n\n'.join(paragraphs)


def assemble_video(store, video_id: str) -> str | None:
    """
    Decode every stored segment of `video_id` and assemble the transcript.
    Segment names are read in sorted order so output never depends on
    capture order.
    """
    cues: list[Cue] = []
    names = sorted(store.list(video_id))
    for name in names:
        cues.extend(decode_segment_bytes(store.read(video_id, name)))

    logger.debug("Assembling %s: %d segment(s), %d cue(s)", video_id, len(names), len(cues))
    return assemble_transcript(cues)
