"""
WebVTT segment parsing → ordered cue records.
Drops header/metadata lines wherever they appear, skips malformed blocks.
Never raises on bad input: garbage decodes to an empty list.
"""

import re
import logging

from vttscribe.core.constants import (
    TIME_RANGE_SEPARATOR, VTT_HEADER_PREFIXES, TIMESTAMP_PATTERN,
)
from vttscribe.core.models import Cue

logger = logging.getLogger(__name__)

_TIMESTAMP_RE = re.compile(TIMESTAMP_PATTERN)
_SEQUENCE_ID_RE = re.compile(r'^\d+$')


def parse_timestamp_ms(value: str) -> int:
    """Convert the first `HH:MM:SS.mmm` in value to milliseconds, 0 if none."""
    m = _TIMESTAMP_RE.search(value)
    if not m:
        return 0
    hours, minutes, seconds, millis = (int(g) for g in m.groups())
    return (hours * 3600 + minutes * 60 + seconds) * 1000 + millis


def _is_metadata(line: str) -> bool:
    return line.startswith(VTT_HEADER_PREFIXES)


def _parse_block(lines: list[str]) -> Cue | None:
    """Parse one cue block (trimmed, non-empty lines). None if no time range."""
    range_idx = next(
        (i for i, line in enumerate(lines) if TIME_RANGE_SEPARATOR in line),
        -1,
    )
    if range_idx == -1:
        return None

    time_range = lines[range_idx]
    start_part, _, end_part = time_range.partition(TIME_RANGE_SEPARATOR)

    sequence_id = None
    if range_idx > 0 and _SEQUENCE_ID_RE.match(lines[0]):
        sequence_id = lines[0]

    text = ' '.join(lines[range_idx + 1:]).strip()

    return Cue(
        start_ms=parse_timestamp_ms(start_part),
        end_ms=parse_timestamp_ms(end_part),
        text=text,
        sequence_id=sequence_id,
    )


def decode_cues(content: str) -> list[Cue]:
    """
    Parse a raw WebVTT buffer into cues in file order.
    Headerless fragments are fine; blocks without a time range are dropped.
    """
    cues: list[Cue] = []
    block: list[str] = []

    for raw_line in content.strip().splitlines():
        line = raw_line.strip()

        if not line:
            if block:
                cue = _parse_block(block)
                if cue is not None:
                    cues.append(cue)
                block = []
            continue

        # Captured fragments may repeat or omit headers anywhere
        if _is_metadata(line):
            continue

        block.append(line)

    if block:
        cue = _parse_block(block)
        if cue is not None:
            cues.append(cue)

    return cues


def decode_segment_bytes(data: bytes) -> list[Cue]:
    """Decode a stored segment file. Invalid UTF-8 is replaced, not raised."""
    return decode_cues(data.decode('utf-8', errors='replace'))
