"""Parse subtitle cue files (WebVTT / SRT style) into timed segments."""

import logging
import re

from redubber.errors import MalformedCueError
from redubber.models import TimedSegment
from redubber.normalizer import normalize

logger = logging.getLogger(__name__)

_FRACTION = r"[.,](\d{1,3})"

# Hour-level: 00:00:01.000 --> 00:00:03.500 (optional cue settings after)
HOUR_TIMESTAMP_RE = re.compile(
    rf"^\s*(\d{{1,2}}):(\d{{2}}):(\d{{2}}){_FRACTION}\s*-->\s*"
    rf"(\d{{1,2}}):(\d{{2}}):(\d{{2}}){_FRACTION}(?:\s+.*)?$"
)

# Minute-level: 00:01.000 --> 00:03,500
MINUTE_TIMESTAMP_RE = re.compile(
    rf"^\s*(\d{{1,2}}):(\d{{2}}){_FRACTION}\s*-->\s*"
    rf"(\d{{1,2}}):(\d{{2}}){_FRACTION}(?:\s+.*)?$"
)

TIMESTAMP_PATTERNS = [HOUR_TIMESTAMP_RE, MINUTE_TIMESTAMP_RE]


def _fraction(digits: str) -> float:
    """'5' → 0.5, '05' → 0.05, '500' → 0.5."""
    return int(digits) / (10 ** len(digits))


def _hms_to_seconds(groups: tuple[str, ...]) -> tuple[float, float]:
    h1, m1, s1, f1, h2, m2, s2, f2 = groups
    start = int(h1) * 3600 + int(m1) * 60 + int(s1) + _fraction(f1)
    end = int(h2) * 3600 + int(m2) * 60 + int(s2) + _fraction(f2)
    return start, end


def _ms_to_seconds(groups: tuple[str, ...]) -> tuple[float, float]:
    m1, s1, f1, m2, s2, f2 = groups
    start = int(m1) * 60 + int(s1) + _fraction(f1)
    end = int(m2) * 60 + int(s2) + _fraction(f2)
    return start, end


_CONVERTERS = {
    HOUR_TIMESTAMP_RE: _hms_to_seconds,
    MINUTE_TIMESTAMP_RE: _ms_to_seconds,
}


def _split_blocks(text: str) -> list[list[str]]:
    """Split cue file text into blocks of non-empty lines."""
    blocks = []
    current = []
    for line in text.replace("\r\n", "\n").replace("\r", "\n").split("\n"):
        stripped = line.strip()
        if not stripped:
            if current:
                blocks.append(current)
                current = []
            continue
        current.append(stripped)
    if current:
        blocks.append(current)
    return blocks


def _parse_with(pattern: re.Pattern, blocks: list[list[str]]) -> list[TimedSegment]:
    """Parse all blocks using one timestamp grammar."""
    convert = _CONVERTERS[pattern]
    segments = []
    index = 0

    for block in blocks:
        # First timestamp line opens the cue; lines before it are identifiers.
        # Header, NOTE and STYLE blocks have no timestamp and fall through.
        for pos, line in enumerate(block):
            match = pattern.match(line)
            if match:
                break
        else:
            continue

        raw_text = " ".join(block[pos + 1:])
        clean = normalize(raw_text)
        if not clean:
            continue
        index += 1

        start, end = convert(match.groups())
        if end - start <= 0:
            logger.debug("Dropping cue %d with non-positive duration (%.3f → %.3f)", index, start, end)
            continue

        segments.append(TimedSegment(
            index=index,
            start_time=start,
            end_time=end,
            raw_text=raw_text,
            normalized_text=clean,
        ))

    return segments


def parse_cues(text: str) -> list[TimedSegment]:
    """Parse cue file text into ordered TimedSegments.

    Each supported timestamp grammar is tried against the whole file; the
    first one that yields at least one segment wins. Cues with empty text
    or non-positive duration are dropped.

    Raises MalformedCueError if no segment can be parsed.
    """
    blocks = _split_blocks(text)
    for pattern in TIMESTAMP_PATTERNS:
        segments = _parse_with(pattern, blocks)
        if segments:
            return segments
    raise MalformedCueError("No parseable cues found")


def parse_cue_file(path: str) -> list[TimedSegment]:
    """Read and parse a cue file from disk."""
    try:
        with open(path, encoding="utf-8-sig") as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise MalformedCueError(f"Cannot read cue file {path}: {e}") from e
    try:
        return parse_cues(text)
    except MalformedCueError as e:
        raise MalformedCueError(f"{e} in {path}") from e


def analyze_timing(segments: list[TimedSegment]) -> dict:
    """Summarize a cue timeline: speech vs silence, gaps and overlaps."""
    ordered = sorted(segments, key=lambda s: s.index)
    speech = sum(s.duration for s in ordered)
    gaps = []
    overlaps = 0
    for prev, curr in zip(ordered, ordered[1:]):
        gap = curr.start_time - prev.end_time
        if gap < 0:
            overlaps += 1
        else:
            gaps.append(gap)

    first, last = ordered[0], ordered[-1]
    span = last.end_time
    return {
        "cues": len(ordered),
        "first_start": first.start_time,
        "last_end": last.end_time,
        "leading_silence": first.start_time,
        "speech_seconds": speech,
        "silence_seconds": max(0.0, span - speech),
        "speech_ratio": speech / span if span > 0 else 0.0,
        "mean_cue_seconds": speech / len(ordered),
        "longest_gap": max(gaps, default=0.0),
        "overlaps": overlaps,
        "chars_per_second": sum(len(s.normalized_text) for s in ordered) / speech if speech > 0 else 0.0,
    }
