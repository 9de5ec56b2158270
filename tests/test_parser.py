"""Tests for cue parser module (Layer 1a)."""

import pytest

from redubber.errors import MalformedCueError
from redubber.parser import analyze_timing, parse_cue_file, parse_cues


def test_parse_vtt_hour_level():
    """WebVTT cues with hours and dot separator."""
    text = (
        "WEBVTT\n\n"
        "00:00:01.000 --> 00:00:03.500\nHello there\n\n"
        "00:00:04.250 --> 00:00:06.000\nGeneral Kenobi\n"
    )
    segs = parse_cues(text)
    assert len(segs) == 2
    assert segs[0].start_time == pytest.approx(1.0)
    assert segs[0].end_time == pytest.approx(3.5)
    assert segs[0].duration == pytest.approx(2.5)
    assert segs[1].start_time == pytest.approx(4.25)
    assert segs[1].normalized_text == "General Kenobi."


def test_parse_srt_comma_separator():
    """SRT numbering and comma fractions are handled."""
    text = (
        "1\n00:00:01,000 --> 00:00:02,000\nFirst line\n\n"
        "2\n00:00:02,500 --> 00:00:04,000\nSecond line\n"
    )
    segs = parse_cues(text)
    assert [s.index for s in segs] == [1, 2]
    assert segs[1].start_time == pytest.approx(2.5)
    assert segs[1].raw_text == "Second line"


def test_parse_minute_level():
    """Hour-less timestamps fall through to the minute grammar."""
    text = "WEBVTT\n\n01:02.500 --> 01:05.000\nLate cue\n"
    segs = parse_cues(text)
    assert len(segs) == 1
    assert segs[0].start_time == pytest.approx(62.5)
    assert segs[0].end_time == pytest.approx(65.0)


def test_parse_hours_over_one():
    """Hour component is applied."""
    segs = parse_cues("1:00:00.000 --> 1:00:02.000\nAn hour in\n")
    assert segs[0].start_time == pytest.approx(3600.0)


def test_parse_cue_settings_after_timestamp():
    """Position/alignment settings after the end time are ignored."""
    text = "WEBVTT\n\n00:00:01.000 --> 00:00:02.000 align:start position:10%\nHi\n"
    segs = parse_cues(text)
    assert len(segs) == 1
    assert segs[0].normalized_text == "Hi."


def test_parse_multiline_text_joined():
    """Multiple text lines of one cue are joined with spaces."""
    text = "00:00:01.000 --> 00:00:03.000\nline one\nline two\n"
    segs = parse_cues(text)
    assert segs[0].raw_text == "line one line two"
    assert segs[0].normalized_text == "line one line two."


def test_parse_drops_empty_and_zero_duration_cues():
    """Empty-text and non-positive-duration cues create no segment."""
    text = (
        "00:00:01.000 --> 00:00:02.000\n[Music]\n\n"
        "00:00:03.000 --> 00:00:03.000\nZero length\n\n"
        "00:00:05.000 --> 00:00:04.000\nBackwards\n\n"
        "00:00:06.000 --> 00:00:07.000\nKept\n"
    )
    segs = parse_cues(text)
    assert len(segs) == 1
    assert segs[0].normalized_text == "Kept."


def test_parse_index_skips_blank_cues_only():
    """Index counts cues with text; blank cues do not consume an index."""
    text = (
        "00:00:01.000 --> 00:00:02.000\n(silence)\n\n"
        "00:00:03.000 --> 00:00:04.000\nA\n\n"
        "00:00:05.000 --> 00:00:05.000\nB\n\n"
        "00:00:06.000 --> 00:00:07.000\nC\n"
    )
    segs = parse_cues(text)
    assert [s.index for s in segs] == [1, 3]


def test_parse_ignores_note_and_style_blocks():
    """NOTE and STYLE blocks carry no cues."""
    text = (
        "WEBVTT\n\n"
        "NOTE this is a comment\n\n"
        "STYLE\n::cue { color: red }\n\n"
        "00:00:01.000 --> 00:00:02.000\nOnly cue\n"
    )
    segs = parse_cues(text)
    assert len(segs) == 1


def test_parse_windows_line_endings():
    """CRLF input parses the same as LF."""
    text = "WEBVTT\r\n\r\n00:00:01.000 --> 00:00:02.000\r\nHi\r\n"
    assert len(parse_cues(text)) == 1


def test_parse_no_cues_raises():
    """A file without any parseable cue raises MalformedCueError."""
    with pytest.raises(MalformedCueError):
        parse_cues("WEBVTT\n\nJust some text\n")


def test_parse_only_empty_cues_raises():
    """Cues that all normalize to nothing also raise."""
    with pytest.raises(MalformedCueError):
        parse_cues("00:00:01.000 --> 00:00:02.000\n[Music]\n")


def test_parse_cue_file(write_cues):
    """Reads from disk, tolerating a UTF-8 BOM."""
    path = write_cues("\ufeffWEBVTT\n\n00:00:01.000 --> 00:00:02.000\nHello\n")
    segs = parse_cue_file(path)
    assert segs[0].normalized_text == "Hello."


def test_parse_cue_file_missing(tmp_path):
    """Missing file → MalformedCueError."""
    with pytest.raises(MalformedCueError):
        parse_cue_file(str(tmp_path / "nope.vtt"))


def test_analyze_timing(scenario_a_vtt):
    """Timeline summary counts speech, silence, gaps and overlaps."""
    info = analyze_timing(parse_cues(scenario_a_vtt))
    assert info["cues"] == 2
    assert info["speech_seconds"] == pytest.approx(4.0)
    assert info["silence_seconds"] == pytest.approx(2.0)
    assert info["leading_silence"] == pytest.approx(1.0)
    assert info["longest_gap"] == pytest.approx(1.0)
    assert info["overlaps"] == 0


def test_analyze_timing_counts_overlaps():
    """Overlapping cues are counted."""
    text = (
        "00:00:01.000 --> 00:00:03.000\nOne\n\n"
        "00:00:02.000 --> 00:00:04.000\nTwo\n"
    )
    assert analyze_timing(parse_cues(text))["overlaps"] == 1
