"""Tests for exporter module (Layer 5)."""

import json
import os

import pytest
from pydub import AudioSegment

from redubber.audio import frame_count
from redubber.config import Settings
from redubber.exporter import build_report, export, format_report, grade
from redubber.models import (
    AudioQualityMetrics,
    CalibrationState,
    Candidate,
    IterationRecord,
    SegmentState,
)
from redubber.pipeline import CalibrationOutcome


@pytest.fixture
def outcome(tone, make_segment):
    """A one-iteration outcome with one accepted and one fallback cue."""
    ok = make_segment(1, 1.0, 3.0, "Hello.", tone(2.0))
    ok.attempt_count = 2
    ok.precision = 98.0
    ok.quality = AudioQualityMetrics(
        has_voice=True, mean_volume_db=-14.0, peak_volume_db=-10.0,
        spectral_quality_score=85.0, is_clipped=False, dynamic_range_db=3.0,
    )
    bad = make_segment(2, 4.0, 6.0, "Broken line.", state=SegmentState.FALLBACK)
    bad.attempt_count = 3

    record = IterationRecord(
        iteration=1, scale=1.0, final_duration=7.0, target_duration=7.0,
        precision=98.0, quality_score=70.0, voice_segment_ratio=0.5, fallback_count=1,
    )
    candidate = Candidate(
        iteration=1,
        track=tone(7.0),
        path="track.wav",
        metrics=AudioQualityMetrics.worst_case(),
        record=record,
        segments=[ok.summary(), bad.summary()],
    )
    return CalibrationOutcome(best=candidate, accepted=False, history=[record])


def test_grade():
    """Grades depend on precision and fallbacks."""
    assert grade(99.5, 0) == "perfect"
    assert grade(99.5, 1) == "good"
    assert grade(96.0, 0) == "good"
    assert grade(90.0, 0) == "acceptable"


def test_build_report_stats(outcome):
    """Stats summarize segments, attempts and fallbacks."""
    report = build_report(outcome, CalibrationState(), "episode", Settings(), source="/x/episode.vtt")
    stats = report["stats"]
    assert report["project"] == "episode"
    assert report["accepted"] is False
    assert report["grade"] == "good"
    assert stats["segments"] == 2
    assert stats["voice_segments"] == 1
    assert stats["retried_segments"] == 2
    assert stats["fallback_segments"] == 1
    assert stats["total_attempts"] == 5
    assert report["fallbacks"] == [{"index": 2, "start": 4.0, "end": 6.0, "text": "Broken line."}]
    assert report["calibration"]["global_length_scale"] == 1.0
    assert report["settings"]["max_iterations"] == Settings().max_iterations


def test_build_report_is_json_serializable(outcome):
    """The whole report dumps to JSON."""
    report = build_report(outcome, CalibrationState(), "episode", Settings())
    json.dumps(report)


def test_format_report_lists_fallbacks(outcome):
    """Human report marks the chosen iteration and lists fallback cues."""
    text = format_report(build_report(outcome, CalibrationState(), "episode", Settings()))
    assert "Redub report: episode" in text
    assert "best effort" in text
    assert "* #1" in text
    assert "Fallback silence (review these cues):" in text
    assert "cue 2 at 4.000s: Broken line." in text


def test_format_report_without_fallbacks(outcome):
    """No fallback section when every cue was voiced."""
    report = build_report(outcome, CalibrationState(), "episode", Settings())
    report["fallbacks"] = []
    assert "Fallback silence" not in format_report(report)


def test_export_writes_files(outcome, tmp_path):
    """Export writes the wav, report.json and report.txt under final/."""
    wav, txt = export(outcome, CalibrationState(), str(tmp_path), "episode", Settings())
    assert wav == os.path.join(str(tmp_path), "final", "episode.wav")
    assert os.path.exists(wav)
    assert os.path.exists(txt)
    assert os.path.exists(os.path.join(str(tmp_path), "final", "report.json"))

    assert frame_count(AudioSegment.from_file(wav)) == 7 * 22050


def test_cut_speech_is_listed_for_review(outcome):
    """Cues whose speech was cut at assembly appear in stats, JSON and text."""
    outcome.best.segments[0]["trimmed_seconds"] = 0.4
    report = build_report(outcome, CalibrationState(), "episode", Settings())

    assert report["stats"]["trimmed_segments"] == 1
    assert report["trimmed"] == [{"index": 1, "start": 1.0, "seconds": 0.4, "text": "Hello."}]
    text = format_report(report)
    assert "Speech cut at the cue end (review these cues):" in text
    assert "cue 1 at 1.000s lost 0.400s: Hello." in text


def test_no_cut_section_when_nothing_trimmed(outcome):
    """Without cut speech there is no review section."""
    report = build_report(outcome, CalibrationState(), "episode", Settings())
    assert report["stats"]["trimmed_segments"] == 0
    assert report["trimmed"] == []
    assert "Speech cut" not in format_report(report)
