"""Tests for data models module (Layer 0)."""

import pytest

from redubber.config import Settings
from redubber.models import (
    AudioFormat,
    AudioQualityMetrics,
    CalibrationState,
    IterationRecord,
    SegmentState,
    TimedSegment,
)


def _metrics(**overrides):
    values = dict(
        has_voice=True,
        mean_volume_db=-10.0,
        peak_volume_db=-3.0,
        spectral_quality_score=100.0,
        is_clipped=False,
        dynamic_range_db=20.0,
    )
    values.update(overrides)
    return AudioQualityMetrics(**values)


def test_audio_format_to_frames_rounds():
    """Timeline positions round to the nearest frame."""
    fmt = AudioFormat(sample_rate=22050)
    assert fmt.to_frames(1.0) == 22050
    assert fmt.to_frames(0.5) == 11025
    assert fmt.to_frames(1 / 22050 * 0.6) == 1


def test_overall_quality_perfect():
    """All components at their best → 100."""
    assert _metrics().overall_quality == pytest.approx(100.0)


def test_overall_quality_worst_case():
    """Worst case keeps only the no-clipping component."""
    assert AudioQualityMetrics.worst_case().overall_quality == pytest.approx(15.0)


def test_overall_quality_clipping_penalty():
    """Clipping costs 3 points (0.8 of the 15-point component)."""
    clean = _metrics().overall_quality
    clipped = _metrics(is_clipped=True).overall_quality
    assert clean - clipped == pytest.approx(3.0)


def test_overall_quality_volume_component_clamped():
    """Volume component saturates at -10 dB and bottoms out at -50 dB."""
    assert _metrics(mean_volume_db=0.0).overall_quality == pytest.approx(100.0)
    low = _metrics(mean_volume_db=-60.0).overall_quality
    assert low == pytest.approx(75.0)


def test_overall_quality_bounded():
    """Score stays inside 0–100."""
    for m in (_metrics(), _metrics(has_voice=False, is_clipped=True), AudioQualityMetrics.worst_case()):
        assert 0.0 <= m.overall_quality <= 100.0


def test_metrics_to_dict_includes_overall():
    """Serialized metrics carry the derived score."""
    data = _metrics().to_dict()
    assert data["overall_quality"] == pytest.approx(100.0)
    assert data["has_voice"] is True


def test_segment_speech_text_defaults_to_normalized():
    """speech_text starts as the normalized text."""
    seg = TimedSegment(index=1, start_time=0.0, end_time=2.0, raw_text="hi", normalized_text="Hi.")
    assert seg.speech_text == "Hi."
    assert seg.duration == pytest.approx(2.0)
    assert seg.state is SegmentState.PENDING


def test_segment_reset_clears_iteration_state():
    """reset() wipes attempts, measurements and clip."""
    seg = TimedSegment(index=1, start_time=0.0, end_time=2.0, raw_text="hi", normalized_text="Hi.")
    seg.speech_text = "Simplified."
    seg.attempt_count = 3
    seg.measured_duration = 1.7
    seg.precision = 85.0
    seg.scale_history = [1.0, 1.1]
    seg.state = SegmentState.FALLBACK
    seg.rendered_clip_ref = "/tmp/x.wav"
    seg.attempt_paths = ["/tmp/x.wav"]

    seg.reset(1.2)

    assert seg.speech_text == "Hi."
    assert seg.length_scale == 1.2
    assert seg.attempt_count == 0
    assert seg.measured_duration == 0.0
    assert seg.scale_history == []
    assert seg.state is SegmentState.PENDING
    assert seg.rendered_clip_ref is None
    assert seg.attempt_paths == []


def test_segment_summary():
    """summary() reports state and voice presence."""
    seg = TimedSegment(index=4, start_time=1.0, end_time=3.0, raw_text="x", normalized_text="X.")
    seg.state = SegmentState.ACCEPTED
    seg.quality = _metrics()
    data = seg.summary()
    assert data["index"] == 4
    assert data["state"] == "accepted"
    assert data["has_voice"] is True


def test_calibration_state_clamp():
    """clamp() pulls parameters back inside the configured bounds."""
    state = CalibrationState(global_length_scale=5.0, silence_compensation=0.1, dynamic_boost_db=40.0)
    state.clamp(Settings())
    assert state.global_length_scale == 1.6
    assert state.silence_compensation == 0.8
    assert state.dynamic_boost_db == 12.0

    state = CalibrationState(global_length_scale=0.1, dynamic_boost_db=-3.0)
    state.clamp(Settings())
    assert state.global_length_scale == 0.6
    assert state.dynamic_boost_db == 0.0


def test_iteration_record_to_dict():
    """Record serializes with rounded numbers."""
    record = IterationRecord(
        iteration=1, scale=1.23456, final_duration=7.0, target_duration=7.0,
        precision=91.2345, quality_score=80.0,
    )
    data = record.to_dict()
    assert data["scale"] == 1.2346
    assert data["precision"] == 91.23
    assert data["accepted"] is False
