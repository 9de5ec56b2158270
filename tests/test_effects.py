"""Tests for polish chain module (Layer 2)."""

import numpy as np
import pytest

from redubber import effects
from redubber.audio import frame_count, silence_frames
from redubber.effects import from_float_array, polish, to_float_array
from redubber.models import AudioFormat


def test_float_array_shape_and_range(tone):
    """Mono clip → (1, frames) floats inside [-1, 1]."""
    clip = tone(0.5, amplitude=0.5)
    arr = to_float_array(clip)
    assert arr.shape == (1, frame_count(clip))
    assert np.abs(arr).max() <= 1.0
    assert np.abs(arr).max() == pytest.approx(0.5, abs=0.01)


def test_float_array_back_preserves_format(tone):
    """Converting back keeps rate, channels, width and length."""
    clip = tone(0.5, channels=2)
    back = from_float_array(to_float_array(clip), clip)
    assert back.channels == 2
    assert back.frame_rate == clip.frame_rate
    assert frame_count(back) == frame_count(clip)


def test_polish_preserves_frame_count(tone):
    """The enhancement chain never changes the track length."""
    clip = tone(1.5)
    assert frame_count(polish(clip, boost_db=3.0)) == frame_count(clip)


def test_polish_keeps_silence_silent():
    """Digital silence stays silent."""
    clip = silence_frames(22050, AudioFormat())
    out = polish(clip, boost_db=6.0)
    assert np.abs(to_float_array(out)).max() < 1e-3


def test_polish_without_pedalboard_applies_boost(tone, monkeypatch):
    """Without pedalboard only the gain is applied."""
    monkeypatch.setattr(effects, "PEDALBOARD_AVAILABLE", False)
    clip = tone(1.0, amplitude=0.1)
    out = polish(clip, boost_db=6.0)
    assert frame_count(out) == frame_count(clip)
    assert out.dBFS == pytest.approx(clip.dBFS + 6.0, abs=0.1)


def test_polish_disabled_returns_same_length(tone):
    """enhance=False with no boost leaves the clip untouched."""
    clip = tone(0.7)
    out = polish(clip, enhance=False)
    assert out.raw_data == clip.raw_data


def test_polish_empty_clip():
    """An empty clip passes straight through."""
    clip = silence_frames(0, AudioFormat())
    assert polish(clip, boost_db=3.0) is clip
