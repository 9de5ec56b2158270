"""Shared fixtures for redubber tests."""

import threading
import time

import numpy as np
import pytest
from pydub import AudioSegment

from redubber.config import Settings
from redubber.errors import SynthesisEmptyOutputError
from redubber.models import SegmentState, TimedSegment

RATE = 22050


def _tone(seconds, freq=440.0, amplitude=0.3, rate=RATE, channels=1):
    """Sine tone as a 16-bit AudioSegment with an exact frame count."""
    frames = int(round(seconds * rate))
    t = np.arange(frames) / rate
    samples = (amplitude * np.sin(2 * np.pi * freq * t) * 32767).astype(np.int16)
    if channels > 1:
        samples = np.repeat(samples, channels)
    return AudioSegment(data=samples.tobytes(), sample_width=2, frame_rate=rate, channels=channels)


class FakeEngine:
    """Writes a WAV tone whose length depends on the text and length scale.

    durations maps speech text → seconds at scale 1.0. `stretch` multiplies
    every render (1.5 = always 50% too long). Texts containing any of
    `fail_on` raise SynthesisEmptyOutputError.
    """

    name = "fake"
    extension = ".wav"

    def __init__(self, durations=None, default=1.0, stretch=1.0, amplitude=0.3,
                 scale_sensitive=True, fail_on=(), delay=0.0, on_render=None):
        self.durations = dict(durations or {})
        self.default = default
        self.stretch = stretch
        self.amplitude = amplitude
        self.scale_sensitive = scale_sensitive
        self.fail_on = tuple(fail_on)
        self.delay = delay
        self.on_render = on_render
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def render(self, text, length_scale, voice, output_path, timeout):
        with self._lock:
            self.calls.append((text, length_scale))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.on_render:
                self.on_render(text)
            if any(marker in text for marker in self.fail_on):
                raise SynthesisEmptyOutputError(f"no audio for {text}")
            seconds = self.durations.get(text, self.default) * self.stretch
            if self.scale_sensitive:
                seconds *= length_scale
            _tone(seconds, amplitude=self.amplitude).export(output_path, format="wav")
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def tone():
    """Factory for sine-tone AudioSegments."""
    return _tone


@pytest.fixture
def fake_engine():
    """The FakeEngine class, for building engines with per-test behaviour."""
    return FakeEngine


@pytest.fixture
def settings():
    """Default settings with a short synthesis timeout."""
    return Settings(synthesis_timeout=5.0)


@pytest.fixture
def make_segment():
    """Factory for TimedSegments, optionally pre-accepted with a clip."""
    def factory(index, start, end, text="Hello there.", clip=None, state=None):
        seg = TimedSegment(
            index=index,
            start_time=start,
            end_time=end,
            raw_text=text,
            normalized_text=text,
        )
        if clip is not None:
            seg.clip = clip
            seg.measured_duration = clip.frame_count() / clip.frame_rate
            seg.state = SegmentState.ACCEPTED
        if state is not None:
            seg.state = state
        return seg
    return factory


@pytest.fixture
def write_cues(tmp_path):
    """Write cue text to a file and return its path."""
    def factory(content, name="episode.vtt"):
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return str(path)
    return factory


@pytest.fixture
def scenario_a_vtt():
    """Two cues: 1–3s "Hello", 4–6s "World"."""
    return (
        "WEBVTT\n\n"
        "1\n00:00:01.000 --> 00:00:03.000\nHello\n\n"
        "2\n00:00:04.000 --> 00:00:06.000\nWorld\n"
    )
