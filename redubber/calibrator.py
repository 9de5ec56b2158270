"""Per-segment calibration: a bounded render → evaluate → retry state machine.

Each segment moves PENDING → RENDERING → EVALUATING and ends ACCEPTED or
FALLBACK, looping through RETRYING while its attempt budget lasts. The
length scale is nudged toward the cue duration after every rejected render.
"""

import logging
import os
from statistics import mean

from redubber.constants import (
    CHARS_PER_SECOND,
    DAMPING_STEP,
    FAST_CUE_FACTOR,
    FAST_CUE_RATIO,
    INITIAL_DAMPING,
    MIN_DAMPING,
    MIN_ESTIMATE_SECONDS,
    SHORT_CUE_FACTOR,
    SHORT_CUE_SECONDS,
    SHORT_CUE_WORDS,
    SLOW_CUE_FACTOR,
    SLOW_CUE_RATIO,
    UNMEASURED_SCALE_FACTOR,
    WORD_PAUSE_SECONDS,
)
from redubber.errors import SynthesisError
from redubber.models import AudioQualityMetrics, CalibrationState, SegmentState, TimedSegment
from redubber.normalizer import simplify_for_retry
from redubber.quality import assess

logger = logging.getLogger(__name__)

TERMINAL_STATES = (SegmentState.ACCEPTED, SegmentState.FALLBACK)


def clamp_scale(scale: float, settings) -> float:
    return max(settings.min_scale, min(settings.max_scale, scale))


def estimate_natural_duration(text: str) -> float:
    """Rough spoken duration of text at neutral speed, in seconds."""
    words = len(text.split())
    return max(MIN_ESTIMATE_SECONDS, len(text) / CHARS_PER_SECOND + words * WORD_PAUSE_SECONDS)


def initial_scale(segment: TimedSegment, state: CalibrationState, settings) -> float:
    """Starting scale for a segment: the global scale adjusted for cue shape."""
    scale = state.global_length_scale
    estimate = estimate_natural_duration(segment.normalized_text) * state.silence_compensation
    ratio = segment.duration / estimate

    if ratio > SLOW_CUE_RATIO:
        scale *= SLOW_CUE_FACTOR
    elif ratio < FAST_CUE_RATIO:
        scale *= FAST_CUE_FACTOR

    # Fixed synthesis overhead dominates very short utterances
    if segment.duration < SHORT_CUE_SECONDS or len(segment.normalized_text.split()) <= SHORT_CUE_WORDS:
        scale *= SHORT_CUE_FACTOR

    return clamp_scale(scale, settings)


def damping(attempt: int) -> float:
    """Step damping for the given 1-based attempt: 0.5, 0.4, 0.3, then 0.2 floor."""
    return max(MIN_DAMPING, INITIAL_DAMPING - DAMPING_STEP * (attempt - 1))


def next_scale(
    current: float,
    target: float,
    measured: float,
    attempt: int,
    history: list[float],
    settings,
) -> float:
    """Damped proportional update toward the target duration.

    Once two or more scales have been tried the proposal is averaged with
    their mean so successive attempts do not oscillate.
    """
    if measured <= 0:
        proposed = current * UNMEASURED_SCALE_FACTOR
    else:
        proposed = current * (1.0 + (target / measured - 1.0) * damping(attempt))
    if len(history) >= 2:
        proposed = (proposed + mean(history)) / 2.0
    return clamp_scale(proposed, settings)


def timing_precision(measured: float, target: float) -> float:
    """100 × (1 − relative error), floored at 0."""
    if target <= 0:
        return 0.0
    return max(0.0, 1.0 - abs(measured - target) / target) * 100.0


def is_acceptable(metrics: AudioQualityMetrics, precision: float, duration: float, settings) -> bool:
    return (
        metrics.has_voice
        and metrics.mean_volume_db >= settings.min_audible_db
        and metrics.spectral_quality_score >= settings.quality_floor
        and precision >= settings.precision_floor_for(duration)
    )


class SegmentCalibrator:
    """Drive one segment at a time to ACCEPTED or FALLBACK.

    Holds no per-segment state of its own, so one instance can serve several
    workers as long as each segment is handled by a single worker.
    """

    def __init__(self, synthesizer, settings, work_dir: str, voice: str | None = None, assessor=assess):
        self.synthesizer = synthesizer
        self.settings = settings
        self.work_dir = work_dir
        self.voice = voice
        self.assessor = assessor

    def calibrate(self, segment: TimedSegment, start_scale: float) -> TimedSegment:
        """Reset the segment and run it to a terminal state."""
        segment.reset(start_scale)
        while segment.state not in TERMINAL_STATES:
            self.step(segment)
        self._discard_attempts(segment)
        return segment

    def step(self, segment: TimedSegment) -> SegmentState:
        """Perform one transition and return the new state."""
        handlers = {
            SegmentState.PENDING: self._begin,
            SegmentState.RETRYING: self._begin,
            SegmentState.RENDERING: self._render,
            SegmentState.EVALUATING: self._evaluate,
        }
        handler = handlers.get(segment.state)
        if handler is None:
            raise ValueError(f"Segment {segment.index} is already {segment.state.value}")
        segment.state = handler(segment)
        return segment.state

    def attempt_path(self, segment: TimedSegment, attempt: int) -> str:
        """First unused artifact path for this attempt; earlier files are kept."""
        stem = f"seg_{segment.index:03d}_try{attempt}"
        ext = self.synthesizer.extension
        path = os.path.join(self.work_dir, f"{stem}{ext}")
        rerun = 1
        while os.path.exists(path):
            rerun += 1
            path = os.path.join(self.work_dir, f"{stem}_{rerun}{ext}")
        return path

    def _begin(self, segment: TimedSegment) -> SegmentState:
        segment.attempt_count += 1
        segment.scale_history.append(segment.length_scale)
        return SegmentState.RENDERING

    def _render(self, segment: TimedSegment) -> SegmentState:
        path = self.attempt_path(segment, segment.attempt_count)
        segment.attempt_paths.append(path)
        try:
            rendered = self.synthesizer.synthesize(segment.speech_text, segment.length_scale, self.voice, path)
        except SynthesisError as e:
            logger.warning("Segment %d attempt %d failed: %s", segment.index, segment.attempt_count, e)
            segment.clip = None
            segment.rendered_clip_ref = None
            if segment.attempt_count >= self.settings.max_retries:
                return self._fallback(segment)
            segment.speech_text = simplify_for_retry(segment.speech_text)
            return SegmentState.RETRYING

        segment.clip = rendered.audio
        segment.rendered_clip_ref = rendered.path
        segment.measured_duration = rendered.duration
        return SegmentState.EVALUATING

    def _evaluate(self, segment: TimedSegment) -> SegmentState:
        segment.quality = self.assessor(segment.clip)
        segment.precision = timing_precision(segment.measured_duration, segment.duration)

        if is_acceptable(segment.quality, segment.precision, segment.duration, self.settings):
            logger.debug(
                "Segment %d accepted on attempt %d (precision %.1f%%, scale %.4f)",
                segment.index, segment.attempt_count, segment.precision, segment.length_scale,
            )
            return SegmentState.ACCEPTED

        if segment.attempt_count >= self.settings.max_retries:
            return self._fallback(segment)

        segment.length_scale = next_scale(
            segment.length_scale,
            segment.duration,
            segment.measured_duration,
            segment.attempt_count,
            segment.scale_history,
            self.settings,
        )
        logger.debug(
            "Segment %d attempt %d rejected (precision %.1f%%, voice=%s); retrying at scale %.4f",
            segment.index, segment.attempt_count, segment.precision,
            segment.quality.has_voice, segment.length_scale,
        )
        return SegmentState.RETRYING

    def _fallback(self, segment: TimedSegment) -> SegmentState:
        logger.warning(
            "Segment %d: no acceptable render after %d attempts; using %.3fs of silence",
            segment.index, segment.attempt_count, segment.duration,
        )
        segment.clip = None
        segment.rendered_clip_ref = None
        return SegmentState.FALLBACK

    def _discard_attempts(self, segment: TimedSegment) -> None:
        """Remove rejected attempt artifacts once the segment is final."""
        if self.settings.keep_attempts:
            return
        for path in segment.attempt_paths:
            if path != segment.rendered_clip_ref and os.path.exists(path):
                os.remove(path)
