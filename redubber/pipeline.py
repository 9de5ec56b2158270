"""Global calibration loop and the end-to-end redubbing run."""

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from redubber.artifacts import clear_work_dir, discard_dir, init_output_dir, iteration_dir, slug_from_path
from redubber.assembly import assemble
from redubber.audio import probe_duration
from redubber.cache import default_state, load_calibration, save_calibration
from redubber.calibrator import SegmentCalibrator, initial_scale, timing_precision
from redubber.constants import (
    BOOST_DECREASE_DB,
    MAX_GLOBAL_STEP,
    MIN_GLOBAL_STEP,
    OUTPUT_DIR,
    RATIO_DEADBAND,
    REFERENCE_AUDIO_NAMES,
    SILENCE_COMPENSATION_DOWN,
    SILENCE_COMPENSATION_UP,
)
from redubber.errors import RunCancelled
from redubber.exporter import export
from redubber.models import (
    AudioQualityMetrics,
    CalibrationState,
    Candidate,
    IterationRecord,
    TimedSegment,
)
from redubber.parser import parse_cue_file
from redubber.quality import assess

logger = logging.getLogger(__name__)


@dataclass
class CalibrationOutcome:
    best: Candidate
    accepted: bool
    history: list[IterationRecord]

    @property
    def fallback_segments(self) -> list[dict]:
        return [s for s in self.best.segments if s["state"] == "fallback"]


@dataclass
class RunResult:
    output_path: str
    report_path: str
    target_duration: float
    outcome: CalibrationOutcome
    state: CalibrationState


def _check_cancel(cancel_event) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise RunCancelled("Run cancelled")


def speech_timing(segments: list[TimedSegment]) -> tuple[float, float]:
    """(sum of cue durations, sum of measured durations) over accepted segments."""
    accepted = [s for s in segments if s.accepted]
    return (
        sum(s.duration for s in accepted),
        sum(s.measured_duration for s in accepted),
    )


def voice_segment_ratio(segments: list[TimedSegment]) -> float:
    if not segments:
        return 0.0
    voiced = sum(1 for s in segments if s.accepted and s.quality and s.quality.has_voice)
    return voiced / len(segments)


def adapt_parameters(
    state: CalibrationState,
    track_metrics: AudioQualityMetrics,
    speech_target: float,
    speech_measured: float,
    settings,
) -> None:
    """Update global parameters from one iteration's error and loudness.

    The scale follows the same damped-ratio rule as the per-segment update,
    with the step bounded. Boost moves in fixed steps outside the
    audibility/hot window.
    """
    if speech_target > 0 and speech_measured > 0:
        ratio = speech_target / speech_measured
        step = 1.0 + (ratio - 1.0) * settings.global_damping
        state.global_length_scale *= max(MIN_GLOBAL_STEP, min(MAX_GLOBAL_STEP, step))
        # Engine speaks longer than estimated → expect longer natural durations
        if ratio < 1.0 - RATIO_DEADBAND:
            state.silence_compensation *= SILENCE_COMPENSATION_UP
        elif ratio > 1.0 + RATIO_DEADBAND:
            state.silence_compensation *= SILENCE_COMPENSATION_DOWN

    if track_metrics.mean_volume_db < settings.audibility_floor_db:
        state.dynamic_boost_db += settings.boost_step_db
    elif track_metrics.mean_volume_db > settings.hot_ceiling_db:
        state.dynamic_boost_db -= BOOST_DECREASE_DB

    state.clamp(settings)


def render_segments(
    segments: list[TimedSegment],
    calibrator: SegmentCalibrator,
    state: CalibrationState,
    settings,
    cancel_event=None,
) -> None:
    """Run the segment calibrator over every segment.

    Sequential by default; with more than one synthesis worker, segments are
    spread over a thread pool, each owned by a single worker.
    """
    total = len(segments)
    starts = {s.index: initial_scale(s, state, settings) for s in segments}

    if settings.synthesis_workers > 1:
        def work(segment):
            _check_cancel(cancel_event)
            return calibrator.calibrate(segment, starts[segment.index])

        with ThreadPoolExecutor(max_workers=settings.synthesis_workers) as pool:
            futures = [pool.submit(work, s) for s in segments]
            for i, future in enumerate(futures):
                segment = future.result()
                print(f"  Segment {i + 1}/{total}: {segment.state.value} after {segment.attempt_count} attempt(s)")
        return

    for i, segment in enumerate(segments):
        _check_cancel(cancel_event)
        print(f"  Segment {i + 1}/{total}: {segment.normalized_text[:50]}")
        calibrator.calibrate(segment, starts[segment.index])
        done = i + 1
        if settings.cooldown_every and done % settings.cooldown_every == 0 and done < total:
            logger.debug("Cooling down for %.1fs after %d segments", settings.cooldown_seconds, done)
            time.sleep(settings.cooldown_seconds)


def calibrate(
    segments: list[TimedSegment],
    target_duration: float,
    synthesizer,
    settings,
    state: CalibrationState,
    work_dir: str,
    voice: str | None = None,
    cancel_event=None,
    assessor=assess,
) -> CalibrationOutcome:
    """Iterate render → assemble → measure until accepted or out of budget.

    Returns the accepted candidate, or the best one by overall quality.
    Raises RunCancelled (after discarding the in-flight iteration) and
    AssemblyEmptyError.
    """
    if settings.max_iterations < 1:
        raise ValueError("max_iterations must be at least 1")
    best = None
    accepted = False

    for iteration in range(1, settings.max_iterations + 1):
        _check_cancel(cancel_event)
        iter_dir = iteration_dir(work_dir, iteration)
        print(
            f"Iteration {iteration}/{settings.max_iterations}: "
            f"scale {state.global_length_scale:.4f}, boost {state.dynamic_boost_db:.1f} dB"
        )

        try:
            calibrator = SegmentCalibrator(synthesizer, settings, iter_dir, voice=voice, assessor=assessor)
            render_segments(segments, calibrator, state, settings, cancel_event)
            _check_cancel(cancel_event)
        except RunCancelled:
            discard_dir(iter_dir)
            raise

        result = assemble(segments, target_duration, settings, boost_db=state.dynamic_boost_db)
        track_path = os.path.join(iter_dir, "track.wav")
        result.track.export(track_path, format="wav")
        metrics = assessor(result.track)

        speech_target, speech_measured = speech_timing(segments)
        precision = timing_precision(speech_measured, speech_target)
        record = IterationRecord(
            iteration=iteration,
            scale=state.global_length_scale,
            final_duration=result.duration,
            target_duration=target_duration,
            precision=precision,
            quality_score=metrics.overall_quality,
            track_precision=timing_precision(result.duration, target_duration),
            voice_segment_ratio=voice_segment_ratio(segments),
            fallback_count=sum(1 for s in segments if s.fallback),
            boost_db=state.dynamic_boost_db,
        )
        record.accepted = (
            record.precision >= settings.target_precision
            and record.quality_score >= settings.quality_threshold
            and record.voice_segment_ratio >= settings.min_voice_ratio
        )
        state.iteration_history.append(record)

        candidate = Candidate(
            iteration=iteration,
            track=result.track,
            path=track_path,
            metrics=metrics,
            record=record,
            segments=[s.summary() for s in segments],
        )
        print(
            f"  precision {record.precision:.1f}%, quality {record.quality_score:.1f}, "
            f"voice {record.voice_segment_ratio:.0%}, fallbacks {record.fallback_count}"
        )

        if record.accepted:
            best = candidate
            accepted = True
            break
        if best is None or record.quality_score > best.record.quality_score:
            best = candidate
        if iteration < settings.max_iterations:
            adapt_parameters(state, metrics, speech_target, speech_measured, settings)

    if not accepted:
        logger.warning(
            "No iteration met the acceptance criteria; using iteration %d (quality %.1f)",
            best.iteration, best.record.quality_score,
        )
    return CalibrationOutcome(best=best, accepted=accepted, history=list(state.iteration_history))


def find_reference_audio(cue_path: str) -> str | None:
    """Look for the original audio or video next to the cue file."""
    folder = os.path.dirname(os.path.abspath(cue_path))
    stem = os.path.splitext(os.path.basename(cue_path))[0]
    for name in (*REFERENCE_AUDIO_NAMES, f"{stem}.wav", f"{stem}.mp4"):
        path = os.path.join(folder, name)
        if os.path.isfile(path):
            return path
    return None


def resolve_target_duration(
    segments: list[TimedSegment],
    settings,
    cue_path: str | None = None,
    target_duration: float | None = None,
    reference: str | None = None,
) -> float:
    """Target length of the output track, in seconds.

    Explicit duration, then the reference media's duration, then the last
    cue end plus a fixed pad.
    """
    if target_duration is not None:
        if target_duration <= 0:
            raise ValueError("Target duration must be positive")
        return float(target_duration)

    if reference is None and cue_path is not None:
        reference = find_reference_audio(cue_path)
    if reference is not None:
        try:
            duration = probe_duration(reference)
            logger.info("Target duration %.3fs from %s", duration, reference)
            return duration
        except (OSError, ValueError) as e:
            logger.warning("Could not probe %s (%s); deriving target from cues", reference, e)

    return max(s.end_time for s in segments) + settings.target_pad_seconds


def run(
    cue_path: str,
    synthesizer,
    settings,
    voice: str | None = None,
    target_duration: float | None = None,
    reference: str | None = None,
    output_base: str = OUTPUT_DIR,
    use_cache: bool = True,
    cancel_event=None,
    assessor=assess,
) -> RunResult:
    """Redub one cue file end to end and write the track and report."""
    segments = parse_cue_file(cue_path)
    target = resolve_target_duration(segments, settings, cue_path, target_duration, reference)
    print(f"Parsed {len(segments)} cues; target duration {target:.3f}s")

    state = load_calibration(settings, output_base) if use_cache else default_state(settings)
    project_dir = init_output_dir(cue_path, output_base)
    work_dir = clear_work_dir(project_dir)

    outcome = calibrate(
        segments, target, synthesizer, settings, state, work_dir,
        voice=voice, cancel_event=cancel_event, assessor=assessor,
    )

    output_path, report_path = export(
        outcome,
        state,
        project_dir,
        slug_from_path(cue_path),
        settings,
        source=os.path.abspath(cue_path),
    )
    if use_cache:
        save_calibration(state, output_base)

    return RunResult(
        output_path=output_path,
        report_path=report_path,
        target_duration=target,
        outcome=outcome,
        state=state,
    )
