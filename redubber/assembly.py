"""Assemble calibrated segments and timeline silences into one exact-length track."""

import logging
from dataclasses import dataclass

from pydub import AudioSegment

from redubber.audio import (
    concatenate,
    conform,
    duration_seconds,
    fit_to_frames,
    frame_count,
    silence_frames,
    time_stretch,
)
from redubber.calibrator import timing_precision
from redubber.effects import polish
from redubber.errors import AssemblyEmptyError
from redubber.models import AudioFormat, TimedSegment

logger = logging.getLogger(__name__)


@dataclass
class Piece:
    kind: str                       # "leading", "gap", "speech", "fallback", "trailing"
    start_frame: int
    frames: int
    segment_index: int | None = None
    stretch: float = 1.0            # atempo speed applied, 1.0 = none
    trimmed_seconds: float = 0.0    # speech cut at the slot end


@dataclass
class AssemblyResult:
    track: AudioSegment
    duration: float                 # seconds, measured from frames
    pieces: list[Piece]


def _speech_clip(
    segment: TimedSegment,
    slot_frames: int,
    fmt: AudioFormat,
    settings,
) -> tuple[AudioSegment, float, float]:
    """Fit an accepted clip to its slot, time-stretching first if it is far off.

    Returns (fitted clip, speed actually applied, seconds of speech cut).
    """
    clip = conform(segment.clip, fmt)
    clip_seconds = duration_seconds(clip)
    slot_seconds = slot_frames / fmt.sample_rate

    applied = 1.0
    if timing_precision(clip_seconds, slot_seconds) < settings.stretch_precision_floor:
        speed = clip_seconds / slot_seconds
        speed = max(settings.min_stretch, min(settings.max_stretch, speed))
        stretched = time_stretch(clip, speed, timeout=settings.transcode_timeout)
        # time_stretch hands back its input when ffmpeg is unavailable or fails
        if stretched is not clip:
            clip, applied = stretched, speed

    trimmed = max(0, frame_count(clip) - slot_frames) / fmt.sample_rate
    if trimmed <= settings.gap_epsilon:
        trimmed = 0.0
    else:
        logger.warning(
            "Cue %d: speech runs %.3fs past its slot (%.3fs); cut at the cue end",
            segment.index, trimmed, slot_seconds,
        )
    return fit_to_frames(clip, slot_frames), applied, trimmed


def build_pieces(
    segments: list[TimedSegment],
    target_duration: float,
    fmt: AudioFormat,
    settings,
) -> list[tuple[Piece, AudioSegment]]:
    """Lay segments and silences on an absolute frame timeline, in index order."""
    eps = settings.gap_epsilon
    pieces = []
    cursor = 0.0                    # seconds, end of the last emitted segment
    cursor_frame = 0

    def emit(kind, frames, audio, index=None, stretch=1.0, trimmed=0.0):
        nonlocal cursor_frame
        pieces.append((Piece(kind, cursor_frame, frames, index, stretch, trimmed), audio))
        cursor_frame += frames

    for segment in sorted(segments, key=lambda s: s.index):
        gap = segment.start_time - cursor
        if gap > eps:
            frames = fmt.to_frames(segment.start_time) - cursor_frame
            emit("gap" if pieces else "leading", frames, silence_frames(frames, fmt))
        elif gap < -eps:
            logger.warning(
                "Cue %d overlaps the previous cue by %.3fs; no gap emitted", segment.index, -gap,
            )

        slot_frames = fmt.to_frames(segment.end_time) - cursor_frame
        if slot_frames / fmt.sample_rate <= eps:
            logger.warning("Cue %d is covered by the previous cue; skipped", segment.index)
            continue

        if segment.accepted and segment.clip is not None:
            clip, speed, trimmed = _speech_clip(segment, slot_frames, fmt, settings)
            segment.trimmed_seconds = trimmed
            emit("speech", slot_frames, clip, segment.index, speed, trimmed)
        else:
            if not segment.fallback:
                logger.warning("Cue %d was never calibrated; using silence", segment.index)
            emit("fallback", slot_frames, silence_frames(slot_frames, fmt), segment.index)
        cursor = segment.end_time

    end_frame = fmt.to_frames(target_duration)
    if target_duration - cursor > eps:
        frames = end_frame - cursor_frame
        emit("trailing", frames, silence_frames(frames, fmt))

    return pieces


def assemble(
    segments: list[TimedSegment],
    target_duration: float,
    settings,
    boost_db: float = 0.0,
) -> AssemblyResult:
    """Build the final track.

    The result is exactly target_duration long (to the frame) unless the gap
    between the last cue and the target is below the gap epsilon.
    """
    if not segments:
        raise AssemblyEmptyError("No segments to assemble")

    fmt = settings.audio_format
    pieces = build_pieces(segments, target_duration, fmt, settings)
    if not pieces:
        raise AssemblyEmptyError("Assembly produced no audio pieces")

    track = concatenate([audio for _, audio in pieces], fmt)

    end_frame = fmt.to_frames(target_duration)
    if end_frame > 0 and frame_count(track) > end_frame:
        logger.warning(
            "Cues run past the target duration (%.3fs > %.3fs); trimming",
            duration_seconds(track), target_duration,
        )
        track = fit_to_frames(track, end_frame)

    track = polish(track, boost_db=boost_db, enhance=settings.polish)
    return AssemblyResult(
        track=track,
        duration=duration_seconds(track),
        pieces=[piece for piece, _ in pieces],
    )
