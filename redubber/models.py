"""Data models for subtitle-synchronized redubbing."""

from dataclasses import dataclass, field
from enum import Enum

from pydub import AudioSegment

from redubber.constants import (
    ANALYSIS_FLOOR_DB,
    CHANNELS,
    DEFAULT_LENGTH_SCALE,
    DEFAULT_SILENCE_COMPENSATION,
    SAMPLE_RATE,
    SAMPLE_WIDTH,
)


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class AudioFormat:
    sample_rate: int = SAMPLE_RATE
    channels: int = CHANNELS
    sample_width: int = SAMPLE_WIDTH   # bytes per sample

    def to_frames(self, seconds: float) -> int:
        """Absolute timeline position in frames."""
        return int(round(seconds * self.sample_rate))


class SegmentState(Enum):
    PENDING = "pending"
    RENDERING = "rendering"
    EVALUATING = "evaluating"
    ACCEPTED = "accepted"
    RETRYING = "retrying"
    FALLBACK = "fallback"


@dataclass
class AudioQualityMetrics:
    has_voice: bool
    mean_volume_db: float
    peak_volume_db: float
    spectral_quality_score: float   # 0–100
    is_clipped: bool
    dynamic_range_db: float
    voice_band_ratio: float = 0.0   # share of energy in the speech band

    @property
    def overall_quality(self) -> float:
        """Weighted 0–100 score: voice 30, volume 25, spectral 20, clipping 15, dynamics 10."""
        voice = 1.0 if self.has_voice else 0.0
        volume = _clamp01((self.mean_volume_db + 50.0) / 40.0)
        spectral = self.spectral_quality_score / 100.0
        clipping = 0.8 if self.is_clipped else 1.0
        dynamics = _clamp01(self.dynamic_range_db / 20.0)
        score = voice * 0.30 + volume * 0.25 + spectral * 0.20 + clipping * 0.15 + dynamics * 0.10
        return score * 100.0

    @classmethod
    def worst_case(cls) -> "AudioQualityMetrics":
        return cls(
            has_voice=False,
            mean_volume_db=ANALYSIS_FLOOR_DB,
            peak_volume_db=ANALYSIS_FLOOR_DB,
            spectral_quality_score=0.0,
            is_clipped=False,
            dynamic_range_db=0.0,
            voice_band_ratio=0.0,
        )

    def to_dict(self) -> dict:
        return {
            "has_voice": self.has_voice,
            "mean_volume_db": round(self.mean_volume_db, 2),
            "peak_volume_db": round(self.peak_volume_db, 2),
            "spectral_quality_score": round(self.spectral_quality_score, 2),
            "is_clipped": self.is_clipped,
            "dynamic_range_db": round(self.dynamic_range_db, 2),
            "voice_band_ratio": round(self.voice_band_ratio, 3),
            "overall_quality": round(self.overall_quality, 2),
        }


@dataclass
class TimedSegment:
    index: int                  # 1-based cue position
    start_time: float           # seconds
    end_time: float             # seconds
    raw_text: str
    normalized_text: str
    speech_text: str = ""       # text sent to the engine, may be simplified on retry
    length_scale: float = DEFAULT_LENGTH_SCALE
    attempt_count: int = 0
    measured_duration: float = 0.0
    trimmed_seconds: float = 0.0  # speech cut at assembly
    precision: float = 0.0
    quality: AudioQualityMetrics | None = None
    scale_history: list[float] = field(default_factory=list)
    state: SegmentState = SegmentState.PENDING
    rendered_clip_ref: str | None = None   # None = missing
    clip: AudioSegment | None = field(default=None, repr=False)
    attempt_paths: list[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.speech_text:
            self.speech_text = self.normalized_text

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def accepted(self) -> bool:
        return self.state is SegmentState.ACCEPTED

    @property
    def fallback(self) -> bool:
        return self.state is SegmentState.FALLBACK

    def reset(self, initial_scale: float) -> None:
        """Clear everything a previous iteration produced."""
        self.speech_text = self.normalized_text
        self.length_scale = initial_scale
        self.attempt_count = 0
        self.measured_duration = 0.0
        self.trimmed_seconds = 0.0
        self.precision = 0.0
        self.quality = None
        self.scale_history = []
        self.state = SegmentState.PENDING
        self.rendered_clip_ref = None
        self.clip = None
        self.attempt_paths = []

    def summary(self) -> dict:
        """Report-friendly snapshot of the segment's outcome."""
        return {
            "index": self.index,
            "start": round(self.start_time, 3),
            "end": round(self.end_time, 3),
            "text": self.normalized_text,
            "state": self.state.value,
            "attempts": self.attempt_count,
            "length_scale": round(self.length_scale, 4),
            "measured_duration": round(self.measured_duration, 3),
            "trimmed_seconds": round(self.trimmed_seconds, 3),
            "precision": round(self.precision, 2),
            "has_voice": bool(self.quality and self.quality.has_voice),
        }


@dataclass
class IterationRecord:
    iteration: int
    scale: float                # global length scale used
    final_duration: float       # seconds, assembled track
    target_duration: float      # seconds
    precision: float            # %, speech timing precision
    quality_score: float        # overall quality of the track
    track_precision: float = 100.0
    voice_segment_ratio: float = 0.0
    fallback_count: int = 0
    boost_db: float = 0.0
    accepted: bool = False

    def to_dict(self) -> dict:
        return {
            "iteration": self.iteration,
            "scale": round(self.scale, 4),
            "final_duration": round(self.final_duration, 3),
            "target_duration": round(self.target_duration, 3),
            "precision": round(self.precision, 2),
            "track_precision": round(self.track_precision, 2),
            "quality_score": round(self.quality_score, 2),
            "voice_segment_ratio": round(self.voice_segment_ratio, 3),
            "fallback_count": self.fallback_count,
            "boost_db": round(self.boost_db, 2),
            "accepted": self.accepted,
        }


@dataclass
class CalibrationState:
    global_length_scale: float = DEFAULT_LENGTH_SCALE
    silence_compensation: float = DEFAULT_SILENCE_COMPENSATION
    dynamic_boost_db: float = 0.0
    iteration_history: list[IterationRecord] = field(default_factory=list)

    def clamp(self, settings) -> None:
        """Pull every parameter back inside its configured bounds."""
        self.global_length_scale = max(
            settings.min_scale, min(settings.max_scale, self.global_length_scale)
        )
        self.silence_compensation = max(
            settings.min_silence_compensation,
            min(settings.max_silence_compensation, self.silence_compensation),
        )
        self.dynamic_boost_db = max(0.0, min(settings.max_boost_db, self.dynamic_boost_db))

    def to_dict(self) -> dict:
        return {
            "global_length_scale": self.global_length_scale,
            "silence_compensation": self.silence_compensation,
            "dynamic_boost_db": self.dynamic_boost_db,
        }


@dataclass
class Candidate:
    iteration: int
    track: AudioSegment = field(repr=False)
    path: str
    metrics: AudioQualityMetrics
    record: IterationRecord
    segments: list[dict] = field(default_factory=list)   # TimedSegment.summary() per segment
