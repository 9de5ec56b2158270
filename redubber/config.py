"""Tunable settings, seeded from constants and overridable from JSON."""

import json
import logging
import os
from dataclasses import asdict, dataclass, fields

from redubber import constants as C
from redubber.models import AudioFormat

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    # Audio format
    sample_rate: int = C.SAMPLE_RATE
    channels: int = C.CHANNELS
    sample_width: int = C.SAMPLE_WIDTH

    # Length scale
    initial_scale: float = C.DEFAULT_LENGTH_SCALE
    min_scale: float = C.MIN_LENGTH_SCALE
    max_scale: float = C.MAX_LENGTH_SCALE
    min_silence_compensation: float = C.MIN_SILENCE_COMPENSATION
    max_silence_compensation: float = C.MAX_SILENCE_COMPENSATION

    # Segment calibration
    max_retries: int = C.MAX_RETRIES
    min_audible_db: float = C.MIN_AUDIBLE_DB
    quality_floor: float = C.QUALITY_FLOOR
    precision_floor: float = C.PRECISION_FLOOR
    relax_short_cues: bool = True

    # Global calibration
    max_iterations: int = C.MAX_ITERATIONS
    target_precision: float = C.TARGET_PRECISION
    quality_threshold: float = C.QUALITY_THRESHOLD
    min_voice_ratio: float = C.MIN_VOICE_RATIO
    global_damping: float = C.GLOBAL_DAMPING
    audibility_floor_db: float = C.AUDIBILITY_FLOOR_DB
    hot_ceiling_db: float = C.HOT_CEILING_DB
    boost_step_db: float = C.BOOST_STEP_DB
    max_boost_db: float = C.MAX_BOOST_DB

    # Assembly
    gap_epsilon: float = C.GAP_EPSILON
    stretch_precision_floor: float = C.STRETCH_PRECISION_FLOOR
    min_stretch: float = C.MIN_STRETCH
    max_stretch: float = C.MAX_STRETCH
    target_pad_seconds: float = C.TARGET_PAD_SECONDS
    polish: bool = True

    # Synthesis and external tools
    synthesis_timeout: float = C.SYNTHESIS_TIMEOUT
    transcode_timeout: float = C.TRANSCODE_TIMEOUT
    min_clip_bytes: int = C.MIN_CLIP_BYTES
    synthesis_workers: int = C.SYNTHESIS_WORKERS
    cooldown_every: int = C.COOLDOWN_EVERY
    cooldown_seconds: float = C.COOLDOWN_SECONDS
    keep_attempts: bool = False

    @property
    def audio_format(self) -> AudioFormat:
        return AudioFormat(self.sample_rate, self.channels, self.sample_width)

    def precision_floor_for(self, duration: float) -> float:
        """Required per-segment precision, relaxed for short cues."""
        if self.relax_short_cues:
            for max_duration, floor in C.SHORT_CUE_PRECISION_FLOORS:
                if duration < max_duration:
                    return min(floor, self.precision_floor)
        return self.precision_floor

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        """Build settings from a dict, ignoring (and logging) unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown settings: %s", ", ".join(unknown))
        return cls(**{k: v for k, v in data.items() if k in known})


def load_settings(path: str | None = None, **overrides) -> Settings:
    """Load settings from a JSON file (if given) and apply keyword overrides.

    Overrides whose value is None are skipped so argparse defaults pass through.
    """
    data = {}
    if path:
        if not os.path.exists(path):
            raise FileNotFoundError(f"Settings file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Settings file must hold a JSON object: {path}")
    data.update({k: v for k, v in overrides.items() if v is not None})
    settings = Settings.from_dict(data)
    if settings.min_scale > settings.max_scale:
        raise ValueError("min_scale must not exceed max_scale")
    for name in ("synthesis_workers", "max_iterations", "max_retries"):
        if getattr(settings, name) < 1:
            raise ValueError(f"{name} must be at least 1")
    for name in ("synthesis_timeout", "transcode_timeout"):
        if getattr(settings, name) <= 0:
            raise ValueError(f"{name} must be positive")
    return settings
