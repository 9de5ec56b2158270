"""Audio quality assessment: volume, voice-band energy, dynamics, clipping."""

import logging

import numpy as np
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from redubber.constants import (
    ACTIVE_FRAME_DB,
    ANALYSIS_FLOOR_DB,
    ANALYSIS_FRAME_MS,
    CLIPPING_DB,
    CONTENT_FLOOR_DB,
    FFT_WINDOW,
    MAX_FFT_WINDOWS,
    QUIET_VOICE_DB,
    QUIET_VOICE_DYNAMIC_RANGE_DB,
    VOICE_BAND_HZ,
    VOICE_BAND_MIN_RATIO,
    VOICE_DETECTION_DB,
)
from redubber.effects import to_float_array
from redubber.errors import AnalysisFailure
from redubber.models import AudioQualityMetrics

logger = logging.getLogger(__name__)


def _to_db(value: float) -> float:
    if value <= 0:
        return ANALYSIS_FLOOR_DB
    return max(ANALYSIS_FLOOR_DB, 20.0 * float(np.log10(value)))


def _mono(audio: AudioSegment) -> np.ndarray:
    samples = to_float_array(audio)
    return samples.mean(axis=0)


def _frame_levels(samples: np.ndarray, sample_rate: int) -> np.ndarray:
    """RMS level in dB of consecutive fixed-length frames."""
    frame_len = max(1, int(sample_rate * ANALYSIS_FRAME_MS / 1000))
    usable = (len(samples) // frame_len) * frame_len
    if usable == 0:
        frames = samples.reshape((1, -1))
    else:
        frames = samples[:usable].reshape((-1, frame_len))
    rms = np.sqrt(np.mean(frames ** 2, axis=1))
    with np.errstate(divide="ignore"):
        levels = 20.0 * np.log10(rms)
    return np.maximum(levels, ANALYSIS_FLOOR_DB)


def _dynamic_range(levels: np.ndarray) -> float:
    """Spread between loud and quiet active frames."""
    active = levels[levels > ACTIVE_FRAME_DB]
    if len(active) < 2:
        return 0.0
    return float(np.percentile(active, 95) - np.percentile(active, 10))


def _voice_band_ratio(samples: np.ndarray, sample_rate: int) -> float:
    """Share of spectral energy inside the speech band.

    Long clips are measured on evenly spaced windows rather than one huge FFT.
    """
    if len(samples) > FFT_WINDOW * MAX_FFT_WINDOWS:
        starts = np.linspace(0, len(samples) - FFT_WINDOW, MAX_FFT_WINDOWS).astype(int)
        windows = np.stack([samples[s:s + FFT_WINDOW] for s in starts])
        n = FFT_WINDOW
    else:
        windows = samples.reshape((1, -1))
        n = len(samples)
    spectrum = (np.abs(np.fft.rfft(windows, axis=1)) ** 2).sum(axis=0)
    total = float(spectrum.sum())
    if total <= 0:
        return 0.0
    freqs = np.fft.rfftfreq(n, d=1.0 / sample_rate)
    low, high = VOICE_BAND_HZ
    band = float(spectrum[(freqs >= low) & (freqs <= high)].sum())
    return band / total


def _spectral_score(has_voice: bool, mean_db: float, dynamic_range: float, band_ratio: float) -> float:
    if not has_voice:
        return 50.0 * band_ratio
    score = 75.0 + (mean_db + 30.0) * 0.8 + dynamic_range * 1.2
    return max(50.0, min(100.0, score))


def analyze(audio: AudioSegment) -> AudioQualityMetrics:
    """Measure an in-memory clip. Raises AnalysisFailure if it cannot."""
    if len(audio.raw_data) == 0 or audio.frame_rate <= 0:
        raise AnalysisFailure("empty clip")

    samples = _mono(audio)
    if samples.size == 0 or not np.all(np.isfinite(samples)):
        raise AnalysisFailure("clip has no finite samples")

    mean_db = _to_db(float(np.sqrt(np.mean(samples ** 2))))
    peak_db = _to_db(float(np.max(np.abs(samples))))
    dynamic_range = _dynamic_range(_frame_levels(samples, audio.frame_rate))
    band_ratio = _voice_band_ratio(samples, audio.frame_rate)

    has_content = mean_db > CONTENT_FLOOR_DB
    loud_enough = mean_db > VOICE_DETECTION_DB or (
        mean_db > QUIET_VOICE_DB and dynamic_range > QUIET_VOICE_DYNAMIC_RANGE_DB
    )
    has_voice = has_content and band_ratio >= VOICE_BAND_MIN_RATIO and loud_enough

    return AudioQualityMetrics(
        has_voice=has_voice,
        mean_volume_db=mean_db,
        peak_volume_db=peak_db,
        spectral_quality_score=_spectral_score(has_voice, mean_db, dynamic_range, band_ratio),
        is_clipped=peak_db > CLIPPING_DB,
        dynamic_range_db=dynamic_range,
        voice_band_ratio=band_ratio,
    )


def assess(clip: AudioSegment | str) -> AudioQualityMetrics:
    """Assess a clip (AudioSegment or file path).

    Never raises: any analysis failure yields worst-case metrics.
    """
    try:
        audio = AudioSegment.from_file(clip) if isinstance(clip, str) else clip
        return analyze(audio)
    except AnalysisFailure as e:
        logger.warning("Audio analysis failed: %s", e)
    except (CouldntDecodeError, OSError, ValueError, EOFError) as e:
        logger.warning("Audio analysis failed for %s: %s", clip if isinstance(clip, str) else "clip", e)
    return AudioQualityMetrics.worst_case()
