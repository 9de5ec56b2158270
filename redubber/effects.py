"""Final polish: loudness boost plus a light denoise/filter/limit chain."""

import logging

import numpy as np
from pydub import AudioSegment

from redubber.audio import fit_to_frames, frame_count
from redubber.constants import (
    HIGHPASS_HZ,
    LIMITER_THRESHOLD_DB,
    LOWPASS_HZ,
    NOISE_GATE_DB,
)

logger = logging.getLogger(__name__)

# Try to import pedalboard, graceful fallback if not installed
try:
    import pedalboard
    PEDALBOARD_AVAILABLE = True
except ImportError:
    PEDALBOARD_AVAILABLE = False


def to_float_array(audio: AudioSegment) -> np.ndarray:
    """Convert an AudioSegment to a (channels, frames) float32 array in [-1, 1]."""
    samples = np.array(audio.get_array_of_samples(), dtype=np.float32)
    if audio.channels > 1:
        samples = samples.reshape((-1, audio.channels)).T
    else:
        samples = samples.reshape((1, -1))
    full_scale = float(1 << (8 * audio.sample_width - 1))
    return samples / full_scale


def from_float_array(samples: np.ndarray, template: AudioSegment) -> AudioSegment:
    """Convert a (channels, frames) float array back using template's format."""
    full_scale = float(1 << (8 * template.sample_width - 1))
    dtype = {1: np.int8, 2: np.int16, 4: np.int32}[template.sample_width]
    ints = np.clip(samples * full_scale, -full_scale, full_scale - 1).astype(dtype)
    if template.channels > 1:
        ints = ints.T.flatten()
    else:
        ints = ints.flatten()
    return AudioSegment(
        data=ints.tobytes(),
        sample_width=template.sample_width,
        frame_rate=template.frame_rate,
        channels=template.channels,
    )


def _build_chain(sample_rate: int):
    chain = [
        pedalboard.NoiseGate(threshold_db=NOISE_GATE_DB),
        pedalboard.HighpassFilter(cutoff_frequency_hz=HIGHPASS_HZ),
    ]
    # Lowpass only makes sense below Nyquist
    if LOWPASS_HZ < sample_rate / 2:
        chain.append(pedalboard.LowpassFilter(cutoff_frequency_hz=LOWPASS_HZ))
    chain.append(pedalboard.Limiter(threshold_db=LIMITER_THRESHOLD_DB))
    return pedalboard.Pedalboard(chain)


def polish(audio: AudioSegment, boost_db: float = 0.0, enhance: bool = True) -> AudioSegment:
    """Apply the loudness boost and the enhancement chain.

    Never changes the frame count. Without pedalboard only the boost is
    applied.
    """
    frames = frame_count(audio)
    if frames == 0:
        return audio

    result = audio + boost_db if boost_db else audio

    if enhance and PEDALBOARD_AVAILABLE:
        samples = to_float_array(result)
        processed = _build_chain(result.frame_rate)(samples, result.frame_rate)
        result = from_float_array(processed, result)
    elif enhance:
        logger.debug("pedalboard not installed; skipping enhancement chain")

    return fit_to_frames(result, frames, fade_ms=0)
