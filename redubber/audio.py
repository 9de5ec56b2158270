"""Sample-exact audio primitives: silence, format conformance, fitting, stretching."""

import logging
import os
import subprocess
import tempfile
import threading

import numpy as np
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError
from pydub.utils import mediainfo

from redubber.constants import TRANSCODE_TIMEOUT, TRIM_FADE_MS
from redubber.models import AudioFormat

logger = logging.getLogger(__name__)

# ffmpeg/ffprobe can run as several concurrent instances
TRANSCODE_SEMAPHORE = threading.BoundedSemaphore(os.cpu_count() or 2)


def frame_count(audio: AudioSegment) -> int:
    return int(round(audio.frame_count()))


def duration_seconds(audio: AudioSegment) -> float:
    """Exact duration from the frame count (len() is rounded to ms)."""
    if audio.frame_rate <= 0:
        return 0.0
    return frame_count(audio) / audio.frame_rate


def silence_frames(frames: int, fmt: AudioFormat) -> AudioSegment:
    """Digital silence of exactly `frames` frames."""
    frames = max(0, int(frames))
    return AudioSegment(
        data=b"\x00" * (frames * fmt.channels * fmt.sample_width),
        sample_width=fmt.sample_width,
        frame_rate=fmt.sample_rate,
        channels=fmt.channels,
    )


def silence(seconds: float, fmt: AudioFormat) -> AudioSegment:
    """Silence of the given duration, rounded to the nearest frame."""
    return silence_frames(fmt.to_frames(max(0.0, seconds)), fmt)


def conform(audio: AudioSegment, fmt: AudioFormat) -> AudioSegment:
    """Convert a clip to the pipeline's sample rate, channel count and width."""
    if audio.sample_width != fmt.sample_width:
        audio = audio.set_sample_width(fmt.sample_width)
    if audio.frame_rate != fmt.sample_rate:
        audio = audio.set_frame_rate(fmt.sample_rate)
    if audio.channels != fmt.channels:
        audio = audio.set_channels(fmt.channels)
    return audio


def concatenate(pieces: list[AudioSegment], fmt: AudioFormat) -> AudioSegment:
    """Join clips in order after normalizing them to one format."""
    data = b"".join(conform(piece, fmt).raw_data for piece in pieces)
    return AudioSegment(
        data=data,
        sample_width=fmt.sample_width,
        frame_rate=fmt.sample_rate,
        channels=fmt.channels,
    )


def _fade_tail(audio: AudioSegment, frames: int) -> AudioSegment:
    """Linear fade over the last `frames` frames, keeping the frame count."""
    samples = np.array(audio.get_array_of_samples())
    ramp = np.linspace(1.0, 0.0, frames, dtype=np.float32)
    shaped = samples.reshape((-1, audio.channels))
    tail = shaped[-frames:].astype(np.float32) * ramp[:, None]
    shaped[-frames:] = np.round(tail).astype(samples.dtype)
    return AudioSegment(
        data=shaped.tobytes(),
        sample_width=audio.sample_width,
        frame_rate=audio.frame_rate,
        channels=audio.channels,
    )


def fit_to_frames(audio: AudioSegment, frames: int, fade_ms: int = TRIM_FADE_MS) -> AudioSegment:
    """Pad with silence or trim so the clip is exactly `frames` long.

    Trimmed clips get a short fade-out so the cut does not click. The fade
    works on samples, not milliseconds, so no frames are lost.
    """
    frames = max(0, int(frames))
    current = frame_count(audio)
    if current == frames:
        return audio
    if current > frames:
        trimmed = audio.get_sample_slice(0, frames)
        fade = min(int(fade_ms * audio.frame_rate / 1000), frames // 2)
        if fade > 0:
            trimmed = _fade_tail(trimmed, fade)
        return trimmed
    fmt = AudioFormat(audio.frame_rate, audio.channels, audio.sample_width)
    return audio + silence_frames(frames - current, fmt)


def load_clip(path: str, fmt: AudioFormat) -> AudioSegment:
    """Decode an audio file and conform it to the pipeline format."""
    return conform(AudioSegment.from_file(path), fmt)


def probe_duration(path: str) -> float:
    """Duration in seconds of any media file ffprobe understands."""
    with TRANSCODE_SEMAPHORE:
        info = mediainfo(path)
    try:
        return float(info["duration"])
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Could not determine duration of {path}") from e


def time_stretch(
    audio: AudioSegment,
    speed: float,
    timeout: float = TRANSCODE_TIMEOUT,
) -> AudioSegment:
    """Change tempo without changing pitch using ffmpeg's atempo filter.

    `speed` > 1 shortens the clip. On any ffmpeg failure the input is
    returned unchanged so the caller can still fit it to its slot.
    """
    if speed <= 0 or abs(speed - 1.0) < 1e-3:
        return audio

    fmt = AudioFormat(audio.frame_rate, audio.channels, audio.sample_width)
    with tempfile.TemporaryDirectory(prefix="redubber-stretch-") as tmp:
        src = os.path.join(tmp, "in.wav")
        dst = os.path.join(tmp, "out.wav")
        audio.export(src, format="wav")
        cmd = [
            "ffmpeg", "-y", "-loglevel", "error",
            "-i", src,
            "-filter:a", f"atempo={speed:.6f}",
            "-ar", str(fmt.sample_rate),
            "-ac", str(fmt.channels),
            "-f", "wav", dst,
        ]
        try:
            with TRANSCODE_SEMAPHORE:
                subprocess.run(cmd, check=True, capture_output=True, timeout=timeout)
            stretched = AudioSegment.from_file(dst, format="wav")
        except subprocess.TimeoutExpired:
            logger.warning("ffmpeg atempo timed out after %.0fs; keeping unstretched clip", timeout)
            return audio
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or b"").decode(errors="replace").strip()
            logger.warning("ffmpeg atempo failed (exit %s): %s", e.returncode, stderr[-200:])
            return audio
        except (FileNotFoundError, CouldntDecodeError) as e:
            logger.warning("Time stretch unavailable: %s", e)
            return audio

    return conform(stretched, fmt)
