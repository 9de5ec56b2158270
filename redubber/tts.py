"""Speech synthesis adapter: engines behind a timeout, a semaphore and output checks."""

import asyncio
import logging
import os
import subprocess
import threading
from dataclasses import dataclass

import edge_tts
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from redubber.audio import duration_seconds, load_clip
from redubber.constants import EDGE_VOICE, PIPER_COMMAND
from redubber.errors import (
    SynthesisArtifactExistsError,
    SynthesisEmptyOutputError,
    SynthesisFailedError,
    SynthesisTimeoutError,
)

logger = logging.getLogger(__name__)


def rate_for_scale(length_scale: float) -> str:
    """Map a length scale to an edge-tts rate string.

    1.0 → "+0%", 1.25 (longer, slower) → "-20%", 0.8 (shorter) → "+25%".
    """
    percent = round((1.0 / length_scale - 1.0) * 100)
    return f"{percent:+d}%"


class EdgeTTSEngine:
    """Microsoft Edge neural voices via edge-tts. Writes MP3."""

    name = "edge"
    extension = ".mp3"

    def __init__(self, default_voice: str = EDGE_VOICE):
        self.default_voice = default_voice

    def render(self, text: str, length_scale: float, voice: str | None, output_path: str, timeout: float) -> None:
        communicate = edge_tts.Communicate(text, voice or self.default_voice, rate=rate_for_scale(length_scale))
        try:
            asyncio.run(asyncio.wait_for(communicate.save(output_path), timeout))
        except asyncio.TimeoutError as e:
            raise SynthesisTimeoutError(f"edge-tts timed out after {timeout:.0f}s") from e
        except edge_tts.exceptions.NoAudioReceived as e:
            raise SynthesisEmptyOutputError(f"edge-tts returned no audio for: {text[:50]}") from e
        except Exception as e:
            # Network and service errors surface as many exception types
            raise SynthesisFailedError(f"edge-tts failed: {e}") from e


class PiperEngine:
    """Local Piper voice model run as a subprocess. Writes WAV.

    Text is passed on stdin; noise is disabled so equal inputs give equal
    durations.
    """

    name = "piper"
    extension = ".wav"

    def __init__(self, model: str | None = None, command: str = PIPER_COMMAND, extra_args: list[str] | None = None):
        self.model = model
        self.command = command
        self.extra_args = list(extra_args or [])

    def build_command(self, length_scale: float, model: str, output_path: str) -> list[str]:
        return [
            self.command,
            "--model", model,
            "--length_scale", f"{length_scale:.6f}",
            "--noise_scale", "0",
            "--noise_w", "0",
            "--output_file", output_path,
            *self.extra_args,
        ]

    def render(self, text: str, length_scale: float, voice: str | None, output_path: str, timeout: float) -> None:
        model = voice or self.model
        if not model:
            raise SynthesisFailedError("No Piper model given")
        cmd = self.build_command(length_scale, model, output_path)
        try:
            # subprocess.run kills the child when the timeout expires
            subprocess.run(cmd, input=text.encode("utf-8"), capture_output=True, timeout=timeout, check=True)
        except subprocess.TimeoutExpired as e:
            raise SynthesisTimeoutError(f"piper timed out after {timeout:.0f}s") from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or b"").decode(errors="replace").strip()
            raise SynthesisFailedError(f"piper exited with {e.returncode}: {stderr[-200:]}") from e
        except FileNotFoundError as e:
            raise SynthesisFailedError(f"piper executable not found: {self.command}") from e


ENGINES = {
    EdgeTTSEngine.name: EdgeTTSEngine,
    PiperEngine.name: PiperEngine,
}


@dataclass
class RenderedClip:
    path: str
    audio: AudioSegment
    duration: float     # seconds, measured from the decoded frames


class Synthesizer:
    """Single entry point for all synthesis calls.

    Calls into the engine hold a bounded semaphore so a single loaded model
    never serves overlapping requests.
    """

    def __init__(self, engine, settings):
        self.engine = engine
        self.settings = settings
        self._semaphore = threading.BoundedSemaphore(settings.synthesis_workers)

    @property
    def extension(self) -> str:
        return getattr(self.engine, "extension", ".wav")

    def synthesize(self, text: str, length_scale: float, voice: str | None, output_path: str) -> RenderedClip:
        """Render text to output_path and return the decoded clip with its duration.

        Raises SynthesisTimeoutError, SynthesisFailedError,
        SynthesisEmptyOutputError or SynthesisArtifactExistsError.
        """
        if os.path.exists(output_path):
            raise SynthesisArtifactExistsError(f"Refusing to overwrite attempt artifact: {output_path}")

        with self._semaphore:
            logger.debug("Rendering %r at scale %.4f → %s", text[:40], length_scale, output_path)
            self.engine.render(text, length_scale, voice, output_path, self.settings.synthesis_timeout)

        return self._load(output_path)

    def _load(self, path: str) -> RenderedClip:
        """Validate and decode a rendered file."""
        if not os.path.exists(path):
            raise SynthesisEmptyOutputError(f"No output file written: {path}")
        size = os.path.getsize(path)
        if size < self.settings.min_clip_bytes:
            raise SynthesisEmptyOutputError(f"Output too small ({size} bytes): {path}")

        try:
            audio = load_clip(path, self.settings.audio_format)
        except (CouldntDecodeError, OSError, ValueError, EOFError) as e:
            raise SynthesisEmptyOutputError(f"Could not decode {path}: {e}") from e

        duration = duration_seconds(audio)
        if duration <= 0:
            raise SynthesisEmptyOutputError(f"Zero-length audio: {path}")
        return RenderedClip(path=path, audio=audio, duration=duration)
