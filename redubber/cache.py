"""Calibration cache: a flat key → number store used to warm-start runs."""

import json
import logging
import math
import os

from redubber.artifacts import load_artifact, write_artifact
from redubber.constants import CACHE_FILENAME, OUTPUT_DIR
from redubber.models import CalibrationState

logger = logging.getLogger(__name__)

CACHE_KEYS = ("global_length_scale", "silence_compensation", "dynamic_boost_db")


def default_state(settings) -> CalibrationState:
    state = CalibrationState(global_length_scale=settings.initial_scale)
    state.clamp(settings)
    return state


def load_calibration(settings, output_base: str = OUTPUT_DIR, filename: str = CACHE_FILENAME) -> CalibrationState:
    """Load cached calibration parameters.

    A missing cache yields defaults. A corrupt cache or a non-numeric value
    is logged and replaced by defaults; loaded values are clamped.
    """
    state = default_state(settings)
    try:
        data = load_artifact(output_base, filename)
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("Unreadable calibration cache %s: %s; using defaults", os.path.join(output_base, filename), e)
        return state
    if data is None:
        return state
    if not isinstance(data, dict):
        logger.warning("Malformed calibration cache (not an object); using defaults")
        return state

    for key in CACHE_KEYS:
        if key not in data:
            continue
        try:
            value = float(data[key])
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric cache value %s=%r", key, data[key])
            continue
        if not math.isfinite(value):
            logger.warning("Ignoring non-finite cache value %s=%r", key, data[key])
            continue
        setattr(state, key, value)

    state.clamp(settings)
    logger.info(
        "Loaded calibration: scale=%.4f silence=%.3f boost=%.1fdB",
        state.global_length_scale, state.silence_compensation, state.dynamic_boost_db,
    )
    return state


def save_calibration(state: CalibrationState, output_base: str = OUTPUT_DIR, filename: str = CACHE_FILENAME) -> str | None:
    """Overwrite the cache with the current parameters.

    Returns the cache path, or None if it could not be written.
    """
    try:
        return write_artifact(output_base, filename, state.to_dict())
    except OSError as e:
        logger.warning("Could not write calibration cache: %s", e)
        return None


def reset_calibration(output_base: str = OUTPUT_DIR, filename: str = CACHE_FILENAME) -> bool:
    """Delete the cache. Returns True if a file was removed."""
    path = os.path.join(output_base, filename)
    if os.path.exists(path):
        os.remove(path)
        return True
    return False
