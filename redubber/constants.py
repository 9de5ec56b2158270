"""All magic numbers and configuration constants."""

# Pipeline audio format
SAMPLE_RATE = 22050                 # Hz, matches the usual Piper voice models
CHANNELS = 1                        # mono
SAMPLE_WIDTH = 2                    # bytes, 16-bit PCM

# Length scale
DEFAULT_LENGTH_SCALE = 1.0          # neutral synthesis speed
MIN_LENGTH_SCALE = 0.6              # fastest allowed speech
MAX_LENGTH_SCALE = 1.6              # slowest allowed speech
DEFAULT_SILENCE_COMPENSATION = 1.0  # multiplier on the natural-duration estimate
MIN_SILENCE_COMPENSATION = 0.8
MAX_SILENCE_COMPENSATION = 1.3

# Natural duration estimate (seconds = chars / CPS + words * WORD_PAUSE)
CHARS_PER_SECOND = 15.0
WORD_PAUSE_SECONDS = 0.08
MIN_ESTIMATE_SECONDS = 0.5
SLOW_CUE_RATIO = 1.3                # cue much longer than estimate → slow down
FAST_CUE_RATIO = 0.85               # cue much shorter than estimate → speed up
SLOW_CUE_FACTOR = 1.05
FAST_CUE_FACTOR = 0.98
SHORT_CUE_SECONDS = 1.0             # below this the synthesis overhead dominates
SHORT_CUE_WORDS = 2
SHORT_CUE_FACTOR = 1.10

# Segment calibration
MAX_RETRIES = 3                     # synthesis attempts per segment
MIN_AUDIBLE_DB = -45.0              # mean volume floor for an accepted clip
QUALITY_FLOOR = 40.0                # spectral quality floor for an accepted clip
PRECISION_FLOOR = 60.0              # timing precision floor (%) for an accepted clip
SHORT_CUE_PRECISION_FLOORS = (      # (max duration s, floor %), relaxed for short cues
    (1.0, 30.0),
    (3.0, 40.0),
    (6.0, 50.0),
)
INITIAL_DAMPING = 0.5               # damping on attempt 1, decreasing per attempt
DAMPING_STEP = 0.1
MIN_DAMPING = 0.2
UNMEASURED_SCALE_FACTOR = 1.05      # nudge when a render had no measurable duration
RETRY_TEXT_MAX_CHARS = 100          # simplified retry text is truncated to this

# Global calibration
MAX_ITERATIONS = 4
TARGET_PRECISION = 92.0             # %, whole-file acceptance
QUALITY_THRESHOLD = 75.0            # overall quality, whole-file acceptance
MIN_VOICE_RATIO = 0.8               # share of segments that must carry voice
GLOBAL_DAMPING = 0.7
MAX_GLOBAL_STEP = 1.3               # bounds on one global scale update
MIN_GLOBAL_STEP = 0.7
RATIO_DEADBAND = 0.02               # silence compensation moves outside ±2%
SILENCE_COMPENSATION_UP = 1.03
SILENCE_COMPENSATION_DOWN = 0.97
AUDIBILITY_FLOOR_DB = -40.0         # track mean below this → more boost
HOT_CEILING_DB = -15.0              # track mean above this → less boost
BOOST_STEP_DB = 3.0
BOOST_DECREASE_DB = 1.0
MAX_BOOST_DB = 12.0

# Assembly
GAP_EPSILON = 0.01                  # seconds, smaller gaps emit no silence
STRETCH_PRECISION_FLOOR = 97.0      # %, clips this close to their slot are not stretched
MIN_STRETCH = 0.75                  # atempo bounds (speed factor)
MAX_STRETCH = 1.35
TRIM_FADE_MS = 10                   # fade applied when a clip is cut to its slot
TARGET_PAD_SECONDS = 2.0            # added after the last cue when no reference exists

# Polish chain
HIGHPASS_HZ = 60.0
LOWPASS_HZ = 8000.0
NOISE_GATE_DB = -60.0
LIMITER_THRESHOLD_DB = -1.0

# Quality analysis
ANALYSIS_FLOOR_DB = -90.0           # reported level for digital silence
CONTENT_FLOOR_DB = -80.0            # mean above this counts as content
VOICE_DETECTION_DB = -28.0
QUIET_VOICE_DB = -35.0              # quieter speech still counts with enough dynamics
QUIET_VOICE_DYNAMIC_RANGE_DB = 5.0
VOICE_BAND_HZ = (300.0, 3400.0)
VOICE_BAND_MIN_RATIO = 0.3
CLIPPING_DB = -1.0
ANALYSIS_FRAME_MS = 50
ACTIVE_FRAME_DB = -70.0
FFT_WINDOW = 4096                   # samples per spectrum window on long clips
MAX_FFT_WINDOWS = 256

# Synthesis
SYNTHESIS_TIMEOUT = 60.0            # seconds, hard limit per render
TRANSCODE_TIMEOUT = 120.0           # seconds, hard limit per ffmpeg call
MIN_CLIP_BYTES = 256                # smaller outputs are treated as empty
SYNTHESIS_WORKERS = 1               # one loaded model serves one request at a time
COOLDOWN_EVERY = 0                  # segments between cooldown pauses (0 = off)
COOLDOWN_SECONDS = 2.0
EDGE_VOICE = "en-US-RogerNeural"
PIPER_COMMAND = "piper"

# Report grades
PERFECT_PRECISION = 99.0
GOOD_PRECISION = 95.0

REFERENCE_AUDIO_NAMES = ("original_audio.wav", "audio.wav")
CACHE_FILENAME = "calibration_cache.json"
OUTPUT_DIR = "output"
VERSION = "0.1.0"
