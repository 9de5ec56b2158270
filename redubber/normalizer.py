"""Clean cue text so it reads well when spoken."""

import re

from redubber.constants import RETRY_TEXT_MAX_CHARS

URL_PLACEHOLDER = "link"

_ANNOTATION_PATTERNS = [
    re.compile(r"\[[^\]]*\]"),          # [Music], [laughs]
    re.compile(r"\([^)]*\)"),           # (whispering)
    re.compile(r"<[^>]*>"),             # <i>, <c.yellow>, <00:00:01.000>
    re.compile(r"\{[^}]*\}"),           # {\an8}
    re.compile(r"♪[^♪]*♪"),             # ♪ lyrics ♪
]
_MUSIC_MARKERS = re.compile(r"[♪♫]")
_URL = re.compile(r"(?:https?://|www\.)\S+", re.IGNORECASE)
_SPEAKER_DASH = re.compile(r"(^|\s)[-–—]\s+")
_WHITESPACE = re.compile(r"\s+")
_TERMINAL = (".", "!", "?", "…")

# Order matters: dotted forms before bare ones.
_ABBREVIATIONS = [
    (re.compile(r"\be\.g\.", re.IGNORECASE), "for example"),
    (re.compile(r"\bi\.e\.", re.IGNORECASE), "that is"),
    (re.compile(r"\betc\.", re.IGNORECASE), "et cetera"),
    (re.compile(r"\bvs\.?(?=\s|$)", re.IGNORECASE), "versus"),
    (re.compile(r"\bDr\.(?=\s)"), "Doctor"),
    (re.compile(r"\bMrs\.(?=\s)"), "Missus"),
    (re.compile(r"\bMr\.(?=\s)"), "Mister"),
    (re.compile(r"\bMs\.(?=\s)"), "Miz"),
    (re.compile(r"\s*&\s*"), " and "),
    (re.compile(r"(\d)\s*%"), r"\1 percent"),
    (re.compile(r"%"), " percent"),
]

_FILLER_WORDS = re.compile(r"\b(?:very|really|actually|basically|literally|just)\b\s*", re.IGNORECASE)
_QUOTES_AND_BRACKETS = re.compile(r"[\"“”‘’«»\[\]{}()<>]")


def _ensure_terminal(text: str) -> str:
    if text and not text.endswith(_TERMINAL):
        text = text.rstrip(",;:-–— ") + "."
    return text


def normalize(raw_text: str, expand: bool = True) -> str:
    """Turn raw cue text into speech-ready text.

    Strips markup and annotations, replaces URLs with a placeholder word,
    expands common abbreviations and guarantees the result is either empty
    or ends in terminal punctuation.
    """
    text = raw_text
    for pattern in _ANNOTATION_PATTERNS:
        text = pattern.sub(" ", text)
    text = _MUSIC_MARKERS.sub(" ", text)
    text = _URL.sub(URL_PLACEHOLDER, text)
    text = _SPEAKER_DASH.sub(r"\1", text)

    if expand:
        for pattern, replacement in _ABBREVIATIONS:
            text = pattern.sub(replacement, text)

    text = _WHITESPACE.sub(" ", text).strip()
    # Nothing speakable left (e.g. only punctuation)
    if not any(ch.isalnum() for ch in text):
        return ""
    return _ensure_terminal(text)


def simplify_for_retry(text: str, max_chars: int = RETRY_TEXT_MAX_CHARS) -> str:
    """Simpler variant of text for a retry after the engine failed on it."""
    simplified = _QUOTES_AND_BRACKETS.sub("", text)
    simplified = _FILLER_WORDS.sub("", simplified)
    simplified = _WHITESPACE.sub(" ", simplified).strip()

    if len(simplified) > max_chars:
        cut = simplified[:max_chars]
        if " " in cut:
            cut = cut.rsplit(" ", 1)[0]
        simplified = cut

    if not any(ch.isalnum() for ch in simplified):
        return text
    return _ensure_terminal(simplified)
