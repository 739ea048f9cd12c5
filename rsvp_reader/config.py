"""Configuration constants, voice/speed tables, and .env loading.

WHY: Centralizes all configurable values so they are easy to find,
update, and override. Voice names, speed directives, and the fixed audio
format of the synthesis service are plain data structures, not buried in
logic, so they can be changed confidently in one place.

HOW: python-dotenv loads the .env file on import. Constants are defined
as module-level dicts, tuples, and strings. The load_api_key() function
provides a clear error when the credential is missing.

RULES:
- The synthesis service always returns 24 kHz mono 16-bit PCM
- Speed directives are prompt prefixes in the deployment language (Spanish)
- API key is loaded from .env via python-dotenv, never hardcoded
- All defaults can be overridden via environment variables
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()


class ConfigurationError(ValueError):
    """Raised when a required setting (e.g. the API key) is missing or invalid.

    Raised before any network call is attempted, so callers can report it
    without touching playback state.
    """


# ---------------------------------------------------------------------------
# Remote speech synthesis service
# ---------------------------------------------------------------------------

TTS_BASE_URL = os.getenv(
    "RSVP_TTS_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
)
TTS_MODEL = os.getenv("RSVP_TTS_MODEL", "gemini-2.5-flash-preview-tts")

TTS_SAMPLE_RATE = 24000
TTS_CHANNELS = 1
"""Fixed PCM format of the synthesis service (little-endian int16)."""

REMOTE_VOICES: tuple[str, ...] = ("Kore", "Puck", "Charon", "Fenrir", "Zephyr")
DEFAULT_VOICE = os.getenv("RSVP_DEFAULT_VOICE", "Zephyr")

# ---------------------------------------------------------------------------
# Reading speed
# ---------------------------------------------------------------------------

MIN_WPM = 100
MAX_WPM = 900
DEFAULT_WPM = int(os.getenv("RSVP_DEFAULT_WPM", "350"))

# (upper bound exclusive, directive). The last entry catches everything else.
SPEED_DIRECTIVES: tuple[tuple[float, str], ...] = (
    (160, "Habla lentamente:"),
    (280, ""),
    (450, "Habla rápidamente:"),
    (float("inf"), "Habla muy rápidamente:"),
)

# ---------------------------------------------------------------------------
# Batch prefetch
# ---------------------------------------------------------------------------

DEFAULT_CONCURRENCY = int(os.getenv("RSVP_CONCURRENCY", "3"))
DEFAULT_MAX_RETRIES = 2

ENGINE_KINDS: tuple[str, ...] = ("remote", "local")


def speed_directive(wpm: float) -> str:
    """Return the prompt prefix that nudges the voice toward *wpm*.

    WHY: The remote voice has no rate parameter; speed is steered by a
    natural-language instruction prefixed to the text.

    RULES:
    - below 160 → slow, 160–279 → none, 280–449 → quick, 450+ → very quick
    """
    for upper, directive in SPEED_DIRECTIVES:
        if wpm < upper:
            return directive
    return SPEED_DIRECTIVES[-1][1]


def validate_wpm(wpm: int) -> int:
    """Return *wpm* unchanged, raising ConfigurationError when out of range."""
    if not MIN_WPM <= wpm <= MAX_WPM:
        raise ConfigurationError(
            "Reading speed must be between {} and {} words per minute (got {}).".format(
                MIN_WPM, MAX_WPM, wpm
            )
        )
    return wpm


def validate_voice(voice: str) -> str:
    """Return *voice* unchanged, raising ConfigurationError for unknown names."""
    if voice not in REMOTE_VOICES:
        raise ConfigurationError(
            "Unknown voice '{}'. Available voices: {}".format(
                voice, ", ".join(REMOTE_VOICES)
            )
        )
    return voice


def load_api_key() -> str:
    """Load the speech service API key from the environment.

    WHY: The key is required for every synthesis call. Loading it
    from the environment (via .env) keeps it out of source code.

    RULES:
    - Raises ConfigurationError if the key is missing or empty
    - Never returns a default/placeholder value
    """
    key = os.getenv("GEMINI_API_KEY", "").strip()
    if not key:
        raise ConfigurationError(
            "Speech API key not configured. "
            "Add GEMINI_API_KEY to the .env file in the app folder."
        )
    return key
