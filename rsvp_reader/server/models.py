"""Pydantic request/response models for the HTTP API.

WHY: Typed schemas give request validation, response serialization and
OpenAPI docs for free. Range checks on WPM and concurrency live here so
bad input never reaches the session.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Enum values match internal constants exactly (engine kinds, export keys)
- Response models never expose internal objects
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from rsvp_reader.config import MAX_WPM, MIN_WPM

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EngineKind(str, Enum):
    """Voice engine identifiers."""

    remote = "remote"
    local = "local"


class ExportKey(str, Enum):
    """Available export identifiers (keys of rsvp_reader.exporters.EXPORTERS)."""

    wav = "wav"
    word_timings = "word_timings"
    srt_words = "srt_words"


class KeyName(str, Enum):
    """Reader keys accepted by POST /session/key."""

    space = "space"
    escape = "escape"
    right = "right"
    left = "left"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class TextRequest(BaseModel):
    """Article text to read (plain text or light markdown)."""

    text: str = Field(description="Article text; paragraphs separated by blank lines.")


class SettingsRequest(BaseModel):
    """Partial settings update; omitted fields keep their value."""

    engine: Optional[EngineKind] = Field(default=None, description="Voice engine.")
    voice: Optional[str] = Field(default=None, description="Remote voice name.")
    wpm: Optional[int] = Field(
        default=None,
        ge=MIN_WPM,
        le=MAX_WPM,
        description="Reading speed in words per minute.",
    )
    concurrency: Optional[int] = Field(
        default=None, ge=1, le=16, description="Paragraphs synthesized in parallel."
    )


class SeekRequest(BaseModel):
    """Absolute (index) or relative (delta) seek; exactly one must be set."""

    index: Optional[int] = Field(default=None, description="Target global word index.")
    delta: Optional[int] = Field(
        default=None, description="Words to move from the current word (e.g. -10, 1)."
    )

    @model_validator(mode="after")
    def _exactly_one(self) -> "SeekRequest":
        if (self.index is None) == (self.delta is None):
            raise ValueError("Provide exactly one of 'index' or 'delta'.")
        return self


class KeyRequest(BaseModel):
    """One reader key press, as a keyboard front end would send it."""

    key: KeyName = Field(description="space toggles, escape stops, right/left seek.")
    shift: bool = Field(default=False, description="With right/left, seek ten words instead of one.")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class TextResponse(BaseModel):
    """Segmentation summary of the submitted text."""

    word_count: int = Field(description="Number of words after segmentation.")
    paragraph_count: int = Field(description="Number of non-empty paragraphs.")


class SettingsResponse(BaseModel):
    """Current session settings."""

    engine: EngineKind = Field(description="Voice engine.")
    voice: str = Field(description="Remote voice name.")
    wpm: int = Field(description="Reading speed in words per minute.")
    concurrency: int = Field(description="Prefetch worker count.")
    audio_ready: bool = Field(description="True when play() can start without preprocessing.")


class FocalWord(BaseModel):
    """Current word split around its focal letter."""

    prefix: str = Field(description="Letters before the focal letter.")
    focal: str = Field(description="The highlighted focal letter.")
    suffix: str = Field(description="Letters after the focal letter.")


class HighlightedWord(BaseModel):
    """One word of the full-text view."""

    index: int = Field(description="Global word index.")
    word: str = Field(description="The word as displayed.")
    current: bool = Field(description="True for the word under the cursor.")


class SessionStateResponse(BaseModel):
    """Snapshot of the playback cursor plus derived display data."""

    state: str = Field(description="stopped, playing or paused.")
    current_word_index: int = Field(description="Global index of the current word.")
    current_paragraph_index: int = Field(description="Paragraph of the current word.")
    seeked_while_paused: bool = Field(description="Next play() starts at the chosen word.")
    previous_word: str = Field(description="Word before the current one ('' at the start).")
    current_word: str = Field(description="The current word.")
    next_word: str = Field(description="Word after the current one ('' at the end).")
    focal: FocalWord = Field(description="Current word split for RSVP display.")
    word_count: int = Field(description="Total words in the document.")
    percent: float = Field(description="Reading progress, 0–100.")
    remaining: str = Field(description="Time left at the configured speed, e.g. '1m 05s'.")
    audio_ready: bool = Field(description="True when audio is prepared.")
    notices: List[str] = Field(description="Recent user-facing notices, oldest first.")


class JobCreatedResponse(BaseModel):
    """Returned when a preprocess job is accepted."""

    id: str = Field(description="Job identifier for polling.")
    status: str = Field(description="Initial job status (always 'pending').")


class JobResponse(BaseModel):
    """Preprocess job status."""

    id: str = Field(description="Job identifier.")
    status: str = Field(description="pending, processing, completed or failed.")
    percent: int = Field(description="Paragraphs finished, as a percentage.")
    eta_seconds: Optional[int] = Field(default=None, description="Estimated seconds left.")
    eta_label: str = Field(description="ETA as 'Xm YYs remaining', '' when unknown.")
    paragraphs: int = Field(description="Paragraphs in the batch.")
    failed_count: int = Field(description="Paragraphs that failed and will be skipped.")
    message: Optional[str] = Field(default=None, description="Outcome notice when finished.")
    error: Optional[str] = Field(default=None, description="Error, only when status is 'failed'.")
    created_at: float = Field(description="Creation timestamp (Unix epoch seconds).")


class ExportInfo(BaseModel):
    """Description of an available export."""

    key: str = Field(description="Export identifier used in the download URL.")
    name: str = Field(description="Human-readable export name.")


class ErrorResponse(BaseModel):
    """Standard error response body."""

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
