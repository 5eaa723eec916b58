"""
Input Validation for the Speech Pipeline.

Validation happens before any upstream call, so a rejected request costs
nothing but this check.

Validation Rules:
    - Text: Required, non-blank after trimming
    - Text length: Bounded only on the simple (single-call) path
    - Format: One of mp3, ogg_vorbis, pcm
    - Voice: Non-blank, at most 64 characters

All functions raise ValidationError (HTTP 400). The reason in its details
follows the pattern {FIELD}_REQUIRED, {FIELD}_TOO_LONG, {FIELD}_INVALID.
"""
from __future__ import annotations

from typing import Optional

from speech_gateway.core.config import OUTPUT_FORMATS
from speech_gateway.core.logging import get_logger, warn
from speech_gateway.services.errors import ValidationError

_LOG = get_logger("speech-gateway.validators")

TEXT_REQUIRED_MESSAGE = "Text is required for speech synthesis"

MAX_VOICE_ID_CHARS = 64


def validate_text(text: Optional[str]) -> str:
    """
    Require non-blank text.

    Returns:
        The text, unchanged. Whitespace is normalized later by the segmenter.

    Raises:
        ValidationError: TEXT_REQUIRED for None, empty or whitespace-only text.
    """
    if text is None or not text.strip():
        raise ValidationError(TEXT_REQUIRED_MESSAGE, "TEXT_REQUIRED")
    return text


def validate_text_length(text: str, max_chars: int) -> str:
    """
    Bound text for a single synthesis call.

    Raises:
        ValidationError: TEXT_TOO_LONG if the trimmed text exceeds max_chars.
    """
    length = len(text.strip())
    if length > max_chars:
        warn(_LOG, "text_too_long", chars=length, max_chars=max_chars)
        raise ValidationError(
            f"Text exceeds the {max_chars} character synthesis limit",
            "TEXT_TOO_LONG",
            {"chars": length, "max_chars": max_chars},
        )
    return text


def validate_format(output_format: Optional[str], default: str = "mp3") -> str:
    """
    Resolve and check the output format.

    Raises:
        ValidationError: FORMAT_INVALID for unknown formats.
    """
    fmt = (output_format or default).strip()
    if fmt not in OUTPUT_FORMATS:
        raise ValidationError(
            f"Unsupported output format: {fmt}",
            "FORMAT_INVALID",
            {"supported": sorted(OUTPUT_FORMATS)},
        )
    return fmt


def validate_voice(voice_id: Optional[str], default: str = "Joanna") -> str:
    """
    Resolve and check the voice id.

    Whether the voice exists is left to the synthesis service; an unknown
    voice surfaces as an upstream failure.

    Raises:
        ValidationError: VOICE_INVALID for blank or oversized ids.
    """
    if voice_id is None:
        return default
    voice = voice_id.strip()
    if not voice:
        raise ValidationError("Voice id must not be blank", "VOICE_INVALID")
    if len(voice) > MAX_VOICE_ID_CHARS:
        raise ValidationError(
            f"Voice id exceeds {MAX_VOICE_ID_CHARS} characters",
            "VOICE_INVALID",
        )
    return voice
