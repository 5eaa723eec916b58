"""Tests for input validation."""
from __future__ import annotations

import pytest

from speech_gateway.services.errors import ValidationError
from speech_gateway.services.validators import (
    MAX_VOICE_ID_CHARS,
    TEXT_REQUIRED_MESSAGE,
    validate_format,
    validate_text,
    validate_text_length,
    validate_voice,
)


class TestValidateText:

    def test_valid_text_unchanged(self):
        assert validate_text("  Hello  ") == "  Hello  "

    @pytest.mark.parametrize("text", [None, "", "   ", "\n\t "])
    def test_blank_text(self, text):
        with pytest.raises(ValidationError) as exc_info:
            validate_text(text)
        assert exc_info.value.message == TEXT_REQUIRED_MESSAGE
        assert exc_info.value.reason == "TEXT_REQUIRED"
        assert exc_info.value.status_code == 400


class TestValidateTextLength:

    def test_within_limit(self):
        assert validate_text_length("x" * 3000, 3000) == "x" * 3000

    def test_surrounding_whitespace_not_counted(self):
        validate_text_length("  " + "x" * 10 + "  ", 10)

    def test_over_limit(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_text_length("x" * 3001, 3000)
        assert exc_info.value.reason == "TEXT_TOO_LONG"
        assert exc_info.value.details["chars"] == 3001
        assert "3000" in exc_info.value.message


class TestValidateFormat:

    @pytest.mark.parametrize("fmt", ["mp3", "ogg_vorbis", "pcm"])
    def test_supported(self, fmt):
        assert validate_format(fmt) == fmt

    def test_default_used_for_missing(self):
        assert validate_format(None, default="pcm") == "pcm"
        assert validate_format("", default="ogg_vorbis") == "ogg_vorbis"

    @pytest.mark.parametrize("fmt", ["wav", "MP3", "json"])
    def test_unsupported(self, fmt):
        with pytest.raises(ValidationError) as exc_info:
            validate_format(fmt)
        assert exc_info.value.reason == "FORMAT_INVALID"
        assert exc_info.value.details["supported"] == ["mp3", "ogg_vorbis", "pcm"]


class TestValidateVoice:

    def test_default(self):
        assert validate_voice(None, default="Matthew") == "Matthew"

    def test_trimmed(self):
        assert validate_voice(" Joanna ") == "Joanna"

    def test_blank(self):
        with pytest.raises(ValidationError):
            validate_voice("   ")

    def test_too_long(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_voice("v" * (MAX_VOICE_ID_CHARS + 1))
        assert exc_info.value.reason == "VOICE_INVALID"
