"""
API Request Schemas.

Example Request:
    {
        "text": "Hello, this is a long article...",
        "voiceId": "Joanna",
        "format": "mp3"
    }

Field presence is checked here; content rules (blank text, known formats)
live in services/validators.py so that the CLI gets the same checks and
blank text yields the gateway's own error message rather than a schema
error.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class SpeakRequest(BaseModel):
    """
    Request body of POST /speak.

    Attributes:
        text: Text to speak. Any length; long text is segmented.
        voice_id: Synthesis voice, sent as ``voiceId``. Defaults to synthesis.default_voice.
        format: Output format: mp3, ogg_vorbis or pcm. Defaults to
            synthesis.default_format.
    """
    model_config = ConfigDict(populate_by_name=True)

    text: str | None = Field(
        default=None,
        description="Text to synthesize"
    )
    voice_id: str | None = Field(
        default=None,
        alias="voiceId",
        max_length=64,
        description="Voice identifier (default: synthesis.default_voice)"
    )
    format: str | None = Field(
        default=None,
        description="Output format: mp3, ogg_vorbis, pcm (default: synthesis.default_format)"
    )
