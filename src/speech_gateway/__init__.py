"""
speech-gateway: HTTP gateway for cloud text-to-speech.

Forwards text to Amazon Polly and returns audio. Text longer than one
synthesis call allows is split into segments, synthesized segment by
segment, staged in a per-request temp area and merged with ffmpeg.

Key Features:
    - POST /speak for arbitrarily long text (up to the segment budget)
    - GET /voices filtered to the configured Polly engine
    - Chunked or single-call pipeline, selected in settings.yaml
    - Guaranteed cleanup of every staged artifact
    - Prometheus metrics and structured JSONL logs

Example Usage:
    >>> import asyncio
    >>> from speech_gateway.core.config import load_settings
    >>> from speech_gateway.services.speech_service import SpeechRequest, SpeechService
    >>>
    >>> service = SpeechService(load_settings(missing_ok=True))
    >>> result = asyncio.run(service.speak(SpeechRequest(text="Hello there"), request_id="demo"))
    >>> with open("speech.mp3", "wb") as f:
    ...     f.write(result.audio_bytes)
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
