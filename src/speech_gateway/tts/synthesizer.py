"""
Segment Synthesizer Base Class and Factory.

This module provides:
    - BaseSynthesizer: Abstract base class for synthesis backends
    - get_synthesizer(): Factory returning the process-wide backend instance

Backend Selection:
    The backend is selected via SPEECH_GW_SYNTH_BACKEND or
    settings.synthesis.backend. Supported backends:
        - polly: Amazon Polly through boto3

Calls are blocking and stateless. The request orchestrator runs them in a
worker thread, one segment at a time unless pipeline.max_parallel allows
more.

Implementing a New Backend:
    1. Create tts/<name>.py
    2. Inherit from BaseSynthesizer
    3. Implement synthesize_text() and describe_voices()
    4. Register in _create_synthesizer()
"""
from __future__ import annotations

import os
import threading
from typing import Any, Dict, List, Optional

from speech_gateway.core.config import Settings
from speech_gateway.core.logging import get_logger
from speech_gateway.tts.segmenter import TextSegment
from speech_gateway.tts.staging import AudioArtifact


class BaseSynthesizer:
    """
    Abstract base class for synthesis backends.

    Subclasses implement:
        - synthesize_text(): One upstream call for one piece of text
        - describe_voices(): Voice catalog, already filtered for this backend

    Attributes:
        name: Backend identifier (e.g., "polly").
        settings: Application settings.
        logger: Logger instance for this backend.
    """
    name: str = "base"

    def __init__(self, settings: Settings):
        self.settings = settings
        self.logger = get_logger(f"speech-gateway.synth.{self.name}")

    def synthesize_text(
        self,
        text: str,
        voice_id: str,
        output_format: str,
        segment_index: Optional[int] = None,
    ) -> bytes:
        """
        Synthesize one piece of text.

        Args:
            text: Text within the backend's per-call limit.
            voice_id: Backend voice identifier.
            output_format: One of the supported output formats.
            segment_index: Segment being synthesized, attached to errors.

        Returns:
            Encoded audio bytes.

        Raises:
            UpstreamError: If the backend call fails.
            NotImplementedError: If not overridden.
        """
        raise NotImplementedError

    def synthesize(self, segment: TextSegment, voice_id: str, output_format: str) -> AudioArtifact:
        """
        Synthesize one segment.

        Raises:
            UpstreamError: With segment_index set to segment.index.
        """
        audio = self.synthesize_text(
            segment.content,
            voice_id,
            output_format,
            segment_index=segment.index,
        )
        return AudioArtifact(segment_index=segment.index, audio_bytes=audio)

    def describe_voices(self) -> List[Dict[str, Any]]:
        """
        List the voices usable with this backend.

        Raises:
            UpstreamError: If the catalog cannot be fetched.
        """
        raise NotImplementedError


_SYNTHESIZER: Optional[BaseSynthesizer] = None
_SYNTHESIZER_TYPE: Optional[str] = None
_SYNTHESIZER_LOCK = threading.Lock()


def _resolve_backend(settings: Settings) -> str:
    env = os.getenv("SPEECH_GW_SYNTH_BACKEND")
    if env:
        return env.strip().lower()
    return settings.get_gateway_config().synthesis.backend


def _create_synthesizer(backend: str, settings: Settings) -> BaseSynthesizer:
    """
    Create a synthesis backend.

    Raises:
        ValueError: If backend is unknown.
    """
    if backend == "polly":
        from speech_gateway.tts.polly import PollySynthesizer
        return PollySynthesizer(settings)

    raise ValueError(f"Unknown synthesis backend: {backend}")


def get_synthesizer(settings: Settings) -> BaseSynthesizer:
    """
    Get or create the global synthesis backend.

    The boto3 client inside is thread-safe, so one instance serves every
    request. A different configured backend replaces the instance.
    """
    global _SYNTHESIZER
    global _SYNTHESIZER_TYPE

    backend = _resolve_backend(settings)

    if _SYNTHESIZER is None or _SYNTHESIZER_TYPE != backend:
        with _SYNTHESIZER_LOCK:
            if _SYNTHESIZER is None or _SYNTHESIZER_TYPE != backend:
                _SYNTHESIZER = _create_synthesizer(backend, settings)
                _SYNTHESIZER_TYPE = backend

    return _SYNTHESIZER


def reset_synthesizer() -> None:
    """Drop the global backend (tests, settings reload)."""
    global _SYNTHESIZER
    global _SYNTHESIZER_TYPE
    with _SYNTHESIZER_LOCK:
        _SYNTHESIZER = None
        _SYNTHESIZER_TYPE = None
