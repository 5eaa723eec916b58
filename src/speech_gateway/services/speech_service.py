"""
SpeechService - Chunk-and-Merge Speech Pipeline.

This module provides the central SpeechService class, the single place
where a /speak request is turned into audio. The HTTP layer and the CLI
both go through it.

Architecture (pipeline.mode: chunked):
    Request → Validate → Segment → Synthesize + Stage (per segment)
            → Merge → Read merged audio → Release staging

Architecture (pipeline.mode: simple):
    Request → Validate → Length check → One synthesis call

Request States:
    RECEIVED → VALIDATED → SEGMENTED → SYNTHESIZING → MERGING → RESPONDING → CLEANED
    Any state may move to FAILED, which is always followed by CLEANED.

Guarantees:
    - Nothing is sent upstream for blank text.
    - Segments are synthesized in order; the first failure aborts the rest
      and no merge is attempted.
    - The staging area of a request is released exactly once, on success,
      failure and cancellation alike.

Example:
    >>> settings = Settings(raw={"merge": {"backend": "concat"}})
    >>> service = SpeechService(settings)
    >>> result = asyncio.run(service.speak(SpeechRequest(text="Hello"), request_id="abc123"))
    >>> result.media_type
    'audio/mpeg'
"""
from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from speech_gateway import __version__
from speech_gateway.core.config import OUTPUT_FORMATS, Settings
from speech_gateway.core.logging import debug, fail, get_logger, info, success, verbose, warn
from speech_gateway.core.metrics import metrics
from speech_gateway.services.errors import (
    ErrorCode,
    GatewayError,
    MergeError,
    UpstreamError,
    ValidationError,
)
from speech_gateway.services.validators import (
    TEXT_REQUIRED_MESSAGE,
    validate_format,
    validate_text,
    validate_text_length,
    validate_voice,
)
from speech_gateway.tts.merger import BaseMerger, get_merger
from speech_gateway.tts.segmenter import TextSegment, segment_text
from speech_gateway.tts.staging import AudioArtifact, StagingStore, staging_area
from speech_gateway.tts.synthesizer import BaseSynthesizer, get_synthesizer
from speech_gateway.utils.text import preview
from speech_gateway.utils.timeit import timeit

_LOG = get_logger("speech-gateway.service")


# =============================================================================
# Request State
# =============================================================================

class PipelineState(str, Enum):
    """Lifecycle of one /speak request."""
    RECEIVED = "received"
    VALIDATED = "validated"
    SEGMENTED = "segmented"
    SYNTHESIZING = "synthesizing"
    MERGING = "merging"
    RESPONDING = "responding"
    FAILED = "failed"
    CLEANED = "cleaned"


@dataclass
class SpeechRequest:
    """
    Request for speech synthesis.

    Attributes:
        text: Text to speak; may be longer than one upstream call allows.
        voice_id: Voice identifier (optional, uses default).
        output_format: mp3, ogg_vorbis or pcm (optional, uses default).
    """
    text: Optional[str]
    voice_id: Optional[str] = None
    output_format: Optional[str] = None


@dataclass
class RequestContext:
    """
    Per-request state, created at entry and finished with CLEANED.

    Attributes:
        request_id: Correlation id, also names the staging area.
        segments: Output of the segmenter.
        artifacts: Staged per-segment audio, in segment order.
        merged_artifact: Merged output once MERGING finished.
        state: Current PipelineState.
        history: Every state entered, in order.
    """
    request_id: str
    segments: List[TextSegment] = field(default_factory=list)
    artifacts: List[AudioArtifact] = field(default_factory=list)
    merged_artifact: Optional[AudioArtifact] = None
    state: PipelineState = PipelineState.RECEIVED
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.RECEIVED])
    store: Optional[StagingStore] = None

    def advance(self, state: PipelineState) -> None:
        self.state = state
        self.history.append(state)
        debug(_LOG, "state", state=state.value)


@dataclass
class SpeechResult:
    """
    Result of SpeechService.speak().

    Attributes:
        audio_bytes: Final audio.
        output_format: Format of audio_bytes.
        media_type: HTTP Content-Type for the format.
        extension: File extension for Content-Disposition.
        request_id: Request ID for tracing.
        segment_count: Segments synthesized (1 on the simple path).
        truncated: True if text past the segment budget was dropped.
        total_seconds: Total processing time.
        timings: Per-stage timing breakdown.
    """
    audio_bytes: bytes
    output_format: str
    media_type: str
    extension: str
    request_id: str
    segment_count: int
    truncated: bool = False
    total_seconds: float = -1.0
    timings: Dict[str, float] = field(default_factory=dict)


# Metric status label per error class
_STATUS_LABELS = {
    ErrorCode.INVALID_INPUT: "invalid",
    ErrorCode.UPSTREAM_FAILED: "upstream_error",
    ErrorCode.MERGE_FAILED: "merge_error",
}


# =============================================================================
# Main Service Class
# =============================================================================

class SpeechService:
    """
    Speech pipeline over a synthesis backend and a merge backend.

    Both backends can be injected (tests use in-memory fakes); by default
    they come from the factories in tts.synthesizer and tts.merger.

    Usage:
        service = SpeechService(settings)
        result = await service.speak(SpeechRequest(text=long_text), request_id="req-1")
    """

    def __init__(
        self,
        settings: Settings,
        synthesizer: Optional[BaseSynthesizer] = None,
        merger: Optional[BaseMerger] = None,
    ):
        self._settings = settings
        self._config = settings.get_gateway_config()

        self._synthesizer = synthesizer if synthesizer is not None else get_synthesizer(settings)
        self._merger = merger if merger is not None else get_merger(settings)

        self._mode = self._config.pipeline.mode
        self._max_parallel = self._config.pipeline.max_parallel
        self._staging_dir = self._config.staging.resolved_dir()
        self._text_preview_chars = self._config.logging.text_preview_chars

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def mode(self) -> str:
        """Pipeline mode: "chunked" or "simple"."""
        return self._mode

    @property
    def synthesizer(self) -> BaseSynthesizer:
        return self._synthesizer

    @property
    def merger(self) -> BaseMerger:
        return self._merger

    @property
    def staging_dir(self) -> Path:
        """Root under which request staging areas are created."""
        return self._staging_dir

    # =========================================================================
    # Public API: speak()
    # =========================================================================

    async def speak(self, request: SpeechRequest, request_id: str) -> SpeechResult:
        """
        Turn text into one audio body.

        Args:
            request: SpeechRequest with text and options.
            request_id: Unique ID for tracing and staging.

        Returns:
            SpeechResult with the final audio and metadata.

        Raises:
            ValidationError: Blank text, bad format or voice, or text over
                the limit (simple path, or chunking.reject_overflow).
            UpstreamError: A synthesis call failed.
            MergeError: The merge backend failed.
            GatewayError: Anything unexpected, as INTERNAL_ERROR.
        """
        ctx = RequestContext(request_id=request_id)
        timings: Dict[str, float] = {}

        text_len = len(request.text) if request.text else 0
        info(
            _LOG, "request",
            chars=text_len,
            mode=self._mode,
            text_preview=preview(request.text or "", self._text_preview_chars),
        )
        debug(_LOG, "request_full", text=request.text, voice=request.voice_id, format=request.output_format)

        try:
            with timeit("request_total") as total_t:
                text, voice, fmt = self._validate(request)
                ctx.advance(PipelineState.VALIDATED)

                if self._mode == "simple":
                    audio, truncated = await self._speak_simple(ctx, text, voice, fmt, timings)
                else:
                    ext = OUTPUT_FORMATS[fmt][1]
                    with staging_area(self._staging_dir, request_id, extension=ext) as store:
                        ctx.store = store
                        audio, truncated = await self._speak_chunked(ctx, store, text, voice, fmt, timings)

        except GatewayError as e:
            ctx.advance(PipelineState.FAILED)
            self._record_failure(e)
            raise
        except Exception as e:
            ctx.advance(PipelineState.FAILED)
            fail(_LOG, "request_failed", error=str(e), error_type=type(e).__name__, exc_info=True)
            metrics.record_request(mode=self._mode, status="error", duration=-1)
            raise GatewayError(
                "Failed to synthesize or merge speech",
                ErrorCode.INTERNAL_ERROR,
                {"error_type": type(e).__name__},
            ) from e
        finally:
            ctx.advance(PipelineState.CLEANED)

        total_s = total_t.seconds
        media_type, extension = OUTPUT_FORMATS[fmt]
        segment_count = len(ctx.segments) if ctx.segments else 1

        success(_LOG, "done", bytes=len(audio), segments=segment_count, seconds=round(total_s, 3))
        metrics.record_request(mode=self._mode, status="success", duration=total_s, audio_bytes=len(audio))

        return SpeechResult(
            audio_bytes=audio,
            output_format=fmt,
            media_type=media_type,
            extension=extension,
            request_id=request_id,
            segment_count=segment_count,
            truncated=truncated,
            total_seconds=total_s,
            timings=timings,
        )

    # =========================================================================
    # Pipeline Stages
    # =========================================================================

    def _validate(self, request: SpeechRequest) -> tuple[str, str, str]:
        """RECEIVED → VALIDATED. Returns (text, voice_id, output_format)."""
        text = validate_text(request.text)
        voice = validate_voice(request.voice_id, default=self._config.synthesis.default_voice)
        fmt = validate_format(request.output_format, default=self._config.synthesis.default_format)
        return text, voice, fmt

    async def _speak_simple(
        self,
        ctx: RequestContext,
        text: str,
        voice: str,
        fmt: str,
        timings: Dict[str, float],
    ) -> tuple[bytes, bool]:
        """One upstream call for text within the single-call limit; no staging."""
        text = validate_text_length(text, self._config.synthesis.max_text_chars).strip()

        ctx.advance(PipelineState.SYNTHESIZING)
        with timeit("synth") as t_synth:
            audio = await asyncio.to_thread(self._synthesizer.synthesize_text, text, voice, fmt)
        timings["synth"] = t_synth.seconds
        metrics.record_segments(1)
        verbose(_LOG, "stage", event="synth", seconds=round(t_synth.seconds, 4))

        ctx.advance(PipelineState.RESPONDING)
        return audio, False

    async def _speak_chunked(
        self,
        ctx: RequestContext,
        store: StagingStore,
        text: str,
        voice: str,
        fmt: str,
        timings: Dict[str, float],
    ) -> tuple[bytes, bool]:
        """Segment, synthesize and stage each segment, merge, read the result."""

        # ─────────────────────────────────────────────────────────────────────
        # Stage 1: Segment
        # ─────────────────────────────────────────────────────────────────────
        chunking = self._config.chunking
        seg = segment_text(text, chunking.max_segment_length, chunking.max_segments)
        timings["segment"] = seg.timings_s.get("segment", -1.0)

        if seg.truncated:
            metrics.record_truncation()
            if chunking.reject_overflow:
                limit = chunking.max_segment_length * chunking.max_segments
                raise ValidationError(
                    f"Text exceeds the {limit} character limit",
                    "TEXT_TOO_LONG",
                    {"dropped_chars": seg.dropped_chars, "max_segments": chunking.max_segments},
                )
        if not seg.segments:
            raise ValidationError(TEXT_REQUIRED_MESSAGE, "TEXT_REQUIRED")

        ctx.segments = seg.segments
        ctx.advance(PipelineState.SEGMENTED)
        verbose(_LOG, "stage", event="segment", segments=len(ctx.segments), truncated=seg.truncated)

        # ─────────────────────────────────────────────────────────────────────
        # Stage 2: Synthesize and stage
        # ─────────────────────────────────────────────────────────────────────
        ctx.advance(PipelineState.SYNTHESIZING)
        with timeit("synth") as t_synth:
            if self._max_parallel > 1 and len(ctx.segments) > 1:
                ctx.artifacts = await self._synthesize_parallel(ctx.segments, voice, fmt, store)
            else:
                for segment in ctx.segments:
                    ctx.artifacts.append(await self._synthesize_one(segment, voice, fmt, store))
        timings["synth"] = t_synth.seconds
        verbose(_LOG, "stage", event="synth", segments=len(ctx.artifacts), seconds=round(t_synth.seconds, 4))

        # ─────────────────────────────────────────────────────────────────────
        # Stage 3: Merge
        # ─────────────────────────────────────────────────────────────────────
        ctx.advance(PipelineState.MERGING)
        output_path = store.merged_path()
        try:
            with timeit("merge") as t_merge:
                merged = await self._merger.merge(ctx.artifacts, output_path, fmt)
        except MergeError:
            metrics.record_merge(self._merger.name, "error", t_merge.seconds)
            raise
        timings["merge"] = t_merge.seconds
        metrics.record_merge(self._merger.name, "success", t_merge.seconds)
        ctx.merged_artifact = store.adopt(merged.segment_index, output_path)
        verbose(_LOG, "stage", event="merge", backend=self._merger.name, seconds=round(t_merge.seconds, 4))

        # ─────────────────────────────────────────────────────────────────────
        # Stage 4: Read merged audio before the area is released
        # ─────────────────────────────────────────────────────────────────────
        ctx.advance(PipelineState.RESPONDING)
        audio = ctx.merged_artifact.read_bytes()
        return audio, seg.truncated

    async def _synthesize_one(
        self,
        segment: TextSegment,
        voice: str,
        fmt: str,
        store: StagingStore,
    ) -> AudioArtifact:
        try:
            artifact = await asyncio.to_thread(self._synthesizer.synthesize, segment, voice, fmt)
        except UpstreamError:
            raise
        except Exception as e:
            fail(_LOG, "segment_failed", segment_index=segment.index, error=str(e), error_type=type(e).__name__)
            raise UpstreamError(
                "Failed to synthesize speech",
                segment_index=segment.index,
                details={"error_type": type(e).__name__},
            ) from e
        metrics.record_segments(1)
        return store.put(artifact)

    async def _synthesize_parallel(
        self,
        segments: List[TextSegment],
        voice: str,
        fmt: str,
        store: StagingStore,
    ) -> List[AudioArtifact]:
        """
        Bounded fan-out over segments.

        Results keep segment order. On the first failure the remaining tasks
        are cancelled and awaited before the error propagates, so nothing
        writes into the area after it is released.
        """
        semaphore = asyncio.Semaphore(self._max_parallel)

        async def _bounded(segment: TextSegment) -> AudioArtifact:
            async with semaphore:
                return await self._synthesize_one(segment, voice, fmt, store)

        tasks = [asyncio.create_task(_bounded(s)) for s in segments]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    def _record_failure(self, exc: GatewayError) -> None:
        status = _STATUS_LABELS.get(exc.code, "error")
        if isinstance(exc, UpstreamError):
            metrics.record_upstream_failure("synthesize")
            fail(_LOG, "request_failed", code=exc.code, segment_index=exc.segment_index, error=exc.message)
        elif isinstance(exc, ValidationError):
            warn(_LOG, "request_rejected", reason=exc.reason, error=exc.message)
        else:
            fail(_LOG, "request_failed", code=exc.code, error=exc.message, details=exc.details)
        metrics.record_request(mode=self._mode, status=status, duration=-1)

    # =========================================================================
    # Public API: voices and health
    # =========================================================================

    async def list_voices(self) -> List[Dict[str, Any]]:
        """
        Voice descriptors supporting the configured engine.

        Raises:
            UpstreamError: If the catalog cannot be fetched.
        """
        try:
            return await asyncio.to_thread(self._synthesizer.describe_voices)
        except UpstreamError:
            metrics.record_upstream_failure("describe_voices")
            raise

    def get_health_info(self) -> Dict[str, Any]:
        """Static description of the running pipeline for /health."""
        cfg = self._config
        return {
            "ok": True,
            "version": __version__,
            "mode": self._mode,
            "synthesis": {
                "backend": self._synthesizer.name,
                "region": cfg.synthesis.region,
                "engine": cfg.synthesis.engine,
                "default_voice": cfg.synthesis.default_voice,
                "default_format": cfg.synthesis.default_format,
                "max_text_chars": cfg.synthesis.max_text_chars,
            },
            "chunking": {
                "max_segment_length": cfg.chunking.max_segment_length,
                "max_segments": cfg.chunking.max_segments,
                "reject_overflow": cfg.chunking.reject_overflow,
            },
            "merge": {"backend": self._merger.name},
            "staging_dir": str(self._staging_dir),
            "max_parallel": self._max_parallel,
        }


# =============================================================================
# Global Service Singleton
# =============================================================================

_service: Optional[SpeechService] = None
_service_lock = threading.Lock()


def get_service(settings: Settings) -> SpeechService:
    """
    Get or create the global SpeechService instance.

    Thread-safe lazy singleton.
    """
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = SpeechService(settings)
    return _service


def reset_service() -> None:
    """Reset the global service instance (tests, settings reload)."""
    global _service
    with _service_lock:
        _service = None
