"""
Prometheus Metrics for speech-gateway.

Metrics Exposed:
    speech_requests_total             - Requests by pipeline mode and status
    speech_request_duration_seconds   - End-to-end /speak latency
    speech_segments_total             - Segments synthesized
    speech_upstream_failures_total    - Failed calls to the synthesis service
    speech_merge_duration_seconds     - Time spent merging segment audio
    speech_truncations_total          - Requests whose text was truncated
    speech_audio_bytes_total          - Audio bytes returned to clients

All metrics live on a private CollectorRegistry so several app instances
(tests, reloads) never collide on the default registry.

Usage:
    from speech_gateway.core.metrics import metrics

    metrics.record_request(mode="chunked", status="success", duration=1.2, audio_bytes=48213)
    content, content_type = metrics.get_metrics_response()
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


class GatewayMetrics:
    """
    Metrics collection for the speech pipeline.

    Recording is skipped while ``enabled`` is False (metrics.enabled: false
    in settings.yaml); the /metrics endpoint still answers with an empty
    exposition.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._registry = CollectorRegistry()

        self._requests_total = Counter(
            "speech_requests_total",
            "Total /speak requests",
            ["mode", "status"],
            registry=self._registry,
        )
        self._request_duration = Histogram(
            "speech_request_duration_seconds",
            "End-to-end /speak duration in seconds",
            ["mode"],
            buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
            registry=self._registry,
        )
        self._segments_total = Counter(
            "speech_segments_total",
            "Text segments synthesized",
            registry=self._registry,
        )
        self._upstream_failures = Counter(
            "speech_upstream_failures_total",
            "Failed synthesis service calls",
            ["operation"],
            registry=self._registry,
        )
        self._merge_duration = Histogram(
            "speech_merge_duration_seconds",
            "Audio merge duration in seconds",
            ["backend", "status"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self._registry,
        )
        self._truncations = Counter(
            "speech_truncations_total",
            "Requests whose text exceeded the segment budget",
            registry=self._registry,
        )
        self._audio_bytes_total = Counter(
            "speech_audio_bytes_total",
            "Audio bytes returned to clients",
            registry=self._registry,
        )

    def record_request(self, mode: str, status: str, duration: float, audio_bytes: int = 0) -> None:
        """
        Record a finished /speak request.

        Args:
            mode: Pipeline mode ("chunked" or "simple").
            status: "success", "invalid", "upstream_error", "merge_error" or "error".
            duration: Seconds from request entry to response; negative skips the histogram.
            audio_bytes: Size of the returned audio.
        """
        if not self.enabled:
            return
        self._requests_total.labels(mode=mode, status=status).inc()
        if duration >= 0:
            self._request_duration.labels(mode=mode).observe(duration)
        if audio_bytes > 0:
            self._audio_bytes_total.inc(audio_bytes)

    def record_segments(self, count: int) -> None:
        if not self.enabled or count <= 0:
            return
        self._segments_total.inc(count)

    def record_upstream_failure(self, operation: str) -> None:
        """operation is "synthesize" or "describe_voices"."""
        if not self.enabled:
            return
        self._upstream_failures.labels(operation=operation).inc()

    def record_merge(self, backend: str, status: str, duration: float) -> None:
        if not self.enabled:
            return
        self._merge_duration.labels(backend=backend, status=status).observe(max(duration, 0.0))

    def record_truncation(self) -> None:
        if not self.enabled:
            return
        self._truncations.inc()

    def get_metrics_response(self) -> tuple[bytes, str]:
        """Prometheus exposition as (content_bytes, content_type)."""
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Process-wide instance: from speech_gateway.core.metrics import metrics
metrics = GatewayMetrics()
