"""
Configuration Management for speech-gateway.

This module provides centralized configuration handling with:
    - Default values (Defaults class)
    - Dataclass-based configuration sections
    - YAML file loading with environment variable overrides
    - Validation with meaningful error messages

Configuration Hierarchy (highest priority first):
    1. Environment variables (AWS_REGION, PORT, FFMPEG_BINARY, SPEECH_GW_*)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Example settings.yaml:
    synthesis:
      region: eu-west-1
      engine: neural
      default_voice: Joanna

    pipeline:
      mode: chunked

    chunking:
      max_segment_length: 3000
      max_segments: 5

    merge:
      backend: ffmpeg
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

import yaml


class ConfigValidationError(Exception):
    """Raised when a configuration value is out of bounds or of the wrong kind."""
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - Synthesis: Upstream speech service parameters
        - Pipeline: Chunked vs single-call request handling
        - Chunking: Segment bounds for long text
        - Staging: Per-request temporary storage
        - Merge: Audio merging backend
        - Server: Network binding and CORS
        - Logging: Log level and previews
        - Metrics: Prometheus collection
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Synthesis (Amazon Polly)
    # ─────────────────────────────────────────────────────────────────────────
    SYNTHESIS_BACKEND = "polly"
    SYNTHESIS_REGION = "us-east-1"
    SYNTHESIS_ENGINE = "neural"         # Polly engine, also the /voices filter
    SYNTHESIS_DEFAULT_VOICE = "Joanna"
    SYNTHESIS_DEFAULT_FORMAT = "mp3"
    SYNTHESIS_MAX_TEXT_CHARS = 3000     # Polly single-call character limit

    # ─────────────────────────────────────────────────────────────────────────
    # Pipeline
    # ─────────────────────────────────────────────────────────────────────────
    PIPELINE_MODE = "chunked"           # chunked | simple
    PIPELINE_MAX_PARALLEL = 1           # 1 = strict sequencing

    # ─────────────────────────────────────────────────────────────────────────
    # Chunking
    # ─────────────────────────────────────────────────────────────────────────
    CHUNKING_MAX_SEGMENT_LENGTH = 3000
    CHUNKING_MAX_SEGMENTS = 5
    CHUNKING_REJECT_OVERFLOW = False    # False = silently drop text past the last segment

    # ─────────────────────────────────────────────────────────────────────────
    # Staging
    # ─────────────────────────────────────────────────────────────────────────
    STAGING_BASE_DIR = ""               # Empty = <system temp>/speech-gateway
    STAGING_STALE_AFTER_SECONDS = 3600

    # ─────────────────────────────────────────────────────────────────────────
    # Merge
    # ─────────────────────────────────────────────────────────────────────────
    MERGE_BACKEND = "ffmpeg"            # ffmpeg | concat
    MERGE_FFMPEG_BINARY = "ffmpeg"
    MERGE_TIMEOUT_S = 60.0

    # ─────────────────────────────────────────────────────────────────────────
    # Server
    # ─────────────────────────────────────────────────────────────────────────
    SERVER_HOST = "0.0.0.0"
    SERVER_PORT = 3000
    SERVER_CORS_ORIGINS = ("*",)

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 80
    LOGGING_LEVEL = 2                   # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG

    # ─────────────────────────────────────────────────────────────────────────
    # Metrics
    # ─────────────────────────────────────────────────────────────────────────
    METRICS_ENABLED = True


# Output formats the gateway accepts, with response framing per format
OUTPUT_FORMATS: Dict[str, tuple[str, str]] = {
    "mp3": ("audio/mpeg", "mp3"),
    "ogg_vorbis": ("audio/ogg", "ogg"),
    "pcm": ("audio/pcm", "pcm"),
}

PIPELINE_MODES = ("chunked", "simple")
MERGE_BACKENDS = ("ffmpeg", "concat")


@dataclass
class SynthesisConfig:
    """Upstream synthesis service parameters."""
    backend: str = Defaults.SYNTHESIS_BACKEND
    region: str = Defaults.SYNTHESIS_REGION
    engine: str = Defaults.SYNTHESIS_ENGINE
    default_voice: str = Defaults.SYNTHESIS_DEFAULT_VOICE
    default_format: str = Defaults.SYNTHESIS_DEFAULT_FORMAT
    max_text_chars: int = Defaults.SYNTHESIS_MAX_TEXT_CHARS


@dataclass
class PipelineConfig:
    """
    Request pipeline selection.

    mode="chunked" segments long text and merges the audio; mode="simple"
    makes one upstream call and rejects text over the single-call limit.
    """
    mode: str = Defaults.PIPELINE_MODE
    max_parallel: int = Defaults.PIPELINE_MAX_PARALLEL


@dataclass
class ChunkingConfig:
    """Segment bounds for the chunked pipeline."""
    max_segment_length: int = Defaults.CHUNKING_MAX_SEGMENT_LENGTH
    max_segments: int = Defaults.CHUNKING_MAX_SEGMENTS
    reject_overflow: bool = Defaults.CHUNKING_REJECT_OVERFLOW


@dataclass
class StagingConfig:
    """Per-request temporary storage for segment and merged audio."""
    base_dir: str = Defaults.STAGING_BASE_DIR
    stale_after_seconds: int = Defaults.STAGING_STALE_AFTER_SECONDS

    def resolved_dir(self) -> Path:
        """Staging root, falling back to a directory under the system temp dir."""
        if self.base_dir:
            return Path(self.base_dir)
        return Path(tempfile.gettempdir()) / "speech-gateway"


@dataclass
class MergeConfig:
    """Audio merge backend."""
    backend: str = Defaults.MERGE_BACKEND
    ffmpeg_binary: str = Defaults.MERGE_FFMPEG_BINARY
    timeout_s: float = Defaults.MERGE_TIMEOUT_S


@dataclass
class ServerConfig:
    """HTTP binding and CORS."""
    host: str = Defaults.SERVER_HOST
    port: int = Defaults.SERVER_PORT
    cors_origins: List[str] = field(default_factory=lambda: list(Defaults.SERVER_CORS_ORIGINS))


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL: Startup, shutdown, failures only
        2 = NORMAL: Request lifecycle (default)
        3 = VERBOSE: Per-stage timing, per-segment flow
        4 = DEBUG: Internal state, full text
    """
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


@dataclass
class MetricsConfig:
    """Prometheus metrics collection."""
    enabled: bool = Defaults.METRICS_ENABLED


@dataclass
class GatewayConfig:
    """
    Validated configuration for SpeechService and the HTTP layer.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = GatewayConfig.from_settings(settings)
        print(config.chunking.max_segments)
    """
    synthesis: SynthesisConfig = field(default_factory=SynthesisConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    staging: StagingConfig = field(default_factory=StagingConfig)
    merge: MergeConfig = field(default_factory=MergeConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "GatewayConfig":
        """
        Create GatewayConfig from Settings with validation.

        Reads the raw configuration dictionary, applies defaults for missing
        values, validates constraints and returns typed configuration.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Synthesis
        # ─────────────────────────────────────────────────────────────────────
        synth_raw = raw.get("synthesis", {}) or {}
        synthesis = SynthesisConfig(
            backend=str(synth_raw.get("backend", Defaults.SYNTHESIS_BACKEND)).lower(),
            region=str(synth_raw.get("region", Defaults.SYNTHESIS_REGION)),
            engine=str(synth_raw.get("engine", Defaults.SYNTHESIS_ENGINE)),
            default_voice=str(synth_raw.get("default_voice", Defaults.SYNTHESIS_DEFAULT_VOICE)),
            default_format=str(synth_raw.get("default_format", Defaults.SYNTHESIS_DEFAULT_FORMAT)),
            max_text_chars=int(synth_raw.get("max_text_chars", Defaults.SYNTHESIS_MAX_TEXT_CHARS)),
        )
        cls._validate_positive("synthesis.max_text_chars", synthesis.max_text_chars)
        cls._validate_choice("synthesis.default_format", synthesis.default_format, tuple(OUTPUT_FORMATS))

        # ─────────────────────────────────────────────────────────────────────
        # Pipeline
        # ─────────────────────────────────────────────────────────────────────
        pipeline_raw = raw.get("pipeline", {}) or {}
        pipeline = PipelineConfig(
            mode=str(pipeline_raw.get("mode", Defaults.PIPELINE_MODE)).lower(),
            max_parallel=int(pipeline_raw.get("max_parallel", Defaults.PIPELINE_MAX_PARALLEL)),
        )
        cls._validate_choice("pipeline.mode", pipeline.mode, PIPELINE_MODES)
        cls._validate_positive("pipeline.max_parallel", pipeline.max_parallel)

        # ─────────────────────────────────────────────────────────────────────
        # Chunking
        # ─────────────────────────────────────────────────────────────────────
        chunking_raw = raw.get("chunking", {}) or {}
        chunking = ChunkingConfig(
            max_segment_length=int(chunking_raw.get("max_segment_length", Defaults.CHUNKING_MAX_SEGMENT_LENGTH)),
            max_segments=int(chunking_raw.get("max_segments", Defaults.CHUNKING_MAX_SEGMENTS)),
            reject_overflow=bool(chunking_raw.get("reject_overflow", Defaults.CHUNKING_REJECT_OVERFLOW)),
        )
        cls._validate_positive("chunking.max_segment_length", chunking.max_segment_length)
        cls._validate_positive("chunking.max_segments", chunking.max_segments)

        # ─────────────────────────────────────────────────────────────────────
        # Staging
        # ─────────────────────────────────────────────────────────────────────
        staging_raw = raw.get("staging", {}) or {}
        staging = StagingConfig(
            base_dir=str(staging_raw.get("base_dir", Defaults.STAGING_BASE_DIR) or ""),
            stale_after_seconds=int(staging_raw.get("stale_after_seconds", Defaults.STAGING_STALE_AFTER_SECONDS)),
        )
        cls._validate_positive("staging.stale_after_seconds", staging.stale_after_seconds)

        # ─────────────────────────────────────────────────────────────────────
        # Merge
        # ─────────────────────────────────────────────────────────────────────
        merge_raw = raw.get("merge", {}) or {}
        merge = MergeConfig(
            backend=str(merge_raw.get("backend", Defaults.MERGE_BACKEND)).lower(),
            ffmpeg_binary=str(merge_raw.get("ffmpeg_binary", Defaults.MERGE_FFMPEG_BINARY)),
            timeout_s=float(merge_raw.get("timeout_s", Defaults.MERGE_TIMEOUT_S)),
        )
        cls._validate_choice("merge.backend", merge.backend, MERGE_BACKENDS)
        cls._validate_positive("merge.timeout_s", merge.timeout_s)

        # ─────────────────────────────────────────────────────────────────────
        # Server
        # ─────────────────────────────────────────────────────────────────────
        server_raw = raw.get("server", {}) or {}
        origins = server_raw.get("cors_origins", list(Defaults.SERVER_CORS_ORIGINS))
        if isinstance(origins, str):
            origins = [o.strip() for o in origins.split(",") if o.strip()]
        server = ServerConfig(
            host=str(server_raw.get("host", Defaults.SERVER_HOST)),
            port=int(server_raw.get("port", Defaults.SERVER_PORT)),
            cors_origins=list(origins),
        )
        cls._validate_range("server.port", server.port, 1, 65535)

        # ─────────────────────────────────────────────────────────────────────
        # Logging
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {}) or {}
        log_level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)

        # Accept level names as well as numbers
        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(log_level_raw)

        logging_cfg = LoggingConfig(
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
            level=log_level,
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)

        # ─────────────────────────────────────────────────────────────────────
        # Metrics
        # ─────────────────────────────────────────────────────────────────────
        metrics_raw = raw.get("metrics", {}) or {}
        metrics_cfg = MetricsConfig(
            enabled=bool(metrics_raw.get("enabled", Defaults.METRICS_ENABLED)),
        )

        return cls(
            synthesis=synthesis,
            pipeline=pipeline,
            chunking=chunking,
            staging=staging,
            merge=merge,
            server=server,
            logging=logging_cfg,
            metrics=metrics_cfg,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")

    @staticmethod
    def _validate_choice(name: str, value: str, choices: tuple[str, ...]) -> None:
        """Validate that a value is one of the allowed choices."""
        if value not in choices:
            raise ConfigValidationError(f"{name} must be one of {', '.join(choices)}, got {value!r}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    This is the raw settings object before validation. Use
    get_gateway_config() for the validated, typed view.
    """
    raw: Dict[str, Any]

    def get_gateway_config(self) -> GatewayConfig:
        """
        Get validated GatewayConfig from these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return GatewayConfig.from_settings(self)


def apply_env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply environment variable overrides to a raw settings dict.

    Environment variables:
        - AWS_REGION / AWS_DEFAULT_REGION: synthesis.region
        - PORT: server.port
        - FFMPEG_BINARY: merge.ffmpeg_binary
        - SPEECH_GW_MODE: pipeline.mode
        - SPEECH_GW_STAGING_DIR: staging.base_dir
        - SPEECH_GW_CORS_ORIGINS: server.cors_origins (comma separated)
    """
    region = os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION")
    if region:
        raw.setdefault("synthesis", {})["region"] = region

    port = os.getenv("PORT")
    if port:
        raw.setdefault("server", {})["port"] = port

    ffmpeg = os.getenv("FFMPEG_BINARY")
    if ffmpeg:
        raw.setdefault("merge", {})["ffmpeg_binary"] = ffmpeg

    mode = os.getenv("SPEECH_GW_MODE")
    if mode:
        raw.setdefault("pipeline", {})["mode"] = mode

    staging_dir = os.getenv("SPEECH_GW_STAGING_DIR")
    if staging_dir:
        raw.setdefault("staging", {})["base_dir"] = staging_dir

    origins = os.getenv("SPEECH_GW_CORS_ORIGINS")
    if origins:
        raw.setdefault("server", {})["cors_origins"] = origins

    return raw


def load_settings(path: str = "config/settings.yaml", missing_ok: bool = False) -> Settings:
    """
    Load settings from a YAML configuration file.

    Args:
        path: Path to the YAML configuration file.
        missing_ok: Return defaults (plus environment overrides) when the
            file does not exist instead of raising.

    Raises:
        FileNotFoundError: If the settings file doesn't exist and missing_ok is False.
    """
    p = Path(path)
    raw: Dict[str, Any] = {}
    if p.exists():
        with p.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    elif not missing_ok:
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    return Settings(raw=apply_env_overrides(raw))
