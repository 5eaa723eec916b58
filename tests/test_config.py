"""Tests for configuration loading, environment overrides and validation."""
from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from speech_gateway.core.config import (
    ConfigValidationError,
    Defaults,
    GatewayConfig,
    Settings,
    load_settings,
)


class TestDefaults:

    def test_empty_settings_use_defaults(self):
        cfg = Settings(raw={}).get_gateway_config()

        assert cfg.synthesis.backend == "polly"
        assert cfg.synthesis.engine == "neural"
        assert cfg.synthesis.default_voice == "Joanna"
        assert cfg.synthesis.default_format == "mp3"
        assert cfg.synthesis.max_text_chars == 3000
        assert cfg.pipeline.mode == "chunked"
        assert cfg.pipeline.max_parallel == 1
        assert cfg.chunking.max_segment_length == 3000
        assert cfg.chunking.max_segments == 5
        assert cfg.chunking.reject_overflow is False
        assert cfg.merge.backend == "ffmpeg"
        assert cfg.server.port == 3000
        assert cfg.server.cors_origins == ["*"]

    def test_typed_view_of_raw_settings(self):
        cfg = Settings(raw={"synthesis": {"region": "eu-west-1", "default_voice": "Matthew"}}).get_gateway_config()
        assert cfg.synthesis.region == "eu-west-1"
        assert cfg.synthesis.default_voice == "Matthew"
        assert cfg.synthesis.default_format == Defaults.SYNTHESIS_DEFAULT_FORMAT
        assert cfg.server.port == Defaults.SERVER_PORT

    def test_staging_dir_falls_back_to_temp(self):
        cfg = Settings(raw={}).get_gateway_config()
        assert cfg.staging.resolved_dir() == Path(tempfile.gettempdir()) / "speech-gateway"

    def test_staging_dir_configured(self, tmp_path):
        cfg = Settings(raw={"staging": {"base_dir": str(tmp_path)}}).get_gateway_config()
        assert cfg.staging.resolved_dir() == tmp_path


class TestValidation:

    @pytest.mark.parametrize("section,key,value", [
        ("chunking", "max_segment_length", 0),
        ("chunking", "max_segments", -1),
        ("pipeline", "max_parallel", 0),
        ("merge", "timeout_s", 0),
        ("synthesis", "max_text_chars", 0),
    ])
    def test_non_positive_rejected(self, section, key, value):
        with pytest.raises(ConfigValidationError, match=key):
            GatewayConfig.from_settings(Settings(raw={section: {key: value}}))

    def test_unknown_mode_rejected(self):
        with pytest.raises(ConfigValidationError, match="pipeline.mode"):
            Settings(raw={"pipeline": {"mode": "streaming"}}).get_gateway_config()

    def test_unknown_merge_backend_rejected(self):
        with pytest.raises(ConfigValidationError, match="merge.backend"):
            Settings(raw={"merge": {"backend": "sox"}}).get_gateway_config()

    def test_unknown_default_format_rejected(self):
        with pytest.raises(ConfigValidationError, match="default_format"):
            Settings(raw={"synthesis": {"default_format": "wav"}}).get_gateway_config()

    def test_port_range(self):
        with pytest.raises(ConfigValidationError, match="server.port"):
            Settings(raw={"server": {"port": 70000}}).get_gateway_config()

    def test_log_level_names(self):
        cfg = Settings(raw={"logging": {"level": "verbose"}}).get_gateway_config()
        assert cfg.logging.level == 3

    def test_cors_origins_from_string(self):
        cfg = Settings(raw={"server": {"cors_origins": "http://a.test, http://b.test"}}).get_gateway_config()
        assert cfg.server.cors_origins == ["http://a.test", "http://b.test"]


class TestLoadSettings:

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "pipeline:\n  mode: simple\nchunking:\n  max_segments: 3\n",
            encoding="utf-8",
        )
        cfg = load_settings(str(path)).get_gateway_config()
        assert cfg.pipeline.mode == "simple"
        assert cfg.chunking.max_segments == 3

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(str(tmp_path / "nope.yaml"))

    def test_missing_file_ok(self, tmp_path):
        settings = load_settings(str(tmp_path / "nope.yaml"), missing_ok=True)
        assert settings.get_gateway_config().pipeline.mode == "chunked"

    def test_env_overrides(self, tmp_path, monkeypatch):
        path = tmp_path / "settings.yaml"
        path.write_text("synthesis:\n  region: us-east-1\n", encoding="utf-8")
        monkeypatch.setenv("AWS_REGION", "eu-central-1")
        monkeypatch.setenv("PORT", "8081")
        monkeypatch.setenv("FFMPEG_BINARY", "/opt/ffmpeg/bin/ffmpeg")
        monkeypatch.setenv("SPEECH_GW_MODE", "simple")
        monkeypatch.setenv("SPEECH_GW_STAGING_DIR", str(tmp_path / "stage"))

        cfg = load_settings(str(path)).get_gateway_config()

        assert cfg.synthesis.region == "eu-central-1"
        assert cfg.server.port == 8081
        assert cfg.merge.ffmpeg_binary == "/opt/ffmpeg/bin/ffmpeg"
        assert cfg.pipeline.mode == "simple"
        assert cfg.staging.resolved_dir() == tmp_path / "stage"

    def test_default_region_env_fallback(self, tmp_path, monkeypatch):
        monkeypatch.delenv("AWS_REGION", raising=False)
        monkeypatch.setenv("AWS_DEFAULT_REGION", "ap-south-1")
        settings = load_settings(str(tmp_path / "none.yaml"), missing_ok=True)
        assert settings.get_gateway_config().synthesis.region == "ap-south-1"

    def test_shipped_settings_file_is_valid(self, monkeypatch):
        for var in ("AWS_REGION", "AWS_DEFAULT_REGION", "PORT", "FFMPEG_BINARY", "SPEECH_GW_MODE",
                    "SPEECH_GW_STAGING_DIR", "SPEECH_GW_CORS_ORIGINS"):
            monkeypatch.delenv(var, raising=False)
        path = Path(__file__).parent.parent / "config" / "settings.yaml"
        cfg = load_settings(str(path)).get_gateway_config()
        assert cfg.pipeline.mode == "chunked"
        assert cfg.merge.backend == "ffmpeg"
