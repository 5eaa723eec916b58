"""
FastAPI Dependency Injection Providers.

    1. get_settings() - Loads and caches application configuration
    2. get_speech_service() - Creates/returns the singleton SpeechService

Tests replace get_speech_service through app.dependency_overrides to run
the API against in-memory backends.
"""
from __future__ import annotations

import os
from functools import lru_cache

from speech_gateway.core.config import Settings, load_settings
from speech_gateway.services.speech_service import SpeechService, get_service

DEFAULT_SETTINGS_PATH = "config/settings.yaml"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    The path comes from SPEECH_GW_SETTINGS (default config/settings.yaml).
    A missing file means defaults plus environment overrides.
    """
    path = os.getenv("SPEECH_GW_SETTINGS", DEFAULT_SETTINGS_PATH)
    return load_settings(path, missing_ok=True)


def get_speech_service() -> SpeechService:
    """The global SpeechService, created lazily on first use."""
    return get_service(get_settings())
