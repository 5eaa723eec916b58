"""
Shared fixtures: settings pointing at a temp staging dir, and in-memory
synthesis/merge backends so no test touches AWS or ffmpeg.
"""
from __future__ import annotations

import threading
from pathlib import Path
from typing import List, Optional, Sequence

import pytest

from speech_gateway.core.config import Settings
from speech_gateway.services.errors import MergeError, UpstreamError
from speech_gateway.tts.merger import BaseMerger, ConcatMerger
from speech_gateway.tts.staging import AudioArtifact
from speech_gateway.tts.synthesizer import BaseSynthesizer


class FakeSynthesizer(BaseSynthesizer):
    """
    Returns b"<index>:<text>" for each call.

    fail_on: segment index whose call raises UpstreamError.
    """
    name = "fake"

    def __init__(self, settings: Settings, fail_on: Optional[int] = None, voices=None):
        super().__init__(settings)
        self.fail_on = fail_on
        self.voices = voices if voices is not None else [
            {"Id": "Joanna", "SupportedEngines": ["neural", "standard"]},
        ]
        self.calls: List[tuple] = []
        self._lock = threading.Lock()

    def synthesize_text(self, text, voice_id, output_format, segment_index=None):
        with self._lock:
            self.calls.append((segment_index, text, voice_id, output_format))
        if self.fail_on is not None and segment_index == self.fail_on:
            raise UpstreamError("Failed to synthesize speech", segment_index=segment_index)
        prefix = "-" if segment_index is None else str(segment_index)
        return f"<{prefix}:{text}>".encode("utf-8")

    def describe_voices(self):
        return list(self.voices)

    @property
    def segment_indices(self) -> List[Optional[int]]:
        return [c[0] for c in self.calls]


class FailingMerger(BaseMerger):
    """Merge backend that always fails after seeing its inputs."""
    name = "failing"

    def __init__(self):
        self.seen: List[Path] = []

    async def merge(self, artifacts: Sequence[AudioArtifact], output_path: Path, output_format: str) -> AudioArtifact:
        self.seen = [a.storage_path for a in artifacts]
        raise MergeError("Audio merging failed", details={"reason": "test"})


@pytest.fixture
def staging_dir(tmp_path) -> Path:
    d = tmp_path / "staging"
    d.mkdir()
    return d


@pytest.fixture
def make_settings(staging_dir):
    """Build Settings with a temp staging dir; extra sections are merged in."""

    def _make(**sections) -> Settings:
        raw = {
            "staging": {"base_dir": str(staging_dir)},
            "merge": {"backend": "concat"},
            "logging": {"level": 1},
        }
        for key, value in sections.items():
            raw.setdefault(key, {}).update(value)
        return Settings(raw=raw)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def fake_synth(settings) -> FakeSynthesizer:
    return FakeSynthesizer(settings)


@pytest.fixture
def concat_merger() -> ConcatMerger:
    return ConcatMerger()


@pytest.fixture
def failing_merger() -> FailingMerger:
    return FailingMerger()
