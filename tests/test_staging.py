"""Tests for the request-scoped staging store."""
from __future__ import annotations

import os
import time
from unittest.mock import patch

import pytest

from speech_gateway.tts.staging import (
    MERGED,
    AudioArtifact,
    StagingStore,
    staging_area,
    sweep_stale_areas,
)


class TestStagingStore:

    def test_put_and_get(self, staging_dir):
        store = StagingStore(staging_dir, "abc123")
        staged = store.put(AudioArtifact(segment_index=0, audio_bytes=b"audio-0"))

        assert staged.audio_bytes is None
        assert staged.storage_path == store.root / "segment-0000.mp3"
        assert staged.storage_path.read_bytes() == b"audio-0"
        assert store.get(0).audio_bytes == b"audio-0"

    def test_area_is_named_after_request(self, staging_dir):
        store = StagingStore(staging_dir, "abc123")
        store.put(AudioArtifact(segment_index=0, audio_bytes=b"x"))
        assert store.root == staging_dir / "req-abc123"
        assert store.root.is_dir()

    def test_no_temp_files_left_after_put(self, staging_dir):
        store = StagingStore(staging_dir, "abc123")
        store.put(AudioArtifact(segment_index=1, audio_bytes=b"x"))
        assert not list(store.root.glob("*.tmp"))

    def test_artifacts_in_segment_order(self, staging_dir):
        store = StagingStore(staging_dir, "abc123")
        for i in (2, 0, 1):
            store.put(AudioArtifact(segment_index=i, audio_bytes=str(i).encode()))
        assert [a.segment_index for a in store.artifacts()] == [0, 1, 2]

    def test_get_unknown_index(self, staging_dir):
        store = StagingStore(staging_dir, "abc123")
        with pytest.raises(KeyError):
            store.get(7)

    def test_merged_path(self, staging_dir):
        store = StagingStore(staging_dir, "abc123", extension="ogg")
        assert store.merged_path() == store.root / "merged.ogg"
        assert store.merged_path("mp3") == store.root / "merged.mp3"
        assert store.path_for(MERGED) == store.root / "merged.ogg"

    @pytest.mark.parametrize("rid", ["", "../evil", "a/b", ".."])
    def test_rejects_unsafe_request_ids(self, staging_dir, rid):
        with pytest.raises(ValueError):
            StagingStore(staging_dir, rid)

    def test_distinct_requests_do_not_share_files(self, staging_dir):
        a = StagingStore(staging_dir, "req-a")
        b = StagingStore(staging_dir, "req-b")
        a.put(AudioArtifact(segment_index=0, audio_bytes=b"a"))
        b.put(AudioArtifact(segment_index=0, audio_bytes=b"b"))
        a.release()
        assert b.get(0).audio_bytes == b"b"


class TestRelease:

    def test_release_removes_everything(self, staging_dir):
        store = StagingStore(staging_dir, "abc123")
        store.put(AudioArtifact(segment_index=0, audio_bytes=b"x"))
        store.merged_path().write_bytes(b"merged")

        store.release()

        assert not store.root.exists()
        assert list(staging_dir.iterdir()) == []

    def test_release_is_idempotent(self, staging_dir):
        store = StagingStore(staging_dir, "abc123")
        store.put(AudioArtifact(segment_index=0, audio_bytes=b"x"))
        store.release()
        store.release()
        assert store.release_count == 1
        assert store.released is True

    def test_release_without_writes(self, staging_dir):
        store = StagingStore(staging_dir, "abc123")
        store.release()
        assert store.release_count == 1

    def test_put_after_release_fails(self, staging_dir):
        store = StagingStore(staging_dir, "abc123")
        store.release()
        with pytest.raises(RuntimeError):
            store.put(AudioArtifact(segment_index=0, audio_bytes=b"x"))

    def test_release_failure_is_logged_not_raised(self, staging_dir):
        store = StagingStore(staging_dir, "abc123")
        store.put(AudioArtifact(segment_index=0, audio_bytes=b"x"))
        with patch("speech_gateway.tts.staging.shutil.rmtree", side_effect=OSError("busy")):
            store.release()
        assert store.release_count == 1


class TestStagingArea:

    def test_released_on_success(self, staging_dir):
        with staging_area(staging_dir, "ok") as store:
            store.put(AudioArtifact(segment_index=0, audio_bytes=b"x"))
            root = store.root
        assert store.release_count == 1
        assert not root.exists()

    def test_released_on_error(self, staging_dir):
        with pytest.raises(ZeroDivisionError):
            with staging_area(staging_dir, "boom") as store:
                store.put(AudioArtifact(segment_index=0, audio_bytes=b"x"))
                1 / 0
        assert store.release_count == 1
        assert not store.root.exists()


class TestSweep:

    def test_removes_only_stale_request_areas(self, staging_dir):
        stale = staging_dir / "req-old"
        fresh = staging_dir / "req-new"
        other = staging_dir / "keep-me"
        for d in (stale, fresh, other):
            d.mkdir()
            (d / "segment-0000.mp3").write_bytes(b"x")

        old = time.time() - 7200
        os.utime(stale, (old, old))
        os.utime(other, (old, old))

        removed = sweep_stale_areas(staging_dir, max_age_s=3600)

        assert removed == 1
        assert not stale.exists()
        assert fresh.exists()
        assert other.exists()

    def test_missing_root(self, tmp_path):
        assert sweep_stale_areas(tmp_path / "absent", max_age_s=60) == 0
