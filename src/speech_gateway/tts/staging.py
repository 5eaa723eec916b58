"""
Request-Scoped Staging Store for Segment Audio.

Each request gets one directory under the staging root, named after its
request id. Every artifact of the request (per-segment audio and the merged
output) is written inside it, and release() removes the directory as a
unit, so cleanup never has to track individual files.

Layout:
    {base_dir}/
        req-4f1c9a2b7e01/
            segment-0000.mp3
            segment-0001.mp3
            merged.mp3
        req-9d03e61ab442/
            ...

Guarantees:
    - Request ids partition the root, so concurrent requests never share files.
    - Writes are atomic (temp file + rename); a crash never leaves a
      half-written artifact under its final name.
    - release() is idempotent and never raises. Failures are logged so they
      cannot mask the error that ended the request.
    - staging_area() releases exactly once on every exit path, including
      task cancellation.

Usage:
    with staging_area(base_dir, request_id) as store:
        staged = store.put(AudioArtifact(segment_index=0, audio_bytes=data))
        ...
    # directory is gone here
"""
from __future__ import annotations

import contextlib
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from speech_gateway.core.logging import get_logger, info, verbose, warn

_LOG = get_logger("speech-gateway.staging")

# segment_index value of the merged output artifact
MERGED = "merged"

AREA_PREFIX = "req-"


@dataclass(frozen=True)
class AudioArtifact:
    """
    Audio produced for one segment, or the merged output.

    Attributes:
        segment_index: Segment position, or MERGED for the merged output.
        audio_bytes: In-memory audio; None once the artifact is staged on disk.
        storage_path: File holding the audio; None until staged.
    """
    segment_index: Union[int, str]
    audio_bytes: Optional[bytes] = None
    storage_path: Optional[Path] = None

    @property
    def is_merged(self) -> bool:
        return self.segment_index == MERGED

    def read_bytes(self) -> bytes:
        """Audio content, from memory or from the staged file."""
        if self.audio_bytes is not None:
            return self.audio_bytes
        if self.storage_path is None:
            raise ValueError(f"artifact {self.segment_index} has neither bytes nor a storage path")
        return self.storage_path.read_bytes()


class StagingStore:
    """
    Arena of audio artifacts for a single request.

    Attributes:
        request_id: Owning request.
        root: Directory holding every artifact of the request.
        release_count: Number of times release() actually ran its cleanup.
    """

    def __init__(self, base_dir: Union[str, Path], request_id: str, extension: str = "mp3"):
        if not request_id or "/" in request_id or "\\" in request_id or request_id in (".", ".."):
            raise ValueError(f"invalid request id for staging: {request_id!r}")
        self.request_id = request_id
        self.extension = extension
        self.root = Path(base_dir) / f"{AREA_PREFIX}{request_id}"
        self._artifacts: Dict[Union[int, str], AudioArtifact] = {}
        self._released = False
        self.release_count = 0

    @property
    def released(self) -> bool:
        return self._released

    def _ensure_root(self) -> None:
        if self._released:
            raise RuntimeError(f"staging area for {self.request_id} already released")
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, segment_index: Union[int, str]) -> Path:
        """Final file path of an artifact inside this area."""
        if segment_index == MERGED:
            return self.root / f"merged.{self.extension}"
        return self.root / f"segment-{int(segment_index):04d}.{self.extension}"

    def merged_path(self, extension: Optional[str] = None) -> Path:
        """Where the merger writes its output; defaults to the area's extension."""
        self._ensure_root()
        if extension:
            return self.root / f"merged.{extension}"
        return self.path_for(MERGED)

    def put(self, artifact: AudioArtifact) -> AudioArtifact:
        """
        Write an artifact's bytes to the area.

        Returns:
            The staged artifact: same index, storage_path set, bytes dropped
            from memory.
        """
        self._ensure_root()
        data = artifact.read_bytes()
        path = self.path_for(artifact.segment_index)

        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)

        staged = AudioArtifact(segment_index=artifact.segment_index, storage_path=path)
        self._artifacts[artifact.segment_index] = staged
        verbose(_LOG, "staged", segment_index=artifact.segment_index, bytes=len(data))
        return staged

    def adopt(self, segment_index: Union[int, str], path: Path) -> AudioArtifact:
        """Register a file another component wrote directly into the area."""
        staged = AudioArtifact(segment_index=segment_index, storage_path=path)
        self._artifacts[segment_index] = staged
        return staged

    def get(self, segment_index: Union[int, str]) -> AudioArtifact:
        """
        Load a staged artifact with its bytes.

        Raises:
            KeyError: If nothing was staged under segment_index.
        """
        staged = self._artifacts[segment_index]
        return AudioArtifact(
            segment_index=segment_index,
            audio_bytes=staged.read_bytes(),
            storage_path=staged.storage_path,
        )

    def artifacts(self) -> List[AudioArtifact]:
        """Staged per-segment artifacts in segment order (merged output excluded)."""
        indexed = [a for a in self._artifacts.values() if not a.is_merged]
        return sorted(indexed, key=lambda a: int(a.segment_index))

    def release(self) -> None:
        """
        Remove every artifact ever stored in this area.

        Safe to call repeatedly, and when nothing was ever written.
        """
        if self._released:
            return
        self._released = True
        self.release_count += 1
        self._artifacts.clear()

        if not self.root.exists():
            return
        try:
            shutil.rmtree(self.root)
            verbose(_LOG, "released", area=self.root.name)
        except OSError as e:
            warn(_LOG, "release_failed", area=str(self.root), error=str(e))


@contextlib.contextmanager
def staging_area(base_dir: Union[str, Path], request_id: str, extension: str = "mp3") -> Iterator[StagingStore]:
    """Open a StagingStore and release it when the block exits, however it exits."""
    store = StagingStore(base_dir, request_id, extension=extension)
    try:
        yield store
    finally:
        store.release()


def sweep_stale_areas(base_dir: Union[str, Path], max_age_s: float) -> int:
    """
    Remove request areas older than max_age_s.

    Areas normally disappear with their request; this only catches the ones
    a killed process left behind. Run at startup.

    Returns:
        Number of areas removed.
    """
    root = Path(base_dir)
    if not root.exists():
        return 0

    cutoff = time.time() - max_age_s
    removed = 0
    for area in root.iterdir():
        if not area.is_dir() or not area.name.startswith(AREA_PREFIX):
            continue
        try:
            if area.stat().st_mtime < cutoff:
                shutil.rmtree(area)
                removed += 1
        except OSError as e:
            warn(_LOG, "sweep_failed", area=area.name, error=str(e))

    if removed:
        info(_LOG, "stale_areas_removed", count=removed, base_dir=str(root))
    return removed
