"""
Audio Merger.

Turns the ordered per-segment artifacts of a request into one output
artifact. Output order always equals input order.

Backends:
    - ffmpeg: decode every input and re-encode through the concat filter.
      Works for every output format. Runs as an asyncio subprocess, so the
      event loop stays free while ffmpeg works.
    - concat: byte concatenation. Valid for mp3 frame streams and raw pcm,
      rejected for ogg_vorbis.

A single input is copied to the output path without touching any backend.

Settings:
    merge:
      backend: ffmpeg
      ffmpeg_binary: ffmpeg   # or FFMPEG_BINARY
      timeout_s: 60
"""
from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from typing import Dict, List, Sequence

from speech_gateway.core.config import Settings
from speech_gateway.core.logging import fail, get_logger, verbose
from speech_gateway.services.errors import MergeError
from speech_gateway.tts.staging import MERGED, AudioArtifact

_LOG = get_logger("speech-gateway.merger")

# Output muxer and encoder per output format
FFMPEG_OUTPUT_ARGS: Dict[str, List[str]] = {
    "mp3": ["-c:a", "libmp3lame", "-f", "mp3"],
    "ogg_vorbis": ["-c:a", "libvorbis", "-f", "ogg"],
    "pcm": ["-f", "s16le", "-ar", "16000", "-ac", "1"],
}

# Raw pcm has no header; describe it to ffmpeg (Polly pcm is 16 kHz mono s16le)
PCM_INPUT_ARGS = ["-f", "s16le", "-ar", "16000", "-ac", "1"]

# Formats whose streams can be joined by appending bytes
CONCAT_SAFE_FORMATS = ("mp3", "pcm")


def _input_path(artifact: AudioArtifact) -> Path:
    if artifact.storage_path is None:
        raise MergeError(
            "Audio merging failed",
            details={"reason": "artifact not staged", "segment_index": artifact.segment_index},
        )
    return artifact.storage_path


class BaseMerger:
    """
    Base class for merge backends.

    Subclasses implement _merge_many(); merge() handles the empty and
    single-input cases.
    """
    name: str = "base"

    async def merge(
        self,
        artifacts: Sequence[AudioArtifact],
        output_path: Path,
        output_format: str,
    ) -> AudioArtifact:
        """
        Merge artifacts, in the given order, into output_path.

        Returns:
            The merged artifact (segment_index MERGED, storage_path=output_path).

        Raises:
            MergeError: If there is nothing to merge or the backend fails.
        """
        if not artifacts:
            raise MergeError("Audio merging failed", details={"reason": "no artifacts"})

        inputs = [_input_path(a) for a in artifacts]

        if len(inputs) == 1:
            try:
                shutil.copyfile(inputs[0], output_path)
            except OSError as e:
                raise MergeError("Audio merging failed", details={"reason": str(e)}) from e
        else:
            await self._merge_many(inputs, output_path, output_format)

        return AudioArtifact(segment_index=MERGED, storage_path=output_path)

    async def _merge_many(self, inputs: List[Path], output_path: Path, output_format: str) -> None:
        raise NotImplementedError


class ConcatMerger(BaseMerger):
    """Byte concatenation for formats that tolerate it."""
    name = "concat"

    async def _merge_many(self, inputs: List[Path], output_path: Path, output_format: str) -> None:
        if output_format not in CONCAT_SAFE_FORMATS:
            raise MergeError(
                "Audio merging failed",
                details={"reason": f"concat backend cannot merge {output_format}"},
            )
        await asyncio.to_thread(self._write, inputs, output_path)

    @staticmethod
    def _write(inputs: List[Path], output_path: Path) -> None:
        try:
            with output_path.open("wb") as out:
                for path in inputs:
                    with path.open("rb") as f:
                        shutil.copyfileobj(f, out)
        except OSError as e:
            raise MergeError("Audio merging failed", details={"reason": str(e)}) from e


class FfmpegMerger(BaseMerger):
    """
    Merge through an ffmpeg subprocess.

    Every exit path of the process (clean exit, non-zero status, timeout,
    binary not found) ends in either a return or a MergeError. On timeout
    the process is killed and reaped before the error is raised.
    """
    name = "ffmpeg"

    def __init__(self, binary: str = "ffmpeg", timeout_s: float = 60.0):
        self.binary = binary
        self.timeout_s = timeout_s

    def build_command(self, inputs: List[Path], output_path: Path, output_format: str) -> List[str]:
        """ffmpeg argv with one -i per input, in order, joined by the concat filter."""
        if output_format not in FFMPEG_OUTPUT_ARGS:
            raise MergeError("Audio merging failed", details={"reason": f"unsupported format {output_format}"})

        cmd = [self.binary, "-hide_banner", "-loglevel", "error", "-y"]
        for path in inputs:
            if output_format == "pcm":
                cmd.extend(PCM_INPUT_ARGS)
            cmd.extend(["-i", str(path)])

        streams = "".join(f"[{i}:a]" for i in range(len(inputs)))
        cmd.extend([
            "-filter_complex", f"{streams}concat=n={len(inputs)}:v=0:a=1[out]",
            "-map", "[out]",
        ])
        cmd.extend(FFMPEG_OUTPUT_ARGS[output_format])
        cmd.append(str(output_path))
        return cmd

    async def _merge_many(self, inputs: List[Path], output_path: Path, output_format: str) -> None:
        cmd = self.build_command(inputs, output_path, output_format)
        verbose(_LOG, "ffmpeg_start", inputs=len(inputs), format=output_format)

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            fail(_LOG, "ffmpeg_unavailable", binary=self.binary, error=str(e))
            raise MergeError(
                "Audio merging failed",
                details={"reason": f"ffmpeg binary not runnable: {self.binary}"},
            ) from e

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            fail(_LOG, "ffmpeg_timeout", timeout_s=self.timeout_s)
            raise MergeError("Audio merging failed", details={"reason": f"timed out after {self.timeout_s}s"})
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise

        if proc.returncode != 0:
            message = (stderr or b"").decode("utf-8", errors="ignore").strip()
            fail(_LOG, "ffmpeg_failed", returncode=proc.returncode, stderr=message[:500])
            raise MergeError(
                "Audio merging failed",
                details={"reason": f"ffmpeg exited with status {proc.returncode}", "stderr": message[:500]},
            )

        if not output_path.exists():
            raise MergeError("Audio merging failed", details={"reason": "ffmpeg produced no output"})


def get_merger(settings: Settings) -> BaseMerger:
    """
    Build the configured merge backend.

    Raises:
        ValueError: If merge.backend is unknown.
    """
    cfg = settings.get_gateway_config().merge
    if cfg.backend == "ffmpeg":
        return FfmpegMerger(binary=cfg.ffmpeg_binary, timeout_s=cfg.timeout_s)
    if cfg.backend == "concat":
        return ConcatMerger()
    raise ValueError(f"Unknown merge backend: {cfg.backend}")

