"""
Command-Line Interface for speech-gateway.

Runs the HTTP server, or the speech pipeline directly without it.

Usage Examples:
    # Start the HTTP server
    speech-gateway --serve --port 3000

    # Single text synthesis
    speech-gateway --text "Hello there" --out hello.mp3

    # Positional text (same as above)
    speech-gateway "Hello there" --out hello.mp3

    # Batch processing from file
    speech-gateway --file inputs.txt --out output_dir/

    # Dry-run mode (no upstream calls, shows segmentation)
    speech-gateway --text "Test" --dry-run --json

Environment Variables:
    SPEECH_GW_SETTINGS: Settings file (default config/settings.yaml)
    AWS_REGION: Polly region
    FFMPEG_BINARY: ffmpeg executable used for merging
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from speech_gateway.core.config import OUTPUT_FORMATS, load_settings
from speech_gateway.core.logging import configure_logging, get_logger, info, set_request_id
from speech_gateway.services.errors import GatewayError
from speech_gateway.tts.segmenter import segment_text
from speech_gateway.utils.text import normalize_whitespace


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="speech-gateway CLI")

    # Server mode
    parser.add_argument("--serve", action="store_true", help="Run the HTTP server")
    parser.add_argument("--host", help="Bind host (with --serve)")
    parser.add_argument("--port", type=int, help="Bind port (with --serve)")

    # Input options (mutually exclusive: text vs file)
    parser.add_argument("text_pos", nargs="?", help="Text to synthesize (positional)")
    parser.add_argument("--text", help="Text to synthesize")
    parser.add_argument("--file", help="Batch input file (1 line = 1 item)")

    # Output options
    parser.add_argument("--out", help="Output path (file or dir in batch mode)")

    # Synthesis overrides
    parser.add_argument("--voice", help="Voice id override")
    parser.add_argument("--format", choices=sorted(OUTPUT_FORMATS), help="Output format override")
    parser.add_argument("--settings", help="Settings file (default: $SPEECH_GW_SETTINGS or config/settings.yaml)")

    # Execution modes
    parser.add_argument("--dry-run", action="store_true",
                        help="Segment and summarize without synthesis")
    parser.add_argument("--json", action="store_true",
                        help="Print JSON summary")

    return parser.parse_args(argv)


def _load_texts(args: argparse.Namespace) -> List[str]:
    """
    Load input texts from arguments or file.

    Raises:
        SystemExit: If no input provided or conflicting options used.
    """
    text = args.text or args.text_pos

    if args.file:
        if text:
            raise SystemExit("Use --file without --text or positional text.")
        lines = Path(args.file).read_text(encoding="utf-8").splitlines()
        items = [line.strip() for line in lines if line.strip()]
        if not items:
            raise SystemExit("Input file is empty.")
        return items

    if not text:
        raise SystemExit("Provide --text or a positional text.")
    return [text]


def _resolve_output_paths(args: argparse.Namespace, count: int, extension: str) -> List[Path]:
    """Numbered files in a directory for --file, else --out or speech.<ext>."""
    if args.file:
        out_dir = Path(args.out or "out")
        out_dir.mkdir(parents=True, exist_ok=True)
        return [out_dir / f"item_{i + 1:03d}.{extension}" for i in range(count)]

    out_path = Path(args.out or f"speech.{extension}")
    out_path.parent.mkdir(parents=True, exist_ok=True)
    return [out_path]


def _summary_for_text(text: str, max_segment_length: int, max_segments: int) -> dict:
    """What the chunked pipeline would send upstream for text."""
    seg = segment_text(text, max_segment_length, max_segments)
    return {
        "text_len": len(text),
        "normalized_len": len(normalize_whitespace(text)),
        "segments": len(seg.segments),
        "segment_lengths": [len(s.content) for s in seg.segments],
        "truncated": seg.truncated,
        "dropped_chars": seg.dropped_chars,
    }


def _serve(args: argparse.Namespace, settings) -> int:
    import uvicorn

    server = settings.get_gateway_config().server
    uvicorn.run(
        "speech_gateway.main:app",
        host=args.host or server.host,
        port=args.port or server.port,
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code (0 for success, 1 for pipeline errors).
    """
    args = _parse_args(argv)

    if args.settings:
        os.environ["SPEECH_GW_SETTINGS"] = args.settings
    settings_path = os.getenv("SPEECH_GW_SETTINGS", "config/settings.yaml")

    configure_logging()
    log = get_logger("speech-gateway.cli")
    set_request_id(str(uuid4())[:12])

    settings = load_settings(settings_path, missing_ok=True)
    config = settings.get_gateway_config()

    if args.serve:
        return _serve(args, settings)

    fmt = args.format or config.synthesis.default_format
    voice = args.voice or config.synthesis.default_voice

    texts = _load_texts(args)

    # Dry-run: segmentation only, nothing sent upstream
    if args.dry_run:
        summaries = [
            _summary_for_text(t, config.chunking.max_segment_length, config.chunking.max_segments)
            for t in texts
        ]
        payload = {"ok": True, "dry_run": True, "mode": config.pipeline.mode, "voice": voice,
                   "format": fmt, "items": summaries}

        if args.json:
            print(json.dumps(payload, ensure_ascii=False))
        else:
            info(log, "dry_run", items=len(texts), voice=voice, format=fmt)
            print(payload)
        print("DRY_RUN_OK")
        return 0

    out_paths = _resolve_output_paths(args, len(texts), OUTPUT_FORMATS[fmt][1])
    from speech_gateway.services.speech_service import SpeechRequest, SpeechService
    service = SpeechService(settings)
    results = []

    for text, out_path in zip(texts, out_paths):
        rid = str(uuid4())[:12]
        set_request_id(rid)
        info(log, "synth_start", chars=len(text), out=str(out_path))

        try:
            res = asyncio.run(service.speak(SpeechRequest(text=text, voice_id=voice, output_format=fmt), rid))
        except GatewayError as e:
            payload = {"ok": False, "out": str(out_path), **e.to_dict()}
            print(json.dumps(payload, ensure_ascii=False) if args.json else payload)
            return 1

        out_path.write_bytes(res.audio_bytes)
        results.append({
            "out": str(out_path),
            "bytes": len(res.audio_bytes),
            "segments": res.segment_count,
            "truncated": res.truncated,
        })

    payload = {"ok": True, "dry_run": False, "items": results}
    if args.json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(payload)
    print("CLI_OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
