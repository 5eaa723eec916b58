"""
Text Segmentation for Long-Form Synthesis.

The synthesis service accepts a bounded number of characters per call, so
long text is cut into segments that are synthesized one by one and merged.

Algorithm:
    1. Collapse whitespace runs and trim the text.
    2. Take up to max_segment_length characters from the remaining text.
    3. If the window ends inside a word and contains a space after its
       first character, cut at the last space so no word is split. A
       window with no usable space is taken whole.
    4. Emit the trimmed window as the next segment and drop it, together
       with the boundary space, from the remaining text.
    5. Stop when the text is exhausted or max_segments segments exist.

Step 5 truncates: text left over after the last allowed segment is dropped.
The result reports it (truncated, dropped_chars) and a warning is logged,
but no error is raised here; the caller decides whether to reject.

Example:
    >>> result = segment_text("Hello brave new world", max_segment_length=11, max_segments=5)
    >>> [s.content for s in result.segments]
    ['Hello brave', 'new world']
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from speech_gateway.core.logging import get_logger, verbose, warn
from speech_gateway.utils.text import normalize_whitespace
from speech_gateway.utils.timeit import timeit

_LOG = get_logger("speech-gateway.segmenter")


@dataclass(frozen=True)
class TextSegment:
    """
    One unit of text sent to the synthesis service.

    Attributes:
        index: 0-based position; merge order follows it.
        content: Non-empty text, at most max_segment_length characters.
    """
    index: int
    content: str


@dataclass
class SegmentationResult:
    """
    Output of segment_text().

    Attributes:
        segments: Ordered segments.
        truncated: True if text was dropped because max_segments was reached.
        dropped_chars: Characters of normalized text not covered by any segment.
        timings_s: Timing measurements in seconds.
    """
    segments: List[TextSegment]
    truncated: bool = False
    dropped_chars: int = 0
    timings_s: Dict[str, float] = field(default_factory=dict)

    @property
    def contents(self) -> List[str]:
        return [s.content for s in self.segments]


def segment_text(text: str, max_segment_length: int, max_segments: int) -> SegmentationResult:
    """
    Split text into word-boundary segments.

    Args:
        text: Input text of any length.
        max_segment_length: Maximum characters per segment.
        max_segments: Maximum number of segments; the rest of the text is dropped.

    Returns:
        SegmentationResult; empty segments for empty or whitespace-only text.

    Raises:
        ValueError: If either bound is not positive.
    """
    if max_segment_length <= 0:
        raise ValueError(f"max_segment_length must be positive, got {max_segment_length}")
    if max_segments <= 0:
        raise ValueError(f"max_segments must be positive, got {max_segments}")

    segments: List[TextSegment] = []

    with timeit("segment") as t:
        remaining = normalize_whitespace(text)

        while remaining and len(segments) < max_segments:
            window = remaining[:max_segment_length]
            consumed = len(window)

            # Cut only when the window ends inside a word
            if len(remaining) > max_segment_length and remaining[max_segment_length] != " ":
                cut = window.rfind(" ")
                if cut > 0:
                    window = window[:cut]
                    # Skip the boundary space as well
                    consumed = cut + 1

            content = window.strip()
            if content:
                segments.append(TextSegment(index=len(segments), content=content))
            remaining = remaining[consumed:].lstrip()

    result = SegmentationResult(
        segments=segments,
        truncated=bool(remaining),
        dropped_chars=len(remaining),
        timings_s={"segment": t.seconds},
    )

    verbose(
        _LOG, "segmented",
        segments=len(segments),
        max_segment_length=max_segment_length,
        max_segments=max_segments,
        seconds=round(t.seconds, 4),
    )
    if result.truncated:
        warn(_LOG, "segments_truncated", max_segments=max_segments, dropped_chars=result.dropped_chars)

    return result
