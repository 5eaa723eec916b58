"""
Text helpers shared by the segmenter and request logging.
"""
from __future__ import annotations

import re

_WS = re.compile(r"\s+", re.UNICODE)


def normalize_whitespace(text: str) -> str:
    """
    Collapse every whitespace run (spaces, tabs, newlines) into one space
    and trim both ends.

    >>> normalize_whitespace("  Hello \\n\\n  world\\t ")
    'Hello world'
    """
    return _WS.sub(" ", text or "").strip()


def preview(text: str, max_chars: int) -> str:
    """First max_chars characters of text for log lines; empty when max_chars is 0."""
    if max_chars <= 0:
        return ""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "…"
