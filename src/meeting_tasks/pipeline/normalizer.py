"""Transcript normalization.

Turns a caption-track file (WebVTT-style: header line, numeric cue
indices, ``start --> end`` timing lines) into continuous prose suitable
for prompting. Plain transcripts pass through untouched.
"""

from __future__ import annotations

import re

from src.meeting_tasks.errors import EmptyTranscript

CAPTION_HEADER = "WEBVTT"
BYTE_ORDER_MARK = "\ufeff"
CAPTION_FORMATS = frozenset({"vtt", "webvtt", "caption/vtt", "text/vtt", "cc"})
TIME_RANGE_MARKER = "-->"
MIN_TRANSCRIPT_CHARS = 10

_WHITESPACE_RUN = re.compile(r"\s+")


def is_caption_track(text: str, format_hint: str | None = None) -> bool:
    """Whether ``text`` should be treated as a caption track."""
    if format_hint and format_hint.lower() in CAPTION_FORMATS:
        return True
    return text.lstrip(BYTE_ORDER_MARK + " \t\r\n").startswith(CAPTION_HEADER)


def strip_captions(text: str) -> str:
    """Drop header, cue-index and timing lines; join the rest with single spaces."""
    kept: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith(CAPTION_HEADER):
            continue
        if stripped.isdigit():
            continue
        if TIME_RANGE_MARKER in stripped:
            continue
        kept.append(stripped)
    return _WHITESPACE_RUN.sub(" ", " ".join(kept)).strip()


def normalize_transcript(raw: bytes | str, format_hint: str | None = None) -> str:
    """Produce prompt-ready transcript text.

    Args:
        raw: File contents as downloaded (bytes are decoded as UTF-8, a
            leading byte-order mark is dropped) or text.
        format_hint: Declared format, e.g. ``"vtt"`` for a caption track.

    Returns:
        The normalized transcript.

    Raises:
        EmptyTranscript: If fewer than ``MIN_TRANSCRIPT_CHARS`` characters
            remain after normalization.
    """
    text = raw.decode("utf-8-sig", errors="replace") if isinstance(raw, bytes) else raw
    text = text.lstrip(BYTE_ORDER_MARK)
    if is_caption_track(text, format_hint):
        text = strip_captions(text)

    if len(text.strip()) < MIN_TRANSCRIPT_CHARS:
        raise EmptyTranscript()
    return text
