"""WebVTT caption-track parsing for meeting transcripts.

Teams transcripts are delivered as WebVTT: blank-line separated cue
blocks, each with an optional numeric/uuid identifier line, a
``start --> end`` timing line, and text lines whose first line may carry a
``<v Speaker>`` voice tag.
"""

from __future__ import annotations

import re

from src.meetsync.meetings.schemas import TranscriptSegment

_TIMING_RE = re.compile(
    r"(?P<start>(?:\d{1,2}:)?\d{2}:\d{2}\.\d{3})\s*-->\s*(?P<end>(?:\d{1,2}:)?\d{2}:\d{2}\.\d{3})"
)
_VOICE_RE = re.compile(r"^<v\s+([^>]+)>(.*)$", re.IGNORECASE)
_CLOSE_VOICE_RE = re.compile(r"</v>", re.IGNORECASE)
_BLOCK_SPLIT_RE = re.compile(r"\n\s*\n")


def timestamp_to_ms(value: str) -> int:
    """Convert ``hh:mm:ss.mmm`` (hours optional) to milliseconds."""
    clock, millis = value.split(".")
    parts = [int(p) for p in clock.split(":")]
    if len(parts) == 2:
        parts.insert(0, 0)
    hours, minutes, seconds = parts
    return ((hours * 60 + minutes) * 60 + seconds) * 1000 + int(millis)


def parse_vtt_segments(vtt: str) -> list[TranscriptSegment]:
    """Parse a WebVTT document into ordered transcript segments.

    Header, NOTE and STYLE blocks are skipped, as are cues without a
    timing line or without text. The speaker comes from a ``<v Name>``
    tag; a cue without one has ``speaker=None``.

    Args:
        vtt: Raw caption-track text.

    Returns:
        Segments in document order.
    """
    segments: list[TranscriptSegment] = []
    text = vtt.replace("\r\n", "\n").replace("\r", "\n").lstrip("\ufeff")

    for block in _BLOCK_SPLIT_RE.split(text):
        block = block.strip()
        if not block or block.startswith(("WEBVTT", "NOTE", "STYLE")):
            continue

        lines = [line.strip() for line in block.split("\n") if line.strip()]
        timing_index = next(
            (i for i, line in enumerate(lines) if "-->" in line), None
        )
        if timing_index is None:
            continue
        match = _TIMING_RE.search(lines[timing_index])
        if match is None:
            continue

        speaker: str | None = None
        parts: list[str] = []
        for line in lines[timing_index + 1:]:
            voice = _VOICE_RE.match(line)
            if voice:
                speaker = voice.group(1).strip()
                line = voice.group(2)
            line = _CLOSE_VOICE_RE.sub("", line).strip()
            if line:
                parts.append(line)

        body = " ".join(parts).strip()
        if not body:
            continue

        segments.append(
            TranscriptSegment(
                start_ms=timestamp_to_ms(match.group("start")),
                end_ms=timestamp_to_ms(match.group("end")),
                speaker=speaker,
                text=body,
            )
        )

    return segments


def segments_to_text(segments: list[TranscriptSegment]) -> str:
    """Plain-text rendition, one ``Speaker: text`` line per segment."""
    return "\n".join(
        f"{s.speaker}: {s.text}" if s.speaker else s.text for s in segments
    )
