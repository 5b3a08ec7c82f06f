"""Tests for WebVTT transcript parsing."""

from __future__ import annotations

from src.meetsync.meetings.schemas import TranscriptSegment
from src.meetsync.sync.vtt import parse_vtt_segments, segments_to_text, timestamp_to_ms

SAMPLE_VTT = """WEBVTT

NOTE generated by the conferencing service

0f4c1d2e-1/12-0
00:00:01.250 --> 00:00:04.000
<v Alice Martin>Good morning everyone.</v>

0f4c1d2e-1/13-0
00:00:04.500 --> 00:00:07.125
<v Bob Stone>Morning. Shall we start
with the budget?</v>

00:00:08.000 --> 00:00:09.000
No speaker on this one.

00:00:10.000 --> 00:00:11.000
<v Alice Martin></v>
"""


class TestTimestampToMs:
    def test_with_hours(self):
        assert timestamp_to_ms("01:02:03.004") == 3_723_004

    def test_without_hours(self):
        assert timestamp_to_ms("02:03.500") == 123_500


class TestParseVttSegments:
    def test_parses_speakers_text_and_offsets(self):
        segments = parse_vtt_segments(SAMPLE_VTT)

        assert segments[0] == TranscriptSegment(
            start_ms=1250, end_ms=4000, speaker="Alice Martin", text="Good morning everyone."
        )
        assert segments[1].speaker == "Bob Stone"
        assert segments[1].text == "Morning. Shall we start with the budget?"
        assert segments[1].end_ms == 7125

    def test_cue_without_voice_tag_has_no_speaker(self):
        segments = parse_vtt_segments(SAMPLE_VTT)
        assert segments[2].speaker is None
        assert segments[2].text == "No speaker on this one."

    def test_empty_cues_and_header_blocks_skipped(self):
        assert len(parse_vtt_segments(SAMPLE_VTT)) == 3

    def test_crlf_and_bom_tolerated(self):
        vtt = "\ufeffWEBVTT\r\n\r\n00:01.000 --> 00:02.000\r\n<v Eve>Hi</v>\r\n"
        segments = parse_vtt_segments(vtt)
        assert segments == [
            TranscriptSegment(start_ms=1000, end_ms=2000, speaker="Eve", text="Hi")
        ]

    def test_block_without_timing_ignored(self):
        assert parse_vtt_segments("WEBVTT\n\njust some text\n") == []

    def test_empty_document(self):
        assert parse_vtt_segments("") == []


def test_segments_to_text_prefixes_speaker():
    segments = [
        TranscriptSegment(start_ms=0, end_ms=1, speaker="Alice", text="Hello"),
        TranscriptSegment(start_ms=1, end_ms=2, speaker=None, text="(silence)"),
    ]
    assert segments_to_text(segments) == "Alice: Hello\n(silence)"
