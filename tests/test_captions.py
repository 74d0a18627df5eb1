"""Tests for SRT caption generation."""

from __future__ import annotations

import unittest

from storygen.captions import (
    build_srt,
    clean_caption_text,
    cues_from_text,
    cues_from_timestamps,
    format_srt_time,
)
from storygen.types import Scene, WordTimestamp


class CaptionTextTest(unittest.TestCase):
    def test_audio_tags_and_diacritics_are_removed(self) -> None:
        self.assertEqual(clean_caption_text("[excited] Hello   there [chuckles]"), "Hello there")
        self.assertEqual(clean_caption_text("مَرْحَبًا"), "مرحبا")

    def test_srt_time_format(self) -> None:
        self.assertEqual(format_srt_time(0), "00:00:00,000")
        self.assertEqual(format_srt_time(61.25), "00:01:01,250")
        self.assertEqual(format_srt_time(3723.5), "01:02:03,500")


class CueTest(unittest.TestCase):
    def test_timestamps_group_four_words(self) -> None:
        words = [WordTimestamp(word=f"w{i}", start=i * 0.4, end=i * 0.4 + 0.35) for i in range(6)]

        cues = cues_from_timestamps(words)

        self.assertEqual([cue.text for cue in cues], ["w0 w1 w2 w3", "w4 w5"])
        self.assertEqual(cues[1].start, words[4].start)
        self.assertAlmostEqual(cues[1].end, words[5].end)

    def test_text_is_spread_over_duration(self) -> None:
        cues = cues_from_text("one two three four five six seven eight", 8.0)

        self.assertEqual(len(cues), 2)
        self.assertEqual((cues[0].start, cues[0].end), (0.0, 4.0))
        self.assertEqual((cues[1].start, cues[1].end), (4.0, 8.0))

    def test_short_scene_gets_single_cue(self) -> None:
        cues = cues_from_text("a quick line that does not split", 2.5)
        self.assertEqual(len(cues), 1)
        self.assertEqual(cues[0].end, 2.5)

    def test_build_srt_offsets_by_clip_length(self) -> None:
        first = Scene(
            index=1,
            target_duration=3,
            narration="hi there",
            word_timestamps=[WordTimestamp("hi", 0.0, 0.3), WordTimestamp("there", 0.4, 0.9)],
        )
        second = Scene(index=2, target_duration=2, narration="bye now")

        srt = build_srt([(first, 3.0), (second, 3.0)])

        blocks = srt.strip().split("\n\n")
        self.assertEqual(len(blocks), 2)
        self.assertEqual(blocks[0].splitlines(), ["1", "00:00:00,000 --> 00:00:00,900", "hi there"])
        self.assertEqual(blocks[1].splitlines(), ["2", "00:00:03,000 --> 00:00:06,000", "bye now"])


if __name__ == "__main__":
    unittest.main()
