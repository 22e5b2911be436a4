"""
Tests for ingest/progress.py
"""
from django.test import SimpleTestCase

from ingest.progress import FfmpegProgressParser, ProgressCoalescer, percent


class FfmpegProgressParserTest(SimpleTestCase):
    def setUp(self):
        self.parser = FfmpegProgressParser()

    def test_key_value_lines(self):
        self.assertEqual(self.parser.parse("out_time_us=12500000"), 12.5)
        self.assertEqual(self.parser.parse("out_time_ms=3000000"), 3.0)
        self.assertEqual(self.parser.parse("out_time=00:01:02.500000"), 62.5)

    def test_stats_line(self):
        line = "frame=  240 fps= 60 q=28.0 size=    512kB time=00:00:10.00 bitrate= 419.4kbits/s speed=2.5x"
        self.assertEqual(self.parser.parse(line), 10.0)

    def test_unrecognized_lines_ignored(self):
        for line in ("", "progress=continue", "out_time=N/A", "out_time_us=N/A", "Stream #0:0: Video: h264"):
            self.assertIsNone(self.parser.parse(line), line)

    def test_negative_time_ignored(self):
        self.assertIsNone(self.parser.parse("out_time_us=-23219"))


class PercentTest(SimpleTestCase):
    def test_floors_and_clamps(self):
        self.assertEqual(percent(33.3, 100), 33)
        self.assertEqual(percent(150, 100), 100)
        self.assertEqual(percent(5, 0), 0)


class ProgressCoalescerTest(SimpleTestCase):
    def test_only_increases_are_forwarded(self):
        sent = []
        report = ProgressCoalescer(sent.append, "movie-1")
        for pct in (0, 5, 5, 3, 12, 12, 11, 100, 100):
            report(pct)
        self.assertEqual(sent, [0, 5, 12, 100])

    def test_without_sink(self):
        report = ProgressCoalescer(None)
        report(40)
        self.assertEqual(report.last, 40)
