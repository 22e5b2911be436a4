"""
Tests for ingest/scanner.py
"""
import tempfile
from pathlib import Path
from types import SimpleNamespace

from django.test import SimpleTestCase

from ingest.errors import DuplicateAdmissionError
from ingest.scanner import IntakeScanner, PendingEventHandler

from .helpers import make_movie_bundle


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class ScannerTestCase(SimpleTestCase):
    settle_seconds = 0

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.pending = Path(self._tmp.name)
        self.submitted = []
        self.accept = True
        self.clock = FakeClock()
        self.scanner = IntakeScanner(self.pending, self.submit, self.settle_seconds, clock=self.clock)

    def tearDown(self):
        self.scanner.stop()
        self._tmp.cleanup()

    def submit(self, name):
        if self.accept:
            self.submitted.append(name)
        return self.accept


class AdmissionTest(ScannerTestCase):
    def test_scan_admits_each_bundle_once(self):
        make_movie_bundle(self.pending, "a")
        make_movie_bundle(self.pending, "b")
        (self.pending / ".partial").mkdir()
        (self.pending / "stray.txt").write_text("x")

        self.scanner.scan()
        self.scanner.scan()
        self.scanner.observe("a")

        self.assertEqual(self.submitted, ["a", "b"])
        self.assertEqual(self.scanner.in_flight(), {"a", "b"})

    def test_released_name_can_be_admitted_again(self):
        make_movie_bundle(self.pending, "a")
        self.scanner.scan()
        self.scanner.release("a")
        self.scanner.scan()
        self.assertEqual(self.submitted, ["a", "a"])

    def test_claim_rejects_duplicates(self):
        self.scanner.claim("a")
        with self.assertRaises(DuplicateAdmissionError):
            self.scanner.claim("a")

    def test_duplicate_admission_is_skipped(self):
        self.assertTrue(self.scanner.admit("a"))
        self.assertFalse(self.scanner.admit("a"))
        self.assertEqual(self.submitted, ["a"])

    def test_refused_submission_releases_name(self):
        self.accept = False
        self.assertFalse(self.scanner.admit("a"))
        self.assertEqual(self.scanner.in_flight(), set())

    def test_blocked_name_is_skipped(self):
        make_movie_bundle(self.pending, "a")
        self.scanner.block("a")
        self.scanner.scan()
        self.assertEqual(self.submitted, [])

        self.scanner.unblock("a")
        self.scanner.scan()
        self.assertEqual(self.submitted, ["a"])

    def test_vanished_entry_ignored(self):
        self.scanner.observe("ghost")
        self.assertEqual(self.submitted, [])


class SettleTest(ScannerTestCase):
    settle_seconds = 60

    def test_waits_for_settle_delay(self):
        make_movie_bundle(self.pending, "a")

        self.scanner.observe("a")
        self.assertEqual(self.submitted, [])

        self.clock.now += 30
        self.scanner.observe("a")
        self.assertEqual(self.submitted, [])

        self.clock.now += 31
        self.scanner.observe("a")
        self.assertEqual(self.submitted, ["a"])

    def test_changes_restart_the_delay(self):
        bundle = make_movie_bundle(self.pending, "a")
        self.scanner.observe("a")

        self.clock.now += 45
        (bundle / "trailer.mp4").write_bytes(b"\x00" * 10)
        self.scanner.observe("a")
        self.clock.now += 45
        self.scanner.observe("a")
        self.assertEqual(self.submitted, [])

        self.clock.now += 20
        self.scanner.observe("a")
        self.assertEqual(self.submitted, ["a"])

    def test_stopped_scanner_admits_nothing(self):
        make_movie_bundle(self.pending, "a")
        self.scanner.observe("a")
        self.scanner.stop()
        self.clock.now += 120
        self.scanner.observe("a")
        self.assertEqual(self.submitted, [])


class PendingEventHandlerTest(ScannerTestCase):
    def setUp(self):
        super().setUp()
        self.observed = []
        self.scanner.observe = self.observed.append
        self.handler = PendingEventHandler(self.scanner)

    def test_forwards_top_level_name(self):
        self.handler.on_created(SimpleNamespace(src_path=str(self.pending / "show-1" / "s1e1" / "video.mp4")))
        self.handler.on_modified(SimpleNamespace(src_path=str(self.pending / "movie-9")))
        self.handler.on_moved(SimpleNamespace(src_path="/elsewhere/x", dest_path=str(self.pending / "movie-7")))
        self.assertEqual(self.observed, ["show-1", "movie-9", "movie-7"])

    def test_ignores_root_hidden_and_foreign_paths(self):
        self.handler.on_modified(SimpleNamespace(src_path=str(self.pending)))
        self.handler.on_created(SimpleNamespace(src_path=str(self.pending / ".tmp-upload")))
        self.handler.on_created(SimpleNamespace(src_path="/somewhere/else/movie-1"))
        self.assertEqual(self.observed, [])
