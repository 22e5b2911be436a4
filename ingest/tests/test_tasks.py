"""
Tests for ingest/tasks.py
"""
import tempfile
from pathlib import Path

from django.test import SimpleTestCase, override_settings

from ingest.errors import RelocationError
from ingest.tasks import requeue_failed_bundle

from .helpers import make_movie_bundle


class RequeueFailedBundleTest(SimpleTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        base = Path(self._tmp.name)
        self.failed = base / "failed"
        self.pending = base / "pending"
        self.failed.mkdir()
        self.pending.mkdir()
        self.settings = override_settings(PIPELINE_FAILED_DIR=self.failed, PIPELINE_PENDING_DIR=self.pending)
        self.settings.enable()

    def tearDown(self):
        self.settings.disable()
        self._tmp.cleanup()

    def test_moves_bundle_back_to_pending(self):
        make_movie_bundle(self.failed, "movie-1")

        result = requeue_failed_bundle.apply(args=["movie-1"]).get()

        self.assertEqual(result, "movie-1")
        self.assertTrue((self.pending / "movie-1" / "video.mp4").is_file())
        self.assertFalse((self.failed / "movie-1").exists())

    def test_missing_bundle_raises(self):
        with self.assertRaises(RelocationError):
            requeue_failed_bundle.apply(args=["nope"]).get()
