"""
Tests for ingest/mover.py
"""
import tempfile
from pathlib import Path
from unittest.mock import patch

from django.test import SimpleTestCase

from ingest.errors import RelocationError
from ingest.mover import ensure_stage_roots, relocate, tree_snapshot

from .helpers import make_movie_bundle, make_show_bundle


class RelocateTest(SimpleTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        base = Path(self._tmp.name)
        self.src_root = base / "pending"
        self.dest_root = base / "processing"
        self.src_root.mkdir()
        self.dest_root.mkdir()

    def tearDown(self):
        self._tmp.cleanup()

    def test_moves_whole_tree(self):
        bundle = make_show_bundle(self.src_root)
        expected = tree_snapshot(bundle)

        dest = relocate("show-1", self.src_root, self.dest_root)

        self.assertEqual(dest, self.dest_root / "show-1")
        self.assertFalse(bundle.exists())
        self.assertEqual(tree_snapshot(dest), expected)

    def test_missing_source_raises(self):
        with self.assertRaises(RelocationError):
            relocate("nope", self.src_root, self.dest_root)

    def test_rerun_after_finished_move_is_a_noop(self):
        make_movie_bundle(self.src_root)
        relocate("movie-123", self.src_root, self.dest_root)

        dest = relocate("movie-123", self.src_root, self.dest_root)

        self.assertTrue((dest / "video.mp4").is_file())

    def test_complete_copy_left_by_crash_is_kept(self):
        bundle = make_movie_bundle(self.src_root)
        make_movie_bundle(self.dest_root)

        dest = relocate("movie-123", self.src_root, self.dest_root)

        self.assertFalse(bundle.exists())
        self.assertTrue((dest / "metadata.json").is_file())

    def test_partial_copy_left_by_crash_is_replaced(self):
        bundle = make_movie_bundle(self.src_root)
        partial = self.dest_root / "movie-123"
        partial.mkdir()
        (partial / "metadata.json").write_text("{")

        dest = relocate("movie-123", self.src_root, self.dest_root)

        self.assertFalse(bundle.exists())
        self.assertEqual(
            sorted(p.name for p in dest.iterdir()),
            ["metadata.json", "thumbnail.jpg", "video.mp4"],
        )
        self.assertGreater((dest / "metadata.json").stat().st_size, 1)

    def test_failed_verification_keeps_source(self):
        bundle = make_movie_bundle(self.src_root)
        real_snapshot = tree_snapshot

        def short_copy(root):
            snapshot = real_snapshot(root)
            if Path(root).parent == self.dest_root:
                snapshot.pop("video.mp4", None)
            return snapshot

        with patch("ingest.mover.tree_snapshot", side_effect=short_copy):
            with self.assertRaisesMessage(RelocationError, "Verification of movie-123"):
                relocate("movie-123", self.src_root, self.dest_root)

        self.assertTrue((bundle / "video.mp4").is_file())

    def test_copy_error_wrapped(self):
        make_movie_bundle(self.src_root)
        with patch("ingest.mover.shutil.copytree", side_effect=OSError("No space left on device")):
            with self.assertRaisesMessage(RelocationError, "No space left on device"):
                relocate("movie-123", self.src_root, self.dest_root)
        self.assertTrue((self.src_root / "movie-123").is_dir())


class EnsureStageRootsTest(SimpleTestCase):
    def test_creates_missing_roots(self):
        with tempfile.TemporaryDirectory() as tmp:
            roots = [Path(tmp) / "a" / "pending", Path(tmp) / "b"]
            ensure_stage_roots(roots)
            for root in roots:
                self.assertTrue(root.is_dir())
                self.assertEqual(list(root.iterdir()), [])

    def test_unwritable_root(self):
        with tempfile.TemporaryDirectory() as tmp:
            with patch("pathlib.Path.write_text", side_effect=PermissionError("read-only")):
                with self.assertRaisesMessage(RelocationError, "not writable"):
                    ensure_stage_roots([Path(tmp)])
