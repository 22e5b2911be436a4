"""
Tests for thumbnails, URL joining, error text and S3 uploads.
"""
import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

from django.test import SimpleTestCase, override_settings
from PIL import Image

from ingest import s3
from ingest.errors import MAX_ERROR_CHARS, PipelineError, TranscodeError, describe, truncate
from ingest.utils import join_url, normalize_thumbnail

from .helpers import write_image


class NormalizeThumbnailTest(SimpleTestCase):
    def test_png_converted_to_jpeg(self):
        with tempfile.TemporaryDirectory() as tmp:
            write_image(Path(tmp) / "thumbnail.png", "PNG")
            jpg = normalize_thumbnail(tmp)
            with Image.open(jpg) as img:
                self.assertEqual(img.format, "JPEG")

    def test_existing_jpeg_kept(self):
        with tempfile.TemporaryDirectory() as tmp:
            original = write_image(Path(tmp) / "thumbnail.jpg")
            self.assertEqual(normalize_thumbnail(tmp), original)

    def test_broken_png(self):
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "thumbnail.png").write_bytes(b"not an image")
            with self.assertRaises(PipelineError):
                normalize_thumbnail(tmp)
            self.assertFalse((Path(tmp) / "thumbnail.jpg").exists())


class JoinUrlTest(SimpleTestCase):
    def test_join(self):
        self.assertEqual(join_url("https://cdn/base/", "show-1", "/s1e1/", "video"), "https://cdn/base/show-1/s1e1/video")


class ErrorTextTest(SimpleTestCase):
    def test_truncate_keeps_tail(self):
        text = "a" * 10 + "b" * MAX_ERROR_CHARS
        self.assertEqual(truncate(text), "b" * MAX_ERROR_CHARS)
        self.assertEqual(truncate("short"), "short")

    def test_describe_transcode_error_includes_output(self):
        exc = TranscodeError("ffmpeg exited with code 1", exit_code=1, output="moov atom not found")
        self.assertEqual(describe(exc), "ffmpeg exited with code 1\nmoov atom not found")

    def test_describe_empty_message(self):
        self.assertEqual(describe(KeyError()), "KeyError")


@override_settings(S3_BUCKET="media-local", S3_PUBLIC_ENDPOINT="http://127.0.0.1:9000/")
class S3Test(SimpleTestCase):
    def test_public_base_url(self):
        self.assertEqual(s3.public_base_url("content"), "http://127.0.0.1:9000/media-local/content")
        self.assertEqual(s3.public_base_url(""), "http://127.0.0.1:9000/media-local")

    def test_upload_dir_sets_content_types_and_skips(self):
        client = MagicMock()
        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp)
            (base / "video").mkdir()
            (base / "video" / "master.m3u8").write_text("#EXTM3U\n")
            (base / "video" / "high_000.ts").write_bytes(b"\x47")
            (base / "video.mp4").write_bytes(b"\x00")

            with patch("ingest.s3.get_s3_client", return_value=client):
                count = s3.upload_dir(base, "content/movie-1", skip={"video.mp4"})

        self.assertEqual(count, 2)
        uploads = {c.args[2]: c.kwargs["ExtraArgs"] for c in client.upload_file.call_args_list}
        self.assertEqual(uploads, {
            "content/movie-1/video/high_000.ts": {"ContentType": "video/MP2T"},
            "content/movie-1/video/master.m3u8": {"ContentType": "application/vnd.apple.mpegurl"},
        })
