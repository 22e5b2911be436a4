"""
One bundle's trip through the pipeline.

Stages run strictly in order: pending -> processing, validate, create the
record, transcode, publish, then processing -> completed or failed. A movie
fails as a whole; a show's episodes succeed or fail independently and the
show's status follows from theirs. A show with at least one playable episode
is published to the completed root even when its aggregate status is failed.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from botocore.exceptions import BotoCoreError, ClientError
from django.db import connection

from . import records, s3
from .errors import Cancelled, PipelineError, RelocationError, ValidationError, describe
from .models import ContentRecord, Episode, Status
from .mover import relocate
from .records import ROOT, RecordPath
from .transcode import MASTER_PLAYLIST, FfmpegEncoder, SubprocessRunner, Transcoder
from .utils import JPEG_THUMBNAIL, PNG_THUMBNAIL, join_url, normalize_thumbnail
from .validator import MANIFEST_NAME, TRAILER_NAME, VIDEO_NAME, validate

logger = logging.getLogger(__name__)

OUTPUT_DIR_NAME = "video"


@dataclass
class TranscodeJob:
    input_video: Path
    output_dir: Path
    record_path: RecordPath
    label: str


class BundleProcessor:
    def __init__(self, config, transcoder=None):
        self.config = config
        self.transcoder = transcoder or Transcoder(
            config.renditions,
            encoder=FfmpegEncoder(config.ffmpeg_binary, config.ffprobe_binary),
            runner=SubprocessRunner(config.kill_grace_seconds),
        )

    def shutdown(self) -> None:
        """Kill any encoder still running; their jobs fail and restart from scratch next time."""
        self.transcoder.runner.terminate_all()

    # -----------------------------------------------------
    # Bundle level
    # -----------------------------------------------------
    def process(self, bundle_name: str) -> str:
        """Run ``bundle_name`` from the pending root to a terminal root; return the final status."""
        roots = self.config.roots
        logger.info("Starting processing for bundle %s", bundle_name)

        workdir = relocate(bundle_name, roots.pending, roots.processing)

        try:
            manifest = validate(workdir, self.config.min_video_bytes)
        except ValidationError as exc:
            logger.error("Bundle %s rejected: %s", bundle_name, exc)
            relocate(bundle_name, roots.processing, roots.failed)
            return Status.FAILED

        try:
            record_id = records.create_record(bundle_name, manifest)
        except Exception:
            logger.exception("Could not create a record for bundle %s", bundle_name)
            relocate(bundle_name, roots.processing, roots.failed)
            raise

        try:
            if manifest.is_show:
                publishable = self._transcode_show(record_id, bundle_name, workdir, manifest)
            else:
                publishable = self._transcode_movie(record_id, bundle_name, workdir)
            if publishable and self.config.publish_to_s3:
                publishable = self._publish(record_id, bundle_name, workdir, manifest)
        except Cancelled:
            logger.warning("Bundle %s interrupted by shutdown; left in processing", bundle_name)
            raise
        except Exception as exc:
            logger.exception("Processing crashed for bundle %s", bundle_name)
            self._fail(record_id, manifest, describe(exc))
            self._move_terminal(record_id, bundle_name, manifest, roots.failed)
            raise

        target = roots.completed if publishable else roots.failed
        self._move_terminal(record_id, bundle_name, manifest, target)

        if manifest.is_show and publishable:
            records.attach_artifacts(record_id, ROOT, {"thumbnail_url": self._url(bundle_name, JPEG_THUMBNAIL)})
        elif publishable:
            urls = {
                "hls_url": self._url(bundle_name, OUTPUT_DIR_NAME, MASTER_PLAYLIST),
                "thumbnail_url": self._url(bundle_name, JPEG_THUMBNAIL),
            }
            if manifest.has_trailer:
                urls["trailer_url"] = self._url(bundle_name, TRAILER_NAME)
            records.attach_artifacts(record_id, ROOT, urls)
            records.update_status(record_id, ROOT, Status.COMPLETED)

        status = ContentRecord.objects.values_list("status", flat=True).get(pk=record_id)
        logger.info("Processing finished for bundle %s: %s (moved to %s)", bundle_name, status, target)
        return status

    def finish_interrupted(self, bundle_name: str) -> bool:
        """
        Finish the terminal move of a bundle found in the processing root whose
        jobs all ran to an end before the service stopped. Returns False when
        the bundle has to be processed again instead.
        """
        record = ContentRecord.objects.filter(bundle_name=bundle_name).first()
        if record is None:
            return False
        if record.content_type == ContentRecord.ContentType.SHOW:
            episodes = Episode.objects.filter(season__record=record)
            if not episodes.exists() or episodes.filter(status__in=(Status.PENDING, Status.PROCESSING)).exists():
                return False
            playable = episodes.filter(status=Status.COMPLETED).exists()
        else:
            if record.status not in (Status.COMPLETED, Status.FAILED):
                return False
            playable = record.status == Status.COMPLETED

        roots = self.config.roots
        target = roots.completed if playable else roots.failed
        logger.warning("Finishing interrupted move of %s to %s", bundle_name, target)
        relocate(bundle_name, roots.processing, target)
        if playable and record.content_type == ContentRecord.ContentType.SHOW:
            records.attach_artifacts(record.id, ROOT, {"thumbnail_url": self._url(bundle_name, JPEG_THUMBNAIL)})
        return True

    def _move_terminal(self, record_id, bundle_name, manifest, target) -> None:
        try:
            relocate(bundle_name, self.config.roots.processing, target)
        except RelocationError as exc:
            logger.error("Bundle %s left in processing: %s", bundle_name, exc)
            detail = f"Relocation failed, manual intervention required: {exc}"
            existing = ContentRecord.objects.values_list("error_details", flat=True).get(pk=record_id)
            if existing:
                # keep the diagnostic that sent the bundle to failed
                detail = f"{existing}\n{detail}"
            if manifest.is_show:
                records.note_error(record_id, detail)
            else:
                records.update_status(record_id, ROOT, Status.FAILED, detail)
            raise

    def _fail(self, record_id, manifest, detail: str) -> None:
        if not manifest.is_show:
            records.update_status(record_id, ROOT, Status.FAILED, detail)
            return
        records.note_error(record_id, detail)
        for ep in manifest.episodes():
            records.update_status(
                record_id, RecordPath(ep.season_number, ep.episode_number), Status.FAILED, detail
            )

    def _url(self, bundle_name: str, *parts) -> str:
        if self.config.publish_to_s3:
            base = s3.public_base_url(self.config.s3_prefix)
        else:
            base = self.config.public_base_url
        return join_url(base, bundle_name, *parts)

    def _publish(self, record_id, bundle_name, workdir: Path, manifest) -> bool:
        # raw uploads stay on disk only
        skip = {MANIFEST_NAME, VIDEO_NAME, PNG_THUMBNAIL}
        for ep in manifest.episodes():
            skip.update({f"{ep.dir_name}/{VIDEO_NAME}", f"{ep.dir_name}/{PNG_THUMBNAIL}"})
        prefix = join_url(self.config.s3_prefix, bundle_name).strip("/")
        try:
            s3.upload_dir(workdir, prefix, skip=skip)
        except (BotoCoreError, ClientError, OSError) as exc:
            logger.error("Publishing %s to S3 failed: %s", bundle_name, exc)
            self._fail(record_id, manifest, f"Publishing to content store failed: {exc}")
            return False
        return True

    # -----------------------------------------------------
    # Job level
    # -----------------------------------------------------
    def _run_job(self, record_id, job: TranscodeJob) -> None:
        def sink(pct):
            records.update_progress(record_id, job.record_path, pct)

        self.transcoder.transcode(job.input_video, job.output_dir, sink, label=job.label)

    def _transcode_movie(self, record_id, bundle_name: str, workdir: Path) -> bool:
        records.update_status(record_id, ROOT, Status.PROCESSING)
        job = TranscodeJob(
            input_video=workdir / VIDEO_NAME,
            output_dir=workdir / OUTPUT_DIR_NAME,
            record_path=ROOT,
            label=bundle_name,
        )
        try:
            self._run_job(record_id, job)
            normalize_thumbnail(workdir)
        except PipelineError as exc:
            logger.error("Movie %s failed: %s", bundle_name, exc)
            records.update_status(record_id, ROOT, Status.FAILED, describe(exc))
            return False
        return True

    def _transcode_show(self, record_id, bundle_name: str, workdir: Path, manifest) -> bool:
        try:
            normalize_thumbnail(workdir)
        except PipelineError as exc:
            self._fail(record_id, manifest, describe(exc))
            return False

        episodes = manifest.episodes()
        workers = min(self.config.episode_workers, len(episodes))
        if workers <= 1:
            results = [self._transcode_episode(record_id, bundle_name, workdir, ep) for ep in episodes]
        else:
            def run(ep):
                try:
                    return self._transcode_episode(record_id, bundle_name, workdir, ep)
                finally:
                    # each pool thread holds its own DB connection
                    connection.close()

            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"{bundle_name}-ep") as pool:
                results = list(pool.map(run, episodes))

        failed = results.count(False)
        if failed:
            logger.warning("Show %s: %d of %d episodes failed", bundle_name, failed, len(results))
        # completed episodes stay playable, so the bundle is published unless none succeeded
        return failed < len(results)

    def _transcode_episode(self, record_id, bundle_name: str, workdir: Path, ep) -> bool:
        path = RecordPath(ep.season_number, ep.episode_number)
        episode_dir = workdir / ep.dir_name
        job = TranscodeJob(
            input_video=episode_dir / VIDEO_NAME,
            output_dir=episode_dir / OUTPUT_DIR_NAME,
            record_path=path,
            label=f"{bundle_name}/{ep.dir_name}",
        )
        try:
            records.update_status(record_id, path, Status.PROCESSING)
            self._run_job(record_id, job)
            normalize_thumbnail(episode_dir)
        except PipelineError as exc:
            logger.error("Episode %s failed: %s", job.label, exc)
            records.update_status(record_id, path, Status.FAILED, describe(exc))
            return False
        except Cancelled:
            raise
        except Exception as exc:
            # contained to this episode; siblings keep going
            logger.exception("Episode %s crashed", job.label)
            records.update_status(record_id, path, Status.FAILED, describe(exc))
            return False

        records.attach_artifacts(
            record_id,
            path,
            {
                "hls_url": self._url(bundle_name, ep.dir_name, OUTPUT_DIR_NAME, MASTER_PLAYLIST),
                "thumbnail_url": self._url(bundle_name, ep.dir_name, JPEG_THUMBNAIL),
            },
        )
        records.update_status(record_id, path, Status.COMPLETED)
        return True
