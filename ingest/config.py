from dataclasses import dataclass
from pathlib import Path

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


@dataclass(frozen=True)
class Rendition:
    """One rung of the quality ladder."""
    name: str
    width: int
    height: int
    max_bitrate_kbps: int
    buffer_kbps: int
    segment_seconds: int = 6
    audio_bitrate_kbps: int = 128

    @property
    def bandwidth(self) -> int:
        """Nominal peak bandwidth (bits/s) advertised in the master playlist."""
        return (self.max_bitrate_kbps + self.audio_bitrate_kbps) * 1000

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True)
class StageRoots:
    pending: Path
    processing: Path
    completed: Path
    failed: Path

    def all(self) -> list[Path]:
        return [self.pending, self.processing, self.completed, self.failed]


@dataclass(frozen=True)
class PipelineConfig:
    roots: StageRoots
    renditions: tuple[Rendition, ...]
    public_base_url: str
    workers: int = 2
    episode_workers: int = 2
    queue_size: int = 64
    settle_seconds: float = 5.0
    poll_seconds: float = 30.0
    use_watcher: bool = True
    kill_grace_seconds: float = 5.0
    min_video_bytes: int = 1024 * 1024
    publish_to_s3: bool = False
    s3_prefix: str = "content"
    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"

    @classmethod
    def from_settings(cls, **overrides) -> "PipelineConfig":
        segment = int(settings.PIPELINE_SEGMENT_SECONDS)
        audio = int(settings.PIPELINE_AUDIO_BITRATE_KBPS)
        ladder = tuple(
            Rendition(
                name=r["name"],
                width=int(r["width"]),
                height=int(r["height"]),
                max_bitrate_kbps=int(r["max_bitrate_kbps"]),
                buffer_kbps=int(r["buffer_kbps"]),
                segment_seconds=int(r.get("segment_seconds", segment)),
                audio_bitrate_kbps=int(r.get("audio_bitrate_kbps", audio)),
            )
            for r in settings.PIPELINE_RENDITIONS
        )
        if not ladder:
            raise ImproperlyConfigured("PIPELINE_RENDITIONS must list at least one rendition")
        if len({r.name for r in ladder}) != len(ladder):
            raise ImproperlyConfigured("PIPELINE_RENDITIONS names must be unique")

        values = dict(
            roots=StageRoots(
                pending=Path(settings.PIPELINE_PENDING_DIR),
                processing=Path(settings.PIPELINE_PROCESSING_DIR),
                completed=Path(settings.PIPELINE_COMPLETED_DIR),
                failed=Path(settings.PIPELINE_FAILED_DIR),
            ),
            renditions=ladder,
            public_base_url=settings.PIPELINE_PUBLIC_BASE_URL.rstrip("/"),
            workers=max(1, int(settings.PIPELINE_WORKERS)),
            episode_workers=max(1, int(settings.PIPELINE_EPISODE_WORKERS)),
            queue_size=max(1, int(settings.PIPELINE_QUEUE_SIZE)),
            settle_seconds=float(settings.PIPELINE_SETTLE_SECONDS),
            poll_seconds=float(settings.PIPELINE_POLL_SECONDS),
            use_watcher=bool(settings.PIPELINE_USE_WATCHER),
            kill_grace_seconds=float(settings.PIPELINE_KILL_GRACE_SECONDS),
            min_video_bytes=int(settings.PIPELINE_MIN_VIDEO_BYTES),
            publish_to_s3=bool(settings.PIPELINE_PUBLISH_TO_S3),
            s3_prefix=settings.PIPELINE_S3_PREFIX,
            ffmpeg_binary=settings.FFMPEG_BINARY,
            ffprobe_binary=settings.FFPROBE_BINARY,
        )
        values.update(overrides)
        return cls(**values)
