"""Bundle builders and a fake encoder shared by the test modules."""
import json
import threading
from pathlib import Path

from PIL import Image

from ingest.config import PipelineConfig, Rendition, StageRoots
from ingest.transcode import FfmpegEncoder, RunResult, Transcoder

LADDER = (
    Rendition("high", 1280, 720, 2000, 4000),
    Rendition("mid", 854, 480, 1000, 2000),
    Rendition("low", 640, 360, 600, 1200),
)

MIN_VIDEO = 1024 * 1024


def make_config(base, **overrides) -> PipelineConfig:
    base = Path(base)
    roots = StageRoots(*(base / name for name in ("pending", "processing", "completed", "failed")))
    for root in roots.all():
        root.mkdir(parents=True, exist_ok=True)
    values = dict(
        roots=roots,
        renditions=LADDER,
        public_base_url="https://cdn.example.com/uploads/completed",
        workers=1,
        episode_workers=1,
        settle_seconds=0,
        poll_seconds=3600,
        use_watcher=False,
        min_video_bytes=MIN_VIDEO,
    )
    values.update(overrides)
    return PipelineConfig(**values)


def write_video(path, size=5 * 1024 * 1024) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.truncate(size)  # sparse; only st_size matters
    return path


def write_image(path, fmt="JPEG") -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", (16, 9), (200, 30, 30)).save(path, format=fmt)
    return path


def make_movie_bundle(root, name="movie-123", metadata=None, video_size=5 * 1024 * 1024,
                      thumbnail="thumbnail.jpg", trailer=False) -> Path:
    bundle = Path(root) / name
    bundle.mkdir(parents=True)
    meta = {"title": "X", "category": "Action", "type": "movie", "description": "A test movie"}
    if metadata is not None:
        meta = metadata
    (bundle / "metadata.json").write_text(json.dumps(meta))
    if video_size is not None:
        write_video(bundle / "video.mp4", video_size)
    if thumbnail:
        write_image(bundle / thumbnail, "PNG" if thumbnail.endswith(".png") else "JPEG")
    if trailer:
        write_video(bundle / "trailer.mp4", 2048)
    return bundle


def show_metadata(episodes_per_season=(2,)):
    seasons = []
    for s_index, count in enumerate(episodes_per_season, start=1):
        seasons.append({
            "seasonNumber": s_index,
            "title": f"Season {s_index}",
            "rentalPrice": 9.99,
            "episodes": [
                {"episodeNumber": e, "title": f"Episode {e}", "rentalPrice": 1.99, "duration": 42}
                for e in range(1, count + 1)
            ],
        })
    return {
        "title": "The Show",
        "category": "Drama",
        "type": "show",
        "description": "A test show",
        "seasons": seasons,
    }


def make_show_bundle(root, name="show-1", metadata=None, skip=()) -> Path:
    """Build a show bundle; episode dirs named in ``skip`` are not created."""
    bundle = Path(root) / name
    bundle.mkdir(parents=True)
    meta = metadata or show_metadata()
    (bundle / "metadata.json").write_text(json.dumps(meta))
    write_image(bundle / "thumbnail.jpg")
    for season in meta["seasons"]:
        for episode in season["episodes"]:
            dir_name = f"s{season['seasonNumber']}e{episode['episodeNumber']}"
            if dir_name in skip:
                continue
            write_video(bundle / dir_name / "video.mp4", 2 * 1024 * 1024)
            write_image(bundle / dir_name / "thumbnail.jpg")
    return bundle


class FakeEncoder(FfmpegEncoder):
    def __init__(self, duration=100.0):
        super().__init__(ffmpeg="fake-ffmpeg", ffprobe="fake-ffprobe")
        self.duration = duration

    def probe(self, input_path):
        return self.duration

    def command(self, input_path, rendition, output_dir):
        return ["fake-ffmpeg", str(input_path), rendition.name, str(output_dir)]


class FakeRunner:
    """
    Pretends to encode: writes the rendition playlist and one segment, and
    prints ffmpeg-style progress lines. Inputs whose path contains one of
    ``fail_on`` exit with code 1.
    """

    def __init__(self, duration=100.0, fail_on=(), delay=0.0):
        self.duration = duration
        self.fail_on = tuple(fail_on)
        self.delay = delay
        self.calls = []
        self.active = 0
        self.max_active = 0
        self.terminated = False
        self._lock = threading.Lock()
        self._release = threading.Event()

    def run(self, cmd, on_line=None):
        _, input_path, name, output_dir = cmd
        with self._lock:
            self.calls.append((input_path, name))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                self._release.wait(self.delay)
            if any(marker in input_path for marker in self.fail_on):
                return RunResult(returncode=1, output="Invalid data found when processing input")
            out = Path(output_dir)
            (out / f"{name}.m3u8").write_text("#EXTM3U\n")
            (out / f"{name}_000.ts").write_bytes(b"\x47" * 188)
            for fraction in (0.25, 0.5, 0.5, 0.75, 1.0):
                if on_line:
                    on_line(f"out_time_ms={int(self.duration * fraction * 1_000_000)}")
                    on_line("progress=continue")
            if on_line:
                on_line("this line means nothing")
            return RunResult(returncode=0, output="")
        finally:
            with self._lock:
                self.active -= 1

    def terminate_all(self):
        self.terminated = True


def make_transcoder(runner=None, duration=100.0) -> Transcoder:
    return Transcoder(LADDER, encoder=FakeEncoder(duration), runner=runner or FakeRunner(duration))
