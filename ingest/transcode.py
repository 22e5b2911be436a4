"""
HLS transcoding for one input video.

Runs the encoder once per rendition of the configured ladder, reports
progress through a coalescing sink, and writes the master playlist once every
rendition succeeded. Encoders run in their own process group so shutdown can
kill the whole tree.
"""
import json
import logging
import os
import re
import signal
import subprocess
import threading
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path

from .config import Rendition
from .errors import Cancelled, ProbeError, TranscodeError
from .progress import FfmpegProgressParser, ProgressCoalescer, percent

logger = logging.getLogger(__name__)

MASTER_PLAYLIST = "master.m3u8"

# key=value lines from `-progress`; everything else is diagnostic text
_PROGRESS_LINE = re.compile(r"^[a-z_0-9]+=\S*$")


@dataclass
class RunResult:
    returncode: int
    output: str


@dataclass
class RenditionSet:
    output_dir: Path
    master_playlist: Path
    playlists: dict = field(default_factory=dict)


class SubprocessRunner:
    """
    Starts tool processes in fresh sessions and remembers them until they
    exit, so ``terminate_all`` can signal every process group.
    """

    def __init__(self, kill_grace_seconds: float = 5.0, tail_lines: int = 200):
        self.kill_grace_seconds = kill_grace_seconds
        self.tail_lines = tail_lines
        self._procs: set[subprocess.Popen] = set()
        self._lock = threading.Lock()
        self._closed = False

    def run(self, cmd: list[str], on_line=None) -> RunResult:
        with self._lock:
            if self._closed:
                raise Cancelled("Pipeline is shutting down; encoder not started")
            try:
                proc = subprocess.Popen(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                    text=True,
                    errors="replace",
                    start_new_session=True,
                )
            except OSError as exc:
                raise TranscodeError(f"Could not start {cmd[0]}: {exc}") from exc
            self._procs.add(proc)

        tail = deque(maxlen=self.tail_lines)
        try:
            for line in proc.stdout:
                line = line.rstrip("\r\n")
                if not _PROGRESS_LINE.match(line.strip()):
                    tail.append(line)
                if on_line is not None:
                    on_line(line)
            proc.wait()
        finally:
            if proc.poll() is None:
                self._kill_group(proc)
            proc.stdout.close()
            with self._lock:
                self._procs.discard(proc)

        if self._closed and proc.returncode != 0:
            raise Cancelled(f"{Path(cmd[0]).name} was terminated by shutdown")
        return RunResult(returncode=proc.returncode, output="\n".join(tail).strip())

    def terminate_all(self) -> None:
        """Refuse new work, then SIGTERM (and if needed SIGKILL) every live process group."""
        with self._lock:
            self._closed = True
            procs = list(self._procs)
        for proc in procs:
            logger.warning("Terminating encoder process group %s", proc.pid)
            self._signal_group(proc, signal.SIGTERM)
        for proc in procs:
            try:
                proc.wait(timeout=self.kill_grace_seconds)
            except subprocess.TimeoutExpired:
                self._kill_group(proc)

    def _kill_group(self, proc: subprocess.Popen) -> None:
        self._signal_group(proc, signal.SIGKILL)
        try:
            proc.wait(timeout=self.kill_grace_seconds)
        except subprocess.TimeoutExpired:
            logger.error("Encoder process %s did not exit after SIGKILL", proc.pid)

    @staticmethod
    def _signal_group(proc: subprocess.Popen, sig) -> None:
        try:
            os.killpg(proc.pid, sig)
        except (ProcessLookupError, PermissionError):
            # already gone
            pass


class FfmpegEncoder:
    """Command lines and output format for ffmpeg/ffprobe."""

    def __init__(self, ffmpeg: str = "ffmpeg", ffprobe: str = "ffprobe", parser=None):
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe
        self.parser = parser or FfmpegProgressParser()

    @property
    def name(self) -> str:
        return Path(self.ffmpeg).name

    def probe(self, input_path: Path) -> float:
        """Return the container duration in seconds."""
        cmd = [
            self.ffprobe,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            str(input_path),
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        except (OSError, subprocess.CalledProcessError) as exc:
            raise ProbeError(f"ffprobe failed for {input_path.name}: {exc}") from exc

        try:
            duration = float(json.loads(result.stdout)["format"]["duration"])
        except (ValueError, KeyError, TypeError) as exc:
            raise ProbeError(f"No duration reported for {input_path.name}") from exc
        if duration <= 0:
            raise ProbeError(f"Non-positive duration {duration} for {input_path.name}")
        return duration

    def command(self, input_path: Path, rendition: Rendition, output_dir: Path) -> list[str]:
        return [
            self.ffmpeg,
            "-y",
            "-hide_banner",
            "-loglevel", "error",
            "-nostats",
            "-progress", "pipe:1",
            "-i", str(input_path),
            "-map", "0:v:0",
            "-map", "0:a?",
            "-vf", f"scale={rendition.width}:{rendition.height}",
            "-c:v", "libx264",
            "-preset", "veryfast",
            "-crf", "23",
            "-maxrate", f"{rendition.max_bitrate_kbps}k",
            "-bufsize", f"{rendition.buffer_kbps}k",
            "-c:a", "aac",
            "-ar", "48000",
            "-b:a", f"{rendition.audio_bitrate_kbps}k",
            "-hls_time", str(rendition.segment_seconds),
            "-hls_list_size", "0",
            "-hls_playlist_type", "vod",
            "-hls_segment_filename", str(output_dir / f"{rendition.name}_%03d.ts"),
            str(output_dir / f"{rendition.name}.m3u8"),
        ]


def master_playlist_text(renditions) -> str:
    """Variant playlist listing renditions by bandwidth, highest first."""
    lines = ["#EXTM3U", "#EXT-X-VERSION:3"]
    for rendition in sorted(renditions, key=lambda r: r.bandwidth, reverse=True):
        lines.append(f"#EXT-X-STREAM-INF:BANDWIDTH={rendition.bandwidth},RESOLUTION={rendition.resolution}")
        lines.append(f"{rendition.name}.m3u8")
    return "\n".join(lines) + "\n"


def write_master_playlist(output_dir: Path, renditions) -> Path:
    path = output_dir / MASTER_PLAYLIST
    path.write_text(master_playlist_text(renditions))
    return path


class Transcoder:
    def __init__(self, renditions, encoder=None, runner=None):
        self.renditions = tuple(renditions)
        self.encoder = encoder or FfmpegEncoder()
        self.runner = runner or SubprocessRunner()

    def transcode(self, input_path, output_dir, progress_sink=None, label: str = "") -> RenditionSet:
        input_path = Path(input_path)
        output_dir = Path(output_dir)
        label = label or input_path.parent.name
        output_dir.mkdir(parents=True, exist_ok=True)

        duration = self.encoder.probe(input_path)
        logger.info("Transcoding %s (%.1fs) into %d renditions", label, duration, len(self.renditions))

        report = ProgressCoalescer(progress_sink, label)
        count = len(self.renditions)
        playlists = {}

        for index, rendition in enumerate(self.renditions):
            def on_line(line, base=index * 100):
                seconds = self.encoder.parser.parse(line)
                if seconds is not None:
                    # 100 is reserved for the written master playlist
                    report(min(99, (base + percent(seconds, duration)) // count))

            cmd = self.encoder.command(input_path, rendition, output_dir)
            result = self.runner.run(cmd, on_line)
            if result.returncode != 0:
                raise TranscodeError(
                    f"{self.encoder.name} exited with code {result.returncode} "
                    f"while encoding {rendition.name} for {label}",
                    exit_code=result.returncode,
                    output=result.output,
                )
            playlists[rendition.name] = output_dir / f"{rendition.name}.m3u8"
            logger.debug("Rendition %s done for %s", rendition.name, label)

        master = write_master_playlist(output_dir, self.renditions)
        report(100)
        logger.info("HLS conversion completed for %s", label)
        return RenditionSet(output_dir=output_dir, master_playlist=master, playlists=playlists)
