"""
Progress parsing for encoder output.

The encoder is only known to the orchestrator through a ``ProgressParser``:
feed it one line of tool output, get back elapsed seconds or None. Lines the
parser does not recognize are ignored, never fatal.
"""
import logging
import re
import threading

logger = logging.getLogger(__name__)

_CLOCK = r"(-?\d+):(\d{2}):(\d{2}(?:\.\d+)?)"


def _clock_seconds(hours: str, minutes: str, seconds: str) -> float:
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


class ProgressParser:
    """Turns a line of tool output into elapsed media seconds."""

    def parse(self, line: str) -> float | None:
        raise NotImplementedError


class FfmpegProgressParser(ProgressParser):
    """
    Understands ``-progress`` key/value lines (``out_time_us``, ``out_time_ms``,
    ``out_time``) as well as the ``time=HH:MM:SS.ff`` marker from stats lines.
    """

    _KV = re.compile(r"^(out_time_us|out_time_ms|out_time)=(\S+)$")
    _STATS = re.compile(r"\btime=" + _CLOCK)
    _CLOCK_ONLY = re.compile(r"^" + _CLOCK + r"$")

    def parse(self, line: str) -> float | None:
        line = line.strip()
        if not line:
            return None

        match = self._KV.match(line)
        if match:
            key, value = match.groups()
            if key == "out_time":
                clock = self._CLOCK_ONLY.match(value)
                seconds = _clock_seconds(*clock.groups()) if clock else None
            else:
                # ffmpeg reports out_time_ms in microseconds as well
                try:
                    seconds = int(value) / 1_000_000
                except ValueError:
                    seconds = None
        else:
            stats = self._STATS.search(line)
            seconds = _clock_seconds(*stats.groups()) if stats else None

        if seconds is None or seconds < 0:
            return None
        return seconds


def percent(elapsed: float, total: float) -> int:
    if total <= 0:
        return 0
    return max(0, min(100, int(elapsed / total * 100)))


class ProgressCoalescer:
    """
    Forwards a percentage to ``sink`` only when it moves past the last value
    sent, so the record store sees at most one write per percentage point and
    never a decrease.
    """

    def __init__(self, sink, label: str = ""):
        self.sink = sink
        self.label = label
        self.last = -1
        self._lock = threading.Lock()

    def __call__(self, pct: int) -> None:
        pct = max(0, min(100, int(pct)))
        with self._lock:
            if pct <= self.last:
                return
            crossed_decile = pct // 10 > max(self.last, 0) // 10
            self.last = pct
            if self.sink is not None:
                self.sink(pct)
        if crossed_decile:
            logger.info("Transcode progress %s: %d%%", self.label, pct)
