"""
Discovery of new bundles in the pending root.

Both filesystem events and the periodic rescan go through ``observe``; an
entry is only admitted once it has stayed unchanged for the settle delay, and
only if no job for the same name is already in flight.
"""
import logging
import threading
import time
from pathlib import Path

from watchdog.events import FileSystemEventHandler

from .errors import DuplicateAdmissionError
from .mover import tree_snapshot

logger = logging.getLogger(__name__)


class IntakeScanner:
    def __init__(self, pending_root, submit, settle_seconds: float = 5.0, clock=time.monotonic):
        self.pending_root = Path(pending_root)
        self.submit = submit
        self.settle_seconds = settle_seconds
        self.clock = clock
        self._lock = threading.Lock()
        self._in_flight: set[str] = set()
        self._blocked: set[str] = set()
        self._seen: dict[str, tuple[float, dict]] = {}
        self._timers: dict[str, threading.Timer] = {}
        self._stopped = False

    # -----------------------------------------------------
    # Discovery
    # -----------------------------------------------------
    def scan(self) -> None:
        """Observe every directory currently in the pending root."""
        try:
            entries = sorted(self.pending_root.iterdir())
        except OSError as exc:
            logger.error("Cannot list pending root %s: %s", self.pending_root, exc)
            return
        logger.debug("Scanning %s: %d entries", self.pending_root, len(entries))
        for entry in entries:
            if entry.is_dir() and not entry.name.startswith("."):
                self.observe(entry.name)

    def observe(self, name: str) -> None:
        """Admit ``name`` once it has settled; otherwise check again after the settle delay."""
        path = self.pending_root / name
        with self._lock:
            if self._stopped or name in self._in_flight:
                return
        if not path.is_dir():
            with self._lock:
                self._seen.pop(name, None)
            return

        try:
            snapshot = tree_snapshot(path)
        except OSError:
            # still being written or already moved away
            snapshot = None

        now = self.clock()
        with self._lock:
            first_seen, previous = self._seen.get(name, (None, None))
            if first_seen is None or snapshot is None or snapshot != previous:
                self._seen[name] = (now, snapshot)
                settled = self.settle_seconds <= 0 and snapshot is not None
            else:
                settled = now - first_seen >= self.settle_seconds

        if settled:
            self.admit(name)
        else:
            self._recheck_later(name)

    def _recheck_later(self, name: str) -> None:
        with self._lock:
            if self._stopped or name in self._timers:
                return
            timer = threading.Timer(self.settle_seconds, self._recheck, args=(name,))
            timer.daemon = True
            self._timers[name] = timer
        timer.start()

    def _recheck(self, name: str) -> None:
        with self._lock:
            self._timers.pop(name, None)
        self.observe(name)

    # -----------------------------------------------------
    # Admission
    # -----------------------------------------------------
    def claim(self, name: str) -> None:
        with self._lock:
            if name in self._in_flight:
                raise DuplicateAdmissionError(f"Bundle {name} is already in flight")
            self._in_flight.add(name)
            self._seen.pop(name, None)

    def admit(self, name: str) -> bool:
        """Claim ``name`` and hand it to ``submit``; returns False when skipped."""
        with self._lock:
            blocked = name in self._blocked
        if blocked:
            logger.warning("Skipping %s: an earlier relocation failed and needs manual attention", name)
            return False
        try:
            self.claim(name)
        except DuplicateAdmissionError as exc:
            logger.info("Skipping %s: %s", name, exc)
            return False

        logger.info("Admitting bundle %s", name)
        if not self.submit(name):
            self.release(name)
            return False
        return True

    def release(self, name: str) -> None:
        with self._lock:
            self._in_flight.discard(name)

    def in_flight(self) -> set[str]:
        with self._lock:
            return set(self._in_flight)

    def block(self, name: str) -> None:
        with self._lock:
            self._blocked.add(name)

    def unblock(self, name: str) -> None:
        with self._lock:
            self._blocked.discard(name)

    def stop(self) -> None:
        with self._lock:
            self._stopped = True
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()


class PendingEventHandler(FileSystemEventHandler):
    """
    Forwards watchdog events in the pending root to the scanner. It never
    processes anything itself; observe() only schedules or enqueues.
    """

    def __init__(self, scanner: IntakeScanner):
        super().__init__()
        self.scanner = scanner

    def _top_level_name(self, path) -> str | None:
        try:
            rel = Path(path).relative_to(self.scanner.pending_root)
        except ValueError:
            return None
        if not rel.parts or rel.parts[0].startswith("."):
            return None
        return rel.parts[0]

    def _forward(self, path) -> None:
        name = self._top_level_name(path)
        if name:
            self.scanner.observe(name)

    def on_created(self, event):
        self._forward(event.src_path)

    def on_modified(self, event):
        self._forward(event.src_path)

    def on_moved(self, event):
        self._forward(event.dest_path)
