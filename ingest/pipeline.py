"""
The long-running ingest service: a scanner feeding a bounded queue drained
by a fixed pool of worker threads.
"""
import logging
import queue
import threading

from django.db import close_old_connections, connection
from watchdog.observers import Observer

from .errors import Cancelled, RelocationError
from .mover import ensure_stage_roots, relocate
from .processor import BundleProcessor
from .scanner import IntakeScanner, PendingEventHandler

logger = logging.getLogger(__name__)

_STOP = object()


class Pipeline:
    def __init__(self, config, processor=None):
        self.config = config
        self.processor = processor or BundleProcessor(config)
        self.queue = queue.Queue(maxsize=config.queue_size)
        self.scanner = IntakeScanner(config.roots.pending, self.submit, config.settle_seconds)
        self._workers: list[threading.Thread] = []
        self._poller: threading.Thread | None = None
        self._observer = None
        self._stopping = threading.Event()
        self._idle = threading.Condition()
        self._outstanding = 0  # queued plus running

    # -----------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------
    def start(self, watch: bool | None = None, poll: bool = True) -> None:
        ensure_stage_roots(self.config.roots.all())
        self.recover_interrupted()
        for index in range(self.config.workers):
            worker = threading.Thread(target=self._work, name=f"ingest-worker-{index}", daemon=True)
            worker.start()
            self._workers.append(worker)

        if self.config.use_watcher if watch is None else watch:
            self._observer = Observer()
            self._observer.schedule(PendingEventHandler(self.scanner), str(self.config.roots.pending), recursive=True)
            self._observer.start()
            logger.info("Watching %s for new bundles", self.config.roots.pending)

        # bundles already waiting take the same admission path as new ones
        self.scanner.scan()

        if poll:
            self._poller = threading.Thread(target=self._poll, name="ingest-poller", daemon=True)
            self._poller.start()
        logger.info(
            "Pipeline started: %d workers, poll every %.0fs, settle %.1fs",
            self.config.workers, self.config.poll_seconds, self.config.settle_seconds,
        )

    def stop(self, timeout: float | None = None) -> None:
        """Stop discovery, kill running encoders, and wait for the workers to exit."""
        if self._stopping.is_set():
            return
        self._stopping.set()
        logger.info("Stopping pipeline")
        self.scanner.stop()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout)
        if self._poller is not None:
            self._poller.join(timeout)

        self.processor.shutdown()
        # drop queued work; those bundles are still in pending for the next run
        while True:
            try:
                name = self.queue.get_nowait()
            except queue.Empty:
                break
            if name is not _STOP:
                self.scanner.release(name)
                self._done()
        for _ in self._workers:
            self.queue.put(_STOP)
        for worker in self._workers:
            worker.join(timeout)
        logger.info("Pipeline stopped")

    # -----------------------------------------------------
    # Work
    # -----------------------------------------------------
    def submit(self, name: str) -> bool:
        """Enqueue ``name`` for a worker. Never processes inline."""
        if self._stopping.is_set():
            return False
        with self._idle:
            try:
                self.queue.put_nowait(name)
            except queue.Full:
                logger.warning("Work queue full; %s will be picked up by a later scan", name)
                return False
            self._outstanding += 1
        return True

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until the queue is drained and no worker is busy."""
        with self._idle:
            return self._idle.wait_for(lambda: self._outstanding == 0, timeout)

    def _poll(self) -> None:
        while not self._stopping.wait(self.config.poll_seconds):
            self.scanner.scan()

    def _work(self) -> None:
        while True:
            name = self.queue.get()
            if name is _STOP:
                break
            try:
                close_old_connections()
                self.processor.process(name)
            except Cancelled:
                logger.warning("Bundle %s was interrupted; it restarts from scratch on the next start", name)
            except RelocationError as exc:
                logger.error("Bundle %s needs manual intervention: %s", name, exc)
                self.scanner.block(name)
            except Exception:
                logger.exception("Unhandled error while processing %s", name)
            finally:
                self.scanner.release(name)
                connection.close()
                self._done()

    def _done(self) -> None:
        with self._idle:
            self._outstanding -= 1
            self._idle.notify_all()

    def recover_interrupted(self) -> None:
        """
        Deal with bundles a previous run left in processing: finish the final
        move of those whose jobs all ended, send the rest back to pending.
        """
        roots = self.config.roots
        for entry in sorted(roots.processing.iterdir()):
            if not entry.is_dir() or entry.name.startswith("."):
                continue
            try:
                if self.processor.finish_interrupted(entry.name):
                    continue
                logger.warning("Recovering interrupted bundle %s", entry.name)
                relocate(entry.name, roots.processing, roots.pending)
            except RelocationError as exc:
                logger.error("Could not recover %s, manual intervention required: %s", entry.name, exc)
                self.scanner.block(entry.name)
