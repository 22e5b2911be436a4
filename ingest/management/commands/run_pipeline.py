"""
Runs the ingest pipeline in the foreground until SIGINT/SIGTERM.

With --once it scans the pending root a single time, waits for every admitted
bundle to finish, and exits.
"""
import signal
import threading

from django.core.management.base import BaseCommand

from ingest.config import PipelineConfig
from ingest.pipeline import Pipeline


class Command(BaseCommand):
    help = "Watch the pending root and process uploaded bundles"

    def add_arguments(self, parser):
        parser.add_argument(
            "--once",
            action="store_true",
            help="Process what is currently pending, then exit",
        )
        parser.add_argument(
            "--workers",
            type=int,
            help="Override PIPELINE_WORKERS",
        )
        parser.add_argument(
            "--no-watch",
            action="store_true",
            help="Rely on periodic rescans only",
        )

    def handle(self, *args, **options):
        overrides = {}
        if options["workers"]:
            overrides["workers"] = max(1, options["workers"])
        if options["once"]:
            # admit immediately; nothing is being written while we drain
            overrides["settle_seconds"] = 0
        config = PipelineConfig.from_settings(**overrides)
        pipeline = Pipeline(config)

        if options["once"]:
            pipeline.start(watch=False, poll=False)
            pipeline.wait_idle()
            pipeline.stop()
            self.stdout.write(self.style.SUCCESS("Pending bundles processed"))
            return

        stop = threading.Event()
        for sig in (signal.SIGINT, signal.SIGTERM):
            signal.signal(sig, lambda *_: stop.set())

        pipeline.start(watch=False if options["no_watch"] else None)
        self.stdout.write(self.style.SUCCESS(f"Pipeline running on {config.roots.pending}"))
        stop.wait()
        pipeline.stop(timeout=config.kill_grace_seconds * 2)
        self.stdout.write("Pipeline stopped")
