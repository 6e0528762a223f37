"""Run the department computation worker pool."""
from __future__ import annotations

import signal
import threading

from django.core.management.base import BaseCommand

from standing.conf import get_config
from standing.dispatcher import Dispatcher, WorkerPool, build_queue


class Command(BaseCommand):
    help = "Process queued department computation jobs with a bounded worker pool"

    def add_arguments(self, parser):
        parser.add_argument("--concurrency", type=int, default=None, help="Parallel department jobs")
        parser.add_argument("--once", action="store_true", help="Exit once the queue is idle")

    def handle(self, *args, **options):
        config = get_config()
        concurrency = options["concurrency"] or config.worker_concurrency
        dispatcher = Dispatcher(build_queue(config), config=config)
        pool = WorkerPool(dispatcher, concurrency, poll_interval=config.poll_interval)

        if options["once"]:
            dispatcher.requeue_stalled()
            handled = pool.run_until_idle()
            self.stdout.write(self.style.SUCCESS(f"Queue idle after {handled} jobs"))
            return

        stop = threading.Event()
        signal.signal(signal.SIGINT, lambda *_: stop.set())
        signal.signal(signal.SIGTERM, lambda *_: stop.set())
        self.stdout.write(self.style.WARNING(f"Starting {concurrency} computation workers (Ctrl+C to stop)..."))
        handled = pool.run_forever(stop, maintenance=dispatcher.requeue_stalled)
        self.stdout.write(self.style.SUCCESS(f"Workers stopped after {handled} jobs"))
