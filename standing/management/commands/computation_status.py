"""Show the status of a master computation, or recent history."""
from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from standing.dispatcher import Dispatcher, build_queue
from standing.models import MasterComputation


class Command(BaseCommand):
    help = "Print status for a master computation id, or the latest runs when no id is given"

    def add_arguments(self, parser):
        parser.add_argument("master_id", nargs="?", type=int)
        parser.add_argument("--limit", type=int, default=10)

    def handle(self, *args, **options):
        dispatcher = Dispatcher(build_queue())
        if options["master_id"] is None:
            history = dispatcher.get_history(per_page=options["limit"])
            for row in history["results"]:
                self.stdout.write(
                    f"#{row['master_computation_id']} {row['semester']} {row['purpose']} {row['status']} "
                    f"{row['departments_processed']}/{row['total_departments']} departments"
                )
            return

        try:
            status = dispatcher.get_status(options["master_id"])
        except MasterComputation.DoesNotExist as exc:
            raise CommandError(f"No computation #{options['master_id']}") from exc
        self.stdout.write(
            f"#{status['master_computation_id']} {status['semester']}: {status['status']} ({status['progress']}%)"
        )
        for row in status["departments"]:
            line = f"  {row['department']}: {row['status']} {row['progress']}%"
            if row["error"]:
                line += f" - {row['error']}"
            self.stdout.write(line)
