"""Queue a standing computation for every active department of a semester."""
from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from standing.dispatcher import Dispatcher, build_queue
from standing.errors import ComputationConflict
from standing.models import Department, Semester


class Command(BaseCommand):
    help = "Start a master computation for a semester (one job per department)"

    def add_arguments(self, parser):
        parser.add_argument("semester", help="Semester code, e.g. 2024-1")
        parser.add_argument("--purpose", choices=["final", "preview"], default="final")
        parser.add_argument("--department", action="append", dest="departments", help="Limit to department code(s)")
        parser.add_argument(
            "--run",
            action="store_true",
            help="Process the queued jobs in this process instead of leaving them to the workers",
        )

    def handle(self, *args, **options):
        try:
            semester = Semester.objects.get(code=options["semester"])
        except Semester.DoesNotExist as exc:
            raise CommandError(f"Unknown semester {options['semester']}") from exc

        department_ids = None
        if options["departments"]:
            found = dict(Department.objects.filter(code__in=options["departments"]).values_list("code", "pk"))
            missing = sorted(set(options["departments"]) - set(found))
            if missing:
                raise CommandError(f"Unknown department(s): {', '.join(missing)}")
            department_ids = list(found.values())

        dispatcher = Dispatcher(build_queue())
        try:
            master = dispatcher.enqueue_all(semester, purpose=options["purpose"], department_ids=department_ids)
        except ComputationConflict as exc:
            raise CommandError(str(exc)) from exc
        self.stdout.write(
            self.style.SUCCESS(f"Queued computation #{master.pk} for {semester.code}: {master.total_departments} departments")
        )

        if options["run"]:
            handled = len(dispatcher.drain())
            status = dispatcher.get_status(master.pk)
            self.stdout.write(f"Processed {handled} jobs; computation is {status['status']}")
            for row in status["departments"]:
                self.stdout.write(f"  {row['department']}: {row['status']} ({row['students_processed']} students)")
