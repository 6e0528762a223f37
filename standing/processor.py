"""Department job processor: one department, one semester, one run."""
from __future__ import annotations

import logging
import threading
import time
from decimal import Decimal
from typing import Callable

from django.db import transaction
from django.db.models import Prefetch
from django.utils import timezone

from .bulk_writer import BulkWriter
from .carryover_service import CarryoverTracker
from .classification import PriorStanding, classify
from .conf import ComputationConfig, get_config
from .errors import BulkWriteTransportError, ComputationError, ErrorKind, department_error, student_error
from .grading import (
    as_decimal,
    calculate_semester,
    ensure_predecessor_computed,
    fold_cumulative,
    previous_performance,
)
from .models import ComputationSummary, MasterComputation, Result, Student, StudentSemesterResult
from .summary_builder import StudentOutcome, SummaryBuilder

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, int], None]


class CancellationToken:
    """Cooperative cancellation flag checked at batch boundaries.

    ``check`` lets the token observe an external source (for example the
    job row's ``cancel_requested`` column); once it reports True the token
    stays cancelled.
    """

    def __init__(self, check: Callable[[], bool] | None = None):
        self._event = threading.Event()
        self._check = check

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if not self._event.is_set() and self._check is not None and self._check():
            self._event.set()
        return self._event.is_set()


class DepartmentJobProcessor:
    def __init__(
        self,
        department,
        master: MasterComputation,
        *,
        computed_by=None,
        is_retry: bool = False,
        config: ComputationConfig | None = None,
        token: CancellationToken | None = None,
        progress_callback: ProgressCallback | None = None,
        writer: BulkWriter | None = None,
    ):
        self.department = department
        self.master = master
        self.semester = master.semester
        self.computed_by = computed_by if computed_by is not None else master.computed_by
        self.is_retry = is_retry
        self.config = config or get_config()
        self.token = token or CancellationToken()
        self.progress_callback = progress_callback
        self.writer = writer or BulkWriter(self.config.batch_size)
        self.preview = master.purpose == "preview"
        self.summary: ComputationSummary | None = None

    def run(self) -> ComputationSummary:
        started = time.monotonic()
        summary = self._start()
        builder = SummaryBuilder(self.department, self.semester, list_limit=self.config.list_limit)
        tracker = CarryoverTracker(self.semester, summary=summary, preview=self.preview)
        try:
            if not self.preview:
                ensure_predecessor_computed(self.department, self.semester, is_retry=self.is_retry)

            students = Student.objects.active().filter(department=self.department)
            total = students.count()
            summary.total_students = total
            summary.save(update_fields=["total_students", "updated_at"])

            seen = 0
            cancelled = False
            for batch in self._batches(students):
                if self.token.cancelled:
                    cancelled = True
                    break
                for student in batch:
                    self._process_student(student, builder, tracker)
                self._flush(builder)
                seen += len(batch)
                self._report_progress(summary, seen, total)
            self._flush(builder)
        except Exception as exc:
            error = exc if isinstance(exc, ComputationError) else department_error(
                str(exc) or exc.__class__.__name__, department_id=self.department.pk
            )
            logger.exception("Department %s failed for %s", self.department.code, self.semester.code)
            self._fail(summary, error, started)
            if error is exc:
                raise
            raise error from exc

        self._finish(summary, builder, cancelled, started)
        return summary

    def _start(self) -> ComputationSummary:
        summary, created = ComputationSummary.objects.get_or_create(
            master_computation=self.master,
            department=self.department,
            defaults={
                "semester": self.semester,
                "purpose": self.master.purpose,
                "computed_by": self.computed_by,
            },
        )
        if self.is_retry and not created:
            summary.retry_count += 1
            summary.last_retry_at = timezone.now()
        summary.status = "processing"
        summary.computed_by = self.computed_by
        summary.progress = 0
        summary.error = ""
        summary.started_at = timezone.now()
        summary.completed_at = None
        summary.save()
        self.summary = summary
        logger.info(
            "Computing %s for %s (master #%s%s)",
            self.department.code,
            self.semester.code,
            self.master.pk,
            ", retry" if self.is_retry else "",
        )
        return summary

    def _batches(self, students):
        results = Result.objects.active().filter(semester=self.semester).select_related("course")
        committed = StudentSemesterResult.objects.filter(semester=self.semester)
        queryset = students.order_by("matric_number").prefetch_related(
            Prefetch("results", queryset=results, to_attr="current_results"),
            Prefetch("semester_results", queryset=committed, to_attr="committed_records"),
        )
        last = None
        while True:
            page = queryset if last is None else queryset.filter(matric_number__gt=last)
            batch = list(page[: self.config.batch_size])
            if not batch:
                return
            yield batch
            last = batch[-1].matric_number

    def _process_student(self, student, builder: SummaryBuilder, tracker: CarryoverTracker) -> None:
        if not student.current_results:
            builder.add_without_results(student)
            return
        try:
            semester_gpa = calculate_semester(student.current_results)
            cumulative = fold_cumulative(previous_performance(student, self.semester), semester_gpa)
            prior = self._prior_standing(student)
            carryovers = tracker.track(student, semester_gpa)
            decision = classify(cumulative.cgpa, carryovers.outstanding_count, prior, self.config.policy)
        except Exception as exc:
            logger.warning("Student %s failed: %s", student.matric_number, exc)
            builder.add_error(
                student_error(str(exc), student_id=student.pk, matric_number=student.matric_number)
            )
            return

        for error in carryovers.errors:
            builder.add_error(error)

        if not self.preview:
            self.writer.add_semester_record(
                student.pk,
                self.semester.pk,
                department_id=self.department.pk,
                level=student.level,
                tcp=semester_gpa.tcp,
                tnu=semester_gpa.tnu,
                gpa=as_decimal(semester_gpa.gpa),
                cumulative_tcp=cumulative.cumulative_tcp,
                cumulative_tnu=cumulative.cumulative_tnu,
                cgpa=as_decimal(cumulative.cgpa),
                carryover_count=carryovers.outstanding_count,
                standing=decision.category,
                degree_class=decision.degree_class,
                remark=decision.remark,
                prior_probation_status=prior.probation_status,
                prior_termination_status=prior.termination_status,
                computation_summary_id=self.summary.pk,
            )
            self.writer.add_student_update(
                student.pk,
                fields={
                    "gpa": as_decimal(semester_gpa.gpa),
                    "cgpa": as_decimal(cumulative.cgpa),
                    "probation_status": decision.probation_status,
                    "termination_status": decision.termination_status,
                },
                increment={"total_carryovers": carryovers.outstanding_count - student.total_carryovers},
            )

        builder.add(
            StudentOutcome(
                student_id=student.pk,
                matric_number=student.matric_number,
                name=student.name,
                level=student.level,
                semester=semester_gpa,
                cumulative=cumulative,
                decision=decision,
                carryovers=carryovers,
            )
        )

    @staticmethod
    def _prior_standing(student) -> PriorStanding:
        # A committed record for this semester means an earlier attempt already
        # moved the student's standing; classify from what it saw.
        if student.committed_records:
            record = student.committed_records[0]
            return PriorStanding(record.prior_probation_status, record.prior_termination_status)
        return PriorStanding(student.probation_status, student.termination_status)

    def _flush(self, builder: SummaryBuilder) -> None:
        try:
            result = self.writer.execute_bulk_writes()
        except BulkWriteTransportError as exc:
            raise department_error(f"Database unavailable during flush: {exc}", department_id=self.department.pk) from exc
        for failure in result.failures:
            builder.add_error(
                student_error(failure.error, student_id=failure.student_id, operation=failure.operation)
            )
        if result.failures:
            builder.discard(result.failed_student_ids)

    def _report_progress(self, summary: ComputationSummary, seen: int, total: int) -> None:
        percent = int(seen * 100 / total) if total else 100
        summary.progress = percent
        summary.students_processed = seen
        summary.save(update_fields=["progress", "students_processed", "updated_at"])
        if self.progress_callback is not None:
            self.progress_callback(seen, total, percent)

    def _finish(self, summary: ComputationSummary, builder: SummaryBuilder, cancelled: bool, started: float) -> None:
        data = builder.build()
        for name in ("average_gpa", "highest_gpa", "lowest_gpa"):
            data[name] = as_decimal(data[name])
        for name, value in data.items():
            setattr(summary, name, value)
        summary.students_with_results = summary.total_students - len(builder.without_results)

        if cancelled:
            summary.status = "cancelled"
        elif builder.errors:
            summary.status = "completed_with_errors"
        else:
            summary.status = "completed"
            summary.progress = 100
        summary.completed_at = timezone.now()
        summary.duration_ms = int((time.monotonic() - started) * 1000)
        summary.save()
        refresh_master_computation(self.master)
        logger.info(
            "Department %s %s: %s processed, %s errors",
            self.department.code,
            summary.status,
            summary.students_processed,
            len(builder.errors),
        )

    def _fail(self, summary: ComputationSummary, error: ComputationError, started: float) -> None:
        summary.status = "failed"
        summary.error = error.message
        summary.failed_students = [error.to_dict()]
        summary.completed_at = timezone.now()
        summary.duration_ms = int((time.monotonic() - started) * 1000)
        summary.save()
        refresh_master_computation(self.master)


def master_status(statuses: list[str]) -> str:
    if not statuses or any(status not in ComputationSummary.TERMINAL_STATUSES for status in statuses):
        return "processing"
    if all(status == "failed" for status in statuses):
        return "failed"
    if "cancelled" in statuses:
        return "cancelled"
    if "failed" in statuses or "completed_with_errors" in statuses:
        return "completed_with_errors"
    return "completed"


def refresh_master_computation(master: MasterComputation) -> MasterComputation:
    """Recompute the master run's aggregates from its department summaries."""

    with transaction.atomic():
        master = MasterComputation.objects.select_for_update().get(pk=master.pk)
        summaries = list(master.summaries.select_related("department"))
        statuses = [summary.status for summary in summaries]
        averages = [summary.average_gpa for summary in summaries if summary.average_gpa is not None]

        master.departments_processed = sum(
            1 for status in statuses if status in ComputationSummary.TERMINAL_STATUSES
        )
        master.total_students = sum(summary.students_processed for summary in summaries)
        master.total_carryovers = sum(summary.total_carryovers for summary in summaries)
        master.total_failed_students = sum(
            sum(1 for item in summary.failed_students if item.get("kind") == ErrorKind.STUDENT.value)
            for summary in summaries
        )
        master.overall_average_gpa = (
            (sum(averages) / len(averages)).quantize(Decimal("0.01")) if averages else None
        )
        master.department_summaries = [
            {
                "summary_id": summary.pk,
                "department": summary.department.code,
                "status": summary.status,
                "progress": summary.progress,
                "students_processed": summary.students_processed,
                "average_gpa": float(summary.average_gpa) if summary.average_gpa is not None else None,
                "error": summary.error,
            }
            for summary in summaries
        ]
        master.status = master_status(statuses) if len(summaries) >= master.total_departments else "processing"
        if master.status == "processing":
            master.completed_at = None
            master.duration_ms = None
        elif master.completed_at is None:
            master.completed_at = timezone.now()
            master.duration_ms = int((master.completed_at - master.started_at).total_seconds() * 1000)
        master.save()
    return master
