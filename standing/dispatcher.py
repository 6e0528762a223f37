"""Job dispatcher: starts runs, drives department jobs and answers status queries."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from django.core.paginator import Paginator
from django.db import close_old_connections, connections, transaction
from django.utils import timezone

from .carryover_service import clear_carryover
from .conf import ComputationConfig, get_config
from .errors import ComputationConflict, ComputationError
from .grading import semester_gpa_for_student
from .job_queue import DatabaseJobQueue, JobQueue, QueuedJob, RetryPolicy
from .models import (
    CarryoverCourse,
    ComputationSummary,
    Department,
    MasterComputation,
    Semester,
    Student,
)
from .notification_service import NotificationService
from .processor import CancellationToken, DepartmentJobProcessor, refresh_master_computation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobOutcome:
    job: QueuedJob
    status: str
    summary_id: int | None = None
    error: str = ""


def build_queue(config: ComputationConfig | None = None) -> DatabaseJobQueue:
    config = config or get_config()
    return DatabaseJobQueue(
        RetryPolicy(config.max_attempts, config.retry_base_delay),
        stalled_after=config.stalled_after,
    )


class Dispatcher:
    """Control plane for master computations.

    The queue is passed in; nothing here reaches for process-wide state.
    """

    def __init__(self, queue: JobQueue, *, config: ComputationConfig | None = None, processor_class=DepartmentJobProcessor):
        self.queue = queue
        self.config = config or get_config()
        self.processor_class = processor_class

    def enqueue_all(self, semester: Semester, *, computed_by=None, purpose: str = "final", department_ids=None) -> MasterComputation:
        """Start a master computation with one queued job per active department."""

        departments = Department.objects.filter(is_active=True)
        if department_ids:
            departments = departments.filter(pk__in=department_ids)
        departments = list(departments)

        with transaction.atomic():
            # Locking the semester row serializes concurrent starts for it.
            Semester.objects.select_for_update().get(pk=semester.pk)
            if purpose == "final" and MasterComputation.objects.filter(
                semester=semester, purpose="final", status="processing"
            ).exists():
                raise ComputationConflict(f"A final computation for {semester.code} is already running")
            master = MasterComputation.objects.create(
                semester=semester,
                purpose=purpose,
                computed_by=computed_by,
                total_departments=len(departments),
                metadata={"department_ids": [department.pk for department in departments]},
            )
            for department in departments:
                ComputationSummary.objects.create(
                    master_computation=master,
                    department=department,
                    semester=semester,
                    purpose=purpose,
                    computed_by=computed_by,
                )
                self.queue.enqueue(
                    master_computation_id=master.pk,
                    department_id=department.pk,
                    semester_id=semester.pk,
                    computed_by=computed_by.pk if computed_by else None,
                )
        if not departments:
            master.status = "completed"
            master.completed_at = timezone.now()
            master.duration_ms = 0
            master.save(update_fields=["status", "completed_at", "duration_ms"])

        logger.info(
            "Master computation #%s (%s, %s) queued %s departments",
            master.pk,
            semester.code,
            purpose,
            len(departments),
        )
        return master

    def process_next(self, worker: str = "main") -> JobOutcome | None:
        """Claim and run one job; returns None when nothing is ready."""

        job = self.queue.claim(worker)
        if job is None:
            return None
        logger.info("Worker %s claimed job %s (attempt %s)", worker, job.job_id, job.attempts)

        master = MasterComputation.objects.select_related("semester", "computed_by").get(pk=job.master_computation_id)
        department = Department.objects.get(pk=job.department_id)
        token = CancellationToken(check=lambda: self.queue.is_cancel_requested(job.job_id))
        processor = self.processor_class(
            department,
            master,
            computed_by=master.computed_by,
            is_retry=job.is_retry or job.attempts > 1,
            config=self.config,
            token=token,
            progress_callback=lambda seen, total, percent: self.queue.heartbeat(job.job_id, percent),
        )

        try:
            summary = processor.run()
        except ComputationError as exc:
            return self._handle_failure(job, processor.summary, exc)

        if summary.status == "cancelled":
            self.queue.mark_cancelled(job.job_id)
            logger.info("Job %s cancelled after %s students", job.job_id, summary.students_processed)
        else:
            self.queue.complete(job.job_id, {"summary_id": summary.pk, "status": summary.status})
            NotificationService.notify_department_completed(summary)
        return JobOutcome(job, summary.status, summary.pk)

    def _handle_failure(self, job: QueuedJob, summary, exc: ComputationError) -> JobOutcome:
        updated = self.queue.fail(job.job_id, exc.message)
        if summary is None:
            return JobOutcome(updated, updated.status, error=exc.message)

        if updated.status == "queued":
            logger.warning(
                "Job %s failed on attempt %s/%s, retrying: %s",
                job.job_id,
                updated.attempts,
                updated.max_attempts,
                exc.message,
            )
            summary.status = "pending"
            summary.save(update_fields=["status", "updated_at"])
            refresh_master_computation(summary.master_computation)
        else:
            logger.error("Job %s failed permanently after %s attempts: %s", job.job_id, updated.attempts, exc.message)
            NotificationService.notify_department_failed(summary, exc.message, updated.attempts)
        return JobOutcome(updated, updated.status, summary.pk, exc.message)

    def drain(self, worker: str = "main") -> list[JobOutcome]:
        """Run ready jobs one after another until the queue has nothing available."""

        outcomes = []
        while True:
            outcome = self.process_next(worker)
            if outcome is None:
                return outcomes
            outcomes.append(outcome)

    def requeue_stalled(self) -> list[QueuedJob]:
        handled = self.queue.requeue_stalled()
        for job in handled:
            summary = ComputationSummary.objects.filter(
                master_computation_id=job.master_computation_id, department_id=job.department_id
            ).first()
            if summary is None:
                continue
            if job.status == "failed":
                summary.status = "failed"
                summary.error = job.last_error
                summary.completed_at = timezone.now()
            else:
                summary.status = "pending"
            summary.save()
            refresh_master_computation(summary.master_computation)
        return handled

    def get_status(self, master_id) -> dict:
        master = MasterComputation.objects.select_related("semester").get(pk=master_id)
        summaries = list(master.summaries.select_related("department"))
        jobs = {job.department_id: job for job in self.queue.jobs_for(master.pk)}
        total = master.total_departments or len(summaries)
        progress = round(sum(summary.progress for summary in summaries) / total) if total else 100
        return {
            "master_computation_id": master.pk,
            "semester": master.semester.code,
            "purpose": master.purpose,
            "status": master.status,
            "progress": progress,
            "total_departments": master.total_departments,
            "departments_processed": master.departments_processed,
            "total_students": master.total_students,
            "total_carryovers": master.total_carryovers,
            "total_failed_students": master.total_failed_students,
            "overall_average_gpa": float(master.overall_average_gpa) if master.overall_average_gpa is not None else None,
            "started_at": master.started_at.isoformat(),
            "completed_at": master.completed_at.isoformat() if master.completed_at else None,
            "departments": [
                {
                    "summary_id": summary.pk,
                    "department_id": summary.department_id,
                    "department": summary.department.code,
                    "status": summary.status,
                    "progress": summary.progress,
                    "students_processed": summary.students_processed,
                    "student_errors": len(summary.failed_students),
                    "error": summary.error,
                    "retry_count": summary.retry_count,
                    "job": jobs[summary.department_id].as_dict() if summary.department_id in jobs else None,
                }
                for summary in summaries
            ],
            "queue": self.queue.stats(master.pk),
        }

    def cancel(self, master_id) -> dict:
        master = MasterComputation.objects.get(pk=master_id)
        affected = self.queue.request_cancel(master.pk)
        never_started = [job.department_id for job in affected if job.status == "cancelled"]
        ComputationSummary.objects.filter(
            master_computation=master, department_id__in=never_started, status="pending"
        ).update(status="cancelled", completed_at=timezone.now())
        master.metadata = {**master.metadata, "cancel_requested_at": timezone.now().isoformat()}
        master.save(update_fields=["metadata"])
        master = refresh_master_computation(master)
        logger.info("Cancellation requested for master computation #%s (%s jobs)", master.pk, len(affected))
        return {
            "master_computation_id": master.pk,
            "status": master.status,
            "jobs_cancelled": len(never_started),
            "jobs_signalled": len(affected) - len(never_started),
        }

    def retry_failed_departments(self, master_id, department_ids=None) -> list[str]:
        """Re-enqueue the departments whose last status is ``failed``."""

        master = MasterComputation.objects.get(pk=master_id)
        failed = master.summaries.filter(status="failed").select_related("department")
        if department_ids:
            failed = failed.filter(department_id__in=department_ids)

        retried = []
        for summary in failed:
            if self.queue.has_active_job(master.pk, summary.department_id):
                continue
            self.queue.enqueue(
                master_computation_id=master.pk,
                department_id=summary.department_id,
                semester_id=master.semester_id,
                computed_by=master.computed_by_id,
                is_retry=True,
            )
            summary.status = "pending"
            summary.save(update_fields=["status", "updated_at"])
            retried.append(summary.department.code)

        if retried:
            refresh_master_computation(master)
            logger.info("Master computation #%s: retrying %s", master.pk, ", ".join(retried))
        return retried

    def get_history(self, *, page=1, per_page=20, status=None, start_date=None, end_date=None) -> dict:
        computations = MasterComputation.objects.select_related("semester", "computed_by")
        if status:
            computations = computations.filter(status=status)
        if start_date:
            computations = computations.filter(started_at__date__gte=start_date)
        if end_date:
            computations = computations.filter(started_at__date__lte=end_date)

        paginator = Paginator(computations.order_by("-started_at", "-id"), per_page)
        page_obj = paginator.get_page(page)
        return {
            "page": page_obj.number,
            "pages": paginator.num_pages,
            "total": paginator.count,
            "results": [
                {
                    "master_computation_id": master.pk,
                    "semester": master.semester.code,
                    "purpose": master.purpose,
                    "status": master.status,
                    "computed_by": master.computed_by.get_username() if master.computed_by else None,
                    "total_departments": master.total_departments,
                    "departments_processed": master.departments_processed,
                    "total_students": master.total_students,
                    "started_at": master.started_at.isoformat(),
                    "completed_at": master.completed_at.isoformat() if master.completed_at else None,
                    "duration_ms": master.duration_ms,
                    "departments": master.department_summaries,
                }
                for master in page_obj
            ],
        }

    def semester_gpa(self, student_id, semester_id) -> dict:
        student = Student.objects.active().get(pk=student_id)
        semester = Semester.objects.get(pk=semester_id)
        return semester_gpa_for_student(student, semester)

    def clear_carryover(self, carryover_id, *, cleared_by=None, remark: str = "") -> tuple[CarryoverCourse, bool]:
        carryover = CarryoverCourse.objects.get(pk=carryover_id)
        return clear_carryover(carryover, cleared_by=cleared_by, remark=remark)


class WorkerPool:
    """Runs at most ``concurrency`` department jobs at a time, one per thread.

    ``runner`` is anything with ``process_next(worker)``, normally a
    ``Dispatcher``.
    """

    def __init__(self, runner, concurrency: int = 3, *, poll_interval: float = 3.0):
        self.runner = runner
        self.concurrency = max(int(concurrency), 1)
        self.poll_interval = poll_interval

    def _worker(self, name: str, stop: threading.Event | None) -> int:
        handled = 0
        try:
            while stop is None or not stop.is_set():
                close_old_connections()
                try:
                    outcome = self.runner.process_next(name)
                except Exception:
                    logger.exception("Worker %s crashed while processing a job", name)
                    outcome = None
                    if stop is None:
                        return handled
                if outcome is not None:
                    handled += 1
                    continue
                if stop is None:
                    return handled
                stop.wait(self.poll_interval)
        finally:
            connections.close_all()
        return handled

    def run_until_idle(self) -> int:
        """Work until every thread finds the queue empty; returns jobs handled."""

        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="standing-worker") as pool:
            futures = [pool.submit(self._worker, f"worker-{index + 1}", None) for index in range(self.concurrency)]
            return sum(future.result() for future in futures)

    def run_forever(self, stop: threading.Event, *, maintenance=None) -> int:
        """Poll until ``stop`` is set, calling ``maintenance`` between polls."""

        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="standing-worker") as pool:
            futures = [pool.submit(self._worker, f"worker-{index + 1}", stop) for index in range(self.concurrency)]
            while not stop.wait(self.poll_interval):
                if maintenance is not None:
                    maintenance()
            return sum(future.result() for future in futures)
