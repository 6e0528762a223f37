"""Department job queues.

Two implementations share one interface: ``DatabaseJobQueue`` persists jobs
as ``ComputationJob`` rows and is what workers run against, while
``InMemoryJobQueue`` keeps everything in process for deterministic tests.
Both serialize jobs for the same department and semester: such a job is not
handed out while another one is running.
"""
from __future__ import annotations

import datetime
import logging
import threading
import uuid
from dataclasses import dataclass, replace
from typing import Callable

from django.db import IntegrityError, transaction
from django.db.models import Exists, F, OuterRef
from django.utils import timezone

from .models import ComputationJob

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]

ACTIVE_STATUSES = ("queued", "running")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 5.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before the next attempt, doubling per attempt already made."""

        return self.base_delay * (2 ** max(attempt - 1, 0))

    def exhausted(self, attempts: int) -> bool:
        return attempts >= self.max_attempts


@dataclass(frozen=True)
class QueuedJob:
    job_id: str
    master_computation_id: int
    department_id: int
    semester_id: int
    computed_by: int | None = None
    is_retry: bool = False
    status: str = "queued"
    attempts: int = 0
    max_attempts: int = 3
    progress: int = 0
    cancel_requested: bool = False
    last_error: str = ""
    available_at: datetime.datetime | None = None
    heartbeat_at: datetime.datetime | None = None

    def payload(self) -> dict:
        return {
            "department_id": self.department_id,
            "master_computation_id": self.master_computation_id,
            "computed_by": self.computed_by,
            "job_id": self.job_id,
            "is_retry": self.is_retry,
        }

    def as_dict(self) -> dict:
        return {
            **self.payload(),
            "status": self.status,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "progress": self.progress,
            "cancel_requested": self.cancel_requested,
            "last_error": self.last_error,
        }


def new_job_id() -> str:
    return uuid.uuid4().hex


class JobQueue:
    """Interface shared by the queue implementations."""

    def __init__(self, retry_policy: RetryPolicy | None = None, *, clock: Clock | None = None, stalled_after: float = 600):
        self.retry_policy = retry_policy or RetryPolicy()
        self.clock = clock or timezone.now
        self.stalled_after = stalled_after

    def enqueue(self, *, master_computation_id, department_id, semester_id, computed_by=None, is_retry=False) -> QueuedJob:
        raise NotImplementedError

    def claim(self, worker: str = "") -> QueuedJob | None:
        raise NotImplementedError

    def heartbeat(self, job_id: str, progress: int | None = None) -> None:
        raise NotImplementedError

    def complete(self, job_id: str, result: dict | None = None) -> None:
        raise NotImplementedError

    def fail(self, job_id: str, error: str) -> QueuedJob:
        """Record a failed attempt; returns the job, requeued or terminally failed."""

        raise NotImplementedError

    def mark_cancelled(self, job_id: str) -> None:
        raise NotImplementedError

    def request_cancel(self, master_computation_id) -> list[QueuedJob]:
        """Flag every active job of a run; queued ones are cancelled on the spot."""

        raise NotImplementedError

    def is_cancel_requested(self, job_id: str) -> bool:
        raise NotImplementedError

    def requeue_stalled(self) -> list[QueuedJob]:
        raise NotImplementedError

    def jobs_for(self, master_computation_id) -> list[QueuedJob]:
        raise NotImplementedError

    def has_active_job(self, master_computation_id, department_id) -> bool:
        return any(
            job.department_id == department_id and job.status in ACTIVE_STATUSES
            for job in self.jobs_for(master_computation_id)
        )

    def stats(self, master_computation_id=None) -> dict[str, int]:
        counts = {status: 0 for status, _ in ComputationJob.STATUS_CHOICES}
        jobs = self.jobs_for(master_computation_id) if master_computation_id is not None else self.all_jobs()
        for job in jobs:
            counts[job.status] += 1
        return counts

    def all_jobs(self) -> list[QueuedJob]:
        raise NotImplementedError

    def _retry_at(self, attempts: int) -> datetime.datetime:
        return self.clock() + datetime.timedelta(seconds=self.retry_policy.delay_for(attempts))


class InMemoryJobQueue(JobQueue):
    def __init__(self, retry_policy: RetryPolicy | None = None, *, clock: Clock | None = None, stalled_after: float = 600):
        super().__init__(retry_policy, clock=clock, stalled_after=stalled_after)
        self._lock = threading.Lock()
        self._jobs: dict[str, QueuedJob] = {}

    def enqueue(self, *, master_computation_id, department_id, semester_id, computed_by=None, is_retry=False) -> QueuedJob:
        job = QueuedJob(
            job_id=new_job_id(),
            master_computation_id=master_computation_id,
            department_id=department_id,
            semester_id=semester_id,
            computed_by=computed_by,
            is_retry=is_retry,
            max_attempts=self.retry_policy.max_attempts,
            available_at=self.clock(),
        )
        with self._lock:
            self._jobs[job.job_id] = job
        return job

    def claim(self, worker: str = "") -> QueuedJob | None:
        now = self.clock()
        with self._lock:
            running = {
                (job.department_id, job.semester_id) for job in self._jobs.values() if job.status == "running"
            }
            for job in self._jobs.values():
                if job.status != "queued" or job.available_at > now:
                    continue
                if (job.department_id, job.semester_id) in running:
                    continue
                claimed = replace(job, status="running", attempts=job.attempts + 1, heartbeat_at=now)
                self._jobs[job.job_id] = claimed
                return claimed
        return None

    def _update(self, job_id: str, **changes) -> QueuedJob:
        with self._lock:
            job = replace(self._jobs[job_id], **changes)
            self._jobs[job_id] = job
            return job

    def heartbeat(self, job_id: str, progress: int | None = None) -> None:
        changes = {"heartbeat_at": self.clock()}
        if progress is not None:
            changes["progress"] = progress
        self._update(job_id, **changes)

    def complete(self, job_id: str, result: dict | None = None) -> None:
        self._update(job_id, status="completed", progress=100)

    def fail(self, job_id: str, error: str) -> QueuedJob:
        job = self._jobs[job_id]
        if self.retry_policy.exhausted(job.attempts):
            return self._update(job_id, status="failed", last_error=error)
        return self._update(
            job_id,
            status="queued",
            is_retry=True,
            last_error=error,
            available_at=self._retry_at(job.attempts),
        )

    def mark_cancelled(self, job_id: str) -> None:
        self._update(job_id, status="cancelled", cancel_requested=True)

    def request_cancel(self, master_computation_id) -> list[QueuedJob]:
        affected = []
        with self._lock:
            for job_id, job in list(self._jobs.items()):
                if job.master_computation_id != master_computation_id or job.status not in ACTIVE_STATUSES:
                    continue
                status = "cancelled" if job.status == "queued" else job.status
                self._jobs[job_id] = replace(job, cancel_requested=True, status=status)
                affected.append(self._jobs[job_id])
        return affected

    def is_cancel_requested(self, job_id: str) -> bool:
        return self._jobs[job_id].cancel_requested

    def requeue_stalled(self) -> list[QueuedJob]:
        cutoff = self.clock() - datetime.timedelta(seconds=self.stalled_after)
        requeued = []
        with self._lock:
            for job_id, job in list(self._jobs.items()):
                if job.status != "running" or job.heartbeat_at is None or job.heartbeat_at >= cutoff:
                    continue
                if self.retry_policy.exhausted(job.attempts):
                    updated = replace(job, status="failed", last_error="Job stalled")
                else:
                    updated = replace(job, status="queued", is_retry=True, last_error="Job stalled", available_at=self.clock())
                self._jobs[job_id] = updated
                requeued.append(updated)
        return requeued

    def jobs_for(self, master_computation_id) -> list[QueuedJob]:
        with self._lock:
            return [job for job in self._jobs.values() if job.master_computation_id == master_computation_id]

    def all_jobs(self) -> list[QueuedJob]:
        with self._lock:
            return list(self._jobs.values())

    def get(self, job_id: str) -> QueuedJob:
        return self._jobs[job_id]


def _from_row(row: ComputationJob) -> QueuedJob:
    return QueuedJob(
        job_id=row.job_id,
        master_computation_id=row.master_computation_id,
        department_id=row.department_id,
        semester_id=row.semester_id,
        computed_by=row.computed_by_id,
        is_retry=row.is_retry,
        status=row.status,
        attempts=row.attempts,
        max_attempts=row.max_attempts,
        progress=row.progress,
        cancel_requested=row.cancel_requested,
        last_error=row.last_error,
        available_at=row.available_at,
        heartbeat_at=row.heartbeat_at,
    )


class DatabaseJobQueue(JobQueue):
    """Durable queue over ``ComputationJob`` rows.

    Claiming is a conditional UPDATE on ``status='queued'``; whichever worker
    flips the row owns the job. The partial unique constraint on running
    rows rejects a second claim for a department and semester that two
    concurrent transactions both saw as idle.
    """

    claim_window = 20

    def enqueue(self, *, master_computation_id, department_id, semester_id, computed_by=None, is_retry=False) -> QueuedJob:
        row = ComputationJob.objects.create(
            job_id=new_job_id(),
            master_computation_id=master_computation_id,
            department_id=department_id,
            semester_id=semester_id,
            computed_by_id=computed_by,
            is_retry=is_retry,
            max_attempts=self.retry_policy.max_attempts,
            available_at=self.clock(),
        )
        return _from_row(row)

    def claim(self, worker: str = "") -> QueuedJob | None:
        now = self.clock()
        same_pair_running = ComputationJob.objects.filter(
            status="running",
            department_id=OuterRef("department_id"),
            semester_id=OuterRef("semester_id"),
        )
        candidates = (
            ComputationJob.objects.filter(status="queued", available_at__lte=now)
            .exclude(Exists(same_pair_running))
            .order_by("available_at", "id")
            .values_list("pk", flat=True)[: self.claim_window]
        )
        for pk in list(candidates):
            try:
                with transaction.atomic():
                    claimed = (
                        ComputationJob.objects.filter(pk=pk, status="queued")
                        .exclude(Exists(same_pair_running))
                        .update(
                            status="running",
                            attempts=F("attempts") + 1,
                            locked_at=now,
                            locked_by=worker,
                            heartbeat_at=now,
                        )
                    )
            except IntegrityError:
                logger.debug("Job %s lost the claim race for its department", pk)
                continue
            if claimed:
                return _from_row(ComputationJob.objects.get(pk=pk))
        return None

    def heartbeat(self, job_id: str, progress: int | None = None) -> None:
        changes = {"heartbeat_at": self.clock()}
        if progress is not None:
            changes["progress"] = progress
        ComputationJob.objects.filter(job_id=job_id).update(**changes)

    def complete(self, job_id: str, result: dict | None = None) -> None:
        ComputationJob.objects.filter(job_id=job_id).update(
            status="completed", progress=100, result=result or {}, finished_at=self.clock()
        )

    def fail(self, job_id: str, error: str) -> QueuedJob:
        row = ComputationJob.objects.get(job_id=job_id)
        row.last_error = error
        if self.retry_policy.exhausted(row.attempts):
            row.status = "failed"
            row.finished_at = self.clock()
        else:
            row.status = "queued"
            row.is_retry = True
            row.available_at = self._retry_at(row.attempts)
            row.locked_at = None
            row.locked_by = ""
        row.save(update_fields=["last_error", "status", "finished_at", "is_retry", "available_at", "locked_at", "locked_by"])
        return _from_row(row)

    def mark_cancelled(self, job_id: str) -> None:
        ComputationJob.objects.filter(job_id=job_id).update(
            status="cancelled", cancel_requested=True, finished_at=self.clock()
        )

    def request_cancel(self, master_computation_id) -> list[QueuedJob]:
        active = ComputationJob.objects.filter(master_computation_id=master_computation_id, status__in=ACTIVE_STATUSES)
        job_ids = list(active.values_list("job_id", flat=True))
        active.filter(status="queued").update(status="cancelled", cancel_requested=True, finished_at=self.clock())
        ComputationJob.objects.filter(job_id__in=job_ids, status="running").update(cancel_requested=True)
        return [_from_row(row) for row in ComputationJob.objects.filter(job_id__in=job_ids)]

    def is_cancel_requested(self, job_id: str) -> bool:
        return ComputationJob.objects.filter(job_id=job_id, cancel_requested=True).exists()

    def requeue_stalled(self) -> list[QueuedJob]:
        cutoff = self.clock() - datetime.timedelta(seconds=self.stalled_after)
        stalled = ComputationJob.objects.filter(status="running", heartbeat_at__lt=cutoff)
        handled = []
        for row in stalled:
            row.last_error = "Job stalled"
            row.locked_at = None
            row.locked_by = ""
            if self.retry_policy.exhausted(row.attempts):
                row.status = "failed"
                row.finished_at = self.clock()
            else:
                row.status = "queued"
                row.is_retry = True
                row.available_at = self.clock()
            updated = ComputationJob.objects.filter(pk=row.pk, status="running").update(
                status=row.status,
                last_error=row.last_error,
                locked_at=None,
                locked_by="",
                is_retry=row.is_retry,
                available_at=row.available_at,
                finished_at=row.finished_at,
            )
            if updated:
                logger.warning("Job %s stalled after %s attempts, now %s", row.job_id, row.attempts, row.status)
                handled.append(_from_row(row))
        return handled

    def jobs_for(self, master_computation_id) -> list[QueuedJob]:
        rows = ComputationJob.objects.filter(master_computation_id=master_computation_id).order_by("id")
        return [_from_row(row) for row in rows]

    def all_jobs(self) -> list[QueuedJob]:
        return [_from_row(row) for row in ComputationJob.objects.order_by("id")]
