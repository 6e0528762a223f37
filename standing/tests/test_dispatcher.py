import datetime
from unittest import mock

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.test import TestCase
from django.utils import timezone

from standing.conf import ComputationConfig
from standing.dispatcher import Dispatcher
from standing.errors import ComputationConflict, department_error
from standing.job_queue import DatabaseJobQueue, RetryPolicy
from standing.models import (
    ComputationJob,
    ComputationSummary,
    Department,
    MasterComputation,
    NotificationRequest,
    Semester,
)
from standing.processor import DepartmentJobProcessor

from .helpers import FakeClock, add_result, make_course, make_department, make_semester, make_student


class ExplodingProcessor(DepartmentJobProcessor):
    def _batches(self, students):
        raise department_error("Result store unavailable", department_id=self.department.pk)


class DispatcherTestCase(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="registrar", password="pass", is_staff=True)
        self.semester = make_semester()
        self.csc = make_department("CSC", "Computer Science")
        self.mth = make_department("MTH", "Mathematics")
        make_department("ARC", "Archived", is_active=False)
        for department, matric in ((self.csc, "CSC/24/001"), (self.mth, "MTH/24/001")):
            course = make_course(f"{department.code}101", department)
            add_result(make_student(matric, department), course, self.semester, 66)
        self.clock = FakeClock()
        self.config = ComputationConfig(batch_size=10)

    def dispatcher(self, processor_class=DepartmentJobProcessor, max_attempts=3):
        queue = DatabaseJobQueue(RetryPolicy(max_attempts, 5.0), clock=self.clock, stalled_after=600)
        return Dispatcher(queue, config=self.config, processor_class=processor_class)


class EnqueueTests(DispatcherTestCase):
    def test_one_job_per_active_department(self):
        master = self.dispatcher().enqueue_all(self.semester, computed_by=self.user)

        self.assertEqual(master.status, "processing")
        self.assertEqual(master.total_departments, 2)
        summaries = master.summaries.order_by("department__code")
        self.assertEqual([(s.department.code, s.status) for s in summaries], [("CSC", "pending"), ("MTH", "pending")])
        jobs = ComputationJob.objects.filter(master_computation=master)
        self.assertEqual(jobs.count(), 2)
        payload = jobs.first().payload()
        self.assertEqual(
            set(payload), {"department_id", "master_computation_id", "computed_by", "job_id", "is_retry"}
        )
        self.assertEqual(payload["computed_by"], self.user.pk)
        self.assertFalse(payload["is_retry"])

    def test_department_selection(self):
        master = self.dispatcher().enqueue_all(self.semester, department_ids=[self.mth.pk])
        self.assertEqual(list(master.summaries.values_list("department__code", flat=True)), ["MTH"])

    def test_second_final_run_conflicts(self):
        dispatcher = self.dispatcher()
        dispatcher.enqueue_all(self.semester)

        with self.assertRaises(ComputationConflict):
            dispatcher.enqueue_all(self.semester)
        preview = dispatcher.enqueue_all(self.semester, purpose="preview")
        self.assertEqual(preview.purpose, "preview")

    def test_start_locks_the_semester_before_checking_for_conflicts(self):
        dispatcher = self.dispatcher()
        dispatcher.enqueue_all(self.semester)

        with mock.patch.object(
            Semester.objects, "select_for_update", wraps=Semester.objects.select_for_update
        ) as lock, self.assertRaises(ComputationConflict):
            dispatcher.enqueue_all(self.semester)

        lock.assert_called_once_with()
        self.assertEqual(MasterComputation.objects.count(), 1)
        self.assertEqual(ComputationJob.objects.count(), 2)

    def test_no_active_departments_completes_immediately(self):
        Department.objects.update(is_active=False)

        master = self.dispatcher().enqueue_all(self.semester)

        self.assertEqual(master.status, "completed")
        self.assertEqual(master.total_departments, 0)
        self.assertFalse(ComputationJob.objects.exists())


class ProcessingTests(DispatcherTestCase):
    def test_drain_completes_the_run(self):
        dispatcher = self.dispatcher()
        master = dispatcher.enqueue_all(self.semester, computed_by=self.user)

        outcomes = dispatcher.drain()

        self.assertEqual(sorted(outcome.status for outcome in outcomes), ["completed", "completed"])
        status = dispatcher.get_status(master.pk)
        self.assertEqual(status["status"], "completed")
        self.assertEqual(status["progress"], 100)
        self.assertEqual(status["total_students"], 2)
        self.assertEqual(status["queue"]["completed"], 2)
        self.assertEqual({item["job"]["status"] for item in status["departments"]}, {"completed"})
        self.assertEqual(
            NotificationRequest.objects.filter(template="computation_completed", recipient=self.user).count(), 2
        )

    def test_failures_back_off_then_fail_permanently(self):
        dispatcher = self.dispatcher(ExplodingProcessor)
        master = dispatcher.enqueue_all(self.semester, computed_by=self.user, department_ids=[self.csc.pk])

        first = dispatcher.process_next()
        self.assertEqual((first.status, first.job.attempts), ("queued", 1))
        self.assertEqual(first.job.available_at, self.clock.now + datetime.timedelta(seconds=5))
        self.assertEqual(master.summaries.get().status, "pending")
        self.assertIsNone(dispatcher.process_next())

        self.clock.advance(5)
        second = dispatcher.process_next()
        self.assertEqual((second.status, second.job.attempts), ("queued", 2))
        self.assertEqual(second.job.available_at, self.clock.now + datetime.timedelta(seconds=10))

        self.clock.advance(10)
        third = dispatcher.process_next()
        self.assertEqual((third.status, third.job.attempts), ("failed", 3))
        self.assertEqual(third.error, "Result store unavailable")

        summary = master.summaries.get()
        self.assertEqual(summary.status, "failed")
        self.assertEqual(summary.retry_count, 2)
        master.refresh_from_db()
        self.assertEqual(master.status, "failed")
        notice = NotificationRequest.objects.get(template="computation_failed")
        self.assertEqual(notice.metadata["attempts"], 3)

    def test_retry_failed_departments(self):
        failing = self.dispatcher(ExplodingProcessor, max_attempts=1)
        master = failing.enqueue_all(self.semester, computed_by=self.user)
        failing.drain()
        master.refresh_from_db()
        self.assertEqual(master.status, "failed")

        dispatcher = self.dispatcher()
        retried = dispatcher.retry_failed_departments(master.pk, [self.csc.pk])

        self.assertEqual(retried, ["CSC"])
        self.assertTrue(ComputationJob.objects.filter(master_computation=master, is_retry=True, status="queued").exists())
        self.assertEqual(dispatcher.retry_failed_departments(master.pk, [self.csc.pk]), [])

        dispatcher.drain()
        summary = master.summaries.get(department=self.csc)
        self.assertEqual(summary.status, "completed")
        self.assertEqual(summary.retry_count, 1)
        master.refresh_from_db()
        self.assertEqual(master.status, "completed_with_errors")

    def test_stalled_job_is_requeued(self):
        dispatcher = self.dispatcher()
        master = dispatcher.enqueue_all(self.semester, department_ids=[self.csc.pk])
        claimed = dispatcher.queue.claim("worker-1")
        ComputationSummary.objects.filter(master_computation=master).update(status="processing")

        self.clock.advance(601)
        handled = dispatcher.requeue_stalled()

        self.assertEqual([job.job_id for job in handled], [claimed.job_id])
        job = ComputationJob.objects.get(job_id=claimed.job_id)
        self.assertEqual((job.status, job.attempts, job.is_retry), ("queued", 1, True))
        self.assertEqual(job.last_error, "Job stalled")
        self.assertEqual(master.summaries.get().status, "pending")

    def test_same_department_is_never_claimed_twice(self):
        dispatcher = self.dispatcher()
        first = dispatcher.enqueue_all(self.semester, purpose="preview", department_ids=[self.csc.pk])
        second = dispatcher.enqueue_all(self.semester, purpose="preview", department_ids=[self.csc.pk])

        running = dispatcher.queue.claim("worker-1")
        self.assertEqual(running.master_computation_id, first.pk)
        self.assertIsNone(dispatcher.queue.claim("worker-2"))

        dispatcher.queue.complete(running.job_id)
        self.assertEqual(dispatcher.queue.claim("worker-2").master_computation_id, second.pk)

    def test_claim_race_on_one_department_is_settled_by_the_constraint(self):
        dispatcher = self.dispatcher()
        dispatcher.enqueue_all(self.semester, purpose="preview", department_ids=[self.csc.pk])
        waiting = dispatcher.enqueue_all(self.semester, purpose="preview", department_ids=[self.csc.pk])
        running = dispatcher.queue.claim("worker-1")

        # Both claimants see no running job for the pair, as concurrent
        # READ COMMITTED transactions would.
        with mock.patch("standing.job_queue.Exists", return_value=Q(pk__in=[])):
            self.assertIsNone(dispatcher.queue.claim("worker-2"))

        job = ComputationJob.objects.get(master_computation=waiting)
        self.assertEqual((job.status, job.attempts, job.locked_by), ("queued", 0, ""))
        self.assertEqual(ComputationJob.objects.filter(status="running").get().job_id, running.job_id)

    def test_only_one_running_job_per_department_and_semester(self):
        dispatcher = self.dispatcher()
        first = dispatcher.enqueue_all(self.semester, purpose="preview", department_ids=[self.csc.pk])
        second = dispatcher.enqueue_all(self.semester, purpose="preview", department_ids=[self.csc.pk])
        ComputationJob.objects.filter(master_computation=first).update(status="running")

        with self.assertRaises(IntegrityError), transaction.atomic():
            ComputationJob.objects.filter(master_computation=second).update(status="running")


class ControlTests(DispatcherTestCase):
    def test_cancel_queued_run(self):
        dispatcher = self.dispatcher()
        master = dispatcher.enqueue_all(self.semester)

        result = dispatcher.cancel(master.pk)

        self.assertEqual((result["jobs_cancelled"], result["jobs_signalled"]), (2, 0))
        self.assertEqual(result["status"], "cancelled")
        self.assertEqual(set(master.summaries.values_list("status", flat=True)), {"cancelled"})
        self.assertIsNone(dispatcher.process_next())

    def test_cancel_signals_running_job(self):
        dispatcher = self.dispatcher()
        master = dispatcher.enqueue_all(self.semester, department_ids=[self.csc.pk])
        running = dispatcher.queue.claim("worker-1")

        result = dispatcher.cancel(master.pk)

        self.assertEqual(result["jobs_signalled"], 1)
        self.assertTrue(dispatcher.queue.is_cancel_requested(running.job_id))
        self.assertIn("cancel_requested_at", MasterComputation.objects.get(pk=master.pk).metadata)

    def test_history_is_paginated_and_filtered(self):
        for status in ("completed", "failed", "completed"):
            MasterComputation.objects.create(semester=self.semester, status=status, computed_by=self.user)
        dispatcher = self.dispatcher()

        page = dispatcher.get_history(page=1, per_page=2)
        self.assertEqual((page["total"], page["pages"], len(page["results"])), (3, 2, 2))
        self.assertEqual(page["results"][0]["computed_by"], "registrar")

        failed = dispatcher.get_history(status="failed")
        self.assertEqual([item["status"] for item in failed["results"]], ["failed"])

        tomorrow = timezone.localdate() + datetime.timedelta(days=1)
        self.assertEqual(dispatcher.get_history(start_date=tomorrow)["total"], 0)
