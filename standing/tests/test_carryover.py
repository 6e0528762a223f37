import datetime
from unittest import mock

from django.contrib.auth import get_user_model
from django.db import DataError
from django.test import TestCase

from standing.carryover_service import (
    REASON_FAILED,
    REASON_NOT_REGISTERED,
    CarryoverTracker,
    clear_carryover,
    department_carryover_stats,
    student_carryovers,
)
from standing.errors import ErrorKind
from standing.grading import calculate_semester
from standing.models import CarryoverCourse, Result

from .helpers import add_result, make_course, make_department, make_semester, make_student


class CarryoverTrackerTests(TestCase):
    def setUp(self):
        self.department = make_department()
        self.first = make_semester("2024-1", start=datetime.date(2024, 10, 1))
        self.next_first = make_semester("2025-1", start=datetime.date(2025, 10, 1))
        self.core = make_course("CSC101", self.department, unit=3)
        self.other_core = make_course("CSC103", self.department, unit=2)
        self.elective = make_course("GST101", self.department, unit=2, is_core=False)
        self.student = make_student("CSC/24/001", self.department)

    def track(self, semester, **kwargs):
        results = list(Result.objects.active().filter(student=self.student, semester=semester).select_related("course"))
        return CarryoverTracker(semester, **kwargs).track(self.student, calculate_semester(results))

    def test_failed_core_course_becomes_carryover(self):
        add_result(self.student, self.core, self.first, 30)
        add_result(self.student, self.other_core, self.first, 65)

        outcome = self.track(self.first)

        self.assertEqual(outcome.created, 1)
        row = CarryoverCourse.objects.get(student=self.student)
        self.assertEqual((row.course, row.reason, row.grade), (self.core, REASON_FAILED, "F"))
        self.assertEqual(row.department, self.department)
        self.assertEqual(outcome.outstanding_count, 1)

    def test_failed_elective_is_not_a_carryover(self):
        add_result(self.student, self.core, self.first, 65)
        add_result(self.student, self.other_core, self.first, 65)
        add_result(self.student, self.elective, self.first, 20)

        outcome = self.track(self.first)

        self.assertEqual(outcome.outstanding_count, 0)
        self.assertFalse(CarryoverCourse.objects.exists())

    def test_unregistered_core_course_is_recorded(self):
        add_result(self.student, self.core, self.first, 65)

        self.track(self.first)

        row = CarryoverCourse.objects.get(student=self.student)
        self.assertEqual((row.course, row.reason), (self.other_core, REASON_NOT_REGISTERED))
        self.assertEqual(row.grade, "")
        self.assertIsNone(row.result_id)

    def test_repeated_tracking_keeps_a_single_row(self):
        add_result(self.student, self.core, self.first, 30)
        add_result(self.student, self.other_core, self.first, 60)
        self.track(self.first)

        outcome = self.track(self.first)

        self.assertEqual(outcome.created, 0)
        self.assertEqual(outcome.already_present, 1)
        rows = CarryoverCourse.objects.filter(student=self.student, course=self.core, semester=self.first)
        self.assertEqual(rows.count(), 1)
        self.assertEqual(rows.get().reason, REASON_FAILED)

    def test_existing_row_reason_is_not_overwritten(self):
        CarryoverCourse.objects.create(
            student=self.student,
            course=self.core,
            semester=self.first,
            department=self.department,
            reason=REASON_NOT_REGISTERED,
        )
        add_result(self.student, self.core, self.first, 30)
        add_result(self.student, self.other_core, self.first, 60)

        outcome = self.track(self.first)

        self.assertEqual(outcome.already_present, 1)
        self.assertEqual(CarryoverCourse.objects.get(course=self.core).reason, REASON_NOT_REGISTERED)

    def test_passing_later_clears_without_deleting(self):
        add_result(self.student, self.core, self.first, 30)
        add_result(self.student, self.other_core, self.first, 60)
        self.track(self.first)

        add_result(self.student, self.core, self.next_first, 58)
        add_result(self.student, self.other_core, self.next_first, 61)
        outcome = self.track(self.next_first)

        row = CarryoverCourse.objects.get(student=self.student, course=self.core)
        self.assertTrue(row.cleared)
        self.assertEqual(row.cleared_in, self.next_first)
        self.assertEqual(row.remark, "Passed in 2025-1")
        self.assertEqual(outcome.cleared, 1)
        self.assertEqual(outcome.outstanding_count, 0)

    def test_pass_in_earlier_semester_does_not_clear_later_carryover(self):
        CarryoverCourse.objects.create(
            student=self.student,
            course=self.core,
            semester=self.next_first,
            department=self.department,
            reason=REASON_FAILED,
        )
        add_result(self.student, self.core, self.first, 70)
        add_result(self.student, self.other_core, self.first, 70)

        self.track(self.first)

        self.assertFalse(CarryoverCourse.objects.get(semester=self.next_first).cleared)

    def test_preview_predicts_without_writing(self):
        add_result(self.student, self.core, self.first, 30)

        outcome = self.track(self.first, preview=True)

        self.assertEqual(outcome.outstanding_count, 2)
        self.assertEqual({item.reason for item in outcome.outstanding}, {REASON_FAILED, REASON_NOT_REGISTERED})
        self.assertFalse(CarryoverCourse.objects.exists())

    def test_storage_error_becomes_carryover_error(self):
        add_result(self.student, self.core, self.first, 30)
        add_result(self.student, self.other_core, self.first, 60)

        with mock.patch.object(CarryoverCourse.objects, "get_or_create", side_effect=DataError("value too long")):
            outcome = self.track(self.first)

        self.assertEqual(len(outcome.errors), 1)
        error = outcome.errors[0]
        self.assertEqual(error.kind, ErrorKind.CARRYOVER)
        self.assertEqual(error.payload["course_id"], self.core.pk)
        self.assertEqual(error.payload["student_id"], self.student.pk)


class ManualClearTests(TestCase):
    def setUp(self):
        self.department = make_department()
        self.semester = make_semester()
        self.course = make_course("CSC101", self.department)
        self.student = make_student("CSC/24/001", self.department, total_carryovers=1)
        self.carryover = CarryoverCourse.objects.create(
            student=self.student,
            course=self.course,
            semester=self.semester,
            department=self.department,
            reason=REASON_FAILED,
        )
        self.user = get_user_model().objects.create_user(username="exams", password="pass", is_staff=True)

    def test_clear_is_idempotent(self):
        first, changed = clear_carryover(self.carryover, cleared_by=self.user, remark="Senate waiver")
        cleared_at = first.cleared_at

        again, changed_again = clear_carryover(self.carryover, cleared_by=self.user, remark="Second click")

        self.assertTrue(changed)
        self.assertFalse(changed_again)
        self.assertEqual(again.cleared_at, cleared_at)
        self.assertEqual(again.remark, "Senate waiver")
        self.assertEqual(again.cleared_by, self.user)
        self.student.refresh_from_db()
        self.assertEqual(self.student.total_carryovers, 0)

    def test_reports(self):
        other_course = make_course("CSC103", self.department, unit=2)
        second = make_student("CSC/24/002", self.department)
        CarryoverCourse.objects.create(
            student=second,
            course=self.course,
            semester=self.semester,
            department=self.department,
            reason=REASON_NOT_REGISTERED,
        )
        CarryoverCourse.objects.create(
            student=second,
            course=other_course,
            semester=self.semester,
            department=self.department,
            reason=REASON_FAILED,
        )
        clear_carryover(self.carryover, cleared_by=self.user)

        stats = department_carryover_stats(self.department, self.semester)

        self.assertEqual(stats["total_carryovers"], 3)
        self.assertEqual(stats["outstanding"], 2)
        self.assertEqual(stats["affected_students"], 2)
        first_row = stats["by_course"][0]
        self.assertEqual(first_row["course_code"], "CSC101")
        self.assertEqual((first_row["total"], first_row["cleared"], first_row["not_registered"]), (2, 1, 1))

        listing = student_carryovers(second)
        self.assertEqual(listing["total_carryovers"], 2)
        self.assertEqual([item["course_code"] for item in listing["semesters"][0]["carryovers"]], ["CSC101", "CSC103"])
