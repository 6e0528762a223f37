from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse

from standing.carryover_service import REASON_FAILED
from standing.models import CarryoverCourse, ComputationJob, MasterComputation

from .helpers import add_result, make_course, make_department, make_semester, make_student

User = get_user_model()


class ComputationViewTests(TestCase):
    def setUp(self):
        self.staff = User.objects.create_user(username="senate", password="pass", is_staff=True)
        self.lecturer = User.objects.create_user(username="lecturer", password="pass")
        self.department = make_department()
        self.semester = make_semester()
        self.course = make_course("CSC101", self.department)
        self.student = make_student("CSC/24/001", self.department, total_carryovers=1)
        add_result(self.student, self.course, self.semester, 72)
        self.client.force_login(self.staff)

    def test_anonymous_is_redirected_to_login(self):
        self.client.logout()
        response = self.client.get(reverse("computation_history"))
        self.assertEqual(response.status_code, 302)
        self.assertIn("/admin/login/", response["Location"])

    def test_non_staff_is_forbidden(self):
        self.client.force_login(self.lecturer)
        response = self.client.post(reverse("compute_all"), {"semester": self.semester.pk})
        self.assertEqual(response.status_code, 403)
        self.assertFalse(MasterComputation.objects.exists())

    def test_compute_all_accepts_and_reports_status(self):
        response = self.client.post(
            reverse("compute_all"), {"semester": self.semester.pk}, content_type="application/json"
        )

        self.assertEqual(response.status_code, 202)
        master_id = response.json()["master_computation_id"]
        self.assertEqual(ComputationJob.objects.filter(master_computation_id=master_id).count(), 1)

        status = self.client.get(reverse("computation_status", args=[master_id])).json()
        self.assertEqual(status["status"], "processing")
        self.assertEqual(status["departments"][0]["status"], "pending")
        self.assertEqual(status["queue"]["queued"], 1)

        conflict = self.client.post(reverse("compute_all"), {"semester": self.semester.pk})
        self.assertEqual(conflict.status_code, 409)

    def test_compute_all_validates_input(self):
        response = self.client.post(reverse("compute_all"), {"semester": 999, "purpose": "draft"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(set(response.json()["errors"]), {"semester", "purpose"})

        malformed = self.client.post(reverse("compute_all"), "{not json", content_type="application/json")
        self.assertEqual(malformed.status_code, 400)

    def test_unknown_master_is_404(self):
        response = self.client.get(reverse("computation_status", args=[4242]))
        self.assertEqual(response.status_code, 404)

    def test_cancel_and_retry(self):
        master_id = self.client.post(reverse("compute_all"), {"semester": self.semester.pk}).json()[
            "master_computation_id"
        ]

        cancelled = self.client.post(reverse("computation_cancel", args=[master_id])).json()
        self.assertEqual(cancelled["status"], "cancelled")
        self.assertEqual(cancelled["jobs_cancelled"], 1)

        retry = self.client.post(reverse("computation_retry", args=[master_id]))
        self.assertEqual(retry.status_code, 200)
        self.assertEqual(retry.json()["retried"], [])

    def test_history_filters(self):
        MasterComputation.objects.create(semester=self.semester, status="completed")
        MasterComputation.objects.create(semester=self.semester, status="failed")

        response = self.client.get(reverse("computation_history"), {"status": "failed", "per_page": 5})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["total"], 1)

        invalid = self.client.get(
            reverse("computation_history"), {"start_date": "2025-02-01", "end_date": "2025-01-01"}
        )
        self.assertEqual(invalid.status_code, 400)

    def test_semester_gpa(self):
        response = self.client.get(reverse("semester_gpa", args=[self.student.pk, self.semester.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["gpa"], 5.0)

    def test_clear_carryover_is_idempotent(self):
        carryover = CarryoverCourse.objects.create(
            student=self.student,
            course=self.course,
            semester=self.semester,
            department=self.department,
            reason=REASON_FAILED,
        )
        url = reverse("carryover_clear", args=[carryover.pk])

        first = self.client.patch(url, {"remark": "Senate approval"}, content_type="application/json").json()
        second = self.client.patch(url, {"remark": "again"}, content_type="application/json").json()

        self.assertTrue(first["changed"])
        self.assertFalse(second["changed"])
        self.assertEqual(first["cleared_at"], second["cleared_at"])
        self.assertEqual(second["total_carryovers"], 0)
        self.assertEqual(self.client.patch(reverse("carryover_clear", args=[9999])).status_code, 404)

    def test_carryover_reports(self):
        CarryoverCourse.objects.create(
            student=self.student,
            course=self.course,
            semester=self.semester,
            department=self.department,
            reason=REASON_FAILED,
        )

        stats = self.client.get(
            reverse("department_carryover_stats", args=[self.department.pk, self.semester.pk])
        ).json()
        self.assertEqual(stats["outstanding"], 1)

        listing = self.client.get(reverse("student_carryovers", args=[self.student.pk])).json()
        self.assertEqual(listing["total_carryovers"], 1)
        self.assertEqual(listing["semesters"][0]["semester"], self.semester.code)
