"""Create a small academic dataset for trying out standing computations."""
from __future__ import annotations

import datetime
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from standing.grading import grade_for_score
from standing.models import Course, Department, Result, Semester, Student

User = get_user_model()


class Command(BaseCommand):
    help = "Seed two departments, two semesters and a handful of graded students"

    def handle(self, *args, **options):
        self.stdout.write(self.style.WARNING("Creating standing demo data..."))

        csc, _ = Department.objects.get_or_create(code="CSC", defaults={"name": "Computer Science"})
        mth, _ = Department.objects.get_or_create(code="MTH", defaults={"name": "Mathematics"})
        Department.objects.get_or_create(code="PHY", defaults={"name": "Physics"})

        first, _ = Semester.objects.get_or_create(
            code="2024-1",
            defaults={
                "name": "2024/2025 First Semester",
                "term": "first",
                "start_date": datetime.date(2024, 10, 1),
                "end_date": datetime.date(2025, 2, 15),
            },
        )
        second, _ = Semester.objects.get_or_create(
            code="2024-2",
            defaults={
                "name": "2024/2025 Second Semester",
                "term": "second",
                "start_date": datetime.date(2025, 3, 1),
                "end_date": datetime.date(2025, 7, 15),
                "is_active": True,
            },
        )

        admin_user, created_admin = User.objects.get_or_create(username="admin", defaults={"email": "admin@example.com"})
        if created_admin:
            admin_user.is_staff = True
            admin_user.is_superuser = True
            admin_user.set_password("admin123")
            admin_user.save()

        courses = [
            ("CSC101", "Introduction to Computing", 3, csc, "first", True),
            ("CSC103", "Discrete Structures", 2, csc, "first", True),
            ("GST101", "Use of English", 2, csc, "first", False),
            ("CSC102", "Programming Fundamentals", 3, csc, "second", True),
            ("CSC104", "Computer Organisation", 2, csc, "second", True),
            ("MTH101", "Elementary Mathematics I", 3, mth, "first", True),
            ("MTH103", "Vectors and Geometry", 2, mth, "first", True),
            ("MTH102", "Elementary Mathematics II", 3, mth, "second", True),
        ]
        lookup = {}
        for code, title, unit, dept, term, is_core in courses:
            lookup[code], _ = Course.objects.get_or_create(
                code=code,
                defaults={"title": title, "unit": unit, "department": dept, "level": 100, "term": term, "is_core": is_core},
            )

        students_data = [
            ("CSC/24/001", "Adaeze Okafor", csc, {"CSC101": 78, "CSC103": 71, "GST101": 66}, {"CSC102": 74, "CSC104": 69}),
            ("CSC/24/002", "Bello Ibrahim", csc, {"CSC101": 52, "CSC103": 38, "GST101": 58}, {"CSC102": 47, "CSC104": 61}),
            ("CSC/24/003", "Chinedu Eze", csc, {"CSC101": 31, "CSC103": 22}, {"CSC102": 35}),
            ("CSC/24/004", "Damilola Adeyemi", csc, {}, {}),
            ("MTH/24/001", "Emeka Nwosu", mth, {"MTH101": 64, "MTH103": 57}, {"MTH102": 72}),
            ("MTH/24/002", "Funke Balogun", mth, {"MTH101": 44, "MTH103": 49}, {"MTH102": 41}),
        ]
        for matric, name, dept, first_scores, second_scores in students_data:
            student, _ = Student.objects.get_or_create(
                matric_number=matric, defaults={"name": name, "department": dept, "level": 100}
            )
            for semester, scores in ((first, first_scores), (second, second_scores)):
                for code, score in scores.items():
                    mapped = grade_for_score(score)
                    Result.objects.update_or_create(
                        student=student,
                        course=lookup[code],
                        semester=semester,
                        defaults={
                            "score": Decimal(score),
                            "grade": mapped.grade,
                            "points": mapped.points,
                            "course_unit": lookup[code].unit,
                        },
                    )

        self.stdout.write(
            self.style.SUCCESS(
                "Standing demo data ready. Run `compute_all 2024-1 --run` then `compute_all 2024-2 --run`; "
                "log in with admin/admin123."
            )
        )
