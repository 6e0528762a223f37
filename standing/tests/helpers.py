"""Small builders for academic records used across the test modules."""
from __future__ import annotations

import datetime
from decimal import Decimal

from django.utils import timezone

from standing.grading import grade_for_score
from standing.models import Course, Department, Result, Semester, Student


def make_department(code="CSC", name="Computer Science", **extra) -> Department:
    return Department.objects.create(code=code, name=name, **extra)


def make_semester(code="2024-1", term="first", start=datetime.date(2024, 10, 1), **extra) -> Semester:
    return Semester.objects.create(
        code=code,
        name=f"Semester {code}",
        term=term,
        start_date=start,
        end_date=start + datetime.timedelta(days=120),
        **extra,
    )


def make_course(code, department, unit=3, *, level=100, term="first", is_core=True) -> Course:
    return Course.objects.create(
        code=code,
        title=f"Course {code}",
        unit=unit,
        department=department,
        level=level,
        term=term,
        is_core=is_core,
    )


def make_student(matric, department, *, level=100, **extra) -> Student:
    return Student.objects.create(matric_number=matric, name=f"Student {matric}", department=department, level=level, **extra)


def add_result(student, course, semester, score) -> Result:
    mapped = grade_for_score(score)
    return Result.objects.create(
        student=student,
        course=course,
        semester=semester,
        score=Decimal(str(score)),
        grade=mapped.grade,
        points=mapped.points,
        course_unit=course.unit,
    )


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or timezone.now()

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += datetime.timedelta(seconds=seconds)
