"""Carryover tracking: upserts, clearing and carryover reports."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Count, Q
from django.utils import timezone

from .errors import ComputationError, carryover_error
from .grading import SemesterGPA
from .models import CarryoverCourse, Course

logger = logging.getLogger(__name__)

REASON_FAILED = "Failed"
REASON_NOT_REGISTERED = "NotRegistered"


@dataclass(frozen=True)
class OutstandingCarryover:
    course_id: int
    course_code: str
    semester_code: str
    reason: str


@dataclass(frozen=True)
class CarryoverOutcome:
    created: int
    already_present: int
    cleared: int
    outstanding_count: int
    outstanding: tuple[OutstandingCarryover, ...] = ()
    errors: tuple[ComputationError, ...] = ()


class CarryoverTracker:
    """Maintains a student's carryover rows for one semester run.

    Rows are keyed on (student, course, semester). A duplicate-key conflict
    from a concurrent or retried run means the row is already there, so it is
    counted rather than reported.
    """

    def __init__(self, semester, *, summary=None, preview: bool = False):
        self.semester = semester
        self.summary = summary
        self.preview = preview
        self._core_courses: dict[tuple[int, int], list[Course]] = {}

    def core_courses_for(self, student) -> list[Course]:
        key = (student.department_id, student.level)
        if key not in self._core_courses:
            self._core_courses[key] = list(
                Course.objects.filter(
                    department_id=student.department_id,
                    level=student.level,
                    term=self.semester.term,
                    is_core=True,
                ).order_by("code")
            )
        return self._core_courses[key]

    def track(self, student, semester_gpa: SemesterGPA) -> CarryoverOutcome:
        registered = {item.course_id for item in semester_gpa.course_results}
        passed = {item.course_id for item in semester_gpa.course_results if item.passed}
        pending = [
            (item.course_id, REASON_FAILED, item)
            for item in semester_gpa.failed_courses
            if item.is_core
        ]
        pending.extend(
            (course.pk, REASON_NOT_REGISTERED, None)
            for course in self.core_courses_for(student)
            if course.pk not in registered
        )

        if self.preview:
            return self._predict(student, pending, passed)

        created = already_present = 0
        errors: list[ComputationError] = []
        for course_id, reason, course_result in pending:
            try:
                if self._upsert(student, course_id, reason, course_result):
                    created += 1
                else:
                    already_present += 1
            except DatabaseError as exc:
                logger.warning(
                    "Carryover upsert failed for %s course %s: %s", student.matric_number, course_id, exc
                )
                errors.append(
                    carryover_error(
                        str(exc),
                        student_id=student.pk,
                        course_id=course_id,
                        matric_number=student.matric_number,
                        reason=reason,
                    )
                )

        cleared = self._clear_passed(student, passed)
        outstanding = self.outstanding_for(student)
        return CarryoverOutcome(
            created=created,
            already_present=already_present,
            cleared=cleared,
            outstanding_count=len(outstanding),
            outstanding=outstanding,
            errors=tuple(errors),
        )

    def _upsert(self, student, course_id: int, reason: str, course_result) -> bool:
        defaults = {
            "department_id": student.department_id,
            "reason": reason,
            "computation_summary": self.summary,
        }
        if course_result is not None:
            defaults.update(
                result_id=course_result.result_id,
                grade=course_result.grade,
                score=Decimal(str(course_result.score)),
            )
        try:
            with transaction.atomic():
                _, created = CarryoverCourse.objects.get_or_create(
                    student=student,
                    course_id=course_id,
                    semester=self.semester,
                    defaults=defaults,
                )
        except IntegrityError:
            return False
        return created

    def _clear_passed(self, student, passed: set[int]) -> int:
        if not passed:
            return 0
        return CarryoverCourse.objects.filter(
            student=student,
            course_id__in=passed,
            cleared=False,
            semester__start_date__lte=self.semester.start_date,
        ).update(
            cleared=True,
            cleared_at=timezone.now(),
            cleared_in=self.semester,
            remark=f"Passed in {self.semester.code}",
        )

    def outstanding_for(self, student) -> tuple[OutstandingCarryover, ...]:
        rows = (
            CarryoverCourse.objects.filter(student=student, cleared=False)
            .select_related("course", "semester")
            .order_by("semester__start_date", "course__code")
        )
        return tuple(
            OutstandingCarryover(row.course_id, row.course.code, row.semester.code, row.reason) for row in rows
        )

    def _predict(self, student, pending, passed: set[int]) -> CarryoverOutcome:
        existing = [item for item in self.outstanding_for(student) if item.course_id not in passed]
        existing_keys = {(item.course_id, item.semester_code) for item in existing}
        codes = dict(Course.objects.filter(pk__in=[course_id for course_id, _, _ in pending]).values_list("pk", "code"))
        new_items = [
            OutstandingCarryover(course_id, codes.get(course_id, ""), self.semester.code, reason)
            for course_id, reason, _ in pending
            if (course_id, self.semester.code) not in existing_keys
        ]
        outstanding = tuple(existing) + tuple(new_items)
        return CarryoverOutcome(
            created=len(new_items),
            already_present=len(pending) - len(new_items),
            cleared=0,
            outstanding_count=len(outstanding),
            outstanding=outstanding,
        )


def count_outstanding(student) -> int:
    return CarryoverCourse.objects.filter(student=student, cleared=False).count()


def clear_carryover(carryover: CarryoverCourse, *, cleared_by=None, remark: str = "") -> tuple[CarryoverCourse, bool]:
    """Manually mark a carryover cleared; clearing an already cleared row changes nothing."""

    with transaction.atomic():
        carryover = CarryoverCourse.objects.select_for_update().select_related("student").get(pk=carryover.pk)
        if carryover.cleared:
            return carryover, False
        carryover.cleared = True
        carryover.cleared_at = timezone.now()
        carryover.cleared_by = cleared_by
        carryover.remark = remark or "Cleared manually"
        carryover.save(update_fields=["cleared", "cleared_at", "cleared_by", "remark", "updated_at"])

        student = carryover.student
        student.total_carryovers = count_outstanding(student)
        student.save(update_fields=["total_carryovers"])

    logger.info("Carryover %s for %s cleared manually", carryover.pk, student.matric_number)
    return carryover, True


def department_carryover_stats(department, semester) -> dict:
    rows = CarryoverCourse.objects.filter(department=department, semester=semester)
    by_course = (
        rows.values("course__code", "course__title")
        .annotate(
            total=Count("id"),
            outstanding=Count("id", filter=Q(cleared=False)),
            cleared=Count("id", filter=Q(cleared=True)),
            failed=Count("id", filter=Q(reason=REASON_FAILED)),
            not_registered=Count("id", filter=Q(reason=REASON_NOT_REGISTERED)),
        )
        .order_by("-total", "course__code")
    )
    return {
        "department": department.code,
        "semester": semester.code,
        "total_carryovers": rows.count(),
        "outstanding": rows.filter(cleared=False).count(),
        "affected_students": rows.values("student").distinct().count(),
        "by_course": [
            {
                "course_code": row["course__code"],
                "course_title": row["course__title"],
                "total": row["total"],
                "outstanding": row["outstanding"],
                "cleared": row["cleared"],
                "failed": row["failed"],
                "not_registered": row["not_registered"],
            }
            for row in by_course
        ],
    }


def student_carryovers(student) -> dict:
    rows = (
        CarryoverCourse.objects.filter(student=student)
        .select_related("course", "semester")
        .order_by("semester__start_date", "course__code")
    )
    grouped: dict[str, list[dict]] = {}
    for row in rows:
        grouped.setdefault(row.semester.code, []).append(
            {
                "id": row.pk,
                "course_code": row.course.code,
                "course_title": row.course.title,
                "unit": row.course.unit,
                "reason": row.reason,
                "grade": row.grade,
                "score": float(row.score) if row.score is not None else None,
                "cleared": row.cleared,
                "cleared_at": row.cleared_at.isoformat() if row.cleared_at else None,
                "remark": row.remark,
            }
        )
    return {
        "student_id": student.pk,
        "matric_number": student.matric_number,
        "total_carryovers": count_outstanding(student),
        "semesters": [{"semester": code, "carryovers": items} for code, items in grouped.items()],
    }
