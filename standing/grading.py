"""Score to grade mapping and GPA/CGPA calculation."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from django.db.models import Exists, OuterRef

from .errors import department_error
from .models import Result, Student, StudentSemesterResult

GRADE_BANDS = (
    (70, "A", 5),
    (60, "B", 4),
    (50, "C", 3),
    (45, "D", 2),
)
FAIL_GRADE = "F"
MISSING_PREDECESSOR_SHOWN = 10


@dataclass(frozen=True)
class GradePoint:
    grade: str
    points: int


@dataclass(frozen=True)
class CourseResult:
    course_id: int
    course_code: str
    course_title: str
    unit: int
    score: float
    grade: str
    points: int
    is_core: bool
    result_id: int | None = None

    @property
    def passed(self) -> bool:
        return is_passing(self.grade)


@dataclass(frozen=True)
class SemesterGPA:
    tcp: int
    tnu: int
    gpa: float | None
    course_results: tuple[CourseResult, ...] = ()
    failed_courses: tuple[CourseResult, ...] = ()


@dataclass(frozen=True)
class PreviousPerformance:
    cumulative_tcp: int = 0
    cumulative_tnu: int = 0
    cgpa: float | None = None


@dataclass(frozen=True)
class CumulativeGPA:
    cumulative_tcp: int
    cumulative_tnu: int
    cgpa: float | None
    previous: PreviousPerformance


def grade_for_score(score) -> GradePoint:
    """Map a numeric score to its letter grade and grade points."""

    numeric = float(score)
    for floor, grade, points in GRADE_BANDS:
        if numeric >= floor:
            return GradePoint(grade, points)
    return GradePoint(FAIL_GRADE, 0)


def is_passing(grade: str) -> bool:
    return grade != FAIL_GRADE


def _ratio(points: int, units: int) -> float | None:
    if units == 0:
        return None
    return round(points / units, 2)


def course_result_from(result) -> CourseResult:
    """Re-grade a Result row from its score; stored grades are never trusted."""

    course = result.course
    unit = int(result.course_unit if result.course_unit is not None else course.unit)
    mapped = grade_for_score(result.score)
    return CourseResult(
        course_id=course.pk,
        course_code=course.code,
        course_title=course.title,
        unit=unit,
        score=float(result.score),
        grade=mapped.grade,
        points=mapped.points,
        is_core=course.is_core,
        result_id=result.pk,
    )


def calculate_semester(results: Iterable) -> SemesterGPA:
    course_results = tuple(
        course_result_from(result) for result in results if getattr(result, "deleted_at", None) is None
    )
    tcp = sum(item.points * item.unit for item in course_results)
    tnu = sum(item.unit for item in course_results)
    return SemesterGPA(
        tcp=tcp,
        tnu=tnu,
        gpa=_ratio(tcp, tnu),
        course_results=course_results,
        failed_courses=tuple(item for item in course_results if not item.passed),
    )


def fold_cumulative(previous: PreviousPerformance, semester: SemesterGPA) -> CumulativeGPA:
    cumulative_tcp = previous.cumulative_tcp + semester.tcp
    cumulative_tnu = previous.cumulative_tnu + semester.tnu
    return CumulativeGPA(
        cumulative_tcp=cumulative_tcp,
        cumulative_tnu=cumulative_tnu,
        cgpa=_ratio(cumulative_tcp, cumulative_tnu),
        previous=previous,
    )


def previous_performance(student, semester) -> PreviousPerformance:
    """Return the student's committed cumulative totals from before ``semester``."""

    record = (
        StudentSemesterResult.objects.filter(
            student=student,
            semester__start_date__lt=semester.start_date,
        )
        .order_by("-semester__start_date")
        .first()
    )
    if record is None:
        return PreviousPerformance()
    return PreviousPerformance(
        cumulative_tcp=record.cumulative_tcp,
        cumulative_tnu=record.cumulative_tnu,
        cgpa=float(record.cgpa) if record.cgpa is not None else None,
    )


def ensure_predecessor_computed(department, semester, *, is_retry: bool = False) -> None:
    """Refuse to fold forward over a predecessor semester that is not fully computed.

    Every active student with graded predecessor results must hold a committed
    predecessor record; otherwise that student's CGPA would silently skip the
    semester. On retries, students who already hold a committed record for the
    target semester from an earlier attempt are let through.
    """

    predecessor = semester.predecessor()
    if predecessor is None:
        return
    uncovered = (
        Student.objects.active()
        .filter(department=department)
        .filter(
            Exists(Result.objects.active().filter(student=OuterRef("pk"), semester=predecessor)),
        )
        .exclude(Exists(StudentSemesterResult.objects.filter(student=OuterRef("pk"), semester=predecessor)))
    )
    if is_retry:
        uncovered = uncovered.exclude(
            Exists(StudentSemesterResult.objects.filter(student=OuterRef("pk"), semester=semester))
        )
    missing = list(uncovered.order_by("matric_number").values_list("matric_number", flat=True))
    if not missing:
        return
    shown = ", ".join(missing[:MISSING_PREDECESSOR_SHOWN])
    if len(missing) > MISSING_PREDECESSOR_SHOWN:
        shown += f" and {len(missing) - MISSING_PREDECESSOR_SHOWN} more"
    raise department_error(
        f"Semester {predecessor.code} was not fully computed for {department.code}: "
        f"{len(missing)} student(s) have no committed record ({shown})",
        department_id=department.pk,
        semester=semester.code,
        predecessor=predecessor.code,
        uncovered_students=missing,
    )


def semester_gpa_for_student(student, semester) -> dict:
    """Read-only GPA breakdown for one student and semester."""

    results = Result.objects.active().filter(student=student, semester=semester).select_related("course")
    current = calculate_semester(results)
    cumulative = fold_cumulative(previous_performance(student, semester), current)
    record = StudentSemesterResult.objects.filter(student=student, semester=semester).first()
    return {
        "student_id": student.pk,
        "matric_number": student.matric_number,
        "semester": semester.code,
        "tcp": current.tcp,
        "tnu": current.tnu,
        "gpa": current.gpa,
        "cumulative_tcp": cumulative.cumulative_tcp,
        "cumulative_tnu": cumulative.cumulative_tnu,
        "cgpa": cumulative.cgpa,
        "previous_cgpa": cumulative.previous.cgpa,
        "committed": record is not None,
        "remark": record.remark if record else None,
        "courses": [
            {
                "course_code": item.course_code,
                "unit": item.unit,
                "score": item.score,
                "grade": item.grade,
                "points": item.points,
            }
            for item in current.course_results
        ],
        "failed_courses": [item.course_code for item in current.failed_courses],
    }


def as_decimal(value: float | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value)).quantize(Decimal("0.01"))
