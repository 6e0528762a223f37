"""Aggregate per-student outcomes into a department computation summary."""
from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass

from .carryover_service import CarryoverOutcome
from .classification import CATEGORIES, DEGREE_CLASSES, StandingDecision
from .errors import ComputationError
from .grading import CumulativeGPA, SemesterGPA

LIST_FIELDS = {
    "pass": "pass_list",
    "probation": "probation_list",
    "withdrawal": "withdrawal_list",
    "termination": "termination_list",
}


@dataclass(frozen=True)
class StudentOutcome:
    student_id: int
    matric_number: str
    name: str
    level: int
    semester: SemesterGPA
    cumulative: CumulativeGPA
    decision: StandingDecision
    carryovers: CarryoverOutcome


def gpa_statistics(values: list[float]) -> dict:
    if not values:
        return {"average": None, "highest": None, "lowest": None, "count": 0}
    return {
        "average": round(sum(values) / len(values), 2),
        "highest": max(values),
        "lowest": min(values),
        "count": len(values),
    }


class SummaryBuilder:
    """Accumulates outcomes batch by batch; ``build`` renders the summary fields."""

    def __init__(self, department, semester, *, list_limit: int = 100):
        self.department = department
        self.semester = semester
        self.list_limit = list_limit
        self.outcomes: list[StudentOutcome] = []
        self.errors: list[ComputationError] = []
        self.without_results: list[dict] = []

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    def add(self, outcome: StudentOutcome) -> None:
        self.outcomes.append(outcome)

    def add_error(self, error: ComputationError) -> None:
        self.errors.append(error)

    def add_without_results(self, student) -> None:
        self.without_results.append(
            {"student_id": student.pk, "matric_number": student.matric_number, "level": student.level}
        )

    def discard(self, student_ids) -> None:
        """Drop outcomes whose writes failed; they are reported as errors instead."""

        dropped = set(student_ids)
        self.outcomes = [item for item in self.outcomes if item.student_id not in dropped]

    def build(self) -> dict:
        by_level: dict[int, list[StudentOutcome]] = defaultdict(list)
        for outcome in self.outcomes:
            by_level[outcome.level].append(outcome)

        flat = {name: [] for name in CATEGORIES}
        lists_by_level = {}
        summary_by_level = {}
        sheet_by_level = {}
        for level in sorted(by_level):
            outcomes = by_level[level]
            lists = {name: [] for name in CATEGORIES}
            lists["carryover_students"] = []
            for outcome in outcomes:
                entry = _list_entry(outcome)
                lists[outcome.decision.category].append(entry)
                flat[outcome.decision.category].append(entry)
                if outcome.carryovers.outstanding_count:
                    lists["carryover_students"].append(
                        {**entry, "carryovers": [item.course_code for item in outcome.carryovers.outstanding]}
                    )
            lists_by_level[str(level)] = lists
            summary_by_level[str(level)] = self._level_summary(outcomes)
            sheet_by_level[str(level)] = self._master_sheet(level, outcomes)

        semester_gpas = [item.semester.gpa for item in self.outcomes if item.semester.gpa is not None]
        stats = gpa_statistics(semester_gpas)
        distribution = Counter({name: 0 for name in DEGREE_CLASSES})
        distribution.update(item.decision.degree_class for item in self.outcomes)

        data = {
            "students_processed": self.processed,
            "average_gpa": stats["average"],
            "highest_gpa": stats["highest"],
            "lowest_gpa": stats["lowest"],
            "grade_distribution": dict(distribution),
            "carryover_stats": self._carryover_stats(by_level),
            "total_carryovers": sum(item.carryovers.outstanding_count for item in self.outcomes),
            "affected_students": sum(1 for item in self.outcomes if item.carryovers.outstanding_count),
            "student_lists_by_level": lists_by_level,
            "summary_of_results_by_level": summary_by_level,
            "master_sheet_data_by_level": sheet_by_level,
            "failed_students": [error.to_dict() for error in self.errors],
            "students_without_results": self.without_results,
        }
        for category, field_name in LIST_FIELDS.items():
            data[field_name] = flat[category][: self.list_limit]
        return data

    def _level_summary(self, outcomes: list[StudentOutcome]) -> dict:
        gpas = [item.semester.gpa for item in outcomes if item.semester.gpa is not None]
        return {
            "total_students": len(outcomes),
            "gpa_statistics": gpa_statistics(gpas),
            "standing_counts": dict(Counter(item.decision.category for item in outcomes)),
            "degree_classes": dict(Counter(item.decision.degree_class for item in outcomes)),
            "carryover_students": sum(1 for item in outcomes if item.carryovers.outstanding_count),
        }

    def _carryover_stats(self, by_level) -> dict:
        return {
            "total_outstanding": sum(item.carryovers.outstanding_count for item in self.outcomes),
            "new_this_semester": sum(item.carryovers.created for item in self.outcomes),
            "cleared_this_semester": sum(item.carryovers.cleared for item in self.outcomes),
            "affected_students": sum(1 for item in self.outcomes if item.carryovers.outstanding_count),
            "by_level": {
                str(level): sum(item.carryovers.outstanding_count for item in outcomes)
                for level, outcomes in sorted(by_level.items())
            },
        }

    def _master_sheet(self, level: int, outcomes: list[StudentOutcome]) -> dict:
        courses = {}
        rows = []
        for outcome in sorted(outcomes, key=lambda item: item.matric_number):
            for course in outcome.semester.course_results:
                courses.setdefault(
                    course.course_code,
                    {"code": course.course_code, "title": course.course_title, "unit": course.unit, "core": course.is_core},
                )
            previous = outcome.cumulative.previous
            rows.append(
                {
                    "student_id": outcome.student_id,
                    "matric_number": outcome.matric_number,
                    "name": outcome.name,
                    "results": {
                        course.course_code: {"score": course.score, "grade": course.grade, "points": course.points}
                        for course in outcome.semester.course_results
                    },
                    "current": {"tcp": outcome.semester.tcp, "tnu": outcome.semester.tnu, "gpa": outcome.semester.gpa},
                    "previous": {
                        "tcp": previous.cumulative_tcp,
                        "tnu": previous.cumulative_tnu,
                        "cgpa": previous.cgpa,
                    },
                    "cumulative": {
                        "tcp": outcome.cumulative.cumulative_tcp,
                        "tnu": outcome.cumulative.cumulative_tnu,
                        "cgpa": outcome.cumulative.cgpa,
                    },
                    "standing": outcome.decision.category,
                    "remark": outcome.decision.remark,
                    "action": outcome.decision.action,
                    "outstanding_carryovers": [item.course_code for item in outcome.carryovers.outstanding],
                }
            )
        return {
            "department": {"code": self.department.code, "name": self.department.name},
            "semester": self.semester.code,
            "level": level,
            "key_to_courses": sorted(courses.values(), key=lambda item: item["code"]),
            "students": rows,
            "statistics": self._level_summary(outcomes),
        }


def _list_entry(outcome: StudentOutcome) -> dict:
    return {
        "student_id": outcome.student_id,
        "matric_number": outcome.matric_number,
        "name": outcome.name,
        "gpa": outcome.semester.gpa,
        "cgpa": outcome.cumulative.cgpa,
        "degree_class": outcome.decision.degree_class,
        "remark": outcome.decision.remark,
        "action": outcome.decision.action,
    }
