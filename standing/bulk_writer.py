"""Buffered bulk persistence for per-student computation output."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from django.db import DatabaseError, InterfaceError, OperationalError, transaction
from django.db.models import F

from .errors import BulkWriteTransportError
from .models import Student, StudentSemesterResult

logger = logging.getLogger(__name__)

SEMESTER_RECORD_FIELDS = [
    "department",
    "level",
    "tcp",
    "tnu",
    "gpa",
    "cumulative_tcp",
    "cumulative_tnu",
    "cgpa",
    "carryover_count",
    "standing",
    "degree_class",
    "remark",
    "prior_probation_status",
    "prior_termination_status",
    "computation_summary",
]


@dataclass(frozen=True)
class StudentUpdate:
    student_id: int
    fields: dict[str, Any]
    increment: dict[str, int]

    @property
    def signature(self) -> tuple:
        return tuple(sorted(self.fields)), tuple(sorted(self.increment))


@dataclass(frozen=True)
class SemesterRecord:
    student_id: int
    semester_id: int
    values: dict[str, Any]


@dataclass(frozen=True)
class WriteFailure:
    student_id: int
    operation: str
    error: str


@dataclass(frozen=True)
class BulkWriteResult:
    succeeded: int = 0
    failed: int = 0
    failures: tuple[WriteFailure, ...] = field(default_factory=tuple)

    @property
    def failed_student_ids(self) -> list[int]:
        return sorted({failure.student_id for failure in self.failures})

    def merge(self, other: "BulkWriteResult") -> "BulkWriteResult":
        return BulkWriteResult(
            self.succeeded + other.succeeded,
            self.failed + other.failed,
            self.failures + other.failures,
        )


class BulkWriter:
    """Collects one logical mutation per student and flushes them in chunks.

    ``add_*`` only append to in-memory buffers. ``execute_bulk_writes`` never
    raises for a partial failure: a chunk that fails is replayed one operation
    at a time and the failing students are reported in the result. Only a lost
    database connection escapes as ``BulkWriteTransportError``.
    """

    def __init__(self, batch_size: int = 100):
        self.batch_size = batch_size
        self.student_updates: list[StudentUpdate] = []
        self.semester_records: list[SemesterRecord] = []

    def add_student_update(self, student_id: int, *, fields: dict | None = None, increment: dict | None = None) -> None:
        self.student_updates.append(StudentUpdate(student_id, dict(fields or {}), dict(increment or {})))

    def add_semester_record(self, student_id: int, semester_id: int, **values) -> None:
        self.semester_records.append(SemesterRecord(student_id, semester_id, values))

    def should_flush(self, threshold: int | None = None) -> bool:
        limit = threshold or self.batch_size
        return len(self.student_updates) >= limit or len(self.semester_records) >= limit

    def buffer_sizes(self) -> dict[str, int]:
        return {
            "student_updates": len(self.student_updates),
            "semester_records": len(self.semester_records),
        }

    def clear(self) -> None:
        self.student_updates = []
        self.semester_records = []

    def execute_bulk_writes(self) -> BulkWriteResult:
        records, updates = self.semester_records, self.student_updates
        self.clear()
        if not records and not updates:
            return BulkWriteResult()

        result = BulkWriteResult()
        try:
            for chunk in _chunks(records, self.batch_size):
                result = result.merge(self._write_records(chunk))
            for chunk in _chunks(updates, self.batch_size):
                result = result.merge(self._write_updates(chunk))
        except (OperationalError, InterfaceError) as exc:
            logger.error("Bulk write aborted, database unavailable: %s", exc)
            raise BulkWriteTransportError(str(exc)) from exc

        if result.failed:
            logger.warning(
                "Bulk write finished with %s failed operations (%s succeeded)", result.failed, result.succeeded
            )
        else:
            logger.debug("Bulk write flushed %s operations", result.succeeded)
        return result

    def _write_records(self, chunk: list[SemesterRecord]) -> BulkWriteResult:
        objs = [
            StudentSemesterResult(student_id=item.student_id, semester_id=item.semester_id, **item.values)
            for item in chunk
        ]
        try:
            with transaction.atomic():
                StudentSemesterResult.objects.bulk_create(
                    objs,
                    update_conflicts=True,
                    unique_fields=["student", "semester"],
                    update_fields=SEMESTER_RECORD_FIELDS,
                )
            return BulkWriteResult(succeeded=len(chunk))
        except (OperationalError, InterfaceError):
            raise
        except DatabaseError as exc:
            logger.warning("Semester record chunk failed (%s), replaying individually", exc)

        return self._replay(
            chunk,
            "semester_record",
            lambda item: StudentSemesterResult.objects.update_or_create(
                student_id=item.student_id,
                semester_id=item.semester_id,
                defaults=item.values,
            ),
        )

    def _write_updates(self, chunk: list[StudentUpdate]) -> BulkWriteResult:
        groups: dict[tuple, list[StudentUpdate]] = {}
        for item in chunk:
            groups.setdefault(item.signature, []).append(item)

        result = BulkWriteResult()
        for (set_names, increment_names), items in groups.items():
            objs = []
            for item in items:
                student = Student(pk=item.student_id)
                for name, value in item.fields.items():
                    setattr(student, name, value)
                for name, delta in item.increment.items():
                    setattr(student, name, F(name) + delta)
                objs.append(student)
            try:
                with transaction.atomic():
                    Student.objects.bulk_update(objs, list(set_names) + list(increment_names))
                result = result.merge(BulkWriteResult(succeeded=len(items)))
                continue
            except (OperationalError, InterfaceError):
                raise
            except DatabaseError as exc:
                logger.warning("Student update chunk failed (%s), replaying individually", exc)
            result = result.merge(self._replay(items, "student_update", _apply_student_update))
        return result

    def _replay(self, items, operation: str, apply) -> BulkWriteResult:
        succeeded = 0
        failures = []
        for item in items:
            try:
                with transaction.atomic():
                    apply(item)
                succeeded += 1
            except (OperationalError, InterfaceError):
                raise
            except DatabaseError as exc:
                failures.append(WriteFailure(item.student_id, operation, str(exc)))
        return BulkWriteResult(succeeded, len(failures), tuple(failures))


def _apply_student_update(item: StudentUpdate) -> None:
    values = dict(item.fields)
    for name, delta in item.increment.items():
        values[name] = F(name) + delta
    Student.objects.filter(pk=item.student_id).update(**values)


def _chunks(items: list, size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]
