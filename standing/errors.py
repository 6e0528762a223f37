"""Error types raised by the standing computation pipeline."""
from __future__ import annotations

import enum
from typing import Any

from django.utils import timezone


class ErrorKind(str, enum.Enum):
    STUDENT = "student"
    DEPARTMENT = "department"
    CARRYOVER = "carryover"


class ComputationError(Exception):
    """A failure tagged with the scope it affects.

    Student and carryover errors are recorded and the batch continues;
    department errors fail the whole department job.
    """

    def __init__(self, kind: ErrorKind, message: str, payload: dict[str, Any] | None = None):
        super().__init__(message)
        self.kind = ErrorKind(kind)
        self.message = message
        self.payload = dict(payload or {})
        self.timestamp = timezone.now()

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            **self.payload,
        }


def student_error(message: str, *, student_id=None, matric_number=None, **extra) -> ComputationError:
    payload = {"student_id": student_id, "matric_number": matric_number, **extra}
    return ComputationError(ErrorKind.STUDENT, message, payload)


def department_error(message: str, *, department_id=None, **extra) -> ComputationError:
    return ComputationError(ErrorKind.DEPARTMENT, message, {"department_id": department_id, **extra})


def carryover_error(message: str, *, student_id=None, course_id=None, **extra) -> ComputationError:
    payload = {"student_id": student_id, "course_id": course_id, **extra}
    return ComputationError(ErrorKind.CARRYOVER, message, payload)


class BulkWriteTransportError(Exception):
    """The database could not be reached while flushing buffered writes."""


class ComputationConflict(Exception):
    """A final computation for the semester is already running."""
