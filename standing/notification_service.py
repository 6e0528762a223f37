"""
Notification requests for computation outcomes.

Delivery belongs to another service; this module only records what should
be sent in the ``NotificationRequest`` outbox.
"""
from __future__ import annotations

import logging

from django.db import DatabaseError

from .models import NotificationRequest

logger = logging.getLogger(__name__)


class NotificationService:
    """Queues notification requests without ever failing the caller."""

    @staticmethod
    def queue_notification(target, recipient, template, message, metadata=None) -> bool:
        try:
            NotificationRequest.objects.create(
                target=target,
                recipient=recipient,
                template=template,
                message=message,
                metadata=metadata or {},
            )
        except DatabaseError as exc:
            logger.error("Could not queue %s notification: %s", template, exc)
            return False
        return True

    @staticmethod
    def notify_department_completed(summary) -> bool:
        """
        Tell the operator who started the run that a department finished.

        Args:
            summary: ComputationSummary in a terminal, non-failed status
        """
        if summary.computed_by is None:
            return False
        return NotificationService.queue_notification(
            target="user",
            recipient=summary.computed_by,
            template="computation_completed",
            message=(
                f"Results computation for {summary.department.code} ({summary.semester.code}) "
                f"finished with status {summary.status}: {summary.students_processed} students processed."
            ),
            metadata={
                "summary_id": summary.pk,
                "master_computation_id": summary.master_computation_id,
                "status": summary.status,
                "average_gpa": float(summary.average_gpa) if summary.average_gpa is not None else None,
                "student_errors": len(summary.failed_students),
            },
        )

    @staticmethod
    def notify_department_failed(summary, error: str, attempts: int) -> bool:
        if summary.computed_by is None:
            return False
        return NotificationService.queue_notification(
            target="user",
            recipient=summary.computed_by,
            template="computation_failed",
            message=(
                f"Results computation for {summary.department.code} ({summary.semester.code}) "
                f"failed after {attempts} attempts: {error}"
            ),
            metadata={
                "summary_id": summary.pk,
                "master_computation_id": summary.master_computation_id,
                "attempts": attempts,
                "error": error,
            },
        )
