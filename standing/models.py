"""Django models for academic records and standing computation runs."""
from __future__ import annotations

from django.contrib.auth import get_user_model
from django.db import models
from django.utils import timezone

User = get_user_model()


class Department(models.Model):
    code = models.CharField("department code", max_length=20, unique=True)
    name = models.CharField("department name", max_length=255)
    is_active = models.BooleanField("active", default=True)

    class Meta:
        verbose_name = "department"
        verbose_name_plural = "departments"
        ordering = ["code"]

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        return f"{self.code} - {self.name}"


class Semester(models.Model):
    TERM_CHOICES = [
        ("first", "First semester"),
        ("second", "Second semester"),
    ]

    code = models.CharField("semester code", max_length=20, unique=True)
    name = models.CharField("semester name", max_length=255)
    term = models.CharField("term", max_length=10, choices=TERM_CHOICES, default="first")
    start_date = models.DateField("start date")
    end_date = models.DateField("end date")
    is_active = models.BooleanField("current semester", default=False)

    class Meta:
        verbose_name = "semester"
        verbose_name_plural = "semesters"
        ordering = ["-start_date"]

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        return f"{self.code} ({self.name})"

    def predecessor(self) -> "Semester | None":
        """The latest semester that started before this one."""

        return (
            Semester.objects.filter(start_date__lt=self.start_date)
            .order_by("-start_date")
            .first()
        )


class Course(models.Model):
    code = models.CharField("course code", max_length=20, unique=True)
    title = models.CharField("course title", max_length=255)
    unit = models.PositiveSmallIntegerField("credit units")
    department = models.ForeignKey(Department, on_delete=models.PROTECT, related_name="courses", verbose_name="department")
    level = models.PositiveSmallIntegerField("level", default=100)
    term = models.CharField("term", max_length=10, choices=Semester.TERM_CHOICES, default="first")
    is_core = models.BooleanField("core course", default=True)

    class Meta:
        verbose_name = "course"
        verbose_name_plural = "courses"
        ordering = ["department__code", "level", "code"]

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        return f"{self.code} {self.title} ({self.unit}u)"


class ActiveQuerySet(models.QuerySet):
    def active(self):
        return self.filter(deleted_at__isnull=True)


class Student(models.Model):
    PROBATION_CHOICES = [
        ("none", "None"),
        ("probation", "On probation"),
        ("probation_lifted", "Probation lifted"),
    ]
    TERMINATION_CHOICES = [
        ("none", "None"),
        ("withdrawn", "Withdrawn"),
        ("terminated", "Terminated"),
    ]

    user = models.OneToOneField(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="student_record", verbose_name="account"
    )
    matric_number = models.CharField("matric number", max_length=30, unique=True)
    name = models.CharField("full name", max_length=255)
    department = models.ForeignKey(Department, on_delete=models.PROTECT, related_name="students", verbose_name="department")
    level = models.PositiveSmallIntegerField("level", default=100)
    gpa = models.DecimalField("GPA", max_digits=4, decimal_places=2, null=True, blank=True)
    cgpa = models.DecimalField("CGPA", max_digits=4, decimal_places=2, null=True, blank=True)
    probation_status = models.CharField("probation status", max_length=20, choices=PROBATION_CHOICES, default="none")
    termination_status = models.CharField(
        "termination status", max_length=20, choices=TERMINATION_CHOICES, default="none"
    )
    total_carryovers = models.PositiveIntegerField("outstanding carryovers", default=0)
    deleted_at = models.DateTimeField("deleted at", null=True, blank=True)

    objects = ActiveQuerySet.as_manager()

    class Meta:
        verbose_name = "student"
        verbose_name_plural = "students"
        ordering = ["matric_number"]
        indexes = [models.Index(fields=["department", "level"], name="student_dept_level_idx")]

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        return f"{self.matric_number} {self.name}"


class Result(models.Model):
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="results", verbose_name="student")
    course = models.ForeignKey(Course, on_delete=models.PROTECT, related_name="results", verbose_name="course")
    semester = models.ForeignKey(Semester, on_delete=models.PROTECT, related_name="results", verbose_name="semester")
    score = models.DecimalField("score", max_digits=5, decimal_places=2)
    grade = models.CharField("grade", max_length=2, blank=True)
    points = models.PositiveSmallIntegerField("grade points", default=0)
    course_unit = models.PositiveSmallIntegerField("course units", null=True, blank=True)
    deleted_at = models.DateTimeField("deleted at", null=True, blank=True)

    objects = ActiveQuerySet.as_manager()

    class Meta:
        verbose_name = "result"
        verbose_name_plural = "results"
        unique_together = ("student", "course", "semester")
        ordering = ["student__matric_number", "course__code"]

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        return f"{self.student.matric_number} {self.course.code}: {self.score}"

    def soft_delete(self) -> None:
        self.deleted_at = timezone.now()
        self.save(update_fields=["deleted_at"])


class MasterComputation(models.Model):
    STATUS_CHOICES = [
        ("processing", "Processing"),
        ("completed", "Completed"),
        ("completed_with_errors", "Completed with errors"),
        ("failed", "Failed"),
        ("cancelled", "Cancelled"),
    ]
    PURPOSE_CHOICES = [
        ("final", "Final"),
        ("preview", "Preview"),
    ]

    semester = models.ForeignKey(Semester, on_delete=models.PROTECT, related_name="computations", verbose_name="semester")
    purpose = models.CharField("purpose", max_length=10, choices=PURPOSE_CHOICES, default="final")
    status = models.CharField("status", max_length=30, choices=STATUS_CHOICES, default="processing")
    computed_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="master_computations", verbose_name="computed by"
    )
    total_departments = models.PositiveIntegerField("departments", default=0)
    departments_processed = models.PositiveIntegerField("departments processed", default=0)
    total_students = models.PositiveIntegerField("students", default=0)
    total_carryovers = models.PositiveIntegerField("carryovers", default=0)
    total_failed_students = models.PositiveIntegerField("failed students", default=0)
    overall_average_gpa = models.DecimalField("average GPA", max_digits=4, decimal_places=2, null=True, blank=True)
    department_summaries = models.JSONField("department summaries", default=list, blank=True)
    metadata = models.JSONField("metadata", default=dict, blank=True)
    error = models.TextField("error", blank=True)
    started_at = models.DateTimeField("started at", default=timezone.now)
    completed_at = models.DateTimeField("completed at", null=True, blank=True)
    duration_ms = models.PositiveBigIntegerField("duration (ms)", null=True, blank=True)

    class Meta:
        verbose_name = "master computation"
        verbose_name_plural = "master computations"
        ordering = ["-started_at", "-id"]

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        return f"Computation #{self.pk} {self.semester.code} ({self.status})"


class ComputationSummary(models.Model):
    STATUS_CHOICES = [
        ("pending", "Pending"),
        ("processing", "Processing"),
        ("completed", "Completed"),
        ("completed_with_errors", "Completed with errors"),
        ("failed", "Failed"),
        ("cancelled", "Cancelled"),
    ]
    TERMINAL_STATUSES = ("completed", "completed_with_errors", "failed", "cancelled")

    master_computation = models.ForeignKey(
        MasterComputation, on_delete=models.CASCADE, related_name="summaries", verbose_name="master computation"
    )
    department = models.ForeignKey(Department, on_delete=models.PROTECT, related_name="summaries", verbose_name="department")
    semester = models.ForeignKey(Semester, on_delete=models.PROTECT, related_name="summaries", verbose_name="semester")
    purpose = models.CharField("purpose", max_length=10, choices=MasterComputation.PURPOSE_CHOICES, default="final")
    status = models.CharField("status", max_length=30, choices=STATUS_CHOICES, default="pending")
    computed_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="computation_summaries", verbose_name="computed by"
    )
    progress = models.PositiveSmallIntegerField("progress (%)", default=0)
    total_students = models.PositiveIntegerField("students", default=0)
    students_processed = models.PositiveIntegerField("students processed", default=0)
    students_with_results = models.PositiveIntegerField("students with results", default=0)
    average_gpa = models.DecimalField("average GPA", max_digits=4, decimal_places=2, null=True, blank=True)
    highest_gpa = models.DecimalField("highest GPA", max_digits=4, decimal_places=2, null=True, blank=True)
    lowest_gpa = models.DecimalField("lowest GPA", max_digits=4, decimal_places=2, null=True, blank=True)
    total_carryovers = models.PositiveIntegerField("carryovers", default=0)
    affected_students = models.PositiveIntegerField("students with carryovers", default=0)
    grade_distribution = models.JSONField("degree class distribution", default=dict, blank=True)
    carryover_stats = models.JSONField("carryover statistics", default=dict, blank=True)
    pass_list = models.JSONField("pass list", default=list, blank=True)
    probation_list = models.JSONField("probation list", default=list, blank=True)
    withdrawal_list = models.JSONField("withdrawal list", default=list, blank=True)
    termination_list = models.JSONField("termination list", default=list, blank=True)
    student_lists_by_level = models.JSONField("student lists by level", default=dict, blank=True)
    summary_of_results_by_level = models.JSONField("summary by level", default=dict, blank=True)
    master_sheet_data_by_level = models.JSONField("master sheet data", default=dict, blank=True)
    failed_students = models.JSONField("student errors", default=list, blank=True)
    students_without_results = models.JSONField("students without results", default=list, blank=True)
    error = models.TextField("error", blank=True)
    retry_count = models.PositiveIntegerField("retries", default=0)
    last_retry_at = models.DateTimeField("last retry at", null=True, blank=True)
    started_at = models.DateTimeField("started at", null=True, blank=True)
    completed_at = models.DateTimeField("completed at", null=True, blank=True)
    duration_ms = models.PositiveBigIntegerField("duration (ms)", null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "computation summary"
        verbose_name_plural = "computation summaries"
        ordering = ["master_computation", "department__code"]
        constraints = [
            models.UniqueConstraint(fields=["master_computation", "department"], name="unique_summary_per_department"),
        ]

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        return f"{self.department.code} {self.semester.code} ({self.status})"


class StudentSemesterResult(models.Model):
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="semester_results", verbose_name="student")
    semester = models.ForeignKey(
        Semester, on_delete=models.PROTECT, related_name="student_results", verbose_name="semester"
    )
    department = models.ForeignKey(Department, on_delete=models.PROTECT, related_name="student_results", verbose_name="department")
    level = models.PositiveSmallIntegerField("level", default=100)
    tcp = models.PositiveIntegerField("TCP", default=0)
    tnu = models.PositiveIntegerField("TNU", default=0)
    gpa = models.DecimalField("GPA", max_digits=4, decimal_places=2, null=True, blank=True)
    cumulative_tcp = models.PositiveIntegerField("cumulative TCP", default=0)
    cumulative_tnu = models.PositiveIntegerField("cumulative TNU", default=0)
    cgpa = models.DecimalField("CGPA", max_digits=4, decimal_places=2, null=True, blank=True)
    carryover_count = models.PositiveIntegerField("outstanding carryovers", default=0)
    standing = models.CharField("standing", max_length=20, default="pass")
    degree_class = models.CharField("degree class", max_length=30, blank=True)
    remark = models.CharField("remark", max_length=20, blank=True)
    prior_probation_status = models.CharField("probation status before", max_length=20, default="none")
    prior_termination_status = models.CharField("termination status before", max_length=20, default="none")
    computation_summary = models.ForeignKey(
        ComputationSummary,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="student_results",
        verbose_name="computation summary",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "student semester result"
        verbose_name_plural = "student semester results"
        unique_together = ("student", "semester")
        ordering = ["student__matric_number", "-semester__start_date"]

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        return f"{self.student.matric_number} {self.semester.code}: GPA {self.gpa} CGPA {self.cgpa}"


class CarryoverCourse(models.Model):
    REASON_CHOICES = [
        ("Failed", "Failed"),
        ("NotRegistered", "Not registered"),
    ]

    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="carryovers", verbose_name="student")
    course = models.ForeignKey(Course, on_delete=models.PROTECT, related_name="carryovers", verbose_name="course")
    semester = models.ForeignKey(Semester, on_delete=models.PROTECT, related_name="carryovers", verbose_name="semester")
    department = models.ForeignKey(Department, on_delete=models.PROTECT, related_name="carryovers", verbose_name="department")
    result = models.ForeignKey(
        Result, on_delete=models.SET_NULL, null=True, blank=True, related_name="carryovers", verbose_name="result"
    )
    grade = models.CharField("grade", max_length=2, blank=True)
    score = models.DecimalField("score", max_digits=5, decimal_places=2, null=True, blank=True)
    reason = models.CharField("reason", max_length=20, choices=REASON_CHOICES)
    cleared = models.BooleanField("cleared", default=False)
    cleared_at = models.DateTimeField("cleared at", null=True, blank=True)
    cleared_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="cleared_carryovers", verbose_name="cleared by"
    )
    cleared_in = models.ForeignKey(
        Semester,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="cleared_carryovers",
        verbose_name="cleared in semester",
    )
    remark = models.CharField("remark", max_length=255, blank=True)
    computation_summary = models.ForeignKey(
        ComputationSummary,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="carryovers",
        verbose_name="computation summary",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "carryover course"
        verbose_name_plural = "carryover courses"
        ordering = ["student__matric_number", "-semester__start_date", "course__code"]
        constraints = [
            models.UniqueConstraint(fields=["student", "course", "semester"], name="unique_carryover_per_semester"),
        ]
        indexes = [models.Index(fields=["department", "semester", "cleared"], name="carryover_dept_sem_idx")]

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        state = "cleared" if self.cleared else "outstanding"
        return f"{self.student.matric_number} {self.course.code} ({self.reason}, {state})"


class ComputationJob(models.Model):
    STATUS_CHOICES = [
        ("queued", "Queued"),
        ("running", "Running"),
        ("completed", "Completed"),
        ("failed", "Failed"),
        ("cancelled", "Cancelled"),
    ]

    job_id = models.CharField("job id", max_length=64, unique=True)
    master_computation = models.ForeignKey(
        MasterComputation, on_delete=models.CASCADE, related_name="jobs", verbose_name="master computation"
    )
    department = models.ForeignKey(Department, on_delete=models.PROTECT, related_name="computation_jobs", verbose_name="department")
    semester = models.ForeignKey(Semester, on_delete=models.PROTECT, related_name="computation_jobs", verbose_name="semester")
    computed_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="computation_jobs", verbose_name="computed by"
    )
    is_retry = models.BooleanField("retry run", default=False)
    status = models.CharField("status", max_length=20, choices=STATUS_CHOICES, default="queued")
    attempts = models.PositiveSmallIntegerField("attempts", default=0)
    max_attempts = models.PositiveSmallIntegerField("max attempts", default=3)
    available_at = models.DateTimeField("available at", default=timezone.now)
    locked_at = models.DateTimeField("locked at", null=True, blank=True)
    locked_by = models.CharField("worker", max_length=100, blank=True)
    heartbeat_at = models.DateTimeField("heartbeat at", null=True, blank=True)
    progress = models.PositiveSmallIntegerField("progress (%)", default=0)
    cancel_requested = models.BooleanField("cancel requested", default=False)
    last_error = models.TextField("last error", blank=True)
    result = models.JSONField("result", default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    finished_at = models.DateTimeField("finished at", null=True, blank=True)

    class Meta:
        verbose_name = "computation job"
        verbose_name_plural = "computation jobs"
        ordering = ["available_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["department", "semester"],
                condition=models.Q(status="running"),
                name="one_running_job_per_department",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "available_at"], name="job_status_available_idx"),
            models.Index(fields=["department", "semester", "status"], name="job_dept_sem_status_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        return f"{self.job_id} {self.department.code} ({self.status}, attempt {self.attempts})"

    def payload(self) -> dict:
        return {
            "department_id": self.department_id,
            "master_computation_id": self.master_computation_id,
            "computed_by": self.computed_by_id,
            "job_id": self.job_id,
            "is_retry": self.is_retry,
        }


class NotificationRequest(models.Model):
    TARGET_CHOICES = [
        ("user", "Single user"),
        ("department", "Department"),
    ]

    target = models.CharField("target", max_length=20, choices=TARGET_CHOICES, default="user")
    recipient = models.ForeignKey(
        User, on_delete=models.CASCADE, null=True, blank=True, related_name="standing_notifications", verbose_name="recipient"
    )
    template = models.CharField("template", max_length=100)
    message = models.TextField("message")
    metadata = models.JSONField("metadata", default=dict, blank=True)
    status = models.CharField("status", max_length=20, default="pending")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "notification request"
        verbose_name_plural = "notification requests"
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:  # pragma: no cover - human readable labels
        return f"{self.template} -> {self.recipient_id or self.target}"
