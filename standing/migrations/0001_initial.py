# Generated manually for initial Django models
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Department",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=20, unique=True, verbose_name="department code")),
                ("name", models.CharField(max_length=255, verbose_name="department name")),
                ("is_active", models.BooleanField(default=True, verbose_name="active")),
            ],
            options={
                "verbose_name": "department",
                "verbose_name_plural": "departments",
                "ordering": ["code"],
            },
        ),
        migrations.CreateModel(
            name="Semester",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=20, unique=True, verbose_name="semester code")),
                ("name", models.CharField(max_length=255, verbose_name="semester name")),
                (
                    "term",
                    models.CharField(
                        choices=[("first", "First semester"), ("second", "Second semester")],
                        default="first",
                        max_length=10,
                        verbose_name="term",
                    ),
                ),
                ("start_date", models.DateField(verbose_name="start date")),
                ("end_date", models.DateField(verbose_name="end date")),
                ("is_active", models.BooleanField(default=False, verbose_name="current semester")),
            ],
            options={
                "verbose_name": "semester",
                "verbose_name_plural": "semesters",
                "ordering": ["-start_date"],
            },
        ),
        migrations.CreateModel(
            name="Course",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=20, unique=True, verbose_name="course code")),
                ("title", models.CharField(max_length=255, verbose_name="course title")),
                ("unit", models.PositiveSmallIntegerField(verbose_name="credit units")),
                ("level", models.PositiveSmallIntegerField(default=100, verbose_name="level")),
                (
                    "term",
                    models.CharField(
                        choices=[("first", "First semester"), ("second", "Second semester")],
                        default="first",
                        max_length=10,
                        verbose_name="term",
                    ),
                ),
                ("is_core", models.BooleanField(default=True, verbose_name="core course")),
                (
                    "department",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="courses",
                        to="standing.department",
                        verbose_name="department",
                    ),
                ),
            ],
            options={
                "verbose_name": "course",
                "verbose_name_plural": "courses",
                "ordering": ["department__code", "level", "code"],
            },
        ),
        migrations.CreateModel(
            name="Student",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("matric_number", models.CharField(max_length=30, unique=True, verbose_name="matric number")),
                ("name", models.CharField(max_length=255, verbose_name="full name")),
                ("level", models.PositiveSmallIntegerField(default=100, verbose_name="level")),
                ("gpa", models.DecimalField(blank=True, decimal_places=2, max_digits=4, null=True, verbose_name="GPA")),
                ("cgpa", models.DecimalField(blank=True, decimal_places=2, max_digits=4, null=True, verbose_name="CGPA")),
                (
                    "probation_status",
                    models.CharField(
                        choices=[
                            ("none", "None"),
                            ("probation", "On probation"),
                            ("probation_lifted", "Probation lifted"),
                        ],
                        default="none",
                        max_length=20,
                        verbose_name="probation status",
                    ),
                ),
                (
                    "termination_status",
                    models.CharField(
                        choices=[("none", "None"), ("withdrawn", "Withdrawn"), ("terminated", "Terminated")],
                        default="none",
                        max_length=20,
                        verbose_name="termination status",
                    ),
                ),
                ("total_carryovers", models.PositiveIntegerField(default=0, verbose_name="outstanding carryovers")),
                ("deleted_at", models.DateTimeField(blank=True, null=True, verbose_name="deleted at")),
                (
                    "department",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="students",
                        to="standing.department",
                        verbose_name="department",
                    ),
                ),
                (
                    "user",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="student_record",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="account",
                    ),
                ),
            ],
            options={
                "verbose_name": "student",
                "verbose_name_plural": "students",
                "ordering": ["matric_number"],
                "indexes": [models.Index(fields=["department", "level"], name="student_dept_level_idx")],
            },
        ),
        migrations.CreateModel(
            name="Result",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("score", models.DecimalField(decimal_places=2, max_digits=5, verbose_name="score")),
                ("grade", models.CharField(blank=True, max_length=2, verbose_name="grade")),
                ("points", models.PositiveSmallIntegerField(default=0, verbose_name="grade points")),
                ("course_unit", models.PositiveSmallIntegerField(blank=True, null=True, verbose_name="course units")),
                ("deleted_at", models.DateTimeField(blank=True, null=True, verbose_name="deleted at")),
                (
                    "course",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="results",
                        to="standing.course",
                        verbose_name="course",
                    ),
                ),
                (
                    "semester",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="results",
                        to="standing.semester",
                        verbose_name="semester",
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="results",
                        to="standing.student",
                        verbose_name="student",
                    ),
                ),
            ],
            options={
                "verbose_name": "result",
                "verbose_name_plural": "results",
                "ordering": ["student__matric_number", "course__code"],
                "unique_together": {("student", "course", "semester")},
            },
        ),
        migrations.CreateModel(
            name="MasterComputation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "purpose",
                    models.CharField(
                        choices=[("final", "Final"), ("preview", "Preview")],
                        default="final",
                        max_length=10,
                        verbose_name="purpose",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("completed_with_errors", "Completed with errors"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="processing",
                        max_length=30,
                        verbose_name="status",
                    ),
                ),
                ("total_departments", models.PositiveIntegerField(default=0, verbose_name="departments")),
                ("departments_processed", models.PositiveIntegerField(default=0, verbose_name="departments processed")),
                ("total_students", models.PositiveIntegerField(default=0, verbose_name="students")),
                ("total_carryovers", models.PositiveIntegerField(default=0, verbose_name="carryovers")),
                ("total_failed_students", models.PositiveIntegerField(default=0, verbose_name="failed students")),
                (
                    "overall_average_gpa",
                    models.DecimalField(blank=True, decimal_places=2, max_digits=4, null=True, verbose_name="average GPA"),
                ),
                ("department_summaries", models.JSONField(blank=True, default=list, verbose_name="department summaries")),
                ("metadata", models.JSONField(blank=True, default=dict, verbose_name="metadata")),
                ("error", models.TextField(blank=True, verbose_name="error")),
                ("started_at", models.DateTimeField(default=django.utils.timezone.now, verbose_name="started at")),
                ("completed_at", models.DateTimeField(blank=True, null=True, verbose_name="completed at")),
                ("duration_ms", models.PositiveBigIntegerField(blank=True, null=True, verbose_name="duration (ms)")),
                (
                    "computed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="master_computations",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="computed by",
                    ),
                ),
                (
                    "semester",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="computations",
                        to="standing.semester",
                        verbose_name="semester",
                    ),
                ),
            ],
            options={
                "verbose_name": "master computation",
                "verbose_name_plural": "master computations",
                "ordering": ["-started_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="ComputationSummary",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "purpose",
                    models.CharField(
                        choices=[("final", "Final"), ("preview", "Preview")],
                        default="final",
                        max_length=10,
                        verbose_name="purpose",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("completed_with_errors", "Completed with errors"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="pending",
                        max_length=30,
                        verbose_name="status",
                    ),
                ),
                ("progress", models.PositiveSmallIntegerField(default=0, verbose_name="progress (%)")),
                ("total_students", models.PositiveIntegerField(default=0, verbose_name="students")),
                ("students_processed", models.PositiveIntegerField(default=0, verbose_name="students processed")),
                ("students_with_results", models.PositiveIntegerField(default=0, verbose_name="students with results")),
                (
                    "average_gpa",
                    models.DecimalField(blank=True, decimal_places=2, max_digits=4, null=True, verbose_name="average GPA"),
                ),
                (
                    "highest_gpa",
                    models.DecimalField(blank=True, decimal_places=2, max_digits=4, null=True, verbose_name="highest GPA"),
                ),
                (
                    "lowest_gpa",
                    models.DecimalField(blank=True, decimal_places=2, max_digits=4, null=True, verbose_name="lowest GPA"),
                ),
                ("total_carryovers", models.PositiveIntegerField(default=0, verbose_name="carryovers")),
                ("affected_students", models.PositiveIntegerField(default=0, verbose_name="students with carryovers")),
                ("grade_distribution", models.JSONField(blank=True, default=dict, verbose_name="degree class distribution")),
                ("carryover_stats", models.JSONField(blank=True, default=dict, verbose_name="carryover statistics")),
                ("pass_list", models.JSONField(blank=True, default=list, verbose_name="pass list")),
                ("probation_list", models.JSONField(blank=True, default=list, verbose_name="probation list")),
                ("withdrawal_list", models.JSONField(blank=True, default=list, verbose_name="withdrawal list")),
                ("termination_list", models.JSONField(blank=True, default=list, verbose_name="termination list")),
                ("student_lists_by_level", models.JSONField(blank=True, default=dict, verbose_name="student lists by level")),
                ("summary_of_results_by_level", models.JSONField(blank=True, default=dict, verbose_name="summary by level")),
                ("master_sheet_data_by_level", models.JSONField(blank=True, default=dict, verbose_name="master sheet data")),
                ("failed_students", models.JSONField(blank=True, default=list, verbose_name="student errors")),
                (
                    "students_without_results",
                    models.JSONField(blank=True, default=list, verbose_name="students without results"),
                ),
                ("error", models.TextField(blank=True, verbose_name="error")),
                ("retry_count", models.PositiveIntegerField(default=0, verbose_name="retries")),
                ("last_retry_at", models.DateTimeField(blank=True, null=True, verbose_name="last retry at")),
                ("started_at", models.DateTimeField(blank=True, null=True, verbose_name="started at")),
                ("completed_at", models.DateTimeField(blank=True, null=True, verbose_name="completed at")),
                ("duration_ms", models.PositiveBigIntegerField(blank=True, null=True, verbose_name="duration (ms)")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "computed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="computation_summaries",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="computed by",
                    ),
                ),
                (
                    "department",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="summaries",
                        to="standing.department",
                        verbose_name="department",
                    ),
                ),
                (
                    "master_computation",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="summaries",
                        to="standing.mastercomputation",
                        verbose_name="master computation",
                    ),
                ),
                (
                    "semester",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="summaries",
                        to="standing.semester",
                        verbose_name="semester",
                    ),
                ),
            ],
            options={
                "verbose_name": "computation summary",
                "verbose_name_plural": "computation summaries",
                "ordering": ["master_computation", "department__code"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("master_computation", "department"), name="unique_summary_per_department"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StudentSemesterResult",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("level", models.PositiveSmallIntegerField(default=100, verbose_name="level")),
                ("tcp", models.PositiveIntegerField(default=0, verbose_name="TCP")),
                ("tnu", models.PositiveIntegerField(default=0, verbose_name="TNU")),
                ("gpa", models.DecimalField(blank=True, decimal_places=2, max_digits=4, null=True, verbose_name="GPA")),
                ("cumulative_tcp", models.PositiveIntegerField(default=0, verbose_name="cumulative TCP")),
                ("cumulative_tnu", models.PositiveIntegerField(default=0, verbose_name="cumulative TNU")),
                ("cgpa", models.DecimalField(blank=True, decimal_places=2, max_digits=4, null=True, verbose_name="CGPA")),
                ("carryover_count", models.PositiveIntegerField(default=0, verbose_name="outstanding carryovers")),
                ("standing", models.CharField(default="pass", max_length=20, verbose_name="standing")),
                ("degree_class", models.CharField(blank=True, max_length=30, verbose_name="degree class")),
                ("remark", models.CharField(blank=True, max_length=20, verbose_name="remark")),
                (
                    "prior_probation_status",
                    models.CharField(default="none", max_length=20, verbose_name="probation status before"),
                ),
                (
                    "prior_termination_status",
                    models.CharField(default="none", max_length=20, verbose_name="termination status before"),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "computation_summary",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="student_results",
                        to="standing.computationsummary",
                        verbose_name="computation summary",
                    ),
                ),
                (
                    "department",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="student_results",
                        to="standing.department",
                        verbose_name="department",
                    ),
                ),
                (
                    "semester",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="student_results",
                        to="standing.semester",
                        verbose_name="semester",
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="semester_results",
                        to="standing.student",
                        verbose_name="student",
                    ),
                ),
            ],
            options={
                "verbose_name": "student semester result",
                "verbose_name_plural": "student semester results",
                "ordering": ["student__matric_number", "-semester__start_date"],
                "unique_together": {("student", "semester")},
            },
        ),
        migrations.CreateModel(
            name="CarryoverCourse",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("grade", models.CharField(blank=True, max_length=2, verbose_name="grade")),
                ("score", models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True, verbose_name="score")),
                (
                    "reason",
                    models.CharField(
                        choices=[("Failed", "Failed"), ("NotRegistered", "Not registered")],
                        max_length=20,
                        verbose_name="reason",
                    ),
                ),
                ("cleared", models.BooleanField(default=False, verbose_name="cleared")),
                ("cleared_at", models.DateTimeField(blank=True, null=True, verbose_name="cleared at")),
                ("remark", models.CharField(blank=True, max_length=255, verbose_name="remark")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "cleared_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="cleared_carryovers",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="cleared by",
                    ),
                ),
                (
                    "cleared_in",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="cleared_carryovers",
                        to="standing.semester",
                        verbose_name="cleared in semester",
                    ),
                ),
                (
                    "computation_summary",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="carryovers",
                        to="standing.computationsummary",
                        verbose_name="computation summary",
                    ),
                ),
                (
                    "course",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="carryovers",
                        to="standing.course",
                        verbose_name="course",
                    ),
                ),
                (
                    "department",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="carryovers",
                        to="standing.department",
                        verbose_name="department",
                    ),
                ),
                (
                    "result",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="carryovers",
                        to="standing.result",
                        verbose_name="result",
                    ),
                ),
                (
                    "semester",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="carryovers",
                        to="standing.semester",
                        verbose_name="semester",
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="carryovers",
                        to="standing.student",
                        verbose_name="student",
                    ),
                ),
            ],
            options={
                "verbose_name": "carryover course",
                "verbose_name_plural": "carryover courses",
                "ordering": ["student__matric_number", "-semester__start_date", "course__code"],
                "indexes": [
                    models.Index(fields=["department", "semester", "cleared"], name="carryover_dept_sem_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("student", "course", "semester"), name="unique_carryover_per_semester"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ComputationJob",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("job_id", models.CharField(max_length=64, unique=True, verbose_name="job id")),
                ("is_retry", models.BooleanField(default=False, verbose_name="retry run")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("queued", "Queued"),
                            ("running", "Running"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="queued",
                        max_length=20,
                        verbose_name="status",
                    ),
                ),
                ("attempts", models.PositiveSmallIntegerField(default=0, verbose_name="attempts")),
                ("max_attempts", models.PositiveSmallIntegerField(default=3, verbose_name="max attempts")),
                ("available_at", models.DateTimeField(default=django.utils.timezone.now, verbose_name="available at")),
                ("locked_at", models.DateTimeField(blank=True, null=True, verbose_name="locked at")),
                ("locked_by", models.CharField(blank=True, max_length=100, verbose_name="worker")),
                ("heartbeat_at", models.DateTimeField(blank=True, null=True, verbose_name="heartbeat at")),
                ("progress", models.PositiveSmallIntegerField(default=0, verbose_name="progress (%)")),
                ("cancel_requested", models.BooleanField(default=False, verbose_name="cancel requested")),
                ("last_error", models.TextField(blank=True, verbose_name="last error")),
                ("result", models.JSONField(blank=True, default=dict, verbose_name="result")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("finished_at", models.DateTimeField(blank=True, null=True, verbose_name="finished at")),
                (
                    "computed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="computation_jobs",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="computed by",
                    ),
                ),
                (
                    "department",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="computation_jobs",
                        to="standing.department",
                        verbose_name="department",
                    ),
                ),
                (
                    "master_computation",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="jobs",
                        to="standing.mastercomputation",
                        verbose_name="master computation",
                    ),
                ),
                (
                    "semester",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="computation_jobs",
                        to="standing.semester",
                        verbose_name="semester",
                    ),
                ),
            ],
            options={
                "verbose_name": "computation job",
                "verbose_name_plural": "computation jobs",
                "ordering": ["available_at", "id"],
                "indexes": [
                    models.Index(fields=["status", "available_at"], name="job_status_available_idx"),
                    models.Index(fields=["department", "semester", "status"], name="job_dept_sem_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="NotificationRequest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "target",
                    models.CharField(
                        choices=[("user", "Single user"), ("department", "Department")],
                        default="user",
                        max_length=20,
                        verbose_name="target",
                    ),
                ),
                ("template", models.CharField(max_length=100, verbose_name="template")),
                ("message", models.TextField(verbose_name="message")),
                ("metadata", models.JSONField(blank=True, default=dict, verbose_name="metadata")),
                ("status", models.CharField(default="pending", max_length=20, verbose_name="status")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "recipient",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="standing_notifications",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="recipient",
                    ),
                ),
            ],
            options={
                "verbose_name": "notification request",
                "verbose_name_plural": "notification requests",
                "ordering": ["-created_at", "-id"],
            },
        ),
    ]
