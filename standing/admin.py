"""Admin configuration for academic records and standing computations."""
from django.contrib import admin, messages
from django.contrib.admin.helpers import ActionForm
from django import forms

from .carryover_service import clear_carryover
from .dispatcher import Dispatcher, build_queue
from .errors import ComputationConflict
from .models import (
    CarryoverCourse,
    ComputationJob,
    ComputationSummary,
    Course,
    Department,
    MasterComputation,
    NotificationRequest,
    Result,
    Semester,
    Student,
    StudentSemesterResult,
)


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "is_active")
    list_filter = ("is_active",)
    search_fields = ("code", "name")


class ComputePurposeActionForm(ActionForm):
    purpose = forms.ChoiceField(label="Purpose", choices=MasterComputation.PURPOSE_CHOICES, required=False)


@admin.register(Semester)
class SemesterAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "term", "start_date", "end_date", "is_active")
    list_filter = ("term", "is_active")
    search_fields = ("code", "name")
    action_form = ComputePurposeActionForm
    actions = ["compute_standing"]

    @admin.action(description="Queue standing computation for all departments")
    def compute_standing(self, request, queryset):
        purpose = request.POST.get("purpose") or "final"
        dispatcher = Dispatcher(build_queue())
        for semester in queryset:
            try:
                master = dispatcher.enqueue_all(semester, computed_by=request.user, purpose=purpose)
            except ComputationConflict as exc:
                self.message_user(request, str(exc), level=messages.WARNING)
                continue
            self.message_user(
                request,
                f"Queued computation #{master.pk} for {semester.code} ({master.total_departments} departments).",
                level=messages.SUCCESS,
            )


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ("code", "title", "unit", "department", "level", "term", "is_core")
    list_filter = ("department", "level", "term", "is_core")
    search_fields = ("code", "title")


class CarryoverInline(admin.TabularInline):
    model = CarryoverCourse
    fk_name = "student"
    extra = 0
    fields = ("course", "semester", "reason", "grade", "cleared", "cleared_at")
    readonly_fields = ("cleared_at",)
    verbose_name = "carryover"
    verbose_name_plural = "carryovers"


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = (
        "matric_number",
        "name",
        "department",
        "level",
        "gpa",
        "cgpa",
        "probation_status",
        "termination_status",
        "total_carryovers",
    )
    list_filter = ("department", "level", "probation_status", "termination_status")
    search_fields = ("matric_number", "name")
    inlines = [CarryoverInline]


@admin.register(Result)
class ResultAdmin(admin.ModelAdmin):
    list_display = ("student", "course", "semester", "score", "grade", "deleted_at")
    list_filter = ("semester", "course__department")
    search_fields = ("student__matric_number", "course__code")


@admin.register(StudentSemesterResult)
class StudentSemesterResultAdmin(admin.ModelAdmin):
    list_display = ("student", "semester", "tnu", "gpa", "cumulative_tnu", "cgpa", "standing", "remark")
    list_filter = ("semester", "department", "standing")
    search_fields = ("student__matric_number",)


@admin.register(CarryoverCourse)
class CarryoverCourseAdmin(admin.ModelAdmin):
    list_display = ("student", "course", "semester", "reason", "cleared", "cleared_at", "cleared_by")
    list_filter = ("semester", "department", "reason", "cleared")
    search_fields = ("student__matric_number", "course__code")
    actions = ["mark_cleared"]

    @admin.action(description="Mark selected carryovers as cleared")
    def mark_cleared(self, request, queryset):
        changed = sum(
            1 for carryover in queryset if clear_carryover(carryover, cleared_by=request.user, remark="Cleared from admin")[1]
        )
        self.message_user(request, f"Cleared {changed} carryovers.", level=messages.SUCCESS)


class SummaryInline(admin.TabularInline):
    model = ComputationSummary
    extra = 0
    fields = ("department", "status", "progress", "students_processed", "average_gpa", "retry_count", "error")
    readonly_fields = fields
    can_delete = False


@admin.register(MasterComputation)
class MasterComputationAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "semester",
        "purpose",
        "status",
        "departments_processed",
        "total_departments",
        "total_students",
        "started_at",
        "completed_at",
    )
    list_filter = ("status", "purpose", "semester")
    inlines = [SummaryInline]
    actions = ["cancel_computations", "retry_failed"]

    @admin.action(description="Cancel selected computations")
    def cancel_computations(self, request, queryset):
        dispatcher = Dispatcher(build_queue())
        for master in queryset:
            dispatcher.cancel(master.pk)
        self.message_user(request, "Cancellation requested.", level=messages.INFO)

    @admin.action(description="Retry failed departments")
    def retry_failed(self, request, queryset):
        dispatcher = Dispatcher(build_queue())
        retried = []
        for master in queryset:
            retried.extend(dispatcher.retry_failed_departments(master.pk))
        if retried:
            self.message_user(request, f"Re-queued {', '.join(retried)}.", level=messages.SUCCESS)
        else:
            self.message_user(request, "No failed departments to retry.", level=messages.INFO)


@admin.register(ComputationSummary)
class ComputationSummaryAdmin(admin.ModelAdmin):
    list_display = (
        "department",
        "semester",
        "master_computation",
        "status",
        "progress",
        "students_processed",
        "average_gpa",
        "total_carryovers",
    )
    list_filter = ("status", "semester", "department")


@admin.register(ComputationJob)
class ComputationJobAdmin(admin.ModelAdmin):
    list_display = ("job_id", "department", "master_computation", "status", "attempts", "progress", "available_at")
    list_filter = ("status", "department")
    search_fields = ("job_id",)


@admin.register(NotificationRequest)
class NotificationRequestAdmin(admin.ModelAdmin):
    list_display = ("template", "recipient", "target", "status", "created_at")
    list_filter = ("template", "status")
