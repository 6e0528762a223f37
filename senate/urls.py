"""URL configuration for the senate project."""
from django.contrib import admin
from django.urls import path

from standing.views import (
    CancelComputationView,
    ClearCarryoverView,
    ComputationHistoryView,
    ComputationStatusView,
    ComputeAllView,
    DepartmentCarryoverStatsView,
    RetryFailedDepartmentsView,
    SemesterGPAView,
    StudentCarryoversView,
)

urlpatterns = [
    path("admin/", admin.site.urls),
    path("computation/compute-all/", ComputeAllView.as_view(), name="compute_all"),
    path("computation/status/<int:master_id>/", ComputationStatusView.as_view(), name="computation_status"),
    path("computation/cancel/<int:master_id>/", CancelComputationView.as_view(), name="computation_cancel"),
    path("computation/retry/<int:master_id>/", RetryFailedDepartmentsView.as_view(), name="computation_retry"),
    path("computation/history/", ComputationHistoryView.as_view(), name="computation_history"),
    path(
        "computation/gpa/student/<int:student_id>/semester/<int:semester_id>/",
        SemesterGPAView.as_view(),
        name="semester_gpa",
    ),
    path(
        "computation/carryovers/<int:carryover_id>/clear/",
        ClearCarryoverView.as_view(),
        name="carryover_clear",
    ),
    path(
        "computation/carryovers/department/<int:department_id>/semester/<int:semester_id>/",
        DepartmentCarryoverStatsView.as_view(),
        name="department_carryover_stats",
    ),
    path(
        "computation/carryovers/student/<int:student_id>/",
        StudentCarryoversView.as_view(),
        name="student_carryovers",
    ),
]
