"""JSON control-plane views for standing computations."""
from __future__ import annotations

import json

from django.contrib.auth.mixins import LoginRequiredMixin
from django.core.exceptions import ObjectDoesNotExist
from django.http import HttpResponseForbidden, JsonResponse, QueryDict
from django.views import View

from .carryover_service import department_carryover_stats, student_carryovers
from .dispatcher import Dispatcher, build_queue
from .errors import ComputationConflict
from .forms import ClearCarryoverForm, ComputeAllForm, HistoryFilterForm, RetryDepartmentsForm
from .models import Department, Semester, Student


def _request_data(request):
    if request.content_type == "application/json":
        try:
            body = json.loads(request.body or b"{}")
        except ValueError:
            return None
        data = QueryDict(mutable=True)
        for key, value in body.items():
            if isinstance(value, list):
                data.setlist(key, [str(item) for item in value])
            else:
                data[key] = "" if value is None else str(value)
        return data
    if request.method == "POST":
        return request.POST
    return QueryDict(request.body)


def _form_errors(form) -> JsonResponse:
    return JsonResponse({"detail": "Invalid request.", "errors": form.errors.get_json_data()}, status=400)


class StaffJsonView(LoginRequiredMixin, View):
    """Base view: staff only, missing objects become 404 JSON."""

    dispatcher_class = Dispatcher

    def dispatch(self, request, *args, **kwargs):
        if request.user.is_authenticated and not request.user.is_staff:
            return HttpResponseForbidden("Only staff can manage standing computations")
        try:
            return super().dispatch(request, *args, **kwargs)
        except ObjectDoesNotExist as exc:
            return JsonResponse({"detail": str(exc) or "Not found."}, status=404)

    def get_dispatcher(self) -> Dispatcher:
        return self.dispatcher_class(build_queue())


class ComputeAllView(StaffJsonView):
    def post(self, request):
        data = _request_data(request)
        if data is None:
            return JsonResponse({"detail": "Malformed JSON body."}, status=400)
        form = ComputeAllForm(data)
        if not form.is_valid():
            return _form_errors(form)

        departments = form.cleaned_data.get("departments")
        try:
            master = self.get_dispatcher().enqueue_all(
                form.cleaned_data["semester"],
                computed_by=request.user,
                purpose=form.cleaned_data["purpose"],
                department_ids=[department.pk for department in departments] if departments else None,
            )
        except ComputationConflict as exc:
            return JsonResponse({"detail": str(exc)}, status=409)
        return JsonResponse(
            {
                "master_computation_id": master.pk,
                "status": master.status,
                "total_departments": master.total_departments,
            },
            status=202,
        )


class ComputationStatusView(StaffJsonView):
    def get(self, request, master_id):
        return JsonResponse(self.get_dispatcher().get_status(master_id))


class CancelComputationView(StaffJsonView):
    def post(self, request, master_id):
        return JsonResponse(self.get_dispatcher().cancel(master_id))


class RetryFailedDepartmentsView(StaffJsonView):
    def post(self, request, master_id):
        data = _request_data(request)
        if data is None:
            return JsonResponse({"detail": "Malformed JSON body."}, status=400)
        form = RetryDepartmentsForm(data)
        if not form.is_valid():
            return _form_errors(form)
        departments = form.cleaned_data.get("departments")
        retried = self.get_dispatcher().retry_failed_departments(
            master_id, [department.pk for department in departments] if departments else None
        )
        return JsonResponse({"master_computation_id": master_id, "retried": retried}, status=202 if retried else 200)


class ComputationHistoryView(StaffJsonView):
    def get(self, request):
        form = HistoryFilterForm(request.GET)
        if not form.is_valid():
            return _form_errors(form)
        cleaned = form.cleaned_data
        return JsonResponse(
            self.get_dispatcher().get_history(
                page=cleaned.get("page") or 1,
                per_page=cleaned.get("per_page") or 20,
                status=cleaned.get("status") or None,
                start_date=cleaned.get("start_date"),
                end_date=cleaned.get("end_date"),
            )
        )


class SemesterGPAView(StaffJsonView):
    def get(self, request, student_id, semester_id):
        return JsonResponse(self.get_dispatcher().semester_gpa(student_id, semester_id))


class ClearCarryoverView(StaffJsonView):
    http_method_names = ["patch", "post"]

    def patch(self, request, carryover_id):
        data = _request_data(request)
        if data is None:
            return JsonResponse({"detail": "Malformed JSON body."}, status=400)
        form = ClearCarryoverForm(data)
        if not form.is_valid():
            return _form_errors(form)
        carryover, changed = self.get_dispatcher().clear_carryover(
            carryover_id, cleared_by=request.user, remark=form.cleaned_data["remark"]
        )
        return JsonResponse(
            {
                "id": carryover.pk,
                "cleared": carryover.cleared,
                "cleared_at": carryover.cleared_at.isoformat() if carryover.cleared_at else None,
                "changed": changed,
                "total_carryovers": carryover.student.total_carryovers,
            }
        )

    post = patch


class DepartmentCarryoverStatsView(StaffJsonView):
    def get(self, request, department_id, semester_id):
        department = Department.objects.get(pk=department_id)
        semester = Semester.objects.get(pk=semester_id)
        return JsonResponse(department_carryover_stats(department, semester))


class StudentCarryoversView(StaffJsonView):
    def get(self, request, student_id):
        return JsonResponse(student_carryovers(Student.objects.active().get(pk=student_id)))
