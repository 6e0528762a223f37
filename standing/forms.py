"""Forms validating control-plane requests."""
from __future__ import annotations

from django import forms
from django.core.exceptions import ValidationError

from .models import Department, MasterComputation, Semester


class ComputeAllForm(forms.Form):
    semester = forms.ModelChoiceField(label="Semester", queryset=Semester.objects.all())
    purpose = forms.ChoiceField(
        label="Purpose", choices=MasterComputation.PURPOSE_CHOICES, required=False, initial="final"
    )
    departments = forms.ModelMultipleChoiceField(
        label="Departments", queryset=Department.objects.filter(is_active=True), required=False
    )

    def clean_purpose(self):
        return self.cleaned_data.get("purpose") or "final"


class RetryDepartmentsForm(forms.Form):
    departments = forms.ModelMultipleChoiceField(label="Departments", queryset=Department.objects.all(), required=False)


class HistoryFilterForm(forms.Form):
    page = forms.IntegerField(min_value=1, required=False)
    per_page = forms.IntegerField(min_value=1, max_value=100, required=False)
    status = forms.ChoiceField(
        choices=[("", "Any")] + MasterComputation.STATUS_CHOICES, required=False
    )
    start_date = forms.DateField(required=False)
    end_date = forms.DateField(required=False)

    def clean(self):
        cleaned = super().clean()
        start, end = cleaned.get("start_date"), cleaned.get("end_date")
        if start and end and start > end:
            raise ValidationError("start_date must not be after end_date.")
        return cleaned


class ClearCarryoverForm(forms.Form):
    remark = forms.CharField(label="Remark", max_length=255, required=False)
