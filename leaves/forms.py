"""Forms parsing leave workflow payloads."""
from __future__ import annotations

from typing import Any, List

from django import forms

from .attachments import Attachment, UrlAttachment, parse_attachments
from .models import LeaveBalance, LeaveType


class LeaveRequestForm(forms.Form):
    """Payload an employee submits for a new leave request."""

    leave_type = forms.ChoiceField(choices=LeaveType.choices)
    start_date = forms.DateField()
    end_date = forms.DateField()
    total_days = forms.DecimalField(max_digits=5, decimal_places=1, min_value=0)
    reason = forms.CharField(widget=forms.Textarea(attrs={"rows": 3}))
    attachments = forms.JSONField(required=False)
    attachment_file = forms.FileField(required=False)
    attachment_url = forms.URLField(required=False, assume_scheme="https")

    def clean_attachments(self) -> List[Attachment]:
        raw = self.cleaned_data.get("attachments")
        try:
            return parse_attachments(raw)
        except (TypeError, AttributeError):
            raise forms.ValidationError("Attachments must be a list of objects.")

    def clean(self) -> dict[str, Any]:
        cleaned = super().clean()
        attachments = list(cleaned.get("attachments") or [])
        if cleaned.get("attachment_url"):
            attachments.append(UrlAttachment(url=cleaned["attachment_url"]))
        cleaned["attachments"] = attachments
        return cleaned


class DecisionForm(forms.Form):
    """Comment an approver attaches to an approval or rejection."""

    comment = forms.CharField(
        required=False,
        widget=forms.Textarea(attrs={"rows": 2, "placeholder": "Add a note for the employee"}),
        label="Comment",
    )


class CancellationForm(forms.Form):
    reason = forms.CharField(required=False, widget=forms.Textarea(attrs={"rows": 2}))


class QuotaAdjustmentForm(forms.ModelForm):
    """HR override of an employee's annual quota for one year."""

    class Meta:
        model = LeaveBalance
        fields = ["quota_override"]
        widgets = {
            "quota_override": forms.NumberInput(attrs={"min": 0, "step": "0.5"}),
        }

    def clean_quota_override(self):
        value = self.cleaned_data.get("quota_override")
        if value is not None and value < 0:
            raise forms.ValidationError("Quota cannot be negative.")
        return value
