"""JSON views exposing the leave workflow to the HR portal."""
from __future__ import annotations

import json
import logging
from functools import wraps
from typing import Any, Dict, Optional

from django.contrib.auth import get_user_model
from django.core import signing
from django.http import FileResponse, Http404, HttpRequest, JsonResponse, QueryDict
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from .attachments import AttachmentStore, FileAttachment, UrlAttachment, parse_attachment
from .exceptions import ForbiddenError, LeaveWorkflowError, NotFoundError, ValidationError
from .forms import CancellationForm, DecisionForm, LeaveRequestForm, QuotaAdjustmentForm
from .models import LeaveBalance, LeaveRequest
from .workflow import LeaveWorkflow

User = get_user_model()
logger = logging.getLogger(__name__)


def _number(value) -> Optional[float]:
    return float(value) if value is not None else None


def serialize_leave(leave: LeaveRequest) -> Dict[str, Any]:
    return {
        "id": leave.pk,
        "employeeId": leave.employee_id,
        "leaveType": leave.leave_type,
        "isPaid": leave.is_paid,
        "startDate": leave.start_date.isoformat(),
        "endDate": leave.end_date.isoformat(),
        "totalDays": _number(leave.total_days),
        "reason": leave.reason,
        "attachments": leave.attachments,
        "status": leave.status,
        "stage": leave.current_stage if leave.is_pending else None,
        "currentApproverId": leave.current_approver_id,
        "supervisorId": leave.supervisor_id,
        "supervisorStatus": leave.supervisor_status or None,
        "supervisorComment": leave.supervisor_comment or None,
        "supervisorDate": leave.supervisor_date,
        "divisionHeadStatus": leave.division_head_status or None,
        "divisionHeadComment": leave.division_head_comment or None,
        "divisionHeadDate": leave.division_head_date,
        "approvedAt": leave.approved_at,
        "rejectedAt": leave.rejected_at,
        "cancelledAt": leave.cancelled_at,
        "cancellationReason": leave.cancellation_reason or None,
        "createdAt": leave.created_at,
    }


def serialize_balance(balance: LeaveBalance) -> Dict[str, Any]:
    return {
        "id": balance.pk,
        "employeeId": balance.employee_id,
        "year": balance.year,
        "annualQuota": _number(balance.annual_quota),
        "annualUsed": _number(balance.annual_used),
        "annualRemaining": _number(balance.annual_remaining),
        "sickLeaveUsed": _number(balance.sick_leave_used),
        "menstrualLeaveUsed": _number(balance.menstrual_leave_used),
        "unpaidLeaveUsed": _number(balance.unpaid_leave_used),
        "toilBalance": _number(balance.toil_balance),
        "toilUsed": _number(balance.toil_used),
        "toilExpired": _number(balance.toil_expired),
        "quotaOverride": _number(balance.quota_override),
    }


def _payload(request: HttpRequest) -> QueryDict | Dict[str, Any]:
    if request.content_type == "application/json":
        try:
            data = json.loads(request.body or b"{}")
        except json.JSONDecodeError:
            raise ValidationError("Request body is not valid JSON")
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        return data
    return request.POST


def api_view(view):
    """Authenticate the caller and turn workflow errors into JSON responses."""

    @wraps(view)
    def wrapper(request: HttpRequest, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({"error": "Authentication required"}, status=401)
        try:
            return view(request, *args, **kwargs)
        except ValidationError as exc:
            return JsonResponse({"error": "Validation failed", "details": exc.messages}, status=400)
        except LeaveWorkflowError as exc:
            return JsonResponse({"error": exc.message}, status=exc.status_code)

    return wrapper


def _form_errors(form) -> JsonResponse:
    details = [f"{field}: {message}" for field, messages in form.errors.items() for message in messages]
    return JsonResponse({"error": "Validation failed", "details": details}, status=400)


workflow = LeaveWorkflow()


@require_POST
@api_view
def submit_leave_request(request):
    form = LeaveRequestForm(_payload(request), request.FILES)
    if not form.is_valid():
        return _form_errors(form)
    attachments = form.cleaned_data["attachments"]
    upload = form.cleaned_data.get("attachment_file")
    store = AttachmentStore()
    stored = store.store_upload(upload, request.user.pk, category="leave") if upload else None
    if stored:
        attachments.append(stored)
    try:
        leave = workflow.submit(
            request.user,
            leave_type=form.cleaned_data["leave_type"],
            start_date=form.cleaned_data["start_date"],
            end_date=form.cleaned_data["end_date"],
            total_days=form.cleaned_data["total_days"],
            reason=form.cleaned_data["reason"],
            attachments=[attachment.to_dict() for attachment in attachments],
        )
    except (ValidationError, LeaveWorkflowError):
        if stored:
            store.discard(stored.path)
        raise
    return JsonResponse(
        {"success": True, "message": "Leave request submitted successfully", "data": serialize_leave(leave)},
        status=201,
    )


@require_GET
@api_view
def my_leave_requests(request):
    requests = LeaveRequest.objects.for_employee(request.user, request.GET.get("status"))
    return JsonResponse({"success": True, "data": [serialize_leave(leave) for leave in requests]})


@require_GET
@api_view
def my_leave_balance(request):
    balance = workflow.balance(request.user)
    return JsonResponse({"success": True, "data": serialize_balance(balance)})


@require_GET
@api_view
def leave_balance_by_year(request, year: int):
    balance = workflow.balance_for_year(request.user, year)
    return JsonResponse({"success": True, "data": serialize_balance(balance)})


@require_GET
@api_view
def pending_approval_list(request):
    requests = workflow.pending_queue(request.user)
    return JsonResponse({"success": True, "data": [serialize_leave(leave) for leave in requests]})


@require_GET
@api_view
def all_leave_requests(request):
    requests = workflow.all_requests(request.user, request.GET.get("status"))
    return JsonResponse({"success": True, "data": [serialize_leave(leave) for leave in requests]})


@require_http_methods(["GET", "DELETE"])
@api_view
def leave_request_detail(request, pk: int):
    if request.method == "DELETE":
        workflow.delete(workflow.get(pk), request.user)
        return JsonResponse({"success": True, "message": "Leave request deleted successfully"})
    leave = workflow.details(pk, request.user)
    return JsonResponse({"success": True, "data": serialize_leave(leave)})


@require_POST
@api_view
def approve_leave_request(request, pk: int):
    form = DecisionForm(_payload(request))
    if not form.is_valid():
        return _form_errors(form)
    leave = workflow.approve(workflow.get(pk), request.user, form.cleaned_data["comment"])
    return JsonResponse(
        {"success": True, "message": "Leave request approved successfully", "data": serialize_leave(leave)}
    )


@require_POST
@api_view
def reject_leave_request(request, pk: int):
    form = DecisionForm(_payload(request))
    if not form.is_valid():
        return _form_errors(form)
    leave = workflow.reject(workflow.get(pk), request.user, form.cleaned_data["comment"])
    return JsonResponse({"success": True, "message": "Leave request rejected", "data": serialize_leave(leave)})


@require_POST
@api_view
def cancel_leave_request(request, pk: int):
    form = CancellationForm(_payload(request))
    if not form.is_valid():
        return _form_errors(form)
    leave = workflow.cancel(workflow.get(pk), request.user, form.cleaned_data["reason"])
    return JsonResponse({"success": True, "message": "Leave request cancelled", "data": serialize_leave(leave)})


@require_GET
@api_view
def attachment_link(request, pk: int, index: int):
    leave = workflow.get(pk)
    if not leave.can_view(request.user):
        raise ForbiddenError("Not authorized to view attachments of this request")
    try:
        attachment = parse_attachment(leave.attachments[index])
    except IndexError:
        raise NotFoundError("Attachment not found")
    if isinstance(attachment, FileAttachment):
        url = AttachmentStore().get_download_url(attachment.path)
        return JsonResponse({"success": True, "data": {"type": "FILE", "url": url, "filename": attachment.filename}})
    if isinstance(attachment, UrlAttachment):
        return JsonResponse({"success": True, "data": {"type": "URL", "url": attachment.url}})
    raise NotFoundError("Attachment not found")


@require_GET
def attachment_download(request, token: str):
    store = AttachmentStore()
    try:
        key = store.resolve_token(token)
    except signing.SignatureExpired:
        return JsonResponse({"error": "Download link has expired"}, status=410)
    except signing.BadSignature:
        logger.warning("Rejected attachment download with a tampered token")
        raise Http404("Invalid download link")
    if not store.storage.exists(key):
        raise Http404("Attachment not found")
    return FileResponse(store.open(key), as_attachment=True)


@require_POST
@api_view
def adjust_leave_balance(request, employee_id: int, year: int):
    if not request.user.is_hr:
        raise ForbiddenError("HR access required")
    employee = get_object_or_404(User, pk=employee_id)
    balance = LeaveBalance.objects.get_or_create_for(employee, year)
    form = QuotaAdjustmentForm(_payload(request), instance=balance)
    if not form.is_valid():
        return _form_errors(form)
    balance.override_quota(form.cleaned_data["quota_override"], request.user)
    return JsonResponse({"success": True, "data": serialize_balance(balance)})
