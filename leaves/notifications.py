"""Email notification helpers for leave workflow events.

Every helper is fire-and-forget: delivery problems are logged and reported
through the boolean return value, never raised into the workflow.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import EmailMessage

from employees.models import Division

from .approvers import division_head_for, hr_fallback_approver
from .models import LeaveRequest, LeaveType

User = get_user_model()
logger = logging.getLogger(__name__)


def _addresses(people: Iterable[Optional[User]]) -> List[str]:
    seen = []
    for person in people:
        if person is None or not person.email:
            continue
        if person.email.lower() not in {address.lower() for address in seen}:
            seen.append(person.email)
    return seen


def _send(to_addresses: Iterable[str], subject: str, message: str, cc: Iterable[str] = ()) -> bool:
    recipients = [email for email in to_addresses if email]
    if not recipients:
        logger.info("Skipping '%s': no recipient address", subject)
        return False
    email = EmailMessage(
        subject=subject,
        body=message,
        from_email=getattr(settings, "DEFAULT_FROM_EMAIL", "no-reply@example.com"),
        to=recipients,
        cc=[address for address in cc if address],
    )
    try:
        email.send(fail_silently=False)
    except Exception:
        logger.warning("Failed to send '%s' to %s", subject, ", ".join(recipients), exc_info=True)
        return False
    return True


def _describe(request_obj: LeaveRequest) -> str:
    return (
        f"{LeaveType(request_obj.leave_type).label} from {request_obj.start_date} "
        f"to {request_obj.end_date} ({request_obj.total_days} day(s))"
    )


def notify_request_submitted(request_obj: LeaveRequest) -> bool:
    """Ask the initial approver to review a new request."""
    approver = request_obj.current_approver
    if approver is None:
        return False
    employee = request_obj.employee
    subject = f"[Action Required] Leave Approval Request from {employee.display_name}"
    message = (
        f"Hi {approver.display_name},\n\n"
        f"{employee.display_name} requested {_describe(request_obj)}.\n"
        f"Reason: {request_obj.reason}\n"
        "Please review the request in the HR portal."
    )
    return _send([approver.email], subject, message)


def notify_request_approved(request_obj: LeaveRequest, approver: Optional[User] = None) -> bool:
    employee = request_obj.employee
    approver_name = approver.display_name if approver else "your approver"
    subject = f"Leave Request Approved - {request_obj.leave_type}"
    message = (
        f"Hi {employee.display_name},\n\n"
        f"Your request for {_describe(request_obj)} was approved by {approver_name}.\n"
        "Enjoy your time off!"
    )
    return _send([employee.email], subject, message)


def notify_request_rejected(request_obj: LeaveRequest, comment: str, approver: Optional[User] = None) -> bool:
    employee = request_obj.employee
    approver_name = approver.display_name if approver else "your approver"
    subject = f"Leave Request Not Approved - {request_obj.leave_type}"
    message = (
        f"Hi {employee.display_name},\n\n"
        f"Your request for {_describe(request_obj)} was not approved by {approver_name}.\n"
        f"Reason: {comment}"
    )
    return _send([employee.email], subject, message)


def notify_request_cancelled(request_obj: LeaveRequest) -> bool:
    """Tell the employee and everyone in the approval chain."""
    employee = request_obj.employee
    chain = User.objects.filter(pk__in=request_obj.approval_chain_ids())
    subject = f"Leave Request Cancelled - {request_obj.leave_type}"
    message = (
        f"{employee.display_name}'s approved {_describe(request_obj)} has been cancelled.\n"
        f"Reason: {request_obj.cancellation_reason}"
    )
    return _send(_addresses([employee, *chain]), subject, message)


def reminder_recipients(request_obj: LeaveRequest) -> Tuple[List[str], List[str]]:
    """Reminder TO/CC lists: the employee's approver, copying division peers and all division heads."""
    employee = request_obj.employee
    primary = employee.supervisor or division_head_for(employee) or hr_fallback_approver()
    to = _addresses([primary])

    peers: List[User] = []
    if employee.division_id:
        peers = list(
            User.objects.filter(division_id=employee.division_id, is_active=True)
            .exclude(pk=employee.pk)
            .order_by("pk")
        )
    heads = [
        division.head
        for division in Division.objects.select_related("head").exclude(head__isnull=True).order_by("pk")
        if division.head.is_active
    ]
    excluded = {address.lower() for address in to}
    if employee.email:
        excluded.add(employee.email.lower())
    cc = [address for address in _addresses([*peers, *heads]) if address.lower() not in excluded]
    return to, cc


def notify_upcoming_leave(request_obj: LeaveRequest) -> bool:
    """Remind the team that an approved leave starts soon."""
    employee = request_obj.employee
    to, cc = reminder_recipients(request_obj)
    subject = f"[Reminder] Upcoming Team Leave - {employee.display_name} ({request_obj.start_date})"
    message = (
        "Hi team,\n\n"
        f"This is a reminder that {employee.display_name} will be on {_describe(request_obj)}.\n"
        "Please plan handovers accordingly."
    )
    sent = _send(to, subject, message, cc=cc)
    if sent:
        logger.info("Sent reminder for leave request %s to %d recipient(s)", request_obj.pk, len(to) + len(cc))
    return sent
