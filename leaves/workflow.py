"""The leave request state machine.

PENDING -> APPROVED | REJECTED, APPROVED -> CANCELLED (before the leave
starts), and PENDING requests may be deleted by their owner. Every status
write is a compare-and-swap on the row version, so concurrent approvers
cannot both win. Ledger postings happen inside the transition's transaction;
emails are sent only after it commits.
"""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Mapping, Optional

from django.contrib.auth import get_user_model
from django.db import DatabaseError, transaction
from django.utils import timezone

from . import notifications
from .approvers import determine_initial_approver
from .attachments import parse_attachments, serialize_attachments
from .conf import leave_policy
from .exceptions import (
    ApprovalLockedError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from .models import ApprovalLock, ApprovalStatus, LeaveBalance, LeaveRequest
from .validators import validate_leave_request

User = get_user_model()
logger = logging.getLogger(__name__)

DEFAULT_CANCELLATION_REASON = "Cancelled by employee"
ADMIN_APPROVAL_COMMENT = "Approved by Admin"


class ApprovalLockGate:
    """Fails fast while the payroll recap lock is switched on."""

    def is_locked(self) -> bool:
        return ApprovalLock.objects.filter(pk=1, is_locked=True).exists()

    def check(self) -> None:
        if self.is_locked():
            logger.info("Rejected a leave decision while the approval lock is on")
            raise ApprovalLockedError()


class LeaveWorkflow:
    """Submission, approval, rejection, cancellation and deletion of leave."""

    def __init__(self, lock_gate: Optional[ApprovalLockGate] = None, notifier=None) -> None:
        self.lock_gate = lock_gate or ApprovalLockGate()
        self.notifier = notifier or notifications

    # Reads

    def get(self, request_id) -> LeaveRequest:
        leave = (
            LeaveRequest.objects.select_related("employee", "employee__division", "current_approver", "supervisor")
            .filter(pk=request_id)
            .first()
        )
        if leave is None:
            raise NotFoundError("Leave request not found")
        return leave

    def details(self, request_id, actor) -> LeaveRequest:
        leave = self.get(request_id)
        if not leave.can_view(actor):
            raise ForbiddenError("Not authorized to view this request")
        return leave

    def all_requests(self, actor, status: Optional[str] = None):
        if not actor.is_admin:
            raise ForbiddenError("Administrator access required")
        queryset = LeaveRequest.objects.select_related("employee", "current_approver")
        if status:
            queryset = queryset.filter(status=status)
        return queryset

    def pending_queue(self, actor):
        return LeaveRequest.objects.select_related("employee", "employee__division").pending_for(actor)

    def balance(self, actor, year: Optional[int] = None) -> LeaveBalance:
        return LeaveBalance.objects.get_or_create_for(actor, year)

    def balance_for_year(self, actor, year: int) -> LeaveBalance:
        return LeaveBalance.objects.peek(actor, year)

    # Transitions

    @staticmethod
    def _today() -> date:
        return timezone.localdate()

    def submit(
        self,
        actor,
        leave_type: Optional[str],
        start_date: Optional[date],
        end_date: Optional[date],
        total_days,
        reason: Optional[str],
        attachments: Optional[Iterable[Mapping[str, Any]]] = None,
    ) -> LeaveRequest:
        fields = {
            "leave_type": leave_type,
            "start_date": start_date,
            "end_date": end_date,
            "total_days": total_days,
            "reason": reason,
        }
        missing = [name for name, value in fields.items() if value in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        try:
            total_days = Decimal(str(total_days))
        except InvalidOperation:
            raise ValidationError("Total days must be a number")
        parsed_attachments = parse_attachments(attachments)

        with transaction.atomic():
            # Serializes submissions per employee so the overlap check holds.
            employee = User.objects.select_for_update().get(pk=actor.pk)
            errors = validate_leave_request(
                employee.pk,
                leave_type,
                start_date,
                end_date,
                total_days,
                today=self._today(),
            )
            if errors:
                raise ValidationError(errors)
            approver = determine_initial_approver(employee)
            leave = LeaveRequest.objects.create(
                employee=employee,
                leave_type=leave_type,
                start_date=start_date,
                end_date=end_date,
                total_days=total_days,
                reason=reason,
                attachments=serialize_attachments(parsed_attachments),
                status=LeaveRequest.Status.PENDING,
                current_approver=approver,
                supervisor_id=employee.supervisor_id,
            )
            transaction.on_commit(lambda: self._fire("submission", self.notifier.notify_request_submitted, leave))

        logger.info(
            "Leave request %s submitted by employee %s; routed to %s",
            leave.pk,
            employee.pk,
            approver.pk,
        )
        return leave

    def approve(self, leave: LeaveRequest, actor, comment: str = "") -> LeaveRequest:
        self.lock_gate.check()
        self._authorize_decision(leave, actor, "approve")
        comment = (comment or "").strip()
        now = timezone.now()
        approved = {
            "status": LeaveRequest.Status.APPROVED,
            "approved_at": now,
            "current_approver_id": actor.pk,
        }

        if leave.is_supervisor_stage:
            changes = {
                "supervisor_status": ApprovalStatus.APPROVED,
                "supervisor_comment": comment,
                "supervisor_date": now,
            }
            head_id = leave.division_head_id
            if head_id is not None and head_id != leave.current_approver_id:
                changes["current_approver_id"] = head_id
            else:
                changes.update(approved)
        elif leave.is_division_head_stage:
            changes = {
                "division_head_status": ApprovalStatus.APPROVED,
                "division_head_comment": comment,
                "division_head_date": now,
                **approved,
            }
        else:
            # Direct approval or admin override; keep the audit slot filled.
            changes = {
                "supervisor_status": ApprovalStatus.APPROVED,
                "supervisor_comment": comment or ADMIN_APPROVAL_COMMENT,
                "supervisor_date": now,
                **approved,
            }

        with transaction.atomic():
            leave.compare_and_set(LeaveRequest.Status.PENDING, **changes)
            if leave.status == LeaveRequest.Status.APPROVED:
                self._post_to_ledger(leave, LeaveBalance.apply, "apply")
                transaction.on_commit(lambda: self._after_approval(leave, actor))
            else:
                transaction.on_commit(
                    lambda: self._fire("next approver", self.notifier.notify_request_submitted, leave)
                )

        logger.info(
            "Leave request %s approved by %s (status %s, next approver %s)",
            leave.pk,
            actor.pk,
            leave.status,
            leave.current_approver_id,
        )
        return leave

    def reject(self, leave: LeaveRequest, actor, comment: str) -> LeaveRequest:
        self.lock_gate.check()
        comment = (comment or "").strip()
        if not comment:
            raise ValidationError("Comment is required for rejection")
        self._authorize_decision(leave, actor, "reject")
        now = timezone.now()

        if leave.supervisor_id and leave.supervisor_date is None:
            slot = "supervisor"
        elif leave.division_head_id and leave.division_head_date is None:
            slot = "division_head"
        else:
            slot = "supervisor"
        changes = {
            f"{slot}_status": ApprovalStatus.REJECTED,
            f"{slot}_comment": comment,
            f"{slot}_date": now,
            "status": LeaveRequest.Status.REJECTED,
            "rejected_at": now,
        }

        with transaction.atomic():
            leave.compare_and_set(LeaveRequest.Status.PENDING, **changes)
            transaction.on_commit(
                lambda: self._fire("rejection", self.notifier.notify_request_rejected, leave, comment, actor)
            )

        logger.info("Leave request %s rejected by %s at the %s stage", leave.pk, actor.pk, slot)
        return leave

    def cancel(self, leave: LeaveRequest, actor, reason: str = "") -> LeaveRequest:
        self.lock_gate.check()
        if leave.employee_id != actor.pk:
            raise ForbiddenError("Not authorized to cancel this request")
        if leave.status != LeaveRequest.Status.APPROVED:
            raise ConflictError("Only approved requests can be cancelled")
        if leave.start_date <= self._today():
            raise ConflictError("Cannot cancel leave that has already started")

        with transaction.atomic():
            leave.compare_and_set(
                LeaveRequest.Status.APPROVED,
                status=LeaveRequest.Status.CANCELLED,
                cancelled_at=timezone.now(),
                cancellation_reason=(reason or "").strip() or DEFAULT_CANCELLATION_REASON,
            )
            self._post_to_ledger(leave, LeaveBalance.reverse, "reverse")
            transaction.on_commit(lambda: self._fire("cancellation", self.notifier.notify_request_cancelled, leave))

        logger.info("Leave request %s cancelled by employee %s", leave.pk, actor.pk)
        return leave

    def delete(self, leave: LeaveRequest, actor) -> None:
        if leave.employee_id != actor.pk:
            raise ForbiddenError("Not authorized to delete this request")
        if leave.status != LeaveRequest.Status.PENDING:
            raise ConflictError("Can only delete pending requests")
        deleted, _ = LeaveRequest.objects.filter(
            pk=leave.pk,
            status=LeaveRequest.Status.PENDING,
            version=leave.version,
        ).delete()
        if not deleted:
            raise ConflictError("Request already processed")
        logger.info("Leave request %s deleted by employee %s", leave.pk, actor.pk)

    # Helpers

    def _authorize_decision(self, leave: LeaveRequest, actor, verb: str) -> None:
        if leave.status != LeaveRequest.Status.PENDING:
            raise ConflictError("Request already processed")
        if not (actor.is_admin or leave.current_approver_id == actor.pk):
            raise ForbiddenError(f"You are not authorized to {verb} this request")

    def _post_to_ledger(self, leave: LeaveRequest, posting: Callable[[LeaveRequest], Any], label: str) -> None:
        """Run a ledger posting in a savepoint; a failure leaves the transition committed."""
        try:
            with transaction.atomic():
                posting(leave)
        except DatabaseError:
            logger.error(
                "Ledger %s failed for leave request %s; run reconcile_leave_balances to replay it",
                label,
                leave.pk,
                exc_info=True,
            )

    def _after_approval(self, leave: LeaveRequest, actor) -> None:
        self._fire("approval", self.notifier.notify_request_approved, leave, actor)
        days_until = (leave.start_date - self._today()).days
        if 0 <= days_until < leave_policy()["REMINDER_LEAD_DAYS"]:
            self._fire("reminder", self.notifier.notify_upcoming_leave, leave)

    def _fire(self, label: str, func: Callable[..., Any], *args) -> None:
        try:
            func(*args)
        except Exception:
            logger.exception("Notification '%s' failed for leave request %s", label, args[0].pk)
