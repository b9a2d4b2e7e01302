from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.core import mail
from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone

from employees.models import Division
from leaves.exceptions import (
    ApprovalLockedError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from leaves.models import ApprovalLock, ApprovalStatus, LeaveBalance, LeaveBalanceEntry, LeaveRequest, LeaveType
from leaves.workflow import LeaveWorkflow

from .helpers import first_monday, make_employee, next_year


class LeaveWorkflowTests(TestCase):
    def setUp(self):
        self.admin = make_employee("admin", access_level=1)
        self.hr = make_employee("hr", access_level=2)
        self.head = make_employee("head", access_level=3)
        self.division = Division.objects.create(name="Engineering", head=self.head)
        self.supervisor = make_employee("supervisor", access_level=4)
        self.employee = make_employee(
            "employee",
            gender="FEMALE",
            supervisor=self.supervisor,
            division=self.division,
        )
        self.workflow = LeaveWorkflow()
        self.year = next_year()
        self.monday = first_monday(self.year, 3)

    def submit(self, employee=None, leave_type=LeaveType.ANNUAL_LEAVE, days=3, **kwargs):
        with self.captureOnCommitCallbacks(execute=True):
            return self.workflow.submit(
                employee or self.employee,
                leave_type=leave_type,
                start_date=self.monday,
                end_date=self.monday + timedelta(days=days - 1),
                total_days=days,
                reason="Family trip",
                **kwargs,
            )

    def approve(self, leave, actor, comment=""):
        with self.captureOnCommitCallbacks(execute=True):
            return self.workflow.approve(leave, actor, comment)

    def balance(self, employee=None, year=None):
        return LeaveBalance.objects.get(employee=employee or self.employee, year=year or self.year)

    def test_two_stage_approval_consumes_annual_balance(self):
        opened = LeaveBalance.objects.get_or_create_for(self.employee, self.year)
        LeaveBalance.objects.filter(pk=opened.pk).update(annual_used=4, annual_remaining=10)

        leave = self.submit()
        self.assertEqual(leave.status, LeaveRequest.Status.PENDING)
        self.assertEqual(leave.current_approver, self.supervisor)
        self.assertEqual(leave.supervisor, self.supervisor)
        self.assertEqual(mail.outbox[-1].to, [self.supervisor.email])
        self.assertIn("[Action Required]", mail.outbox[-1].subject)

        self.approve(leave, self.supervisor, "Fine by me")
        leave.refresh_from_db()
        self.assertEqual(leave.status, LeaveRequest.Status.PENDING)
        self.assertEqual(leave.current_approver, self.head)
        self.assertEqual(leave.supervisor_status, ApprovalStatus.APPROVED)
        self.assertEqual(leave.supervisor_comment, "Fine by me")
        self.assertEqual(mail.outbox[-1].to, [self.head.email])

        self.approve(leave, self.head)
        leave.refresh_from_db()
        self.assertEqual(leave.status, LeaveRequest.Status.APPROVED)
        self.assertEqual(leave.division_head_status, ApprovalStatus.APPROVED)
        self.assertIsNotNone(leave.approved_at)
        balance = self.balance()
        self.assertEqual(balance.annual_used, Decimal(7))
        self.assertEqual(balance.annual_remaining, Decimal(7))
        self.assertEqual(mail.outbox[-1].to, [self.employee.email])

    def test_second_pending_request_cannot_overdraw_balance(self):
        opened = LeaveBalance.objects.get_or_create_for(self.employee, self.year)
        LeaveBalance.objects.filter(pk=opened.pk).update(annual_used=11, annual_remaining=3)
        self.submit()

        april = first_monday(self.year, 4)
        with self.assertRaises(ValidationError):
            self.workflow.submit(self.employee, LeaveType.ANNUAL_LEAVE, april, april + timedelta(days=2), 3, "Trip")
        self.assertEqual(LeaveRequest.objects.filter(employee=self.employee).count(), 1)

    def test_division_head_approves_directly_without_supervisor(self):
        employee = make_employee("nosup", division=self.division)
        leave = self.submit(employee, LeaveType.SICK_LEAVE, days=1)
        self.assertEqual(leave.current_approver, self.head)

        self.approve(leave, self.head)
        self.assertEqual(leave.status, LeaveRequest.Status.APPROVED)
        self.assertEqual(leave.supervisor_status, "")
        balance = self.balance(employee)
        self.assertEqual(balance.sick_leave_used, Decimal(1))
        self.assertEqual(balance.annual_remaining, Decimal(14))

    def test_supervisor_who_heads_the_division_completes_approval(self):
        self.division.head = self.supervisor
        self.division.save()
        leave = self.submit()
        self.approve(leave, self.supervisor)
        self.assertEqual(leave.status, LeaveRequest.Status.APPROVED)
        self.assertEqual(leave.supervisor_status, ApprovalStatus.APPROVED)

    def test_direct_approval_backfills_supervisor_audit(self):
        loner = make_employee("loner")
        leave = self.submit(loner, LeaveType.MARRIAGE_LEAVE)
        self.assertEqual(leave.current_approver, self.admin)

        self.approve(leave, self.admin)
        self.assertEqual(leave.status, LeaveRequest.Status.APPROVED)
        self.assertEqual(leave.supervisor_status, ApprovalStatus.APPROVED)
        self.assertEqual(leave.supervisor_comment, "Approved by Admin")
        self.assertIsNotNone(leave.supervisor_date)

    def test_male_menstrual_leave_is_rejected_without_a_record(self):
        male = make_employee("budi", gender="MALE", supervisor=self.supervisor)
        today = timezone.localdate()
        with self.assertRaises(ValidationError) as ctx:
            self.workflow.submit(male, LeaveType.MENSTRUAL_LEAVE, today, today, 1, "Cramps")
        self.assertIn("Menstrual Leave is only available to female employees", ctx.exception.messages)
        self.assertFalse(LeaveRequest.objects.exists())

    def test_six_working_days_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            self.workflow.submit(
                self.employee,
                LeaveType.ANNUAL_LEAVE,
                self.monday,
                self.monday + timedelta(days=7),
                6,
                "Long trip",
            )
        self.assertIn("Maximum 5 working days per leave request", ctx.exception.messages)
        self.assertFalse(LeaveRequest.objects.exists())

    def test_missing_fields_reported(self):
        with self.assertRaises(ValidationError) as ctx:
            self.workflow.submit(self.employee, None, self.monday, self.monday, 1, "")
        self.assertEqual(ctx.exception.messages, ["Missing required fields: leave_type, reason"])

    def test_submission_survives_notifier_failure(self):
        notifier = mock.Mock()
        notifier.notify_request_submitted.side_effect = RuntimeError("smtp down")
        self.workflow = LeaveWorkflow(notifier=notifier)

        with self.assertLogs("leaves.workflow", level="ERROR"):
            leave = self.submit()
        self.assertTrue(LeaveRequest.objects.filter(pk=leave.pk).exists())
        notifier.notify_request_submitted.assert_called_once_with(leave)

    def test_concurrent_approvals_only_one_wins(self):
        leave = self.submit()
        first = LeaveRequest.objects.get(pk=leave.pk)
        second = LeaveRequest.objects.get(pk=leave.pk)

        self.approve(first, self.supervisor)
        with self.assertRaises(ConflictError):
            self.approve(second, self.supervisor)

        leave.refresh_from_db()
        self.assertEqual(leave.version, 1)
        self.assertEqual(leave.current_approver, self.head)

    def test_processed_request_cannot_be_approved_again(self):
        leave = self.submit(days=1)
        self.approve(leave, self.supervisor)
        self.approve(leave, self.head)
        version = leave.version

        with self.assertRaises(ConflictError):
            self.workflow.approve(leave, self.admin)
        leave.refresh_from_db()
        self.assertEqual(leave.version, version)
        self.assertEqual(LeaveBalanceEntry.objects.filter(leave_request=leave).count(), 1)

    def test_only_current_approver_or_admin_decides(self):
        leave = self.submit()
        with self.assertRaises(ForbiddenError):
            self.workflow.approve(leave, self.head)
        with self.assertRaises(ForbiddenError):
            self.workflow.reject(leave, self.hr, "No")

    def test_supervisor_rejection_stamps_supervisor_slot(self):
        leave = self.submit()
        with self.captureOnCommitCallbacks(execute=True):
            self.workflow.reject(leave, self.supervisor, "Busy sprint")

        leave.refresh_from_db()
        self.assertEqual(leave.status, LeaveRequest.Status.REJECTED)
        self.assertEqual(leave.supervisor_status, ApprovalStatus.REJECTED)
        self.assertEqual(leave.supervisor_comment, "Busy sprint")
        self.assertEqual(leave.division_head_status, "")
        self.assertIsNotNone(leave.rejected_at)
        self.assertEqual(mail.outbox[-1].to, [self.employee.email])
        self.assertIn("Busy sprint", mail.outbox[-1].body)

    def test_division_head_rejection_stamps_head_slot(self):
        leave = self.submit()
        self.approve(leave, self.supervisor)
        self.workflow.reject(leave, self.head, "Release week")

        leave.refresh_from_db()
        self.assertEqual(leave.status, LeaveRequest.Status.REJECTED)
        self.assertEqual(leave.supervisor_status, ApprovalStatus.APPROVED)
        self.assertEqual(leave.division_head_status, ApprovalStatus.REJECTED)
        self.assertEqual(leave.division_head_comment, "Release week")
        self.assertFalse(LeaveBalanceEntry.objects.exists())

    def test_rejection_requires_comment(self):
        leave = self.submit()
        with self.assertRaises(ValidationError) as ctx:
            self.workflow.reject(leave, self.supervisor, "   ")
        self.assertEqual(ctx.exception.messages, ["Comment is required for rejection"])
        leave.refresh_from_db()
        self.assertEqual(leave.status, LeaveRequest.Status.PENDING)

    def _approved_leave(self, start, leave_type=LeaveType.ANNUAL_LEAVE):
        leave = LeaveRequest.objects.create(
            employee=self.employee,
            leave_type=leave_type,
            start_date=start,
            end_date=start,
            total_days=1,
            reason="Dentist",
            status=LeaveRequest.Status.APPROVED,
            current_approver=self.head,
            supervisor=self.supervisor,
        )
        LeaveBalance.apply(leave)
        return leave

    def test_cancel_restores_balance(self):
        tomorrow = timezone.localdate() + timedelta(days=1)
        before = LeaveBalance.objects.get_or_create_for(self.employee, tomorrow.year)
        leave = self._approved_leave(tomorrow)

        with self.captureOnCommitCallbacks(execute=True):
            self.workflow.cancel(leave, self.employee)

        leave.refresh_from_db()
        self.assertEqual(leave.status, LeaveRequest.Status.CANCELLED)
        self.assertEqual(leave.cancellation_reason, "Cancelled by employee")
        self.assertIsNotNone(leave.cancelled_at)
        after = self.balance(year=tomorrow.year)
        self.assertEqual(after.annual_used, before.annual_used)
        self.assertEqual(after.annual_remaining, before.annual_remaining)
        self.assertEqual(len(mail.outbox), 1)
        self.assertCountEqual(
            mail.outbox[0].to,
            [self.employee.email, self.supervisor.email, self.head.email],
        )

    def test_cancel_guards(self):
        started = self._approved_leave(timezone.localdate())
        with self.assertRaisesMessage(ConflictError, "Cannot cancel leave that has already started"):
            self.workflow.cancel(started, self.employee)

        upcoming = self._approved_leave(timezone.localdate() + timedelta(days=30), LeaveType.SICK_LEAVE)
        with self.assertRaises(ForbiddenError):
            self.workflow.cancel(upcoming, self.supervisor)

        pending = self.submit()
        with self.assertRaisesMessage(ConflictError, "Only approved requests can be cancelled"):
            self.workflow.cancel(pending, self.employee)

    def test_delete_pending_request(self):
        leave = self.submit()
        with self.assertRaises(ForbiddenError):
            self.workflow.delete(leave, self.supervisor)

        self.workflow.delete(leave, self.employee)
        self.assertFalse(LeaveRequest.objects.filter(pk=leave.pk).exists())

    def test_delete_refuses_processed_or_stale_requests(self):
        leave = self.submit()
        stale = LeaveRequest.objects.get(pk=leave.pk)
        self.approve(leave, self.supervisor)

        with self.assertRaises(ConflictError):
            self.workflow.delete(stale, self.employee)
        self.approve(leave, self.head)
        with self.assertRaisesMessage(ConflictError, "Can only delete pending requests"):
            self.workflow.delete(leave, self.employee)

    def test_recap_lock_blocks_decisions(self):
        leave = self.submit()
        ApprovalLock.objects.create(is_locked=True, reason="Payroll recap")

        with self.assertRaises(ApprovalLockedError):
            self.workflow.approve(leave, self.supervisor)
        with self.assertRaises(ApprovalLockedError):
            self.workflow.reject(leave, self.supervisor, "No")
        leave.refresh_from_db()
        self.assertEqual(leave.status, LeaveRequest.Status.PENDING)
        self.assertEqual(leave.version, 0)

        lock = ApprovalLock.load()
        lock.is_locked = False
        lock.save()
        self.approve(leave, self.supervisor)
        self.assertEqual(leave.current_approver, self.head)

    def test_injected_lock_gate(self):
        gate = mock.Mock()
        gate.check.side_effect = ApprovalLockedError()
        leave = self.submit()
        with self.assertRaises(ApprovalLockedError):
            LeaveWorkflow(lock_gate=gate).approve(leave, self.supervisor)
        gate.check.assert_called_once_with()

    def test_approval_within_lead_time_sends_reminder(self):
        employee = make_employee("soon", division=self.division)
        start = timezone.localdate() + timedelta(days=3)
        leave = LeaveRequest.objects.create(
            employee=employee,
            leave_type=LeaveType.SICK_LEAVE,
            start_date=start,
            end_date=start,
            total_days=1,
            reason="Surgery",
            current_approver=self.head,
        )

        self.approve(leave, self.head)
        subjects = [message.subject for message in mail.outbox]
        self.assertEqual(len(subjects), 2)
        self.assertTrue(subjects[0].startswith("Leave Request Approved"))
        self.assertTrue(subjects[1].startswith("[Reminder] Upcoming Team Leave"))

    def test_ledger_failure_keeps_approval_and_reconcile_replays(self):
        leave = self.submit(days=2)
        self.approve(leave, self.supervisor)

        with mock.patch.object(LeaveBalance, "apply", side_effect=DatabaseError("ledger down")):
            with self.assertLogs("leaves.workflow", level="ERROR"):
                self.approve(leave, self.head)

        leave.refresh_from_db()
        self.assertEqual(leave.status, LeaveRequest.Status.APPROVED)
        self.assertFalse(LeaveBalanceEntry.objects.filter(leave_request=leave).exists())

        call_command("reconcile_leave_balances", stdout=StringIO())
        self.assertEqual(self.balance().annual_used, Decimal(2))

    def test_reads_respect_visibility(self):
        leave = self.submit()
        stranger = make_employee("stranger")

        self.assertEqual(self.workflow.details(leave.pk, self.employee), leave)
        self.assertEqual(self.workflow.details(leave.pk, self.head), leave)
        self.assertEqual(self.workflow.details(leave.pk, self.hr), leave)
        with self.assertRaises(ForbiddenError):
            self.workflow.details(leave.pk, stranger)
        with self.assertRaises(NotFoundError):
            self.workflow.get(leave.pk + 100)

        self.assertEqual(list(self.workflow.pending_queue(self.supervisor)), [leave])
        self.assertEqual(list(self.workflow.pending_queue(self.head)), [])
        self.assertEqual(list(self.workflow.pending_queue(self.admin)), [leave])
        with self.assertRaises(ForbiddenError):
            self.workflow.all_requests(self.hr)
        self.assertEqual(list(self.workflow.all_requests(self.admin, "PENDING")), [leave])
