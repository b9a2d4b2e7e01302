from __future__ import annotations

from datetime import date
from decimal import Decimal

from django.test import TestCase, override_settings
from django.utils import timezone

from leaves.models import LeaveBalance, LeaveBalanceEntry, LeaveRequest, LeaveType, annual_quota_for

from .helpers import make_employee


class AnnualQuotaTests(TestCase):
    def test_full_quota_when_joined_before_the_year(self):
        self.assertEqual(annual_quota_for(date(2020, 5, 1), 2024), Decimal(14))
        self.assertEqual(annual_quota_for(None, 2024), Decimal(14))

    def test_no_quota_before_joining(self):
        self.assertEqual(annual_quota_for(date(2025, 1, 1), 2024), Decimal(0))

    def test_prorated_in_the_join_year(self):
        self.assertEqual(annual_quota_for(date(2024, 1, 1), 2024), Decimal(14))
        self.assertEqual(annual_quota_for(date(2024, 7, 15), 2024), Decimal(7))
        # 9/12 * 14 = 10.5 rounds half up.
        self.assertEqual(annual_quota_for(date(2024, 4, 1), 2024), Decimal(11))
        self.assertEqual(annual_quota_for(date(2024, 12, 31), 2024), Decimal(1))

    @override_settings(LEAVE_POLICY={"ANNUAL_QUOTA": 12})
    def test_quota_follows_policy(self):
        self.assertEqual(annual_quota_for(date(2024, 7, 1), 2024), Decimal(6))


class LeaveBalanceTests(TestCase):
    def setUp(self):
        self.employee = make_employee("employee")
        self.year = 2030

    def _approved(self, leave_type=LeaveType.ANNUAL_LEAVE, total_days="3"):
        # 2030-03-04 is a Monday.
        return LeaveRequest.objects.create(
            employee=self.employee,
            leave_type=leave_type,
            start_date=date(2030, 3, 4),
            end_date=date(2030, 3, 6),
            total_days=Decimal(total_days),
            reason="Family trip",
            status=LeaveRequest.Status.APPROVED,
        )

    def _balance(self):
        return LeaveBalance.objects.get(employee=self.employee, year=self.year)

    def test_signal_opens_current_year_balance(self):
        balance = LeaveBalance.objects.get(employee=self.employee, year=timezone.localdate().year)
        self.assertEqual(balance.annual_quota, Decimal(14))
        self.assertEqual(balance.annual_remaining, Decimal(14))

    def test_get_or_create_for_is_idempotent(self):
        first = LeaveBalance.objects.get_or_create_for(self.employee, self.year)
        second = LeaveBalance.objects.get_or_create_for(self.employee, self.year)
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(LeaveBalance.objects.filter(employee=self.employee, year=self.year).count(), 1)

    def test_refresh_keeps_used_days(self):
        balance = LeaveBalance.objects.get_or_create_for(self.employee, self.year)
        LeaveBalance.objects.filter(pk=balance.pk).update(annual_quota=10, annual_used=4, annual_remaining=6)
        balance = LeaveBalance.objects.get_or_create_for(self.employee, self.year)
        self.assertEqual(balance.annual_quota, Decimal(14))
        self.assertEqual(balance.annual_used, Decimal(4))
        self.assertEqual(balance.annual_remaining, Decimal(10))

    def test_peek_never_writes(self):
        balance = LeaveBalance.objects.peek(self.employee, self.year)
        self.assertIsNone(balance.pk)
        self.assertEqual(balance.annual_remaining, Decimal(14))
        self.assertFalse(LeaveBalance.objects.filter(employee=self.employee, year=self.year).exists())

    def test_apply_annual_consumes_remaining_once(self):
        leave = self._approved()
        LeaveBalance.apply(leave)
        LeaveBalance.apply(leave)

        balance = self._balance()
        self.assertEqual(balance.annual_used, Decimal(3))
        self.assertEqual(balance.annual_remaining, Decimal(11))
        self.assertEqual(balance.annual_remaining, balance.annual_quota - balance.annual_used)
        self.assertEqual(LeaveBalanceEntry.objects.filter(leave_request=leave).count(), 1)

    def test_apply_sick_leaves_annual_untouched(self):
        LeaveBalance.apply(self._approved(LeaveType.SICK_LEAVE, "1"))
        balance = self._balance()
        self.assertEqual(balance.sick_leave_used, Decimal(1))
        self.assertEqual(balance.annual_used, Decimal(0))
        self.assertEqual(balance.annual_remaining, Decimal(14))

    def test_marriage_leave_records_entry_without_counter(self):
        leave = self._approved(LeaveType.MARRIAGE_LEAVE)
        LeaveBalance.apply(leave)
        balance = self._balance()
        self.assertEqual(balance.annual_used, Decimal(0))
        self.assertEqual(balance.sick_leave_used, Decimal(0))
        self.assertTrue(LeaveBalanceEntry.objects.filter(leave_request=leave, kind="APPLY").exists())

    def test_reverse_restores_applied_days_once(self):
        leave = self._approved(LeaveType.UNPAID_LEAVE)
        LeaveBalance.apply(leave)
        LeaveBalance.reverse(leave)
        LeaveBalance.reverse(leave)

        balance = self._balance()
        self.assertEqual(balance.unpaid_leave_used, Decimal(0))
        self.assertEqual(
            list(LeaveBalanceEntry.objects.filter(leave_request=leave).order_by("pk").values_list("kind", flat=True)),
            ["APPLY", "REVERSE"],
        )

    def test_reverse_without_apply_is_a_no_op(self):
        leave = self._approved()
        self.assertIsNone(LeaveBalance.reverse(leave))
        self.assertFalse(LeaveBalanceEntry.objects.filter(leave_request=leave).exists())

    def test_quota_override_survives_refresh(self):
        hr = make_employee("hr", access_level=2)
        LeaveBalance.apply(self._approved())
        balance = self._balance()

        balance.override_quota(Decimal(20), hr)
        balance = LeaveBalance.objects.get_or_create_for(self.employee, self.year)
        self.assertEqual(balance.annual_quota, Decimal(20))
        self.assertEqual(balance.annual_remaining, Decimal(17))
        self.assertEqual(balance.last_adjusted_by, hr)

        balance.override_quota(None, hr)
        self.assertEqual(balance.annual_quota, Decimal(14))
        self.assertEqual(balance.annual_remaining, Decimal(11))
