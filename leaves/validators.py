"""Business rules a leave submission must satisfy before it is persisted.

Every rule is a plain function taking a :class:`LeaveProposal` and returning a
message when violated (or ``None``). ``COMMON_RULES`` run for every leave type
and ``TYPE_RULES`` adds the per-type checks; all rules run and all messages
are collected so the employee sees every problem at once.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from functools import cached_property, wraps
from typing import Callable, Dict, List, Optional

from django.contrib.auth import get_user_model
from django.utils import timezone
from django.utils.dates import MONTHS

from .conf import leave_policy
from .models import FEMALE_ONLY_LEAVE_TYPES, LeaveBalance, LeaveRequest, LeaveType
from .workdays import calendar_days, month_bounds, months_spanned, working_days, working_days_in_month

User = get_user_model()
logger = logging.getLogger(__name__)


@dataclass
class LeaveProposal:
    employee: Optional[User]
    leave_type: str
    start_date: date
    end_date: date
    total_days: Decimal
    today: date

    @property
    def has_valid_range(self) -> bool:
        return self.start_date <= self.end_date

    @cached_property
    def working_days(self) -> int:
        return working_days(self.start_date, self.end_date)

    @cached_property
    def policy(self) -> dict:
        return leave_policy()


Rule = Callable[[LeaveProposal], Optional[str]]


def _needs_employee(rule: Rule) -> Rule:
    @wraps(rule)
    def wrapper(proposal: LeaveProposal) -> Optional[str]:
        if proposal.employee is None:
            return None
        return rule(proposal)

    return wrapper


def _needs_range(rule: Rule) -> Rule:
    @wraps(rule)
    def wrapper(proposal: LeaveProposal) -> Optional[str]:
        if not proposal.has_valid_range:
            return None
        return rule(proposal)

    return wrapper


def employee_exists(proposal: LeaveProposal) -> Optional[str]:
    if proposal.employee is None:
        return "Employee not found"
    return None


def dates_in_order(proposal: LeaveProposal) -> Optional[str]:
    if not proposal.has_valid_range:
        return "Start date must be before end date"
    return None


@_needs_employee
def gender_eligible(proposal: LeaveProposal) -> Optional[str]:
    if proposal.leave_type in FEMALE_ONLY_LEAVE_TYPES and proposal.employee.gender == User.Gender.MALE:
        return f"{LeaveType(proposal.leave_type).label} is only available to female employees"
    return None


def not_in_past(proposal: LeaveProposal) -> Optional[str]:
    if proposal.start_date < proposal.today:
        return "Cannot request leave for past dates"
    return None


def menstrual_window(proposal: LeaveProposal) -> Optional[str]:
    window = proposal.policy["MENSTRUAL_WINDOW_DAYS"]
    if not proposal.today <= proposal.start_date <= proposal.today + timedelta(days=window):
        return f"Menstrual leave must start between today and {window} days from today"
    return None


def positive_total_days(proposal: LeaveProposal) -> Optional[str]:
    if proposal.total_days <= 0:
        return "Total days must be greater than zero"
    return None


@_needs_range
def total_days_match(proposal: LeaveProposal) -> Optional[str]:
    tolerance = Decimal(str(proposal.policy["TOTAL_DAYS_TOLERANCE"]))
    if abs(Decimal(proposal.working_days) - Decimal(proposal.total_days)) > tolerance:
        return (
            f"Total days ({proposal.total_days}) does not match the "
            f"{proposal.working_days} working day(s) between the selected dates"
        )
    return None


@_needs_range
def max_working_days(proposal: LeaveProposal) -> Optional[str]:
    limit = proposal.policy["MAX_WORKING_DAYS_PER_REQUEST"]
    if proposal.working_days > limit:
        return f"Maximum {limit} working days per leave request"
    return None


@_needs_employee
@_needs_range
def monthly_annual_cap(proposal: LeaveProposal) -> Optional[str]:
    cap = proposal.policy["MONTHLY_ANNUAL_CAP"]
    for year, month in months_spanned(proposal.start_date, proposal.end_date):
        requested = working_days_in_month(proposal.start_date, proposal.end_date, year, month)
        first, last = month_bounds(year, month)
        existing = LeaveRequest.objects.active().filter(
            employee=proposal.employee,
            leave_type=LeaveType.ANNUAL_LEAVE,
            start_date__lte=last,
            end_date__gte=first,
        )
        already = sum(
            working_days_in_month(other.start_date, other.end_date, year, month) for other in existing
        )
        if requested + already > cap:
            return (
                f"Monthly annual leave limit exceeded for {MONTHS[month]} {year}: "
                f"{already} of {cap} working days already requested"
            )
    return None


@_needs_employee
@_needs_range
def no_overlap(proposal: LeaveProposal) -> Optional[str]:
    if LeaveRequest.objects.overlapping(proposal.employee, proposal.start_date, proposal.end_date).exists():
        return "You already have a leave request for these dates"
    return None


@_needs_employee
def annual_balance_sufficient(proposal: LeaveProposal) -> Optional[str]:
    year = proposal.start_date.year
    balance = LeaveBalance.objects.peek(proposal.employee, year)
    # Pending requests are held against the balance until decided.
    pending = LeaveRequest.objects.pending_days(proposal.employee, LeaveType.ANNUAL_LEAVE, year)
    available = balance.annual_remaining - pending
    if available < Decimal(proposal.total_days):
        return f"Insufficient annual leave balance. You have {max(available, Decimal(0))} days remaining"
    return None


@_needs_employee
def unpaid_yearly_cap(proposal: LeaveProposal) -> Optional[str]:
    cap = proposal.policy["UNPAID_YEARLY_CAP"]
    year = proposal.start_date.year
    used = LeaveBalance.objects.peek(proposal.employee, year).unpaid_leave_used
    pending = LeaveRequest.objects.pending_days(proposal.employee, LeaveType.UNPAID_LEAVE, year)
    if used + pending + Decimal(proposal.total_days) > cap:
        return f"Unpaid leave exceeds annual limit. You have used {used} of {cap} days ({pending} pending)"
    return None


def unpaid_consecutive_cap(proposal: LeaveProposal) -> Optional[str]:
    cap = proposal.policy["UNPAID_CONSECUTIVE_CAP"]
    if Decimal(proposal.total_days) > cap:
        return f"Unpaid leave cannot exceed {cap} consecutive days"
    return None


@_needs_range
def maternity_span(proposal: LeaveProposal) -> Optional[str]:
    required = proposal.policy["MATERNITY_CALENDAR_DAYS"]
    if calendar_days(proposal.start_date, proposal.end_date) != required:
        return f"Maternity leave must be exactly 3 months ({required} days)"
    return None


@_needs_range
def single_working_day(proposal: LeaveProposal) -> Optional[str]:
    if proposal.working_days != 1:
        return "Menstrual leave must be exactly 1 working day"
    return None


COMMON_RULES: List[Rule] = [
    employee_exists,
    dates_in_order,
    positive_total_days,
    gender_eligible,
    total_days_match,
    no_overlap,
]

TYPE_RULES: Dict[str, List[Rule]] = {
    LeaveType.ANNUAL_LEAVE: [not_in_past, max_working_days, monthly_annual_cap, annual_balance_sufficient],
    LeaveType.SICK_LEAVE: [not_in_past, max_working_days],
    LeaveType.MATERNITY_LEAVE: [not_in_past, maternity_span],
    LeaveType.MENSTRUAL_LEAVE: [menstrual_window, max_working_days, single_working_day],
    LeaveType.MARRIAGE_LEAVE: [not_in_past, max_working_days],
    LeaveType.UNPAID_LEAVE: [not_in_past, max_working_days, unpaid_yearly_cap, unpaid_consecutive_cap],
}


def rules_for(leave_type: str) -> List[Rule]:
    return COMMON_RULES + TYPE_RULES.get(leave_type, [])


def validate_leave_request(
    employee_id,
    leave_type: str,
    start_date: date,
    end_date: date,
    total_days,
    today: Optional[date] = None,
) -> List[str]:
    """Return every rule violation for the proposed request; empty means valid."""
    if leave_type not in LeaveType.values:
        return [f"Unknown leave type: {leave_type}"]
    proposal = LeaveProposal(
        employee=User.objects.select_related("division").filter(pk=employee_id).first(),
        leave_type=leave_type,
        start_date=start_date,
        end_date=end_date,
        total_days=Decimal(str(total_days)),
        today=today or timezone.localdate(),
    )
    errors = []
    for rule in rules_for(leave_type):
        message = rule(proposal)
        if message:
            errors.append(message)
    if errors:
        logger.info("Leave request by employee %s failed %d rule(s)", employee_id, len(errors))
    return errors
