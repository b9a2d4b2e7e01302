"""Database models for the leave lifecycle and the balance ledger."""
from __future__ import annotations

import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import models, transaction
from django.db.models import F, Sum
from django.utils import timezone

from .approvers import division_head_for
from .conf import leave_policy
from .exceptions import ConflictError

User = get_user_model()
logger = logging.getLogger(__name__)


class LeaveType(models.TextChoices):
    ANNUAL_LEAVE = "ANNUAL_LEAVE", "Annual Leave"
    SICK_LEAVE = "SICK_LEAVE", "Sick Leave"
    MATERNITY_LEAVE = "MATERNITY_LEAVE", "Maternity Leave"
    MENSTRUAL_LEAVE = "MENSTRUAL_LEAVE", "Menstrual Leave"
    MARRIAGE_LEAVE = "MARRIAGE_LEAVE", "Marriage Leave"
    UNPAID_LEAVE = "UNPAID_LEAVE", "Unpaid Leave"


UNPAID_LEAVE_TYPES = {LeaveType.UNPAID_LEAVE}
FEMALE_ONLY_LEAVE_TYPES = {LeaveType.MATERNITY_LEAVE, LeaveType.MENSTRUAL_LEAVE}

# Balance counter each leave type consumes; types absent here consume nothing.
USED_COUNTERS = {
    LeaveType.ANNUAL_LEAVE: "annual_used",
    LeaveType.SICK_LEAVE: "sick_leave_used",
    LeaveType.MENSTRUAL_LEAVE: "menstrual_leave_used",
    LeaveType.UNPAID_LEAVE: "unpaid_leave_used",
}


class ApprovalStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    APPROVED = "APPROVED", "Approved"
    REJECTED = "REJECTED", "Rejected"


class ApprovalStage(models.TextChoices):
    SUPERVISOR = "SUPERVISOR", "Supervisor"
    DIVISION_HEAD = "DIVISION_HEAD", "Division Head"
    DIRECT = "DIRECT", "Direct / Admin"


def annual_quota_for(join_date: Optional[date], year: int) -> Decimal:
    """Annual leave entitlement for ``year``, prorated in the year of joining."""
    full_quota = Decimal(leave_policy()["ANNUAL_QUOTA"])
    if join_date is None or join_date.year < year:
        return full_quota
    if join_date.year > year:
        return Decimal(0)
    months_remaining = 12 - (join_date.month - 1)
    prorated = Decimal(months_remaining) * full_quota / Decimal(12)
    return prorated.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


class LeaveBalanceQuerySet(models.QuerySet):
    def get_or_create_for(self, employee: User, year: Optional[int] = None) -> "LeaveBalance":
        """Idempotent upsert of an employee's balance for ``year``."""
        year = year or timezone.localdate().year
        quota = annual_quota_for(employee.join_date, year)
        balance, created = self.get_or_create(
            employee=employee,
            year=year,
            defaults={"annual_quota": quota, "annual_remaining": quota},
        )
        if created:
            logger.info("Created %s leave balance for employee %s with quota %s", year, employee.pk, quota)
        else:
            balance.refresh_quota(quota)
        return balance

    def peek(self, employee: User, year: int) -> "LeaveBalance":
        """Return the stored balance, or an unsaved default; never writes."""
        balance = self.filter(employee=employee, year=year).first()
        if balance is not None:
            return balance
        quota = annual_quota_for(employee.join_date, year)
        return LeaveBalance(employee=employee, year=year, annual_quota=quota, annual_remaining=quota)


class LeaveBalance(models.Model):
    """Per-employee, per-year leave entitlement and consumption."""

    employee = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name="leave_balances",
    )
    year = models.PositiveIntegerField()
    annual_quota = models.DecimalField(max_digits=6, decimal_places=1, default=Decimal(0))
    annual_used = models.DecimalField(max_digits=6, decimal_places=1, default=Decimal(0))
    annual_remaining = models.DecimalField(max_digits=6, decimal_places=1, default=Decimal(0))
    sick_leave_used = models.DecimalField(max_digits=6, decimal_places=1, default=Decimal(0))
    menstrual_leave_used = models.DecimalField(max_digits=6, decimal_places=1, default=Decimal(0))
    unpaid_leave_used = models.DecimalField(max_digits=6, decimal_places=1, default=Decimal(0))
    toil_balance = models.DecimalField(max_digits=6, decimal_places=1, default=Decimal(0))
    toil_used = models.DecimalField(max_digits=6, decimal_places=1, default=Decimal(0))
    toil_expired = models.DecimalField(max_digits=6, decimal_places=1, default=Decimal(0))
    quota_override = models.DecimalField(
        max_digits=6,
        decimal_places=1,
        null=True,
        blank=True,
        help_text="Set by HR to replace the tenure-based quota.",
    )
    last_adjusted_by = models.ForeignKey(
        User,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )
    last_adjusted_at = models.DateTimeField(null=True, blank=True)

    objects = LeaveBalanceQuerySet.as_manager()

    class Meta:
        unique_together = ("employee", "year")
        ordering = ["-year"]
        verbose_name = "leave balance"
        verbose_name_plural = "leave balances"

    def __str__(self) -> str:
        return f"{self.employee.get_username()} {self.year} ({self.annual_remaining} day(s) left)"

    def refresh_quota(self, computed_quota: Decimal) -> None:
        quota = self.quota_override if self.quota_override is not None else computed_quota
        if quota == self.annual_quota and self.annual_remaining == self.annual_quota - self.annual_used:
            return
        LeaveBalance.objects.filter(pk=self.pk).update(
            annual_quota=quota,
            annual_remaining=quota - F("annual_used"),
        )
        self.refresh_from_db(fields=["annual_quota", "annual_used", "annual_remaining"])

    def override_quota(self, quota: Optional[Decimal], adjusted_by) -> None:
        """Pin (or with ``None`` release) the annual quota, keeping used days intact."""
        self.quota_override = quota
        self.last_adjusted_by = adjusted_by
        self.last_adjusted_at = timezone.now()
        self.save(update_fields=["quota_override", "last_adjusted_by", "last_adjusted_at"])
        self.refresh_quota(annual_quota_for(self.employee.join_date, self.year))
        logger.info(
            "Annual quota of balance %s set to %s by %s",
            self.pk,
            self.annual_quota,
            getattr(adjusted_by, "pk", None),
        )

    @classmethod
    def apply(cls, leave_request: "LeaveRequest") -> "LeaveBalance":
        """Consume the approved request's days, once per request."""
        return cls._post(leave_request, LeaveBalanceEntry.Kind.APPLY)

    @classmethod
    def reverse(cls, leave_request: "LeaveRequest") -> Optional["LeaveBalance"]:
        """Restore whatever ``apply`` consumed for this request."""
        applied = LeaveBalanceEntry.objects.filter(
            leave_request=leave_request,
            kind=LeaveBalanceEntry.Kind.APPLY,
        ).first()
        if applied is None:
            logger.info("Leave request %s was never applied; nothing to reverse", leave_request.pk)
            return None
        return cls._post(leave_request, LeaveBalanceEntry.Kind.REVERSE, days=applied.days, year=applied.year)

    @classmethod
    @transaction.atomic
    def _post(
        cls,
        leave_request: "LeaveRequest",
        kind: str,
        days: Optional[Decimal] = None,
        year: Optional[int] = None,
    ) -> "LeaveBalance":
        year = year or leave_request.start_date.year
        days = leave_request.total_days if days is None else days
        cls.objects.get_or_create_for(leave_request.employee, year)
        # Re-read under a row lock so concurrent postings for the same
        # employee/year serialize.
        balance = cls.objects.select_for_update().get(employee_id=leave_request.employee_id, year=year)
        _, created = LeaveBalanceEntry.objects.get_or_create(
            leave_request=leave_request,
            kind=kind,
            defaults={
                "balance": balance,
                "leave_type": leave_request.leave_type,
                "year": year,
                "days": days,
            },
        )
        if not created:
            logger.info("Ledger %s for leave request %s already recorded", kind, leave_request.pk)
            return balance
        sign = 1 if kind == LeaveBalanceEntry.Kind.APPLY else -1
        balance._shift(leave_request.leave_type, sign * Decimal(days))
        logger.info(
            "Ledger %s: %s day(s) of %s for employee %s in %s",
            kind,
            days,
            leave_request.leave_type,
            leave_request.employee_id,
            year,
        )
        return balance

    def _shift(self, leave_type: str, days: Decimal) -> None:
        counter = USED_COUNTERS.get(leave_type)
        if counter is None:
            return
        updates = {counter: F(counter) + days}
        if leave_type == LeaveType.ANNUAL_LEAVE:
            updates["annual_remaining"] = F("annual_remaining") - days
        LeaveBalance.objects.filter(pk=self.pk).update(**updates)
        self.refresh_from_db()


class LeaveBalanceEntry(models.Model):
    """One ledger posting; the unique key makes postings idempotent."""

    class Kind(models.TextChoices):
        APPLY = "APPLY", "Apply"
        REVERSE = "REVERSE", "Reverse"

    balance = models.ForeignKey(LeaveBalance, on_delete=models.CASCADE, related_name="entries")
    leave_request = models.ForeignKey(
        "leaves.LeaveRequest",
        on_delete=models.CASCADE,
        related_name="ledger_entries",
    )
    kind = models.CharField(max_length=7, choices=Kind.choices)
    leave_type = models.CharField(max_length=20, choices=LeaveType.choices)
    year = models.PositiveIntegerField()
    days = models.DecimalField(max_digits=6, decimal_places=1)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("leave_request", "kind")
        ordering = ["created_at"]
        verbose_name_plural = "leave balance entries"

    def __str__(self) -> str:
        return f"{self.kind} {self.days} day(s) · request {self.leave_request_id}"


class LeaveRequestQuerySet(models.QuerySet):
    def active(self) -> "LeaveRequestQuerySet":
        return self.filter(status__in=[LeaveRequest.Status.PENDING, LeaveRequest.Status.APPROVED])

    def overlapping(self, employee, start: date, end: date) -> "LeaveRequestQuerySet":
        return self.active().filter(
            employee=employee,
            start_date__lte=end,
            end_date__gte=start,
        )

    def for_employee(self, employee, status: Optional[str] = None) -> "LeaveRequestQuerySet":
        queryset = self.filter(employee=employee)
        if status:
            queryset = queryset.filter(status=status)
        return queryset

    def pending_for(self, actor) -> "LeaveRequestQuerySet":
        """The approval queue: everything pending for admins, otherwise assigned items."""
        queryset = self.filter(status=LeaveRequest.Status.PENDING)
        if actor.is_admin:
            return queryset
        return queryset.filter(current_approver=actor)

    def pending_days(self, employee, leave_type: str, year: int) -> Decimal:
        """Days held by PENDING requests of one type starting in ``year``."""
        total = self.filter(
            employee=employee,
            leave_type=leave_type,
            status=LeaveRequest.Status.PENDING,
            start_date__year=year,
        ).aggregate(total=Sum("total_days"))["total"]
        return total or Decimal(0)

    def starting_on(self, day: date) -> "LeaveRequestQuerySet":
        return self.filter(status=LeaveRequest.Status.APPROVED, start_date=day)


class LeaveRequest(models.Model):
    """A leave request lifecycle record."""

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        APPROVED = "APPROVED", "Approved"
        REJECTED = "REJECTED", "Rejected"
        CANCELLED = "CANCELLED", "Cancelled"

    employee = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name="leave_requests",
    )
    leave_type = models.CharField(max_length=20, choices=LeaveType.choices)
    is_paid = models.BooleanField(default=True)
    start_date = models.DateField()
    end_date = models.DateField()
    total_days = models.DecimalField(max_digits=5, decimal_places=1)
    reason = models.TextField()
    attachments = models.JSONField(default=list, blank=True)
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.PENDING,
    )
    current_approver = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="assigned_leave_requests",
    )
    supervisor = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="supervised_leave_requests",
    )
    supervisor_status = models.CharField(max_length=8, choices=ApprovalStatus.choices, blank=True)
    supervisor_comment = models.TextField(blank=True)
    supervisor_date = models.DateTimeField(null=True, blank=True)
    division_head_status = models.CharField(max_length=8, choices=ApprovalStatus.choices, blank=True)
    division_head_comment = models.TextField(blank=True)
    division_head_date = models.DateTimeField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True)
    version = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = LeaveRequestQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.employee.get_username()} {self.start_date}->{self.end_date} ({self.leave_type})"

    def save(self, *args, **kwargs):
        self.is_paid = self.leave_type not in UNPAID_LEAVE_TYPES
        super().save(*args, **kwargs)

    @property
    def is_pending(self) -> bool:
        return self.status == self.Status.PENDING

    @property
    def division_head_id(self) -> Optional[int]:
        head = division_head_for(self.employee)
        return head.pk if head else None

    @property
    def is_supervisor_stage(self) -> bool:
        return bool(self.supervisor_id) and self.supervisor_status != ApprovalStatus.APPROVED

    @property
    def is_division_head_stage(self) -> bool:
        return bool(self.division_head_id) and self.division_head_status != ApprovalStatus.APPROVED

    @property
    def current_stage(self) -> str:
        if self.is_supervisor_stage:
            return ApprovalStage.SUPERVISOR
        if self.is_division_head_stage:
            return ApprovalStage.DIVISION_HEAD
        return ApprovalStage.DIRECT

    def approval_chain_ids(self) -> set:
        ids = {self.supervisor_id, self.division_head_id, self.current_approver_id}
        ids.discard(None)
        return ids

    def can_view(self, actor) -> bool:
        """Owner, HR staff and anyone in the approval chain may see the request and its files."""
        return actor.pk == self.employee_id or actor.is_hr or actor.pk in self.approval_chain_ids()

    def compare_and_set(self, expected_status: str, **changes) -> None:
        """Write ``changes`` only if nobody moved the row since it was read."""
        changes.setdefault("updated_at", timezone.now())
        rows = LeaveRequest.objects.filter(
            pk=self.pk,
            status=expected_status,
            version=self.version,
        ).update(version=F("version") + 1, **changes)
        if rows != 1:
            logger.warning("Stale write rejected for leave request %s (version %s)", self.pk, self.version)
            raise ConflictError("Request already processed")
        for field, value in changes.items():
            setattr(self, field, value)
        self.version += 1


class ApprovalLock(models.Model):
    """Singleton switch that freezes approvals during the payroll recap."""

    is_locked = models.BooleanField(default=False)
    reason = models.CharField(max_length=255, blank=True)
    locked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )
    locked_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "approval lock"

    def __str__(self) -> str:
        return "Locked" if self.is_locked else "Unlocked"

    def save(self, *args, **kwargs):
        self.pk = 1
        super().save(*args, **kwargs)

    @classmethod
    def load(cls) -> "ApprovalLock":
        lock, _ = cls.objects.get_or_create(pk=1)
        return lock
