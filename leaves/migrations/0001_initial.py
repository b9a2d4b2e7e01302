# Generated manually for the leaves schema.
from __future__ import annotations

import decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

LEAVE_TYPE_CHOICES = [
    ("ANNUAL_LEAVE", "Annual Leave"),
    ("SICK_LEAVE", "Sick Leave"),
    ("MATERNITY_LEAVE", "Maternity Leave"),
    ("MENSTRUAL_LEAVE", "Menstrual Leave"),
    ("MARRIAGE_LEAVE", "Marriage Leave"),
    ("UNPAID_LEAVE", "Unpaid Leave"),
]
APPROVAL_STATUS_CHOICES = [
    ("PENDING", "Pending"),
    ("APPROVED", "Approved"),
    ("REJECTED", "Rejected"),
]


def _id():
    return models.BigAutoField(
        auto_created=True,
        primary_key=True,
        serialize=False,
        verbose_name="ID",
    )


def _days():
    return models.DecimalField(decimal_places=1, default=decimal.Decimal("0"), max_digits=6)


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="LeaveRequest",
            fields=[
                ("id", _id()),
                ("leave_type", models.CharField(choices=LEAVE_TYPE_CHOICES, max_length=20)),
                ("is_paid", models.BooleanField(default=True)),
                ("start_date", models.DateField()),
                ("end_date", models.DateField()),
                ("total_days", models.DecimalField(decimal_places=1, max_digits=5)),
                ("reason", models.TextField()),
                ("attachments", models.JSONField(blank=True, default=list)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("APPROVED", "Approved"),
                            ("REJECTED", "Rejected"),
                            ("CANCELLED", "Cancelled"),
                        ],
                        default="PENDING",
                        max_length=10,
                    ),
                ),
                ("supervisor_status", models.CharField(blank=True, choices=APPROVAL_STATUS_CHOICES, max_length=8)),
                ("supervisor_comment", models.TextField(blank=True)),
                ("supervisor_date", models.DateTimeField(blank=True, null=True)),
                ("division_head_status", models.CharField(blank=True, choices=APPROVAL_STATUS_CHOICES, max_length=8)),
                ("division_head_comment", models.TextField(blank=True)),
                ("division_head_date", models.DateTimeField(blank=True, null=True)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("rejected_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("cancellation_reason", models.TextField(blank=True)),
                ("version", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "employee",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="leave_requests",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "current_approver",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="assigned_leave_requests",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "supervisor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="supervised_leave_requests",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="LeaveBalance",
            fields=[
                ("id", _id()),
                ("year", models.PositiveIntegerField()),
                ("annual_quota", _days()),
                ("annual_used", _days()),
                ("annual_remaining", _days()),
                ("sick_leave_used", _days()),
                ("menstrual_leave_used", _days()),
                ("unpaid_leave_used", _days()),
                ("toil_balance", _days()),
                ("toil_used", _days()),
                ("toil_expired", _days()),
                (
                    "quota_override",
                    models.DecimalField(
                        blank=True,
                        decimal_places=1,
                        help_text="Set by HR to replace the tenure-based quota.",
                        max_digits=6,
                        null=True,
                    ),
                ),
                ("last_adjusted_at", models.DateTimeField(blank=True, null=True)),
                (
                    "employee",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="leave_balances",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "last_adjusted_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "leave balance",
                "verbose_name_plural": "leave balances",
                "ordering": ["-year"],
                "unique_together": {("employee", "year")},
            },
        ),
        migrations.CreateModel(
            name="LeaveBalanceEntry",
            fields=[
                ("id", _id()),
                ("kind", models.CharField(choices=[("APPLY", "Apply"), ("REVERSE", "Reverse")], max_length=7)),
                ("leave_type", models.CharField(choices=LEAVE_TYPE_CHOICES, max_length=20)),
                ("year", models.PositiveIntegerField()),
                ("days", models.DecimalField(decimal_places=1, max_digits=6)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "balance",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="entries",
                        to="leaves.leavebalance",
                    ),
                ),
                (
                    "leave_request",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="ledger_entries",
                        to="leaves.leaverequest",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "leave balance entries",
                "ordering": ["created_at"],
                "unique_together": {("leave_request", "kind")},
            },
        ),
        migrations.CreateModel(
            name="ApprovalLock",
            fields=[
                ("id", _id()),
                ("is_locked", models.BooleanField(default=False)),
                ("reason", models.CharField(blank=True, max_length=255)),
                ("locked_at", models.DateTimeField(blank=True, null=True)),
                (
                    "locked_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "approval lock",
            },
        ),
    ]
