from __future__ import annotations

import logging

from django.core.management.base import BaseCommand
from django.db import DatabaseError, transaction

from ...models import LeaveBalance, LeaveBalanceEntry, LeaveRequest

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Replay ledger postings missed by approved or cancelled leave requests."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Only report the requests that would be posted.",
        )

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        applied = LeaveBalanceEntry.objects.filter(kind=LeaveBalanceEntry.Kind.APPLY).values("leave_request")
        reversed_ = LeaveBalanceEntry.objects.filter(kind=LeaveBalanceEntry.Kind.REVERSE).values("leave_request")

        # Cancelled requests that were never applied need no reversal.
        missing_apply = LeaveRequest.objects.filter(status=LeaveRequest.Status.APPROVED).exclude(pk__in=applied)
        missing_reverse = LeaveRequest.objects.filter(
            status=LeaveRequest.Status.CANCELLED,
            pk__in=applied,
        ).exclude(pk__in=reversed_)

        results = {"apply": 0, "reverse": 0, "failed": 0}
        for label, posting, queryset in (
            ("apply", LeaveBalance.apply, missing_apply),
            ("reverse", LeaveBalance.reverse, missing_reverse),
        ):
            for leave in queryset.select_related("employee").order_by("pk"):
                if dry_run:
                    self.stdout.write(f"Would {label} leave request {leave.pk}")
                    results[label] += 1
                    continue
                try:
                    with transaction.atomic():
                        posting(leave)
                except DatabaseError:
                    logger.error("Reconcile %s failed for leave request %s", label, leave.pk, exc_info=True)
                    results["failed"] += 1
                else:
                    results[label] += 1

        logger.info(
            "Ledger reconcile: %d applied, %d reversed, %d failed",
            results["apply"],
            results["reverse"],
            results["failed"],
        )
        summary = f"Applied {results['apply']}, reversed {results['reverse']} leave request(s)."
        self.stdout.write(self.style.SUCCESS(summary))
        if results["failed"]:
            self.stdout.write(self.style.ERROR(f"{results['failed']} posting(s) failed; see the log."))
