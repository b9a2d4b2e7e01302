from __future__ import annotations

import logging

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.utils import timezone

from ...models import LeaveBalance

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Open the leave balance of a year for every active employee that lacks one."

    def add_arguments(self, parser):
        parser.add_argument(
            "year",
            nargs="?",
            type=int,
            help="Balance year (default: the current year).",
        )

    def handle(self, *args, **options):
        year = options["year"] or timezone.localdate().year
        employees = (
            get_user_model()
            .objects.filter(is_active=True)
            .exclude(leave_balances__year=year)
            .order_by("pk")
        )
        created = 0
        for employee in employees:
            LeaveBalance.objects.get_or_create_for(employee, year)
            created += 1
        logger.info("Created %d leave balance(s) for %s", created, year)
        self.stdout.write(self.style.SUCCESS(f"Created {created} leave balance(s) for {year}."))
