from __future__ import annotations

import logging
from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from ...conf import leave_policy
from ...models import LeaveRequest
from ...notifications import notify_upcoming_leave

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Send team reminders for approved leaves starting a fixed number of days from today."

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=None,
            help="Days ahead of the leave start to send reminders (default: REMINDER_LEAD_DAYS, 7).",
        )

    def handle(self, *args, **options):
        days = options["days"]
        if days is None:
            days = leave_policy()["REMINDER_LEAD_DAYS"]
        target = timezone.localdate() + timedelta(days=days)
        upcoming = LeaveRequest.objects.starting_on(target).select_related(
            "employee", "employee__supervisor", "employee__division"
        )
        sent = failed = 0
        for request_obj in upcoming:
            if notify_upcoming_leave(request_obj):
                sent += 1
            else:
                failed += 1
        logger.info("Leave reminders for %s: %d sent, %d failed", target, sent, failed)
        self.stdout.write(self.style.SUCCESS(f"Sent {sent} leave reminder(s) for {target}."))
        if failed:
            self.stdout.write(self.style.WARNING(f"{failed} reminder(s) could not be delivered."))
