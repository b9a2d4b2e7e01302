"""Engine limits, overridable through the ``LEAVE_POLICY`` setting."""
from __future__ import annotations

from typing import Any, Dict

from django.conf import settings

DEFAULTS: Dict[str, Any] = {
    "ANNUAL_QUOTA": 14,
    "MAX_WORKING_DAYS_PER_REQUEST": 5,
    "MONTHLY_ANNUAL_CAP": 5,
    "UNPAID_YEARLY_CAP": 14,
    "UNPAID_CONSECUTIVE_CAP": 10,
    "MATERNITY_CALENDAR_DAYS": 90,
    "MENSTRUAL_WINDOW_DAYS": 2,
    "TOTAL_DAYS_TOLERANCE": "0.1",
    "REMINDER_LEAD_DAYS": 7,
    "ATTACHMENT_URL_TTL": 3600,
}


def leave_policy() -> Dict[str, Any]:
    policy = dict(DEFAULTS)
    policy.update(getattr(settings, "LEAVE_POLICY", {}) or {})
    return policy
