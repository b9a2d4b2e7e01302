"""Resolve who approves a leave request at each stage."""
from __future__ import annotations

import logging
from typing import Optional

from django.contrib.auth import get_user_model

from .exceptions import NoApproverFound

User = get_user_model()
logger = logging.getLogger(__name__)


def division_head_for(employee) -> Optional[User]:
    """Head of the employee's division, unless the employee heads it."""
    division = employee.division
    if division is None or division.head_id is None or division.head_id == employee.pk:
        return None
    return division.head


def hr_fallback_approver():
    return User.objects.filter(access_level__lte=User.AccessLevel.HR, is_active=True).order_by("pk").first()


def determine_initial_approver(employee):
    """Supervisor, else division head, else the first active HR/admin user."""
    if employee.supervisor_id:
        return employee.supervisor
    head = division_head_for(employee)
    if head is not None:
        return head
    fallback = hr_fallback_approver()
    if fallback is None:
        logger.error("No approver could be resolved for employee %s", employee.pk)
        raise NoApproverFound()
    return fallback
