"""Shared fixtures for the leaves test-suite."""
from __future__ import annotations

from datetime import date, timedelta

from django.contrib.auth import get_user_model
from django.utils import timezone

User = get_user_model()

JOINED = date(2020, 1, 1)


def make_employee(username: str, **extra):
    extra.setdefault("email", f"{username}@example.com")
    extra.setdefault("join_date", JOINED)
    return User.objects.create_user(username=username, password="pass123", **extra)


def next_year() -> int:
    return timezone.localdate().year + 1


def first_monday(year: int, month: int) -> date:
    day = date(year, month, 1)
    return day + timedelta(days=(7 - day.weekday()) % 7)
