"""Employee identity and organisation structure used to route approvals."""
from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models


class Division(models.Model):
    """A company division; its head is the second approval stage."""

    name = models.CharField(max_length=120, unique=True)
    head = models.ForeignKey(
        "employees.Employee",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="headed_divisions",
    )

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class Employee(AbstractUser):
    """The authenticated actor of every leave operation."""

    class Gender(models.TextChoices):
        MALE = "MALE", "Male"
        FEMALE = "FEMALE", "Female"

    class AccessLevel(models.IntegerChoices):
        ADMIN = 1, "Administrator"
        HR = 2, "HR"
        MANAGER = 3, "Manager"
        SUPERVISOR = 4, "Supervisor"
        STAFF = 5, "Staff"

    gender = models.CharField(max_length=6, choices=Gender.choices, blank=True)
    join_date = models.DateField(null=True, blank=True)
    access_level = models.PositiveSmallIntegerField(
        choices=AccessLevel.choices,
        default=AccessLevel.STAFF,
    )
    supervisor = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="direct_reports",
    )
    division = models.ForeignKey(
        Division,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="members",
    )

    class Meta:
        ordering = ["username"]

    def __str__(self) -> str:
        return self.display_name

    @property
    def display_name(self) -> str:
        return self.get_full_name() or self.get_username()

    @property
    def is_admin(self) -> bool:
        return self.access_level == self.AccessLevel.ADMIN

    @property
    def is_hr(self) -> bool:
        return self.access_level <= self.AccessLevel.HR
