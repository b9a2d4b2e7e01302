"""Signal handlers for leaves."""
from __future__ import annotations

from django.contrib.auth import get_user_model
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import LeaveBalance

User = get_user_model()


@receiver(post_save, sender=User)
def create_leave_balance(sender, instance: User, created: bool, **kwargs) -> None:
    """Open the current year's balance for every new employee."""
    if created and not kwargs.get("raw"):
        LeaveBalance.objects.get_or_create_for(instance)
