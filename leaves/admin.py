"""Admin configuration for leave management."""
from django.contrib import admin
from django.utils import timezone

from .models import ApprovalLock, LeaveBalance, LeaveBalanceEntry, LeaveRequest


class LeaveBalanceEntryInline(admin.TabularInline):
    model = LeaveBalanceEntry
    extra = 0
    can_delete = False
    readonly_fields = ("leave_request", "kind", "leave_type", "year", "days", "created_at")


@admin.register(LeaveRequest)
class LeaveRequestAdmin(admin.ModelAdmin):
    list_display = (
        "employee",
        "leave_type",
        "start_date",
        "end_date",
        "total_days",
        "status",
        "current_approver",
    )
    list_filter = ("status", "leave_type", "start_date")
    search_fields = ("employee__username", "reason")
    autocomplete_fields = ("employee", "current_approver", "supervisor")
    readonly_fields = ("is_paid", "version", "created_at", "updated_at", "approved_at", "rejected_at", "cancelled_at")
    ordering = ("-created_at",)


@admin.register(LeaveBalance)
class LeaveBalanceAdmin(admin.ModelAdmin):
    list_display = (
        "employee",
        "year",
        "annual_quota",
        "annual_used",
        "annual_remaining",
        "quota_override",
        "last_adjusted_by",
    )
    list_filter = ("year",)
    search_fields = ("employee__username",)
    autocomplete_fields = ("employee",)
    readonly_fields = ("annual_used", "annual_remaining", "last_adjusted_by", "last_adjusted_at")
    inlines = [LeaveBalanceEntryInline]

    def save_model(self, request, obj, form, change):
        if change and "quota_override" in form.changed_data:
            obj.override_quota(obj.quota_override, request.user)
            return
        super().save_model(request, obj, form, change)


@admin.register(LeaveBalanceEntry)
class LeaveBalanceEntryAdmin(admin.ModelAdmin):
    list_display = ("leave_request", "kind", "leave_type", "year", "days", "created_at")
    list_filter = ("kind", "leave_type", "year")
    search_fields = ("leave_request__employee__username",)


@admin.register(ApprovalLock)
class ApprovalLockAdmin(admin.ModelAdmin):
    list_display = ("is_locked", "reason", "locked_by", "locked_at")
    readonly_fields = ("locked_by", "locked_at")

    def has_add_permission(self, request):
        return not ApprovalLock.objects.exists()

    def has_delete_permission(self, request, obj=None):
        return False

    def save_model(self, request, obj, form, change):
        if "is_locked" in form.changed_data:
            obj.locked_by = request.user if obj.is_locked else None
            obj.locked_at = timezone.now() if obj.is_locked else None
        super().save_model(request, obj, form, change)
