"""Admin configuration for employees and divisions."""
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import Division, Employee


@admin.register(Division)
class DivisionAdmin(admin.ModelAdmin):
    list_display = ("name", "head")
    search_fields = ("name", "head__username")
    autocomplete_fields = ("head",)


@admin.register(Employee)
class EmployeeAdmin(UserAdmin):
    list_display = ("username", "email", "division", "supervisor", "access_level", "is_active")
    list_filter = ("access_level", "division", "is_active")
    autocomplete_fields = ("supervisor", "division")
    fieldsets = UserAdmin.fieldsets + (
        (
            "Organisation",
            {"fields": ("gender", "join_date", "access_level", "division", "supervisor")},
        ),
    )
