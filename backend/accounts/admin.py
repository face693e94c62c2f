from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from accounts.models import User
from memberships.models import Membership


class MembershipInline(admin.TabularInline):
    model = Membership
    extra = 0
    fields = ("type", "plan", "status", "start_date", "expiry_date", "amount_paid_cents")
    ordering = ("-start_date",)


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Accounts with their role, ride counter and membership history"""

    list_display = ["username", "email", "role", "completed_rides", "is_active", "date_joined"]
    list_filter = ["role", "is_active", "is_staff"]
    search_fields = ["username", "email", "phone_number"]
    ordering = ("-date_joined",)
    inlines = [MembershipInline]

    fieldsets = BaseUserAdmin.fieldsets + (
        ("Ride sharing", {"fields": ("role", "phone_number", "completed_rides")}),
    )

    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ("Ride sharing", {"fields": ("role", "phone_number")}),
    )
