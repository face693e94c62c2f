from django.contrib import admin
from .models import Membership


@admin.register(Membership)
class MembershipAdmin(admin.ModelAdmin):
    list_display = ("user", "type", "plan", "status", "start_date", "expiry_date", "amount_paid_cents")
    list_filter = ("type", "status")
    search_fields = ("user__username", "user__email")
    readonly_fields = ("created_at", "updated_at")
