"""Tells what to show in the Django admin interface for rides app"""

from django.contrib import admin
from .models import Ride, Booking


class BookingInline(admin.TabularInline):
    model = Booking
    extra = 0
    readonly_fields = ['base_amount_cents', 'discount_cents', 'final_amount_cents', 'created_at', 'accepted_at']


@admin.register(Ride)
class RideAdmin(admin.ModelAdmin):
    """Ride admin"""
    list_display = ['id', 'driver', 'status', 'departure_time', 'distance_miles', 'total_price_cents']
    list_filter = ['status', 'departure_time']
    search_fields = ['driver__username', 'origin_address', 'destination_address']
    readonly_fields = ['created_at', 'accepted_at', 'trip_started_at', 'trip_completed_at', 'cancelled_at']
    date_hierarchy = 'departure_time'
    inlines = [BookingInline]


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("id", "ride", "rider", "status", "payment_type", "final_amount_cents", "created_at")
    list_filter = ("status", "payment_type")
    search_fields = ("ride__id", "rider__username")
