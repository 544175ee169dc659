"""Tells what to show in the Django admin interface for rides app"""

from django.contrib import admin
from .models import Ride


@admin.register(Ride)
class RideAdmin(admin.ModelAdmin):
    """Ride admin; the passcode is never listed"""
    list_display = ['id', 'passenger', 'driver', 'vehicle_type', 'fare', 'status', 'requested_at', 'completed_at']
    list_filter = ['status', 'vehicle_type', 'payment_method', 'requested_at']
    search_fields = ['passenger__username', 'driver__username', 'pickup_address', 'dropoff_address']
    readonly_fields = ['requested_at', 'accepted_at', 'started_at', 'completed_at', 'cancelled_at']
    exclude = ['otp']
    date_hierarchy = 'requested_at'
