from django.contrib import admin
from drivers.models import DriverProfile


@admin.register(DriverProfile)
class DriverProfileAdmin(admin.ModelAdmin):
    """Admin panel for driver eligibility, location and counters"""

    list_display = [
        "user",
        "vehicle_number",
        "vehicle_type",
        "status",
        "total_rides",
        "total_earnings",
        "last_location_update",
    ]

    list_filter = [
        "status",
        "vehicle_type",
    ]

    search_fields = [
        "user__username",
        "vehicle_number",
    ]

    # Counters are only changed by ride completion
    readonly_fields = [
        "last_location_update",
        "total_rides",
        "total_earnings",
        "total_distance",
    ]

    ordering = ("user__username",)
