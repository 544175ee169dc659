from django.db import models
from django.utils import timezone
from django.conf import settings

User = settings.AUTH_USER_MODEL


class DriverProfile(models.Model):
    """Driver-specific details, eligibility status, location and running totals"""
    STATUS_ACTIVE = 'active'
    STATUS_INACTIVE = 'inactive'
    STATUS_BANNED = 'banned'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_INACTIVE, 'Inactive'),
        (STATUS_BANNED, 'Banned'),
    ]

    VEHICLE_CHOICES = [
        ('car', 'Car'),
        ('auto', 'Auto-rickshaw'),
        ('bike', 'Bike'),
        ('motorcycle', 'Motorcycle'),
    ]

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='driver_profile')

    # Vehicle details
    vehicle_number = models.CharField(max_length=20, unique=True)
    vehicle_type = models.CharField(max_length=20, choices=VEHICLE_CHOICES, default='car')
    vehicle_color = models.CharField(max_length=30, blank=True)
    vehicle_capacity = models.PositiveSmallIntegerField(default=4)

    # Status & last reported location
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    current_latitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    current_longitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    last_location_update = models.DateTimeField(null=True, blank=True)

    # Cumulative counters, only ever changed with F() increments
    total_rides = models.PositiveIntegerField(default=0)
    total_earnings = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_distance = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    class Meta:
        db_table = 'driver_profiles'

    def __str__(self):
        return f"{self.user.username} - {self.vehicle_number}"

    @property
    def has_location(self) -> bool:
        return self.current_latitude is not None and self.current_longitude is not None

    def vehicle_summary(self) -> dict:
        return {
            "number_plate": self.vehicle_number,
            "type": self.vehicle_type,
            "color": self.vehicle_color,
            "capacity": self.vehicle_capacity,
        }
