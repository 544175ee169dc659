from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Extended user model with role selection"""
    ROLE_RIDER = 'user'
    ROLE_DRIVER = 'driver'
    ROLE_CHOICES = [
        (ROLE_RIDER, 'Rider'),
        (ROLE_DRIVER, 'Driver'),
    ]

    # Role & basic info
    role = models.CharField(max_length=10, choices=ROLE_CHOICES)
    phone_number = models.CharField(max_length=15, blank=True)
    profile_picture = models.ImageField(upload_to='profile_pictures/', null=True, blank=True)
    rating = models.DecimalField(max_digits=3, decimal_places=2, null=True, blank=True)

    class Meta:
        db_table = 'users'

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"

    @property
    def is_rider(self) -> bool:
        return self.role == self.ROLE_RIDER

    @property
    def is_driver(self) -> bool:
        return self.role == self.ROLE_DRIVER

    @property
    def display_name(self) -> str:
        return self.get_full_name() or self.username or self.email or "Unknown User"
