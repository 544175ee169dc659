from django.db import models
from django.conf import settings


class RideQuerySet(models.QuerySet):
    def with_otp(self):
        """Include the passcode column, which default reads leave out."""
        return self.defer(None)


class RideManager(models.Manager.from_queryset(RideQuerySet)):
    def get_queryset(self):
        return super().get_queryset().defer('otp')


class Ride(models.Model):
    """One trip request and its execution."""

    STATUS_PENDING = 'pending'
    STATUS_ACCEPTED = 'accepted'
    STATUS_IN_PROGRESS = 'in-progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

    PAYMENT_CASH = 'cash'
    PAYMENT_ELECTRONIC = 'electronic'
    PAYMENT_CHOICES = [
        (PAYMENT_CASH, 'Cash'),
        (PAYMENT_ELECTRONIC, 'Electronic'),
    ]

    # Foreign keys
    passenger = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='rides'
    )

    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='driven_rides'
    )

    # Locations: free text, plus coordinates when the client supplied them
    pickup_address = models.TextField()
    dropoff_address = models.TextField()
    pickup_latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    pickup_longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)

    vehicle_type = models.CharField(max_length=20, default='car')
    fare = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    otp = models.CharField(max_length=4)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_CHOICES, default=PAYMENT_CASH)

    # Filled in at completion
    distance_km = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    duration_min = models.PositiveIntegerField(null=True, blank=True)

    # Timestamps
    requested_at = models.DateTimeField(auto_now_add=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    cancellation_reason = models.TextField(blank=True, default='')

    objects = RideManager()

    class Meta:
        db_table = 'rides'
        ordering = ['-requested_at']

    def __str__(self):
        return f"Ride #{self.id} - {self.passenger_id} - {self.status}"

    @property
    def has_pickup_coordinates(self) -> bool:
        return self.pickup_latitude is not None and self.pickup_longitude is not None
