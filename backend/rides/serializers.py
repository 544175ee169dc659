from django.conf import settings
from rest_framework import serializers

from .models import Ride


class RiderSnippetSerializer(serializers.Serializer):
    """Rider display info shown to drivers, with defaults for missing values."""
    id = serializers.IntegerField(read_only=True)
    name = serializers.SerializerMethodField()
    rating = serializers.SerializerMethodField()
    photo = serializers.SerializerMethodField()

    def get_name(self, user):
        return user.display_name

    def get_rating(self, user):
        if user.rating is not None:
            return float(user.rating)
        return float(getattr(settings, "DEFAULT_RIDER_RATING", 4.5))

    def get_photo(self, user):
        if user.profile_picture:
            return user.profile_picture.url
        return getattr(settings, "DEFAULT_RIDER_PHOTO", "")


class DriverSnippetSerializer(RiderSnippetSerializer):
    """Driver display info shown to the rider once a ride is accepted."""
    vehicle = serializers.SerializerMethodField()

    def get_rating(self, user):
        return float(user.rating) if user.rating is not None else None

    def get_vehicle(self, user):
        profile = getattr(user, "driver_profile", None)
        return profile.vehicle_summary() if profile else None


class RideSerializer(serializers.ModelSerializer):
    """Default ride representation. Never includes the passcode."""
    passenger = RiderSnippetSerializer(read_only=True)
    driver_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = Ride
        fields = [
            'id', 'passenger', 'driver_id', 'pickup_address', 'dropoff_address',
            'pickup_latitude', 'pickup_longitude', 'vehicle_type', 'fare', 'status',
            'payment_method', 'distance_km', 'duration_min', 'requested_at',
            'accepted_at', 'started_at', 'completed_at', 'cancelled_at',
        ]


class RiderRideSerializer(RideSerializer):
    """Ride as shown to its own rider, who needs the passcode for pickup."""

    class Meta(RideSerializer.Meta):
        fields = RideSerializer.Meta.fields + ['otp']


# ---------------------- Request serializers ----------------------

class FareQuoteSerializer(serializers.Serializer):
    pickup = serializers.CharField()
    dropoff = serializers.CharField()
    vehicle_type = serializers.CharField(required=False, allow_blank=True, default='')


class RideCreateSerializer(serializers.Serializer):
    """Body for a new ride request."""
    pickup = serializers.CharField()
    dropoff = serializers.CharField()
    vehicle_type = serializers.CharField(max_length=20)
    payment_method = serializers.ChoiceField(choices=Ride.PAYMENT_CHOICES, default=Ride.PAYMENT_CASH)
    fare = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False, allow_null=True)
    pickup_latitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-90, max_value=90, required=False)
    pickup_longitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-180, max_value=180, required=False)

    def validate(self, data):
        has_lat = data.get('pickup_latitude') is not None
        has_lon = data.get('pickup_longitude') is not None
        if has_lat != has_lon:
            raise serializers.ValidationError(
                "pickup_latitude and pickup_longitude must be provided together"
            )
        return data


class StartRideSerializer(serializers.Serializer):
    # Compared verbatim with the stored passcode
    otp = serializers.CharField(trim_whitespace=False)


class CompleteRideSerializer(serializers.Serializer):
    fare = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False, allow_null=True)
    distance = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0, required=False, allow_null=True)
    duration = serializers.IntegerField(min_value=0, required=False, allow_null=True)


class RideCancelSerializer(serializers.Serializer):
    """Serializer for ride cancellation"""
    reason = serializers.CharField(required=False, allow_blank=True)
