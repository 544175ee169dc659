from rest_framework import serializers
from drivers.models import DriverProfile
from accounts.serializers import UserSerializer


class DriverProfileSerializer(serializers.ModelSerializer):
    """
    Full driver profile, including vehicle and cumulative counters
    """
    user = serializers.SerializerMethodField()

    class Meta:
        model = DriverProfile
        fields = [
            "id",
            "user",
            "vehicle_number",
            "vehicle_type",
            "vehicle_color",
            "vehicle_capacity",
            "status",
            "current_latitude",
            "current_longitude",
            "last_location_update",
            "total_rides",
            "total_earnings",
            "total_distance",
        ]

    def get_user(self, instance):
        # Nested serializer needs the request for absolute picture URLs
        return UserSerializer(instance.user, context=self.context).data


class DriverStatusSerializer(serializers.Serializer):
    """
    Drivers can only toggle themselves between active and inactive.
    """
    status = serializers.ChoiceField(choices=[DriverProfile.STATUS_ACTIVE, DriverProfile.STATUS_INACTIVE])


class LocationUpdateSerializer(serializers.Serializer):
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-90, max_value=90)
    longitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-180, max_value=180)
