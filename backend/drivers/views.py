from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from drivers.models import DriverProfile
from drivers.serializers import (
    DriverProfileSerializer,
    DriverStatusSerializer,
    LocationUpdateSerializer,
)

from drivers import services


# Utility: Ensure request.user is a driver
def require_driver(user):
    if not user.is_driver:
        return False, Response({"error": "Only drivers allowed", "code": "forbidden"}, status=403)
    try:
        profile = DriverProfile.objects.select_related("user").get(user=user)
        return True, profile
    except DriverProfile.DoesNotExist:
        return False, Response({"error": "Driver profile not found", "code": "driver_not_found"}, status=404)


class DriverProfileView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile  # Response object

        serializer = DriverProfileSerializer(profile, context={"request": request})
        return Response(serializer.data)


class DriverStatusView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        return Response({"status": profile.status})

    def put(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        serializer = DriverStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data["status"]

        try:
            services.update_driver_status(profile, new_status)
        except services.DriverBannedError as e:
            return Response({"error": str(e), "code": "forbidden"}, status=403)

        return Response({
            "message": f"Status updated to {new_status}",
            "status": new_status
        })


class DriverLocationUpdateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        return Response({
            "latitude": float(profile.current_latitude) if profile.has_location else None,
            "longitude": float(profile.current_longitude) if profile.has_location else None,
            "last_updated": profile.last_location_update,
            "status": profile.status,
        })

    def post(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        serializer = LocationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        lat = serializer.validated_data["latitude"]
        lon = serializer.validated_data["longitude"]

        services.update_driver_location(profile, lat, lon)
        relayed = services.relay_location_to_rider(profile.user_id, lat, lon)

        return Response({
            "message": "Location updated",
            "relayed_to_rider": relayed,
            "latitude": float(lat),
            "longitude": float(lon),
            "status": profile.status
        })
