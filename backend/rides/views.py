from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from accounts.permissions import IsRider, IsDriver

from .serializers import (
    RideSerializer,
    RiderRideSerializer,
    FareQuoteSerializer,
    RideCreateSerializer,
    StartRideSerializer,
    CompleteRideSerializer,
    RideCancelSerializer,
)

from services import ride_management
from services.maps import MapsServiceError
from services.ride_management import RideServiceError


def _error_response(exc):
    """Translate a service exception into its JSON error response."""
    if isinstance(exc, RideServiceError):
        return Response(exc.as_dict(), status=exc.status_code)
    return Response({'error': str(exc), 'code': exc.code}, status=exc.status_code)


def _validation_response(errors):
    return Response(
        {'error': 'Invalid request data', 'code': 'validation_error', 'details': errors},
        status=status.HTTP_400_BAD_REQUEST
    )


# ==================== Rider Ride APIs ====================

@api_view(['GET'])
@permission_classes([IsAuthenticated, IsRider])
def fare_quote(request):
    """Preview the fare for a trip before booking"""
    serializer = FareQuoteSerializer(data=request.query_params)
    if not serializer.is_valid():
        return _validation_response(serializer.errors)

    try:
        quote = ride_management.get_fare_quote(
            serializer.validated_data['pickup'],
            serializer.validated_data['dropoff'],
            serializer.validated_data['vehicle_type'] or None,
        )
    except (RideServiceError, MapsServiceError) as e:
        return _error_response(e)

    return Response({
        'fare': float(quote.fare),
        'vehicle_type': quote.vehicle_type,
        'distance_km': quote.distance_km,
        'duration_min': quote.duration_min,
        'distance_text': quote.distance_text,
        'duration_text': quote.duration_text,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsRider])
def create_ride(request):
    """Create a new ride request; nearby drivers are notified in the background"""
    serializer = RideCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return _validation_response(serializer.errors)

    data = serializer.validated_data
    try:
        result = ride_management.create_ride(
            passenger=request.user,
            pickup=data['pickup'],
            dropoff=data['dropoff'],
            vehicle_type=data['vehicle_type'],
            payment_method=data['payment_method'],
            fare=data.get('fare'),
            pickup_latitude=data.get('pickup_latitude'),
            pickup_longitude=data.get('pickup_longitude'),
        )
    except RideServiceError as e:
        return _error_response(e)

    # The rider sees the passcode so they can hand it to the driver at pickup
    return Response({
        **RiderRideSerializer(result.ride).data,
        'message': result.message,
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsRider])
def cancel_ride(request, ride_id):
    """Cancel one of the rider's own rides"""
    serializer = RideCancelSerializer(data=request.data)
    if not serializer.is_valid():
        return _validation_response(serializer.errors)

    try:
        result = ride_management.cancel_ride(
            request.user,
            ride_id,
            reason=serializer.validated_data.get('reason', ''),
        )
    except RideServiceError as e:
        return _error_response(e)

    return Response({
        'message': result.message,
        'ride': RideSerializer(result.ride).data,
    })


# ==================== Driver Ride Actions ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDriver])
def accept_ride(request, ride_id):
    """Driver claims a pending ride; first caller wins"""
    try:
        result = ride_management.accept_ride(request.user, ride_id)
    except RideServiceError as e:
        return _error_response(e)

    return Response({
        'message': result.message,
        'ride': RideSerializer(result.ride).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDriver])
def start_ride(request, ride_id):
    """Driver starts the trip with the rider's passcode"""
    serializer = StartRideSerializer(data=request.data)
    if not serializer.is_valid():
        return _validation_response(serializer.errors)

    try:
        result = ride_management.start_ride(request.user, ride_id, serializer.validated_data['otp'])
    except RideServiceError as e:
        return _error_response(e)

    return Response({
        'message': result.message,
        'ride': RideSerializer(result.ride).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDriver])
def complete_ride(request, ride_id):
    """Driver completes the trip at the destination"""
    serializer = CompleteRideSerializer(data=request.data)
    if not serializer.is_valid():
        return _validation_response(serializer.errors)

    data = serializer.validated_data
    try:
        result = ride_management.complete_ride(
            request.user,
            ride_id,
            fare=data.get('fare'),
            distance_km=data.get('distance'),
            duration_min=data.get('duration'),
        )
    except RideServiceError as e:
        return _error_response(e)

    return Response({
        'message': result.message,
        'ride': RideSerializer(result.ride).data,
        'driver_totals': result.extra['driver_totals'] if result.extra else None,
    })
