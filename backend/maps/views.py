"""HTTP endpoints over the routing/geocoding adapter."""

from dataclasses import asdict

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from services.maps import MapsServiceError, get_maps_service
from .serializers import AddressQuerySerializer, DistanceQuerySerializer, SuggestionQuerySerializer


def _invalid(serializer):
    return Response(
        {'error': 'Invalid query parameters', 'code': 'validation_error', 'details': serializer.errors},
        status=status.HTTP_400_BAD_REQUEST
    )


def _provider_failure(exc: MapsServiceError):
    return Response({'error': str(exc), 'code': exc.code}, status=exc.status_code)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def get_coordinates(request):
    """Geocode an address to latitude/longitude"""
    serializer = AddressQuerySerializer(data=request.query_params)
    if not serializer.is_valid():
        return _invalid(serializer)

    try:
        coordinates = get_maps_service().get_coordinates(serializer.validated_data['address'])
    except MapsServiceError as e:
        return _provider_failure(e)

    return Response(asdict(coordinates))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def get_distance_time(request):
    """Road distance and travel time between two locations"""
    serializer = DistanceQuerySerializer(data=request.query_params)
    if not serializer.is_valid():
        return _invalid(serializer)

    try:
        estimate = get_maps_service().get_distance_time(
            serializer.validated_data['origin'],
            serializer.validated_data['destination'],
        )
    except MapsServiceError as e:
        return _provider_failure(e)

    return Response(asdict(estimate))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def get_suggestions(request):
    """Top place suggestions for partial input"""
    serializer = SuggestionQuerySerializer(data=request.query_params)
    if not serializer.is_valid():
        return _invalid(serializer)

    try:
        suggestions = get_maps_service().get_suggestions(serializer.validated_data['input'])
    except MapsServiceError as e:
        return _provider_failure(e)

    return Response({'suggestions': suggestions, 'count': len(suggestions)})
