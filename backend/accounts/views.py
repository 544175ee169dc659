from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken

from drivers.models import DriverProfile
from drivers.serializers import DriverProfileSerializer

from .serializers import RegisterSerializer, LoginSerializer, UserSerializer


def _token_pair(user):
    refresh = RefreshToken.for_user(user)
    return {
        'refresh': str(refresh),
        'access': str(refresh.access_token),
    }


class RegisterView(APIView):
    """
    Register a new user (rider or driver)

    POST Body:
    {
        "username": "john_doe",
        "email": "john@example.com",
        "password": "password123",
        "role": "user",  // or "driver"
        "phone_number": "+911234567890",
        "vehicle_number": "DL-1234",  // required for drivers
        "vehicle_type": "car"  // car, auto, bike, motorcycle
    }
    """
    permission_classes = (AllowAny,)
    authentication_classes = []

    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()

            return Response({
                'message': 'User registered successfully',
                'user': UserSerializer(user, context={'request': request}).data,
                'tokens': _token_pair(user),
            }, status=status.HTTP_201_CREATED)

        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class LoginView(APIView):
    """
    Login with username and password to get JWT tokens

    POST Body:
    {
        "username": "john_doe",
        "password": "password123"
    }
    """
    permission_classes = (AllowAny,)
    authentication_classes = []

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.validated_data

        return Response({
            "message": "Login successful",
            "user": UserSerializer(user, context={'request': request}).data,
            "tokens": _token_pair(user),
        }, status=status.HTTP_200_OK)


class RefreshTokenView(APIView):
    """
    Refresh JWT access token

    POST Body:
    {
        "refresh": "your_refresh_token"
    }
    """
    permission_classes = (AllowAny,)
    authentication_classes = []

    def post(self, request):
        refresh_token = request.data.get('refresh')

        if not refresh_token:
            return Response(
                {'error': 'Refresh token is required'},
                status=status.HTTP_400_BAD_REQUEST
            )

        try:
            refresh = RefreshToken(refresh_token)
        except TokenError:
            return Response(
                {'error': 'Invalid refresh token'},
                status=status.HTTP_401_UNAUTHORIZED
            )
        return Response({'access': str(refresh.access_token)})


class ProfileView(APIView):
    """
    Current account's profile. Drivers also get their vehicle and counters.
    """
    permission_classes = (IsAuthenticated,)

    def get(self, request):
        data = {
            'user': UserSerializer(request.user, context={'request': request}).data,
        }
        if request.user.role == 'driver':
            profile = DriverProfile.objects.filter(user=request.user).first()
            data['driver_profile'] = (
                DriverProfileSerializer(profile, context={'request': request}).data if profile else None
            )
        return Response(data)


class LogoutView(APIView):
    """
    Revoke a refresh token so it can no longer mint access tokens

    POST Body:
    {
        "refresh": "your_refresh_token"
    }
    """
    permission_classes = (IsAuthenticated,)

    def post(self, request):
        refresh_token = request.data.get('refresh')

        if not refresh_token:
            return Response(
                {'error': 'Refresh token is required'},
                status=status.HTTP_400_BAD_REQUEST
            )

        try:
            token = RefreshToken(refresh_token)
        except TokenError:
            return Response(
                {'error': 'Invalid refresh token'},
                status=status.HTTP_401_UNAUTHORIZED
            )

        if str(token.get('user_id')) != str(request.user.pk):
            return Response(
                {'error': 'Token does not belong to this account'},
                status=status.HTTP_403_FORBIDDEN
            )

        token.blacklist()
        return Response({'message': 'Logged out'})
