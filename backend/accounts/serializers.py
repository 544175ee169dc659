from rest_framework import serializers
from django.contrib.auth import authenticate
from django.db import transaction

from .models import User
from drivers.models import DriverProfile


class UserSerializer(serializers.ModelSerializer):
    profile_picture_url = serializers.SerializerMethodField(read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "email",
            "first_name",
            "last_name",
            "role",
            "phone_number",
            "rating",
            "profile_picture",
            "profile_picture_url",
        ]
        read_only_fields = ["id", "rating", "profile_picture_url"]
        extra_kwargs = {
            "profile_picture": {"write_only": True, "required": False}
        }

    def get_profile_picture_url(self, obj):
        if obj.profile_picture:
            request = self.context.get("request")
            if request:
                return request.build_absolute_uri(obj.profile_picture.url)
            return obj.profile_picture.url
        return None


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField(write_only=True)

    def validate(self, data):
        user = authenticate(username=data["username"], password=data["password"])
        if not user:
            raise serializers.ValidationError("Invalid username or password")
        return user


class RegisterSerializer(serializers.ModelSerializer):
    """Registers a rider, or a driver together with their vehicle."""
    password = serializers.CharField(write_only=True)
    vehicle_number = serializers.CharField(required=False)
    vehicle_type = serializers.ChoiceField(choices=DriverProfile.VEHICLE_CHOICES, required=False)
    vehicle_color = serializers.CharField(required=False, allow_blank=True)
    vehicle_capacity = serializers.IntegerField(required=False, min_value=1)

    class Meta:
        model = User
        fields = [
            'username', 'password', 'email', 'first_name', 'last_name', 'role', 'phone_number',
            'vehicle_number', 'vehicle_type', 'vehicle_color', 'vehicle_capacity',
        ]
        extra_kwargs = {
            'phone_number': {'required': False},
        }

    def validate_email(self, value):
        if value and User.objects.filter(email=value).exists():
            raise serializers.ValidationError("Email already exists")
        return value

    def validate_vehicle_number(self, value):
        if DriverProfile.objects.filter(vehicle_number=value).exists():
            raise serializers.ValidationError("Vehicle number already registered")
        return value

    def validate(self, data):
        # Drivers must register a vehicle
        if data['role'] == User.ROLE_DRIVER and not data.get('vehicle_number'):
            raise serializers.ValidationError({
                'vehicle_number': 'Vehicle number is required for drivers'
            })
        return data

    @transaction.atomic
    def create(self, validated_data):
        vehicle = {
            key: validated_data.pop(key)
            for key in ('vehicle_number', 'vehicle_type', 'vehicle_color', 'vehicle_capacity')
            if key in validated_data
        }
        password = validated_data.pop('password')

        user = User.objects.create_user(password=password, **validated_data)

        if user.is_driver:
            DriverProfile.objects.create(user=user, **vehicle)

        return user
