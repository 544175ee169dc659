from rest_framework import serializers


class AddressQuerySerializer(serializers.Serializer):
    address = serializers.CharField(min_length=3)


class DistanceQuerySerializer(serializers.Serializer):
    origin = serializers.CharField(min_length=3)
    destination = serializers.CharField(min_length=3)


class SuggestionQuerySerializer(serializers.Serializer):
    input = serializers.CharField(min_length=3)
