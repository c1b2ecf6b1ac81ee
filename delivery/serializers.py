# delivery/serializers.py
from decimal import Decimal

from rest_framework import serializers

from .models import DeliveryBlackout, DeliveryZone, StoreSettings


class DeliveryZoneSerializer(serializers.ModelSerializer):
    class Meta:
        model = DeliveryZone
        fields = [
            "id",
            "zone_name",
            "min_distance_miles",
            "max_distance_miles",
            "delivery_fee",
            "estimated_time_minutes",
            "is_active",
            "sort_order",
        ]

    def validate(self, attrs):
        low = attrs.get("min_distance_miles", getattr(self.instance, "min_distance_miles", Decimal("0")))
        high = attrs.get("max_distance_miles", getattr(self.instance, "max_distance_miles", None))
        if high is not None and high <= low:
            raise serializers.ValidationError(
                {"max_distance_miles": "Must be greater than min_distance_miles."}
            )
        return attrs


class DeliveryBlackoutSerializer(serializers.ModelSerializer):
    zip_codes = serializers.ListField(child=serializers.CharField(max_length=10))

    class Meta:
        model = DeliveryBlackout
        fields = ["id", "area_name", "zip_codes", "reason", "is_active"]


class StoreSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = StoreSettings
        fields = [
            "id",
            "store_name",
            "address",
            "city",
            "state",
            "zip_code",
            "phone",
            "latitude",
            "longitude",
            "max_delivery_distance_miles",
            "updated_at",
        ]
        read_only_fields = ["id", "updated_at"]


class DeliveryFeeRequestSerializer(serializers.Serializer):
    latitude = serializers.FloatField(required=False, allow_null=True, min_value=-90, max_value=90)
    longitude = serializers.FloatField(required=False, allow_null=True, min_value=-180, max_value=180)
    zipCode = serializers.CharField(max_length=10, required=False, allow_blank=True)
    address = serializers.CharField(max_length=500, required=False, allow_blank=True)


class DispatchRequestSerializer(serializers.Serializer):
    orderId = serializers.IntegerField()
