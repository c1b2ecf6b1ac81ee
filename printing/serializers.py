# printing/serializers.py
from rest_framework import serializers

from common.errors import ValidationError
from .models import PrinterConfig
from .services import validate_printer_address


class PrinterConfigSerializer(serializers.ModelSerializer):
    class Meta:
        model = PrinterConfig
        fields = ["id", "name", "ip_address", "port", "location", "is_active", "is_primary"]
        read_only_fields = ["id", "is_primary"]

    def validate(self, attrs):
        ip = attrs.get("ip_address", getattr(self.instance, "ip_address", ""))
        port = attrs.get("port", getattr(self.instance, "port", 80))
        try:
            validate_printer_address(ip, port)
        except ValidationError as e:
            raise serializers.ValidationError({"ip_address": str(e.detail)})
        return attrs


class PrintOrderSerializer(serializers.Serializer):
    orderId = serializers.IntegerField()
    printerId = serializers.IntegerField(required=False, allow_null=True)
