from rest_framework import serializers

from .models import InventoryIntegration


class InventoryIntegrationSerializer(serializers.ModelSerializer):
    access_token = serializers.CharField(
        write_only=True, required=False, allow_blank=True, trim_whitespace=True
    )
    masked_token = serializers.CharField(read_only=True)

    class Meta:
        model = InventoryIntegration
        fields = [
            "id",
            "provider",
            "environment",
            "display_name",
            "access_token",
            "masked_token",
            "last_success_at",
            "last_error",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "id",
            "masked_token",
            "last_success_at",
            "last_error",
            "created_at",
            "updated_at",
        ]
